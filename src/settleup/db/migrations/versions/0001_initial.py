"""initial schema

Revision ID: 0001
Revises:
Create Date: 2025-11-03 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("tg_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("username", sa.Text()),
        sa.Column("full_name", sa.Text()),
    )

    op.create_table(
        "settlements",
        _uuid_pk(),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="open"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="PLN"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
        sa.Column("last_edited_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.CheckConstraint("status in ('open','closed')", name="settlements_status_check"),
        sa.CheckConstraint(
            "(status = 'closed') = (closed_at IS NOT NULL)",
            name="settlements_closed_at_check",
        ),
        sa.CheckConstraint("char_length(title) <= 100", name="settlements_title_length_check"),
    )

    op.create_table(
        "participants",
        _uuid_pk(),
        sa.Column(
            "settlement_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("settlements.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("nickname", sa.Text(), nullable=False),
        sa.Column("is_owner", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
        sa.UniqueConstraint("id", "settlement_id", name="participants_id_settlement_key"),
    )

    op.create_table(
        "expenses",
        _uuid_pk(),
        sa.Column(
            "settlement_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("settlements.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("payer_participant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("expense_date", sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column("share_count", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        sa.CheckConstraint("amount_cents > 0", name="expenses_amount_positive_check"),
        sa.UniqueConstraint("id", "settlement_id", name="expenses_id_settlement_key"),
        sa.ForeignKeyConstraint(
            ["payer_participant_id", "settlement_id"],
            ["participants.id", "participants.settlement_id"],
            name="expenses_payer_consistency",
        ),
    )

    op.create_table(
        "expense_participants",
        sa.Column("expense_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("participant_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("settlement_id", postgresql.UUID(as_uuid=True), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(
            ["expense_id", "settlement_id"],
            ["expenses.id", "expenses.settlement_id"],
            name="expense_participants_expense_fk",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["participant_id", "settlement_id"],
            ["participants.id", "participants.settlement_id"],
            name="expense_participants_participant_fk",
        ),
    )

    op.create_table(
        "settlement_snapshots",
        _uuid_pk(),
        sa.Column(
            "settlement_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("settlements.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("algorithm_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("balances", postgresql.JSONB(), nullable=False),
        sa.Column("transfers", postgresql.JSONB(), nullable=False),
        _created_at(),
    )

    op.create_table(
        "events",
        _uuid_pk(),
        sa.Column(
            "settlement_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("settlements.id", ondelete="SET NULL"),
        ),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        _created_at(),
    )

    op.create_index(
        "idx_participants_nickname_norm",
        "participants",
        ["settlement_id", sa.text("lower(nickname)")],
        unique=True,
    )
    op.create_index("idx_settlements_owner", "settlements", ["owner_id"])
    op.create_index("idx_expenses_settlement", "expenses", ["settlement_id"])
    op.create_index("idx_expense_participants_settlement", "expense_participants", ["settlement_id"])
    op.create_index("idx_events_settlement", "events", ["settlement_id"])


def downgrade() -> None:
    op.drop_index("idx_events_settlement", table_name="events")
    op.drop_index("idx_expense_participants_settlement", table_name="expense_participants")
    op.drop_index("idx_expenses_settlement", table_name="expenses")
    op.drop_index("idx_settlements_owner", table_name="settlements")
    op.drop_index("idx_participants_nickname_norm", table_name="participants")

    op.drop_table("events")
    op.drop_table("settlement_snapshots")
    op.drop_table("expense_participants")
    op.drop_table("expenses")
    op.drop_table("participants")
    op.drop_table("settlements")
    op.drop_table("users")
