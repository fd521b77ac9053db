from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, Mapping, Optional, Sequence

import asyncpg

from settleup.db.models import (
    Participant,
    PersistResult,
    Settlement,
    SettlementAccess,
    SettlementSnapshot,
    SettlementStatus,
)
from settleup.logging import get_logger, sql_logger
from settleup.services.authz import resolve_access
from settleup.services.balances import ExpenseShare
from settleup.services.transfers import Transfer


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg expects a plain postgresql:// scheme, without "+asyncpg"
            dsn = self._dsn.replace("+asyncpg", "")
            self._pool = await asyncpg.create_pool(dsn, init=_init_connection)
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetch", query=query, args=args)
        return await self._pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchrow", query=query, args=args)
        return await self._pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchval", query=query, args=args)
        return await self._pool.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.execute", query=query, args=args)
        return await self._pool.execute(query, *args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        await self._ensure_pool()
        assert self._pool
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                sql_logger.info("sql.transaction.begin")
                yield conn
        sql_logger.info("sql.transaction.commit")

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


SNAPSHOT_COLUMNS = "settlement_id::text AS settlement_id, algorithm_version, balances, transfers, created_at"


def _snapshot_from_row(row: Mapping[str, Any]) -> SettlementSnapshot:
    return SettlementSnapshot(
        settlement_id=str(row["settlement_id"]),
        algorithm_version=int(row["algorithm_version"]),
        balances={str(key): int(value) for key, value in row["balances"].items()},
        transfers=tuple(Transfer.from_dict(item) for item in row["transfers"]),
        created_at=row["created_at"],
    )


class SettleUpRepository:
    def __init__(self, db: Database, app_env: str = "dev") -> None:
        self.db = db
        self.app_env = app_env

    async def ensure_user(self, tg_id: int, username: Optional[str], full_name: Optional[str]) -> str:
        row = await self.db.fetchrow(
            """
            INSERT INTO users (tg_id, username, full_name)
            VALUES ($1, $2, $3)
            ON CONFLICT (tg_id) DO UPDATE
                SET username = EXCLUDED.username,
                    full_name = EXCLUDED.full_name
            RETURNING id::text AS id
            """,
            tg_id,
            username,
            full_name,
        )
        assert row is not None
        return str(row["id"])

    async def get_settlement(self, settlement_id: str) -> Settlement | None:
        row = await self.db.fetchrow(
            """
            SELECT id::text AS id, owner_id::text AS owner_id, title, status, currency,
                   version, created_at, closed_at, deleted_at
            FROM settlements
            WHERE id = $1
            """,
            settlement_id,
        )
        if row is None:
            return None
        return Settlement(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            status=SettlementStatus(row["status"]),
            currency=row["currency"],
            version=row["version"],
            created_at=row["created_at"],
            closed_at=row["closed_at"],
            deleted_at=row["deleted_at"],
        )

    async def check_access(self, settlement_id: str, user_id: str) -> SettlementAccess:
        return resolve_access(await self.get_settlement(settlement_id), user_id)

    async def list_participants(self, settlement_id: str) -> list[Participant]:
        rows = await self.db.fetch(
            """
            SELECT id::text AS id, settlement_id::text AS settlement_id, nickname, is_owner
            FROM participants
            WHERE settlement_id = $1
            ORDER BY created_at, id
            """,
            settlement_id,
        )
        return [
            Participant(
                id=row["id"],
                settlement_id=row["settlement_id"],
                nickname=row["nickname"],
                is_owner=row["is_owner"],
            )
            for row in rows
        ]

    async def list_participant_ids(self, settlement_id: str) -> set[str]:
        rows = await self.db.fetch(
            "SELECT id::text AS id FROM participants WHERE settlement_id = $1",
            settlement_id,
        )
        return {row["id"] for row in rows}

    async def list_expenses(self, settlement_id: str) -> list[ExpenseShare]:
        rows = await self.db.fetch(
            """
            SELECT e.id::text AS id,
                   e.payer_participant_id::text AS payer_id,
                   e.amount_cents,
                   array_agg(ep.participant_id::text ORDER BY ep.participant_id::text)
                       FILTER (WHERE ep.participant_id IS NOT NULL) AS share_ids
            FROM expenses e
            LEFT JOIN expense_participants ep ON ep.expense_id = e.id
            WHERE e.settlement_id = $1
            GROUP BY e.id
            ORDER BY e.created_at, e.id
            """,
            settlement_id,
        )
        return [
            ExpenseShare(
                payer_id=row["payer_id"],
                amount_cents=int(row["amount_cents"]),
                share_participant_ids=tuple(row["share_ids"] or ()),
                expense_id=row["id"],
            )
            for row in rows
        ]

    async def get_snapshot(self, settlement_id: str) -> SettlementSnapshot | None:
        row = await self.db.fetchrow(
            f"""
            SELECT {SNAPSHOT_COLUMNS}
            FROM settlement_snapshots
            WHERE settlement_id = $1
            ORDER BY created_at DESC
            LIMIT 1
            """,
            settlement_id,
        )
        return _snapshot_from_row(row) if row is not None else None

    async def try_transition_and_persist(
        self,
        settlement_id: str,
        balances: Mapping[str, int],
        transfers: Sequence[Transfer],
        closed_at: datetime,
        *,
        actor_id: str,
        algorithm_version: int,
    ) -> PersistResult:
        async with self.db.transaction() as conn:
            # the row lock taken here serializes concurrent closers; the loser
            # re-evaluates the WHERE clause after the winner commits
            transitioned = await conn.fetchval(
                """
                UPDATE settlements
                SET status = 'closed',
                    closed_at = $2,
                    updated_at = $2,
                    last_edited_by = $3,
                    version = version + 1
                WHERE id = $1 AND status = 'open' AND deleted_at IS NULL
                RETURNING id
                """,
                settlement_id,
                closed_at,
                actor_id,
            )
            if transitioned is None:
                snapshot_row = None
            else:
                snapshot_row = await conn.fetchrow(
                    f"""
                    INSERT INTO settlement_snapshots (settlement_id, algorithm_version, balances, transfers, created_at)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING {SNAPSHOT_COLUMNS}
                    """,
                    settlement_id,
                    algorithm_version,
                    dict(sorted(balances.items())),
                    [transfer.as_dict() for transfer in transfers],
                    closed_at,
                )
                await conn.execute(
                    """
                    INSERT INTO events (settlement_id, actor_id, event_type, payload, created_at)
                    VALUES ($1, $2, 'settlement_closed', $3, $4)
                    """,
                    settlement_id,
                    actor_id,
                    {"env": self.app_env, "transfers_count": len(transfers)},
                    closed_at,
                )

        if snapshot_row is None:
            return PersistResult(applied=False, snapshot=await self.get_snapshot(settlement_id))
        return PersistResult(applied=True, snapshot=_snapshot_from_row(snapshot_row))


def nicknames_by_id(participants: Iterable[Participant]) -> dict[str, str]:
    return {participant.id: participant.nickname for participant in participants}


_global_repo: SettleUpRepository | None = None


def set_global_repository(repo: SettleUpRepository) -> None:
    global _global_repo
    _global_repo = repo


def get_global_repository() -> SettleUpRepository:
    if _global_repo is None:
        raise RuntimeError("repository is not initialized")
    return _global_repo
