from datetime import datetime, timezone

import pytest

from settleup.db.models import Settlement, SettlementAccess, SettlementStatus
from settleup.services.authz import assert_settlement_owner, resolve_access
from settleup.services.errors import AuthorizationError, NoParticipantsError, SettlementClosedError, SettlementNotFoundError
from settleup.services.validation import validate_closing


def _settlement(**overrides) -> Settlement:
    fields = dict(
        id="s-1",
        owner_id="owner",
        title="Trip",
        status=SettlementStatus.OPEN,
        currency="PLN",
        version=0,
        created_at=datetime(2025, 11, 1, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return Settlement(**fields)


class StubGate:
    def __init__(self, access: SettlementAccess) -> None:
        self.access = access

    async def check_access(self, settlement_id: str, user_id: str) -> SettlementAccess:
        return self.access


class StubParticipants:
    def __init__(self, ids: set[str]) -> None:
        self.ids = ids
        self.calls = 0

    async def list_participant_ids(self, settlement_id: str) -> set[str]:
        self.calls += 1
        return self.ids


def test_resolve_access_owner():
    access = resolve_access(_settlement(), "owner")
    assert access == SettlementAccess(exists=True, accessible=True, status=SettlementStatus.OPEN)


def test_resolve_access_other_user():
    access = resolve_access(_settlement(status=SettlementStatus.CLOSED), "someone-else")
    assert access.exists is True
    assert access.accessible is False


def test_resolve_access_missing_or_deleted():
    assert resolve_access(None, "owner").exists is False
    deleted = _settlement(deleted_at=datetime(2025, 11, 2, tzinfo=timezone.utc))
    assert resolve_access(deleted, "owner") == SettlementAccess(exists=False, accessible=False)


@pytest.mark.asyncio
async def test_assert_settlement_owner_not_found():
    with pytest.raises(SettlementNotFoundError):
        await assert_settlement_owner(StubGate(SettlementAccess(False, False)), "s-1", "owner")


@pytest.mark.asyncio
async def test_assert_settlement_owner_denied():
    gate = StubGate(SettlementAccess(True, False, SettlementStatus.OPEN))
    with pytest.raises(AuthorizationError) as exc_info:
        await assert_settlement_owner(gate, "s-1", "intruder")
    assert exc_info.value.code == "forbidden"


@pytest.mark.asyncio
async def test_validate_closing_returns_participants():
    gate = StubGate(SettlementAccess(True, True, SettlementStatus.OPEN))
    participants = StubParticipants({"p1", "p2"})

    result = await validate_closing(gate, participants, "s-1", "owner")

    assert result == frozenset({"p1", "p2"})


@pytest.mark.asyncio
async def test_validate_closing_rejects_closed_before_reading_participants():
    gate = StubGate(SettlementAccess(True, True, SettlementStatus.CLOSED))
    participants = StubParticipants({"p1"})

    with pytest.raises(SettlementClosedError):
        await validate_closing(gate, participants, "s-1", "owner")
    assert participants.calls == 0


@pytest.mark.asyncio
async def test_validate_closing_checks_permission_before_status():
    gate = StubGate(SettlementAccess(True, False, SettlementStatus.CLOSED))

    with pytest.raises(AuthorizationError):
        await validate_closing(gate, StubParticipants({"p1"}), "s-1", "intruder")


@pytest.mark.asyncio
async def test_validate_closing_without_participants():
    gate = StubGate(SettlementAccess(True, True, SettlementStatus.OPEN))

    with pytest.raises(NoParticipantsError) as exc_info:
        await validate_closing(gate, StubParticipants(set()), "s-1", "owner")
    assert exc_info.value.code == "no_participants"
    assert exc_info.value.settlement_id == "s-1"
