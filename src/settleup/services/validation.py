from __future__ import annotations

from typing import Protocol

from settleup.db.models import SettlementStatus
from settleup.services.authz import AuthorizationGate, assert_settlement_owner
from settleup.services.errors import NoParticipantsError, SettlementClosedError


class ParticipantReader(Protocol):
    async def list_participant_ids(self, settlement_id: str) -> set[str]: ...


async def validate_closing(
    gate: AuthorizationGate,
    participants: ParticipantReader,
    settlement_id: str,
    user_id: str,
) -> frozenset[str]:
    """Check that ``user_id`` may close the settlement right now.

    Checks run in order and stop at the first failure: existence, ownership,
    open status, at least one participant. Returns the participant ids.
    """
    access = await assert_settlement_owner(gate, settlement_id, user_id)
    if access.status != SettlementStatus.OPEN:
        raise SettlementClosedError("settlement is already closed", settlement_id=settlement_id)

    participant_ids = await participants.list_participant_ids(settlement_id)
    if not participant_ids:
        raise NoParticipantsError("settlement has no participants", settlement_id=settlement_id)
    return frozenset(participant_ids)
