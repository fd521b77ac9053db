from __future__ import annotations

from typing import Optional, Protocol

from settleup.db.models import Settlement, SettlementAccess
from settleup.services.errors import AuthorizationError, SettlementNotFoundError


class AuthorizationGate(Protocol):
    async def check_access(self, settlement_id: str, user_id: str) -> SettlementAccess: ...


def resolve_access(settlement: Optional[Settlement], user_id: str) -> SettlementAccess:
    if settlement is None or settlement.deleted_at is not None:
        return SettlementAccess(exists=False, accessible=False)
    return SettlementAccess(
        exists=True,
        accessible=settlement.owner_id == user_id,
        status=settlement.status,
    )


async def assert_settlement_owner(gate: AuthorizationGate, settlement_id: str, user_id: str) -> SettlementAccess:
    access = await gate.check_access(settlement_id, user_id)
    if not access.exists:
        raise SettlementNotFoundError("settlement not found", settlement_id=settlement_id)
    if not access.accessible:
        raise AuthorizationError("only the settlement owner can do this", settlement_id=settlement_id)
    return access
