from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from settleup.services.transfers import Transfer


class SettlementStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(slots=True)
class Settlement:
    id: str
    owner_id: str
    title: str
    status: SettlementStatus
    currency: str
    version: int
    created_at: datetime
    closed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


@dataclass(slots=True)
class Participant:
    id: str
    settlement_id: str
    nickname: str
    is_owner: bool


@dataclass(frozen=True, slots=True)
class SettlementSnapshot:
    settlement_id: str
    algorithm_version: int
    balances: dict[str, int]
    transfers: tuple[Transfer, ...]
    created_at: datetime


@dataclass(frozen=True, slots=True)
class PersistResult:
    applied: bool
    snapshot: Optional[SettlementSnapshot]


@dataclass(frozen=True, slots=True)
class SettlementAccess:
    exists: bool
    accessible: bool
    status: Optional[SettlementStatus] = None


@dataclass(frozen=True, slots=True)
class CloseOutcome:
    settlement_id: str
    closed_at: datetime
    balances: dict[str, int]
    transfers: tuple[Transfer, ...]
    replayed: bool = False
    status: SettlementStatus = field(default=SettlementStatus.CLOSED)

    @classmethod
    def from_snapshot(cls, snapshot: SettlementSnapshot, *, replayed: bool) -> CloseOutcome:
        return cls(
            settlement_id=snapshot.settlement_id,
            closed_at=snapshot.created_at,
            balances=dict(snapshot.balances),
            transfers=tuple(snapshot.transfers),
            replayed=replayed,
        )

    def as_payload(self) -> dict:
        return {
            "id": self.settlement_id,
            "status": self.status.value,
            "closed_at": self.closed_at.isoformat(),
            "balances": {participant_id: self.balances[participant_id] for participant_id in sorted(self.balances)},
            "transfers": [transfer.as_dict() for transfer in self.transfers],
        }
