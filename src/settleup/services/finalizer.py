"""Closing a settlement: validate, aggregate, minimize, persist once."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Mapping, Protocol, Sequence

from settleup.db.models import CloseOutcome, PersistResult, SettlementSnapshot, SettlementStatus
from settleup.logging import get_logger
from settleup.services.authz import AuthorizationGate, assert_settlement_owner
from settleup.services.balances import ExpenseShare, calculate_balances
from settleup.services.errors import (
    PreconditionViolation,
    SettlementClosedError,
    SettlementNotClosedError,
    SettlementNotFoundError,
    SnapshotMissingError,
)
from settleup.services.transfers import ALGORITHM_VERSION, Transfer, minimize_transfers
from settleup.services.validation import ParticipantReader, validate_closing


class ExpenseReader(Protocol):
    async def list_expenses(self, settlement_id: str) -> list[ExpenseShare]: ...


class SnapshotStore(Protocol):
    async def try_transition_and_persist(
        self,
        settlement_id: str,
        balances: Mapping[str, int],
        transfers: Sequence[Transfer],
        closed_at: datetime,
        *,
        actor_id: str,
        algorithm_version: int,
    ) -> PersistResult: ...

    async def get_snapshot(self, settlement_id: str) -> SettlementSnapshot | None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SettlementFinalizer:
    def __init__(
        self,
        gate: AuthorizationGate,
        participants: ParticipantReader,
        expenses: ExpenseReader,
        store: SnapshotStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._gate = gate
        self._participants = participants
        self._expenses = expenses
        self._store = store
        self._clock = clock
        self._log = get_logger(__name__)

    async def close(self, settlement_id: str, user_id: str) -> CloseOutcome:
        log = self._log.bind(settlement_id=settlement_id, user_id=user_id)

        try:
            participant_ids = await validate_closing(self._gate, self._participants, settlement_id, user_id)
        except SettlementClosedError:
            snapshot = await self._store.get_snapshot(settlement_id)
            if snapshot is None:
                log.warning("settlement.close.closed_without_snapshot")
                raise
            log.info("settlement.close.replayed")
            return CloseOutcome.from_snapshot(snapshot, replayed=True)

        expenses = await self._expenses.list_expenses(settlement_id)
        try:
            balances = calculate_balances(expenses, participant_ids)
            transfers = minimize_transfers(balances)
        except PreconditionViolation as exc:
            exc.settlement_id = settlement_id
            log.exception(
                "settlement.close.precondition_failed",
                participants=sorted(participant_ids),
                expenses=len(expenses),
            )
            raise

        closed_at = self._clock()
        result = await self._store.try_transition_and_persist(
            settlement_id,
            balances,
            transfers,
            closed_at,
            actor_id=user_id,
            algorithm_version=ALGORITHM_VERSION,
        )

        if result.applied and result.snapshot is not None:
            log.info("settlement.close.applied", transfers=len(transfers), closed_at=closed_at.isoformat())
            return CloseOutcome.from_snapshot(result.snapshot, replayed=False)

        access = await self._gate.check_access(settlement_id, user_id)
        if not access.exists:
            log.info("settlement.close.deleted_before_transition")
            raise SettlementNotFoundError("settlement not found", settlement_id=settlement_id)

        # another closer committed first; its snapshot is the answer
        snapshot = result.snapshot or await self._store.get_snapshot(settlement_id)
        if snapshot is None:
            log.error("settlement.close.lost_race_without_snapshot")
            raise SettlementClosedError("settlement is already closed", settlement_id=settlement_id)
        log.info("settlement.close.lost_race")
        return CloseOutcome.from_snapshot(snapshot, replayed=True)

    async def get_snapshot(self, settlement_id: str, user_id: str) -> CloseOutcome:
        access = await assert_settlement_owner(self._gate, settlement_id, user_id)
        if access.status != SettlementStatus.CLOSED:
            raise SettlementNotClosedError("settlement is not closed yet", settlement_id=settlement_id)

        snapshot = await self._store.get_snapshot(settlement_id)
        if snapshot is None:
            self._log.error("settlement.snapshot.missing", settlement_id=settlement_id, user_id=user_id)
            raise SnapshotMissingError("snapshot data not found for closed settlement", settlement_id=settlement_id)
        return CloseOutcome.from_snapshot(snapshot, replayed=True)
