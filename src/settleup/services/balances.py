from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Iterable, Sequence

from settleup.services.errors import BalanceInvariantError, InvalidExpenseError, UnknownParticipantError


@dataclass(frozen=True, slots=True)
class ExpenseShare:
    payer_id: str
    amount_cents: int
    share_participant_ids: Sequence[str]
    expense_id: str | None = None


def split_amount(amount_cents: int, share_participant_ids: Iterable[str]) -> dict[str, int]:
    """Split ``amount_cents`` evenly across the sharers.

    Every sharer gets ``amount_cents // n``; the sharer whose id sorts last
    absorbs the remainder, so the shares always add up to the amount.
    """
    if amount_cents <= 0:
        raise InvalidExpenseError("amount_cents must be positive")

    ordered = sorted(set(share_participant_ids))
    if not ordered:
        raise InvalidExpenseError("share_participant_ids must not be empty")

    per_share, remainder = divmod(amount_cents, len(ordered))
    shares = {participant_id: per_share for participant_id in ordered}
    shares[ordered[-1]] += remainder
    return shares


def calculate_balances(
    expenses: Iterable[ExpenseShare],
    participant_ids: Collection[str],
) -> dict[str, int]:
    """Net balance per participant: positive is owed money, negative owes."""
    balances: dict[str, int] = {participant_id: 0 for participant_id in sorted(participant_ids)}

    for expense in expenses:
        referenced = {expense.payer_id, *expense.share_participant_ids}
        unknown = referenced.difference(balances)
        if unknown:
            raise UnknownParticipantError(
                f"expense {expense.expense_id} references unknown participants {sorted(unknown)}"
            )

        for participant_id, share in split_amount(expense.amount_cents, expense.share_participant_ids).items():
            balances[participant_id] -= share
        balances[expense.payer_id] += expense.amount_cents

    total = sum(balances.values())
    if total != 0:
        raise BalanceInvariantError(f"balances sum to {total}, expected 0")
    return balances
