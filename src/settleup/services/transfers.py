from __future__ import annotations

import heapq
from dataclasses import dataclass
from typing import Any, List, Mapping

from settleup.services.errors import BalanceInvariantError

ALGORITHM_VERSION = 1


@dataclass(frozen=True, slots=True)
class Transfer:
    from_participant: str
    to_participant: str
    amount_cents: int

    def as_dict(self) -> dict[str, Any]:
        return {"from": self.from_participant, "to": self.to_participant, "amount_cents": self.amount_cents}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Transfer:
        return cls(
            from_participant=str(data["from"]),
            to_participant=str(data["to"]),
            amount_cents=int(data["amount_cents"]),
        )


def minimize_transfers(balances: Mapping[str, int]) -> List[Transfer]:
    """Greedily match the largest creditor with the largest debtor.

    Ties on the remaining amount go to the smaller participant id, which keeps
    the output identical for identical input.
    """
    total = sum(balances.values())
    if total != 0:
        raise BalanceInvariantError(f"balances sum to {total}, expected 0")

    # heap entries are (-remaining, participant_id): largest amount first, then smallest id
    creditors: list[tuple[int, str]] = []
    debtors: list[tuple[int, str]] = []

    for participant_id, balance in balances.items():
        if balance > 0:
            creditors.append((-balance, participant_id))
        elif balance < 0:
            debtors.append((balance, participant_id))

    heapq.heapify(creditors)
    heapq.heapify(debtors)

    transfers: list[Transfer] = []

    while creditors and debtors:
        cred_neg, cred_id = heapq.heappop(creditors)
        debt_neg, debt_id = heapq.heappop(debtors)

        transfer_amount = min(-cred_neg, -debt_neg)
        transfers.append(Transfer(from_participant=debt_id, to_participant=cred_id, amount_cents=transfer_amount))

        cred_left = -cred_neg - transfer_amount
        debt_left = -debt_neg - transfer_amount

        if cred_left:
            heapq.heappush(creditors, (-cred_left, cred_id))
        if debt_left:
            heapq.heappush(debtors, (-debt_left, debt_id))

    return transfers
