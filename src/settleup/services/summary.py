from __future__ import annotations

from typing import Mapping
from zoneinfo import ZoneInfo

from settleup.db.models import CloseOutcome


def format_cents(amount_cents: int, *, signed: bool = False) -> str:
    units, cents = divmod(abs(amount_cents), 100)
    sign = "-" if amount_cents < 0 else ("+" if signed and amount_cents > 0 else "")
    return f"{sign}{units}.{cents:02d}"


def format_close_outcome(
    outcome: CloseOutcome,
    nicknames: Mapping[str, str],
    tz: ZoneInfo,
    currency: str = "PLN",
) -> str:
    def name(participant_id: str) -> str:
        return nicknames.get(participant_id, participant_id)

    local_dt = outcome.closed_at.astimezone(tz)
    header = "Settlement was already closed" if outcome.replayed else "Settlement closed"
    lines = [f"{header}: {local_dt.strftime('%d.%m.%Y %H:%M %Z')}", "", "Balances:"]

    for participant_id in sorted(outcome.balances, key=lambda pid: (name(pid).lower(), pid)):
        amount = format_cents(outcome.balances[participant_id], signed=True)
        lines.append(f"  {name(participant_id)}: {amount} {currency}")

    lines.append("")
    if not outcome.transfers:
        lines.append("No transfers needed.")
    else:
        lines.append("Transfers:")
        for transfer in outcome.transfers:
            lines.append(
                f"  {name(transfer.from_participant)} → {name(transfer.to_participant)}: "
                f"{format_cents(transfer.amount_cents)} {currency}"
            )
    return "\n".join(lines)
