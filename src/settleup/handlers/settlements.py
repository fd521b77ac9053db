from __future__ import annotations

from uuid import UUID

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from settleup.config import get_settings
from settleup.db.models import CloseOutcome
from settleup.db.repo import SettleUpRepository, get_global_repository, nicknames_by_id
from settleup.logging import get_logger
from settleup.services.errors import ClosingValidationError, PreconditionViolation
from settleup.services.finalizer import SettlementFinalizer
from settleup.services.summary import format_close_outcome

settlements_router = Router()

VALIDATION_MESSAGES = {
    "not_found": "Settlement not found.",
    "forbidden": "Only the settlement owner can do this.",
    "settlement_closed": "This settlement is already closed.",
    "settlement_open": "This settlement is still open. Close it with /close first.",
    "no_participants": "Add at least one participant before closing the settlement.",
}

INTERNAL_ERROR_MESSAGE = "Something went wrong while settling up. Please try again later."


def build_finalizer(repo: SettleUpRepository) -> SettlementFinalizer:
    return SettlementFinalizer(gate=repo, participants=repo, expenses=repo, store=repo)


def parse_settlement_id(text: str | None) -> str | None:
    if not text:
        return None
    parts = text.split()
    if len(parts) < 2:
        return None
    try:
        return str(UUID(parts[1]))
    except ValueError:
        return None


async def _render(repo: SettleUpRepository, outcome: CloseOutcome) -> str:
    settlement = await repo.get_settlement(outcome.settlement_id)
    participants = await repo.list_participants(outcome.settlement_id)
    currency = settlement.currency if settlement else "PLN"
    return format_close_outcome(outcome, nicknames_by_id(participants), get_settings().zoneinfo, currency)


@settlements_router.message(Command("close"))
async def cmd_close(message: Message) -> None:
    settlement_id = parse_settlement_id(message.text)
    if settlement_id is None:
        await message.answer("Usage: /close <settlement_id>")
        return

    user = message.from_user
    if not user:
        return

    repo = get_global_repository()
    user_id = await repo.ensure_user(user.id, user.username, user.full_name)
    log = get_logger(__name__).bind(settlement_id=settlement_id, user_id=user_id)

    try:
        outcome = await build_finalizer(repo).close(settlement_id, user_id)
    except ClosingValidationError as exc:
        log.info("settlement.close.rejected", code=exc.code)
        await message.answer(VALIDATION_MESSAGES.get(exc.code, INTERNAL_ERROR_MESSAGE))
        return
    except PreconditionViolation:
        await message.answer(INTERNAL_ERROR_MESSAGE)
        return

    await message.answer(await _render(repo, outcome))


@settlements_router.message(Command("snapshot"))
async def cmd_snapshot(message: Message) -> None:
    settlement_id = parse_settlement_id(message.text)
    if settlement_id is None:
        await message.answer("Usage: /snapshot <settlement_id>")
        return

    user = message.from_user
    if not user:
        return

    repo = get_global_repository()
    user_id = await repo.ensure_user(user.id, user.username, user.full_name)

    try:
        outcome = await build_finalizer(repo).get_snapshot(settlement_id, user_id)
    except ClosingValidationError as exc:
        await message.answer(VALIDATION_MESSAGES.get(exc.code, INTERNAL_ERROR_MESSAGE))
        return
    except PreconditionViolation:
        await message.answer(INTERNAL_ERROR_MESSAGE)
        return

    await message.answer(await _render(repo, outcome))
