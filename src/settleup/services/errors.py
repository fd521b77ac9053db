"""Error taxonomy of the settlement-closing core.

``ClosingValidationError`` subclasses are user-facing and carry a stable
reason ``code``. ``PreconditionViolation`` subclasses signal a caller bug or
broken data upstream; front-ends must report them generically.
"""

from __future__ import annotations


class SettlementError(Exception):
    code = "server_error"

    def __init__(self, message: str = "", *, settlement_id: str | None = None) -> None:
        super().__init__(message or self.code)
        self.settlement_id = settlement_id


class ClosingValidationError(SettlementError):
    code = "validation_error"


class SettlementNotFoundError(ClosingValidationError):
    code = "not_found"


class AuthorizationError(ClosingValidationError):
    code = "forbidden"


class SettlementClosedError(ClosingValidationError):
    code = "settlement_closed"


class SettlementNotClosedError(ClosingValidationError):
    code = "settlement_open"


class NoParticipantsError(ClosingValidationError):
    code = "no_participants"


class PreconditionViolation(SettlementError):
    code = "server_error"


class BalanceInvariantError(PreconditionViolation):
    pass


class UnknownParticipantError(PreconditionViolation):
    pass


class InvalidExpenseError(PreconditionViolation):
    pass


class SnapshotMissingError(PreconditionViolation):
    pass
