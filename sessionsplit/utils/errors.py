"""
Domain errors raised by repositories and services.

Every error carries a stable ``code`` so the HTTP layer can pick a status
code without inspecting messages. Nothing here is retried internally.
"""

from typing import Any, Dict, Optional


class SettlementError(Exception):
    """Base class for all recoverable domain failures."""

    code = "settlement_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "code": self.code}
        body.update(self.extra)
        return body


# ===== NOT FOUND =====

class NotFound(SettlementError):
    code = "not_found"


class SessionNotFound(NotFound):
    code = "session_not_found"

    def __init__(self, session_id: Any):
        super().__init__(f"Session {session_id} not found")


class ObligationNotFound(NotFound):
    code = "obligation_not_found"

    def __init__(self, obligation_id: Any):
        super().__init__(f"Obligation {obligation_id} not found")


class ParticipantNotFound(NotFound):
    code = "participant_not_found"

    def __init__(self, player_id: Any):
        super().__init__(f"Player {player_id} is not an active participant")


class ExpenseNotFound(NotFound):
    code = "expense_not_found"

    def __init__(self, item_id: Any):
        super().__init__(f"Expense item {item_id} not found")


class PaymentNotFound(NotFound):
    code = "payment_not_found"

    def __init__(self, payment_id: Any):
        super().__init__(f"Payment {payment_id} not found")


class PlayerNotFound(NotFound):
    code = "player_not_found"

    def __init__(self, player_id: Any):
        super().__init__(f"Player {player_id} not found")


# ===== PERMISSION =====

class PermissionDenied(SettlementError):
    code = "permission_denied"


class NotHost(PermissionDenied):
    code = "not_host"

    def __init__(self, message: str = "Only the host can modify this session"):
        super().__init__(message)


class NotPayer(PermissionDenied):
    code = "not_payer"

    def __init__(self, message: str = "This obligation belongs to another player"):
        super().__init__(message)


# ===== INVALID STATE =====

class InvalidState(SettlementError):
    code = "invalid_state"


class SessionLocked(InvalidState):
    code = "session_locked"

    def __init__(self, status: Any):
        super().__init__(
            f"Session cannot be modified in status '{_value(status)}'",
            status=_value(status),
        )


class AlreadySettled(InvalidState):
    code = "already_settled"

    def __init__(self, status: Any):
        super().__init__(
            f"Obligation is already '{_value(status)}'",
            status=_value(status),
        )


class PendingObligations(InvalidState):
    code = "pending_obligations"

    def __init__(self, count: int):
        super().__init__(
            f"Cannot close session: {count} payment(s) not verified",
            pending_count=count,
        )
        self.count = count


class InvalidTransition(InvalidState):
    code = "invalid_transition"

    def __init__(self, current: Any, target: Any):
        super().__init__(
            f"Cannot move from '{_value(current)}' to '{_value(target)}'",
            current=_value(current),
            target=_value(target),
        )


class StatusConflict(InvalidState):
    """A compare-and-set update lost a race with another writer."""

    code = "status_conflict"


class ObligationsExist(InvalidState):
    """Expenses and roster are frozen once any obligation has been recorded."""

    code = "obligations_exist"

    def __init__(self, count: int):
        super().__init__(
            f"Session already has {count} obligation(s); expenses and players can no longer change",
            obligation_count=count,
        )


# ===== INPUT =====

class ValidationFailure(SettlementError):
    code = "validation_failure"

    def __init__(self, message: str, field: Optional[str] = None):
        if field is not None:
            super().__init__(message, field=field)
        else:
            super().__init__(message)


class HostCannotBeRemoved(ValidationFailure):
    code = "host_cannot_be_removed"

    def __init__(self):
        super().__init__("The host cannot be removed from their own session")


class HostDoesNotOwe(ValidationFailure):
    code = "host_does_not_owe"

    def __init__(self):
        super().__init__("Cannot mark host as paid - they do not owe")


class NoParticipants(SettlementError):
    code = "no_participants"

    def __init__(self):
        super().__init__("Session has no non-host participants to split between")


def _value(status: Any) -> Any:
    return getattr(status, "value", status)
