"""
SessionStateMachine - which session transitions and operations are legal.

    DRAFT → PROCESSING_FACES → READY_TO_SPLIT → SPLIT_CONFIRMED → CLOSED

The roster-confirmation states are optional; a split may be generated
from any state before SPLIT_CONFIRMED.
"""

import logging
from typing import Dict, FrozenSet

from sessionsplit.models.session import Session, SessionStatus
from sessionsplit.utils.errors import InvalidTransition, NotHost, SessionLocked

logger = logging.getLogger(__name__)

EDITABLE_STATES: FrozenSet[SessionStatus] = frozenset({
    SessionStatus.DRAFT,
    SessionStatus.PROCESSING_FACES,
    SessionStatus.READY_TO_SPLIT,
})

TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.DRAFT: frozenset({
        SessionStatus.PROCESSING_FACES,
        SessionStatus.SPLIT_CONFIRMED,
    }),
    SessionStatus.PROCESSING_FACES: frozenset({
        SessionStatus.READY_TO_SPLIT,
        SessionStatus.SPLIT_CONFIRMED,
    }),
    SessionStatus.READY_TO_SPLIT: frozenset({
        SessionStatus.SPLIT_CONFIRMED,
    }),
    SessionStatus.SPLIT_CONFIRMED: frozenset({
        SessionStatus.CLOSED,
    }),
    SessionStatus.CLOSED: frozenset(),
}


class SessionStateMachine:

    @staticmethod
    def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
        return target in TRANSITIONS[SessionStatus(current)]

    @classmethod
    def transition(cls, session: Session, target: SessionStatus) -> SessionStatus:
        """Validate a move and return the target; the caller persists it."""
        if not cls.can_transition(session.status, target):
            logger.warning(
                "Refused transition %s -> %s for session %s",
                session.status.value, target.value, session.id,
            )
            raise InvalidTransition(session.status, target)
        return target

    @staticmethod
    def is_editable(session: Session) -> bool:
        return session.status in EDITABLE_STATES

    @classmethod
    def ensure_editable(cls, session: Session) -> None:
        """Expenses and participants only change before the split."""
        if not cls.is_editable(session):
            raise SessionLocked(session.status)

    @staticmethod
    def ensure_host(session: Session, user_id) -> None:
        if str(session.host_id) != str(user_id):
            raise NotHost()

    @classmethod
    def ensure_can_split(cls, session: Session) -> None:
        if session.status not in EDITABLE_STATES:
            raise SessionLocked(session.status)

    @classmethod
    def ensure_can_close(cls, session: Session) -> None:
        # Obligation checks happen in SettlementEngine.close_session
        cls.transition(session, SessionStatus.CLOSED)
