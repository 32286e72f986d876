"""
Session model - one shared-cost event owned by a host.

Participants and expense items are embedded; every write to a session
document goes through a version check (see SessionRepository.save).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from sessionsplit.models.base import MongoModel, PyObjectId


class SessionStatus(str, Enum):
    DRAFT = "DRAFT"
    PROCESSING_FACES = "PROCESSING_FACES"
    READY_TO_SPLIT = "READY_TO_SPLIT"
    SPLIT_CONFIRMED = "SPLIT_CONFIRMED"
    CLOSED = "CLOSED"


class ParticipantRole(str, Enum):
    HOST = "HOST"
    PLAYER = "PLAYER"


# Embedded documents don't need MongoModel (no separate _id)
class Participant(BaseModel):
    player_id: PyObjectId
    role: ParticipantRole = ParticipantRole.PLAYER
    is_active: bool = True
    joined_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ExpenseItem(BaseModel):
    item_id: PyObjectId = Field(default_factory=PyObjectId)
    description: str
    amount: int  # Smallest currency unit, >= 0
    quantity: int = 1  # > 0
    is_active: bool = True

    def subtotal(self) -> int:
        return self.amount * self.quantity


class Session(MongoModel):
    host_id: PyObjectId
    name: str
    description: Optional[str] = None
    session_date: datetime
    status: SessionStatus = SessionStatus.DRAFT

    # Frozen at split time; None until expenses exist
    total_amount: Optional[int] = None

    participants: List[Participant] = []
    expense_items: List[ExpenseItem] = []
    group_photo_url: Optional[str] = None

    version: int = 1
    is_active: bool = True
    deleted_at: Optional[datetime] = None

    def active_participants(self) -> List[Participant]:
        return [p for p in self.participants if p.is_active]

    def payer_participants(self) -> List[Participant]:
        """Active participants who owe money (everyone but the host)."""
        return [
            p for p in self.participants
            if p.is_active and p.role != ParticipantRole.HOST
        ]

    def host_participant(self) -> Optional[Participant]:
        for participant in self.participants:
            if participant.role == ParticipantRole.HOST:
                return participant
        return None

    def find_participant(self, player_id, active_only: bool = True) -> Optional[Participant]:
        for participant in self.participants:
            if participant.player_id != player_id:
                continue
            if active_only and not participant.is_active:
                continue
            return participant
        return None

    def find_expense(self, item_id) -> Optional[ExpenseItem]:
        for item in self.expense_items:
            if item.item_id == item_id and item.is_active:
                return item
        return None
