from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from sessionsplit.models.session import ParticipantRole, Session, SessionStatus
from sessionsplit.schemas.expense import ExpenseItemResponse
from sessionsplit.schemas.money import Money
from sessionsplit.services.roster import DetectedFace, FaceConfirmation


class SessionCreate(BaseModel):
    """Session creation schema."""
    name: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    date: datetime


class SessionUpdate(BaseModel):
    """Session update schema. All fields optional."""
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    date: Optional[datetime] = None


class SessionResponse(BaseModel):
    id: str
    host_id: str
    name: str
    description: Optional[str] = None
    date: datetime
    status: SessionStatus
    total_amount: Optional[Money] = None
    version: int

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=str(session.id),
            host_id=str(session.host_id),
            name=session.name,
            description=session.description,
            date=session.session_date,
            status=session.status,
            total_amount=session.total_amount,
            version=session.version,
        )


class PlayerInput(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)


class AddPlayersRequest(BaseModel):
    players: List[PlayerInput] = Field(..., min_length=1)


class SessionPlayerResponse(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    photo_url: Optional[str] = None
    role: ParticipantRole
    # Payment info is None for the host, who does not owe
    payment_status: Optional[str] = None
    amount_owed: Optional[Money] = None
    obligation_id: Optional[str] = None


class AddPlayersResponse(BaseModel):
    added_count: int
    players: List[SessionPlayerResponse]


class BankAccount(BaseModel):
    bank_name: str
    account_number: Optional[str] = None
    account_name: Optional[str] = None


class HostResponse(BaseModel):
    id: str
    name: str
    bank_account: Optional[BankAccount] = None


class SessionListItem(BaseModel):
    id: str
    name: str
    date: datetime
    status: SessionStatus
    total_amount: Optional[Money] = None
    player_count: int
    paid_count: int
    total_obligations: int
    my_role: ParticipantRole
    host: HostResponse


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_previous_page: bool


class SessionListResponse(BaseModel):
    items: List[SessionListItem]
    pagination: Pagination


class SessionDetailResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    date: datetime
    status: SessionStatus
    group_photo_url: Optional[str] = None
    host: HostResponse
    players: List[SessionPlayerResponse]
    expenses: List[ExpenseItemResponse]
    total_amount: Money
    per_person_amount: Money
    paid_count: int
    total_obligations: int


class RosterPhotoRequest(BaseModel):
    photo_url: str = Field(..., min_length=1)


class RosterStatusResponse(BaseModel):
    status: SessionStatus
    group_photo_url: Optional[str] = None
    detected_faces: List[DetectedFace] = []


class ConfirmRosterRequest(BaseModel):
    confirmations: List[FaceConfirmation]


class ConfirmRosterResponse(BaseModel):
    confirmed_count: int
    status: SessionStatus
