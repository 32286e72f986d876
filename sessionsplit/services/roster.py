"""
Roster confirmation from a group photo.

Face detection and matching live outside this service. The state machine
only needs to know when a photo was submitted, which faces came back, and
which players the host confirmed. ``ManualRosterConfirmation`` is the
default: it detects nothing and is ready immediately, so the host confirms
the roster by hand.
"""

from typing import List, Protocol

from pydantic import BaseModel

from sessionsplit.models.session import Session


class FaceSuggestion(BaseModel):
    player_id: str
    player_name: str
    confidence: float


class DetectedFace(BaseModel):
    id: str
    face_index: int
    suggestions: List[FaceSuggestion] = []
    confirmed_player_id: str | None = None


class FaceConfirmation(BaseModel):
    detected_face_id: str
    player_id: str


class RosterResults(BaseModel):
    ready: bool
    detected_faces: List[DetectedFace] = []


class RosterConfirmation(Protocol):

    async def submit_photo(self, session: Session, photo_url: str) -> None:
        ...

    async def detected_faces(self, session: Session) -> RosterResults:
        ...

    async def confirm(self, session: Session, confirmations: List[FaceConfirmation]) -> List[str]:
        """Return the player ids to add as participants."""
        ...


class ManualRosterConfirmation:

    async def submit_photo(self, session: Session, photo_url: str) -> None:
        return None

    async def detected_faces(self, session: Session) -> RosterResults:
        return RosterResults(ready=True, detected_faces=[])

    async def confirm(self, session: Session, confirmations: List[FaceConfirmation]) -> List[str]:
        return [confirmation.player_id for confirmation in confirmations]
