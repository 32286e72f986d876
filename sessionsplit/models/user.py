from typing import Optional

from pydantic import Field

from sessionsplit.models.base import MongoModel, PyObjectId


class User(MongoModel):
    """An account that can host sessions."""
    name: str
    email: str
    password_hash: str
    phone: Optional[str] = None

    # Shown to payers on the session detail view
    bank_name: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_account_name: Optional[str] = None

    # Every user has a linked player record; it is the payee of their sessions
    player_id: Optional[PyObjectId] = None
    is_deleted: bool = False


class Player(MongoModel):
    """Somebody who can take part in a session, with or without an account."""
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    photo_url: Optional[str] = None
    user_id: Optional[PyObjectId] = Field(default=None)
    is_active: bool = True
