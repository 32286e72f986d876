from typing import Dict, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase

from sessionsplit.models.base import to_object_id
from sessionsplit.models.user import Player
from sessionsplit.utils.errors import PlayerNotFound


class PlayerRepository:
    """Player database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["players"]

    async def create_player(
        self,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        user_id=None,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Player:
        player = Player(name=name, email=email, phone=phone, user_id=user_id)
        await self.collection.insert_one(player.to_document(), session=db_session)
        return player

    async def get_player(self, player_id) -> Player:
        oid = to_object_id(player_id)
        if oid is None:
            raise PlayerNotFound(player_id)
        doc = await self.collection.find_one({"_id": oid, "is_active": True})
        if not doc:
            raise PlayerNotFound(player_id)
        return Player(**doc)

    async def get_players(self, player_ids: Iterable) -> Dict:
        """Players keyed by id; inactive players are kept for history."""
        ids = list(player_ids)
        if not ids:
            return {}
        docs = await self.collection.find({"_id": {"$in": ids}}).to_list(None)
        return {doc["_id"]: Player(**doc) for doc in docs}

    async def get_by_user_id(self, user_id) -> Optional[Player]:
        doc = await self.collection.find_one({
            "user_id": to_object_id(user_id),
            "is_active": True
        })
        if doc:
            return Player(**doc)
        return None

    async def find_or_create(
        self,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Player:
        """
        Match by email when given, otherwise by exact name among players
        without an email. Creates the player when nothing matches.
        """
        if email:
            query = {"email": email.lower(), "is_active": True}
        else:
            query = {"name": name, "email": None, "is_active": True}

        doc = await self.collection.find_one(query, session=db_session)
        if doc:
            return Player(**doc)

        return await self.create_player(
            name=name,
            email=email.lower() if email else None,
            phone=phone,
            db_session=db_session
        )

