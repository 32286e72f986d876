from motor.motor_asyncio import AsyncIOMotorDatabase

from sessionsplit.core.security import hash_password
from sessionsplit.models.base import to_object_id
from sessionsplit.models.user import User
from sessionsplit.repositories.player_repo import PlayerRepository
from sessionsplit.schemas.auth import UserSignup

class UserRepository:
    """User database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["users"]
        self.players = PlayerRepository(db)

    async def create_user(self, user_data: UserSignup) -> User:
        """
        Create a new user together with their linked player record.

        Raises DuplicateKeyError when the email is taken (unique index).
        """
        user = User(
            name=user_data.name,
            email=user_data.email.lower(),
            phone=user_data.phone,
            password_hash=hash_password(user_data.password),
            bank_name=user_data.bank_name,
            bank_account_number=user_data.bank_account_number,
            bank_account_name=user_data.bank_account_name,
        )
        await self.collection.insert_one(user.to_document())

        player = await self.players.create_player(
            name=user.name,
            email=user.email,
            phone=user.phone,
            user_id=user.id
        )
        await self.collection.update_one(
            {"_id": user.id},
            {"$set": {"player_id": player.id}}
        )
        user.player_id = player.id
        return user

    async def get_user_by_email(self, email: str) -> User | None:
        """Get user by email."""
        user = await self.collection.find_one({"email": email.lower(), "is_deleted": False})
        if user:
            return User(**user)
        return None

    async def get_user_by_id(self, user_id: str) -> User | None:
        """Get user by ID."""
        oid = to_object_id(user_id)
        if oid is None:
            return None
        user = await self.collection.find_one({"_id": oid, "is_deleted": False})
        if user:
            return User(**user)
        return None

    async def get_users(self, user_ids) -> dict:
        """Users keyed by id, deleted ones included (hosts of old sessions)."""
        ids = list(user_ids)
        if not ids:
            return {}
        docs = await self.collection.find({"_id": {"$in": ids}}).to_list(None)
        return {doc["_id"]: User(**doc) for doc in docs}
