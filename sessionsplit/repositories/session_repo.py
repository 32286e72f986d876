from datetime import datetime, timezone
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from sessionsplit.models.base import to_mongo, to_object_id
from sessionsplit.models.session import Session, SessionStatus
from sessionsplit.utils.errors import SessionNotFound, StatusConflict

SORT_FIELDS = {
    "date": "session_date",
    "name": "name",
    "created_at": "created_at",
}


class SessionRepository:
    """Session database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["sessions"]

    async def insert(
        self,
        session: Session,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Session:
        await self.collection.insert_one(session.to_document(), session=db_session)
        return session

    async def get(
        self,
        session_id,
        include_deleted: bool = False,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Session:
        """Fetch a session or raise SessionNotFound (soft-deleted ones too)."""
        oid = to_object_id(session_id)
        if oid is None:
            raise SessionNotFound(session_id)

        query = {"_id": oid}
        if not include_deleted:
            query["is_active"] = True

        doc = await self.collection.find_one(query, session=db_session)
        if not doc:
            raise SessionNotFound(session_id)
        return Session(**doc)

    async def get_many(self, session_ids: List) -> dict:
        """Sessions by id, deleted ones included (for historical views)."""
        if not session_ids:
            return {}
        docs = await self.collection.find({"_id": {"$in": list(session_ids)}}).to_list(None)
        return {doc["_id"]: Session(**doc) for doc in docs}

    async def list_for_user(
        self,
        user_id,
        player_id=None,
        role: str = "all",
        status: Optional[SessionStatus] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        skip: int = 0,
        limit: int = 10
    ) -> Tuple[List[Session], int]:
        """
        Sessions the user hosts or plays in.

        role: "host" | "player" | "all"
        Returns (page, total matching).
        """
        host_clause = {"host_id": to_object_id(user_id)}
        player_clause = {
            "participants": {
                "$elemMatch": {"player_id": player_id, "is_active": True}
            }
        }

        query: dict = {"is_active": True}
        if role == "host" or player_id is None:
            query.update(host_clause)
        elif role == "player":
            query.update(player_clause)
        else:
            query["$or"] = [host_clause, player_clause]

        if status is not None:
            query["status"] = SessionStatus(status).value

        direction = 1 if sort_order == "asc" else -1
        sort_field = SORT_FIELDS.get(sort_by, "created_at")

        total = await self.collection.count_documents(query)
        docs = await self.collection.find(
            query,
            sort=[(sort_field, direction), ("_id", direction)],
            skip=skip,
            limit=limit
        ).to_list(None)
        return [Session(**doc) for doc in docs], total

    async def save(
        self,
        session: Session,
        updates: dict,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Session:
        """
        Apply ``updates`` if nobody else wrote the session since it was read.

        The filter pins the version that was read (optimistic lock); a miss
        means a concurrent writer got there first and raises StatusConflict.
        """
        updates = to_mongo(dict(updates))
        updates["updated_at"] = datetime.now(timezone.utc)

        result = await self.collection.find_one_and_update(
            {
                "_id": session.id,
                "version": session.version,
                "is_active": True
            },
            {
                "$set": updates,
                "$inc": {"version": 1}
            },
            return_document=ReturnDocument.AFTER,
            session=db_session
        )
        if result is None:
            raise StatusConflict(
                f"Session {session.id} was modified concurrently; reload and retry"
            )
        return Session(**result)

    async def soft_delete(
        self,
        session: Session,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Session:
        return await self.save(
            session,
            {"is_active": False, "deleted_at": datetime.now(timezone.utc)},
            db_session=db_session
        )
