"""
ObligationStore - idempotent obligation creation and guarded status updates.

Core rules:
1. One obligation per (session, payer), keyed by obligation_key()
2. The unique index on idempotency_key decides insert races, not a lookup
3. Status updates are compare-and-set on the expected prior status
"""

import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from sessionsplit.models.base import to_object_id
from sessionsplit.models.obligation import Obligation, ObligationStatus, obligation_key
from sessionsplit.utils.errors import (
    InvalidTransition,
    ObligationNotFound,
    StatusConflict,
)

logger = logging.getLogger(__name__)

# Legal obligation moves. Host "mark as paid" is the only edge out of
# PENDING/REJECTED straight to VERIFIED.
OBLIGATION_TRANSITIONS: Dict[ObligationStatus, FrozenSet[ObligationStatus]] = {
    ObligationStatus.PENDING: frozenset({
        ObligationStatus.MARKED_PAID,
        ObligationStatus.VERIFIED,
    }),
    ObligationStatus.MARKED_PAID: frozenset({
        ObligationStatus.VERIFIED,
        ObligationStatus.REJECTED,
    }),
    ObligationStatus.REJECTED: frozenset({
        ObligationStatus.MARKED_PAID,
        ObligationStatus.VERIFIED,
    }),
    ObligationStatus.VERIFIED: frozenset(),
}


class ObligationStore:
    """Repository for obligations (who owes the host what)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["obligations"]

    async def create_or_get(
        self,
        session_id,
        payer_id,
        payee_id,
        amount: int,
        status: ObligationStatus = ObligationStatus.PENDING,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Obligation:
        """
        Insert the (session, payer) obligation unless it already exists.

        An existing obligation is returned unchanged, whatever ``amount``
        and ``status`` were requested.
        """
        key = obligation_key(session_id, payer_id)
        obligation = Obligation(
            session_id=session_id,
            payer_id=payer_id,
            payee_id=payee_id,
            amount=amount,
            status=status,
            idempotency_key=key,
            verified_at=datetime.now(timezone.utc) if status == ObligationStatus.VERIFIED else None
        )

        try:
            await self.collection.insert_one(obligation.to_document(), session=db_session)
            logger.info("Created obligation %s (%s, amount=%s)", key, status.value, amount)
            return obligation
        except DuplicateKeyError:
            existing = await self.get_by_key(key, db_session=db_session)
            if existing is None:
                # Unique violation on a row we cannot see: surface it
                raise
            return existing

    async def get_by_key(
        self,
        key: str,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Optional[Obligation]:
        doc = await self.collection.find_one({"idempotency_key": key}, session=db_session)
        if doc:
            return Obligation(**doc)
        return None

    async def get_for_payer(self, session_id, payer_id) -> Optional[Obligation]:
        return await self.get_by_key(obligation_key(session_id, payer_id))

    async def get(
        self,
        obligation_id,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Obligation:
        oid = to_object_id(obligation_id)
        if oid is None:
            raise ObligationNotFound(obligation_id)
        doc = await self.collection.find_one({"_id": oid}, session=db_session)
        if not doc:
            raise ObligationNotFound(obligation_id)
        return Obligation(**doc)

    async def list_by_session(
        self,
        session_id,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> List[Obligation]:
        """All obligations of a session, oldest first."""
        docs = await self.collection.find(
            {"session_id": to_object_id(session_id)},
            sort=[("created_at", 1), ("_id", 1)],
            session=db_session
        ).to_list(None)
        return [Obligation(**doc) for doc in docs]

    async def count_by_session(
        self,
        session_id,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> int:
        return await self.collection.count_documents(
            {"session_id": to_object_id(session_id)},
            session=db_session
        )

    async def list_by_sessions(self, session_ids: Iterable) -> List[Obligation]:
        ids = list(session_ids)
        if not ids:
            return []
        docs = await self.collection.find({"session_id": {"$in": ids}}).to_list(None)
        return [Obligation(**doc) for doc in docs]

    async def list_by_payer(
        self,
        payer_id,
        status: Optional[ObligationStatus] = None
    ) -> List[Obligation]:
        """A payer's obligations, including ones from deleted sessions."""
        query: dict = {"payer_id": to_object_id(payer_id)}
        if status is not None:
            query["status"] = ObligationStatus(status).value
        docs = await self.collection.find(
            query,
            sort=[("created_at", -1), ("_id", -1)]
        ).to_list(None)
        return [Obligation(**doc) for doc in docs]

    async def transition(
        self,
        obligation: Obligation,
        target: ObligationStatus,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Obligation:
        """
        Move ``obligation`` to ``target`` if it is still in the status it
        was read with.

        Raises InvalidTransition for an edge outside the graph and
        StatusConflict when another writer changed the status first.
        """
        if target not in OBLIGATION_TRANSITIONS[obligation.status]:
            raise InvalidTransition(obligation.status, target)

        now = datetime.now(timezone.utc)
        updates = {"status": target.value, "updated_at": now}
        if target == ObligationStatus.VERIFIED:
            updates["verified_at"] = now

        result = await self.collection.find_one_and_update(
            {"_id": obligation.id, "status": obligation.status.value},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
            session=db_session
        )
        if result is None:
            current = await self.get(obligation.id, db_session=db_session)
            logger.warning(
                "Obligation %s changed to %s while moving %s -> %s",
                obligation.id, current.status.value,
                obligation.status.value, target.value,
            )
            raise StatusConflict(
                f"Obligation {obligation.id} is now '{current.status.value}'",
                status=current.status.value,
            )

        logger.info(
            "Obligation %s: %s -> %s",
            obligation.id, obligation.status.value, target.value,
        )
        return Obligation(**result)
