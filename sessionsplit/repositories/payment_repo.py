from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from sessionsplit.models.base import to_mongo, to_object_id
from sessionsplit.models.obligation import Payment, PaymentProof, ProofStatus
from sessionsplit.utils.errors import PaymentNotFound


class PaymentRepository:
    """Payment attempts and their proof attachments."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["payments"]

    async def create_payment(
        self,
        payment: Payment,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Payment:
        await self.collection.insert_one(payment.to_document(), session=db_session)
        return payment

    async def get_payment(self, payment_id) -> Payment:
        oid = to_object_id(payment_id)
        if oid is None:
            raise PaymentNotFound(payment_id)
        doc = await self.collection.find_one({"_id": oid})
        if not doc:
            raise PaymentNotFound(payment_id)
        return Payment(**doc)

    async def latest_for_obligation(
        self,
        obligation_id,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Optional[Payment]:
        """Most recent payment for an obligation; it is the authoritative one."""
        docs = await self.collection.find(
            {"obligation_id": to_object_id(obligation_id)},
            sort=[("created_at", -1), ("_id", -1)],
            limit=1,
            session=db_session
        ).to_list(None)
        if docs:
            return Payment(**docs[0])
        return None

    async def latest_for_obligations(self, obligation_ids) -> dict:
        """Latest payment per obligation id."""
        ids = list(obligation_ids)
        if not ids:
            return {}
        docs = await self.collection.find(
            {"obligation_id": {"$in": ids}},
            sort=[("created_at", 1), ("_id", 1)]
        ).to_list(None)
        latest = {}
        for doc in docs:
            latest[doc["obligation_id"]] = Payment(**doc)
        return latest

    async def add_proof(self, payment: Payment, media_url: Optional[str]) -> Payment:
        proof = PaymentProof(media_url=media_url)
        result = await self.collection.find_one_and_update(
            {"_id": payment.id},
            {
                "$push": {"proofs": to_mongo(proof)},
                "$set": {"updated_at": datetime.now(timezone.utc)}
            },
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise PaymentNotFound(payment.id)
        return Payment(**result)

    async def review_latest_proof(
        self,
        obligation_id,
        status: ProofStatus,
        verified_by,
        rejection_reason: Optional[str] = None,
        db_session: Optional[AsyncIOMotorClientSession] = None
    ) -> Optional[Payment]:
        """
        Record the host's decision on the latest proof of the latest payment.

        No-op (returns None) when there is no payment or no proof yet.
        """
        payment = await self.latest_for_obligation(obligation_id, db_session=db_session)
        if payment is None or not payment.proofs:
            return None

        proofs = list(payment.proofs)
        latest = proofs[-1].model_copy(update={
            "status": status,
            "rejection_reason": rejection_reason,
            "verified_by": verified_by,
            "verified_at": datetime.now(timezone.utc),
        })
        proofs[-1] = latest

        result = await self.collection.find_one_and_update(
            {"_id": payment.id},
            {"$set": {
                "proofs": to_mongo(proofs),
                "updated_at": datetime.now(timezone.utc)
            }},
            return_document=ReturnDocument.AFTER,
            session=db_session
        )
        if result is None:
            raise PaymentNotFound(payment.id)
        return Payment(**result)
