"""
Obligation model - one payer owes the host a fixed amount for a session.

Design principles:
- Exactly one obligation per (session, payer), enforced by a unique
  idempotency key derived from those two ids
- Never deleted; only status changes
- Status: PENDING → MARKED_PAID → VERIFIED | REJECTED → MARKED_PAID ...
- All amounts are integers in the smallest currency unit
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from sessionsplit.models.base import MongoModel, PyObjectId


class ObligationStatus(str, Enum):
    PENDING = "PENDING"
    MARKED_PAID = "MARKED_PAID"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    TRANSFER = "TRANSFER"
    EWALLET = "EWALLET"
    OTHER = "OTHER"


class ProofStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


def obligation_key(session_id, payer_id) -> str:
    """Deterministic idempotency key; never replace with a random token."""
    return f"{session_id}:{payer_id}"


class Obligation(MongoModel):
    """
    Financial obligation: payer owes payee (the host's player) amount.

    Invariants:
    - idempotency_key == obligation_key(session_id, payer_id)
    - VERIFIED is final
    """
    session_id: PyObjectId
    payer_id: PyObjectId
    payee_id: PyObjectId
    amount: int
    status: ObligationStatus = ObligationStatus.PENDING
    idempotency_key: str
    verified_at: Optional[datetime] = None


class PaymentProof(BaseModel):
    proof_id: PyObjectId = Field(default_factory=PyObjectId)
    media_url: Optional[str] = None
    status: ProofStatus = ProofStatus.PENDING
    rejection_reason: Optional[str] = None
    verified_by: Optional[PyObjectId] = None
    verified_at: Optional[datetime] = None
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Payment(MongoModel):
    """One settlement attempt; the most recent payment is authoritative."""
    obligation_id: PyObjectId
    payer_id: PyObjectId
    method: PaymentMethod
    amount: int
    reference_number: Optional[str] = None
    paid_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    proofs: List[PaymentProof] = []

    def latest_proof(self) -> Optional[PaymentProof]:
        # Proofs are appended in upload order
        return self.proofs[-1] if self.proofs else None
