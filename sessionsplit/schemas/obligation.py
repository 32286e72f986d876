from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from sessionsplit.models.obligation import (
    ObligationStatus,
    Payment,
    PaymentMethod,
    PaymentProof,
    ProofStatus,
)
from sessionsplit.models.session import SessionStatus
from sessionsplit.schemas.money import Money, MoneyInput


class ObligationSummary(BaseModel):
    id: str
    payer_id: str
    payer_name: str
    amount: Money
    status: ObligationStatus


class ObligationCounts(BaseModel):
    total: int
    # PENDING + MARKED_PAID + REJECTED: everything not yet verified
    pending: int
    verified: int


class ObligationsListResponse(BaseModel):
    obligations: List[ObligationSummary]
    summary: ObligationCounts


class SplitResponse(BaseModel):
    status: SessionStatus
    total_amount: Money
    player_count: int
    per_person_amount: Money
    rounding_difference: Money
    obligations: List[ObligationSummary]


class MarkPaidResponse(BaseModel):
    obligation_id: str
    status: ObligationStatus
    amount: Money


class VerifyObligationRequest(BaseModel):
    action: Literal["approve", "reject"]
    rejection_reason: Optional[str] = Field(None, max_length=500)


class VerifyObligationResponse(BaseModel):
    obligation_id: str
    status: ObligationStatus


class CloseSummary(BaseModel):
    total_collected: Money
    participant_count: int
    obligation_count: int


class CloseSessionResponse(BaseModel):
    status: SessionStatus
    summary: CloseSummary


class PaymentSubmit(BaseModel):
    """Payer self-report. ``amount`` is optional but must match when given."""
    method: PaymentMethod
    reference_number: Optional[str] = Field(None, max_length=100)
    amount: Optional[MoneyInput] = Field(None, ge=0)


class PaymentSubmitResponse(BaseModel):
    obligation_id: str
    payment_id: str
    status: ObligationStatus
    paid_at: datetime


class ProofSubmit(BaseModel):
    media_url: Optional[str] = None


class ProofResponse(BaseModel):
    id: str
    media_url: Optional[str] = None
    status: ProofStatus
    rejection_reason: Optional[str] = None
    verified_at: Optional[datetime] = None

    @classmethod
    def from_proof(cls, proof: Optional[PaymentProof]) -> Optional["ProofResponse"]:
        if proof is None:
            return None
        return cls(
            id=str(proof.proof_id),
            media_url=proof.media_url,
            status=proof.status,
            rejection_reason=proof.rejection_reason,
            verified_at=proof.verified_at,
        )


class PaymentResponse(BaseModel):
    id: str
    method: PaymentMethod
    amount: Money
    reference_number: Optional[str] = None
    paid_at: datetime
    proof: Optional[ProofResponse] = None

    @classmethod
    def from_payment(cls, payment: Optional[Payment]) -> Optional["PaymentResponse"]:
        if payment is None:
            return None
        return cls(
            id=str(payment.id),
            method=payment.method,
            amount=payment.amount,
            reference_number=payment.reference_number,
            paid_at=payment.paid_at,
            proof=ProofResponse.from_proof(payment.latest_proof()),
        )


class PaymentStatusResponse(BaseModel):
    payment_id: str
    obligation_id: str
    amount: Money
    method: PaymentMethod
    reference_number: Optional[str] = None
    status: ObligationStatus
    paid_at: datetime
    proof: Optional[ProofResponse] = None


class ObligationSessionInfo(BaseModel):
    id: str
    name: str
    date: datetime
    host_name: str
    host_phone: Optional[str] = None
    is_active: bool = True


class PlayerObligationItem(BaseModel):
    id: str
    session: ObligationSessionInfo
    amount: Money
    status: ObligationStatus
    payment: Optional[PaymentResponse] = None


class PlayerObligationCounts(BaseModel):
    total_owed: Money
    pending: int
    paid: int


class PlayerObligationsResponse(BaseModel):
    obligations: List[PlayerObligationItem]
    summary: PlayerObligationCounts


class ExpenseLine(BaseModel):
    description: str
    subtotal: Money


class ObligationHost(BaseModel):
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None


class ObligationDetailResponse(BaseModel):
    id: str
    session: ObligationSessionInfo
    host: ObligationHost
    amount: Money
    status: ObligationStatus
    payment: Optional[PaymentResponse] = None
    expenses: List[ExpenseLine]
    player_count: int
    per_person_amount: Money
