from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from sessionsplit.core.auth import get_current_player
from sessionsplit.db.mongo import get_db
from sessionsplit.models.obligation import ObligationStatus
from sessionsplit.models.user import Player
from sessionsplit.schemas.obligation import (
    ObligationDetailResponse,
    PaymentStatusResponse,
    PaymentSubmit,
    PaymentSubmitResponse,
    PlayerObligationsResponse,
    ProofResponse,
    ProofSubmit,
)
from sessionsplit.services.settlement_engine import SettlementEngine

router = APIRouter()


@router.get("/obligations", response_model=PlayerObligationsResponse)
async def list_my_obligations(
    status_filter: Optional[ObligationStatus] = Query(None, alias="status"),
    player: Player = Depends(get_current_player),
    db = Depends(get_db)
):
    """Everything the current player owes, across sessions."""
    return await SettlementEngine(db).list_player_obligations(player.id, status=status_filter)


@router.get("/obligations/{obligation_id}", response_model=ObligationDetailResponse)
async def get_my_obligation(
    obligation_id: str,
    player: Player = Depends(get_current_player),
    db = Depends(get_db)
):
    return await SettlementEngine(db).get_obligation_detail(obligation_id, player.id)


@router.post(
    "/obligations/{obligation_id}/pay",
    response_model=PaymentSubmitResponse,
    status_code=status.HTTP_201_CREATED
)
async def submit_payment(
    obligation_id: str,
    payment_in: PaymentSubmit,
    player: Player = Depends(get_current_player),
    db = Depends(get_db)
):
    """Report a payment; the host verifies it afterwards."""
    return await SettlementEngine(db).submit_payment(obligation_id, player.id, payment_in)


@router.get("/payments/{payment_id}", response_model=PaymentStatusResponse)
async def get_payment_status(
    payment_id: str,
    player: Player = Depends(get_current_player),
    db = Depends(get_db)
):
    return await SettlementEngine(db).get_payment_status(payment_id, player.id)


@router.post(
    "/payments/{payment_id}/proof",
    response_model=ProofResponse,
    status_code=status.HTTP_201_CREATED
)
async def upload_payment_proof(
    payment_id: str,
    proof_in: ProofSubmit,
    player: Player = Depends(get_current_player),
    db = Depends(get_db)
):
    return await SettlementEngine(db).attach_proof(payment_id, player.id, proof_in.media_url)
