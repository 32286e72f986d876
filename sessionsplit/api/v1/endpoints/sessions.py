from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status

from sessionsplit.core.auth import get_current_user
from sessionsplit.core.config import settings
from sessionsplit.db.mongo import get_db
from sessionsplit.models.session import SessionStatus
from sessionsplit.models.user import User
from sessionsplit.schemas.expense import (
    AddExpensesRequest,
    AddExpensesResponse,
    ExpenseItemResponse,
    ExpenseSummaryResponse,
    ExpenseUpdate,
)
from sessionsplit.schemas.obligation import (
    CloseSessionResponse,
    MarkPaidResponse,
    ObligationsListResponse,
    SplitResponse,
    VerifyObligationRequest,
    VerifyObligationResponse,
)
from sessionsplit.schemas.session import (
    AddPlayersRequest,
    AddPlayersResponse,
    ConfirmRosterRequest,
    ConfirmRosterResponse,
    RosterPhotoRequest,
    RosterStatusResponse,
    SessionCreate,
    SessionDetailResponse,
    SessionListResponse,
    SessionResponse,
    SessionUpdate,
)
from sessionsplit.services.session_service import SessionService
from sessionsplit.services.settlement_engine import SettlementEngine

router = APIRouter()


# ===== SESSIONS =====

@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    session_in: SessionCreate,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    """Create a DRAFT session hosted by the current user."""
    session = await SessionService(db).create_session(current_user, session_in)
    return SessionResponse.from_session(session)


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    role: Literal["host", "player", "all"] = "all",
    status_filter: Optional[SessionStatus] = Query(None, alias="status"),
    sort_by: Literal["date", "name", "created_at"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    """Sessions the current user hosts or plays in."""
    return await SettlementEngine(db).list_sessions(
        current_user,
        role=role,
        status=status_filter,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit
    )


@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    return await SettlementEngine(db).get_session_detail(session_id, current_user)


@router.put("/{session_id}", response_model=SessionResponse)
async def update_session(
    session_id: str,
    session_in: SessionUpdate,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    session = await SessionService(db).update_session(session_id, current_user.id, session_in)
    return SessionResponse.from_session(session)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    """Soft delete; payers keep seeing their obligations."""
    await SessionService(db).delete_session(session_id, current_user.id)


# ===== PLAYERS =====

@router.post("/{session_id}/players", response_model=AddPlayersResponse, status_code=status.HTTP_201_CREATED)
async def add_players(
    session_id: str,
    players_in: AddPlayersRequest,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    return await SessionService(db).add_players(session_id, current_user.id, players_in.players)


@router.delete("/{session_id}/players/{player_id}", response_model=SessionResponse)
async def remove_player(
    session_id: str,
    player_id: str,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    session = await SessionService(db).remove_player(session_id, current_user.id, player_id)
    return SessionResponse.from_session(session)


# ===== EXPENSES =====

@router.post("/{session_id}/expenses", response_model=AddExpensesResponse, status_code=status.HTTP_201_CREATED)
async def add_expenses(
    session_id: str,
    expenses_in: AddExpensesRequest,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    return await SessionService(db).add_expenses(session_id, current_user.id, expenses_in.items)


@router.get("/{session_id}/expenses", response_model=ExpenseSummaryResponse)
async def get_expenses(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    return await SessionService(db).get_expense_summary(session_id, current_user)


@router.put("/{session_id}/expenses/{item_id}", response_model=ExpenseItemResponse)
async def update_expense(
    session_id: str,
    item_id: str,
    expense_in: ExpenseUpdate,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    return await SessionService(db).update_expense(session_id, current_user.id, item_id, expense_in)


@router.delete("/{session_id}/expenses/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense(
    session_id: str,
    item_id: str,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    await SessionService(db).delete_expense(session_id, current_user.id, item_id)


# ===== ROSTER =====

@router.post("/{session_id}/photo", response_model=RosterStatusResponse)
async def upload_group_photo(
    session_id: str,
    photo_in: RosterPhotoRequest,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    return await SettlementEngine(db).start_roster_confirmation(
        session_id, current_user.id, photo_in.photo_url
    )


@router.get("/{session_id}/faces", response_model=RosterStatusResponse)
async def get_detected_faces(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    return await SettlementEngine(db).roster_results(session_id, current_user.id)


@router.post("/{session_id}/faces/confirm", response_model=ConfirmRosterResponse)
async def confirm_faces(
    session_id: str,
    confirm_in: ConfirmRosterRequest,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    return await SettlementEngine(db).confirm_roster(
        session_id, current_user.id, confirm_in.confirmations
    )


# ===== SETTLEMENT =====

@router.post("/{session_id}/split", response_model=SplitResponse)
async def generate_split(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    """Create one obligation per payer. Safe to retry."""
    return await SettlementEngine(db).generate_split(session_id, current_user.id)


@router.get("/{session_id}/obligations", response_model=ObligationsListResponse)
async def list_obligations(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    return await SettlementEngine(db).list_obligations(session_id, current_user)


@router.post("/{session_id}/players/{player_id}/mark-paid", response_model=MarkPaidResponse)
async def mark_player_paid(
    session_id: str,
    player_id: str,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    return await SettlementEngine(db).mark_player_paid(session_id, player_id, current_user.id)


@router.post("/{session_id}/obligations/{obligation_id}/verify", response_model=VerifyObligationResponse)
async def verify_obligation(
    session_id: str,
    obligation_id: str,
    verify_in: VerifyObligationRequest,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    return await SettlementEngine(db).verify_obligation(
        session_id,
        obligation_id,
        verify_in.action,
        current_user.id,
        rejection_reason=verify_in.rejection_reason
    )


@router.post("/{session_id}/close", response_model=CloseSessionResponse)
async def close_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
):
    return await SettlementEngine(db).close_session(session_id, current_user.id)
