import logging
from datetime import datetime, timezone
from typing import Iterable, List, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from sessionsplit.models.base import to_object_id
from sessionsplit.models.session import (
    ExpenseItem,
    Participant,
    ParticipantRole,
    Session,
    SessionStatus,
)
from sessionsplit.models.user import User
from sessionsplit.repositories.obligation_repo import ObligationStore
from sessionsplit.repositories.player_repo import PlayerRepository
from sessionsplit.repositories.session_repo import SessionRepository
from sessionsplit.schemas.expense import (
    AddExpensesResponse,
    ExpenseItemInput,
    ExpenseItemResponse,
    ExpenseSummaryResponse,
    ExpenseUpdate,
)
from sessionsplit.schemas.session import (
    AddPlayersResponse,
    PlayerInput,
    SessionCreate,
    SessionPlayerResponse,
    SessionUpdate,
)
from sessionsplit.services.expense_ledger import ExpenseLedger
from sessionsplit.services.session_state import SessionStateMachine
from sessionsplit.services.split_calculator import SplitCalculator
from sessionsplit.utils.errors import (
    ExpenseNotFound,
    HostCannotBeRemoved,
    ObligationsExist,
    ParticipantNotFound,
    PlayerNotFound,
    SessionLocked,
    SessionNotFound,
)
from sessionsplit.utils.expense_validation import (
    validate_amount,
    validate_expense_items,
    validate_quantity,
)

logger = logging.getLogger(__name__)


def ensure_visible(session: Session, user: User) -> None:
    """Only the host and active participants may see a session."""
    if str(session.host_id) == str(user.id):
        return
    if user.player_id is not None and session.find_participant(user.player_id):
        return
    raise SessionNotFound(session.id)


class SessionService:
    """Session CRUD, roster and expense management for hosts."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.sessions = SessionRepository(db)
        self.players = PlayerRepository(db)
        self.obligations = ObligationStore(db)

    async def ensure_roster_open(self, session: Session) -> None:
        """
        Expenses and participants only change before the split and before
        any obligation exists. The host can mark a player paid ahead of the
        split, and that amount must stay consistent with the ledger.
        """
        SessionStateMachine.ensure_editable(session)
        count = await self.obligations.count_by_session(session.id)
        if count:
            raise ObligationsExist(count)

    async def create_session(self, host: User, session_in: SessionCreate) -> Session:
        """Create a DRAFT session with the host's player as HOST participant."""
        if host.player_id is None:
            raise PlayerNotFound(f"linked to user {host.id}")

        session = Session(
            host_id=host.id,
            name=session_in.name,
            description=session_in.description,
            session_date=session_in.date,
            status=SessionStatus.DRAFT,
            participants=[
                Participant(player_id=host.player_id, role=ParticipantRole.HOST)
            ],
        )
        await self.sessions.insert(session)
        logger.info("Session %s created by host %s", session.id, host.id)
        return session

    async def get_for_host(self, session_id, user_id) -> Session:
        session = await self.sessions.get(session_id)
        SessionStateMachine.ensure_host(session, user_id)
        return session

    async def update_session(self, session_id, user_id, session_in: SessionUpdate) -> Session:
        session = await self.get_for_host(session_id, user_id)
        if session.status == SessionStatus.CLOSED:
            raise SessionLocked(session.status)

        updates = {}
        if session_in.name:
            updates["name"] = session_in.name
        if session_in.description is not None:
            updates["description"] = session_in.description
        if session_in.date is not None:
            updates["session_date"] = session_in.date

        if not updates:
            return session
        return await self.sessions.save(session, updates)

    async def delete_session(self, session_id, user_id) -> None:
        """Soft delete; obligations keep pointing at the hidden session."""
        session = await self.get_for_host(session_id, user_id)
        await self.sessions.soft_delete(session)
        logger.info("Session %s soft-deleted", session.id)

    # ===== PARTICIPANTS =====

    async def add_players(
        self,
        session_id,
        user_id,
        players_in: List[PlayerInput]
    ) -> AddPlayersResponse:
        """Find or create each player and add the ones not already in."""
        session = await self.get_for_host(session_id, user_id)
        await self.ensure_roster_open(session)

        players = []
        for player_in in players_in:
            player = await self.players.find_or_create(
                name=player_in.name,
                email=player_in.email,
                phone=player_in.phone
            )
            players.append(player)

        session, added_ids = await self.add_participants(session, [p.id for p in players])

        added = [p for p in players if p.id in added_ids]
        return AddPlayersResponse(
            added_count=len(added),
            players=[
                SessionPlayerResponse(
                    id=str(player.id),
                    name=player.name,
                    email=player.email,
                    phone=player.phone,
                    photo_url=player.photo_url,
                    role=ParticipantRole.PLAYER,
                )
                for player in added
            ],
        )

    async def add_participants(
        self,
        session: Session,
        player_ids: Iterable,
        db_session=None
    ) -> Tuple[Session, List]:
        """
        Add players as PLAYER participants.

        Active participants are skipped, removed ones are reactivated.
        Returns the saved session and the ids that were actually added.
        """
        await self.ensure_roster_open(session)

        participants = [p.model_copy() for p in session.participants]
        added = []
        for player_id in player_ids:
            if player_id in added:
                continue
            existing = next((p for p in participants if p.player_id == player_id), None)
            if existing is None:
                participants.append(Participant(player_id=player_id, role=ParticipantRole.PLAYER))
            elif not existing.is_active:
                existing.is_active = True
                existing.joined_at = datetime.now(timezone.utc)
            else:
                continue
            added.append(player_id)

        if not added:
            return session, []

        session = await self.sessions.save(
            session,
            {"participants": participants},
            db_session=db_session
        )
        logger.info("Added %d participant(s) to session %s", len(added), session.id)
        return session, added

    async def remove_player(self, session_id, user_id, player_id) -> Session:
        session = await self.get_for_host(session_id, user_id)
        await self.ensure_roster_open(session)

        participant = session.find_participant(to_object_id(player_id))
        if participant is None:
            raise ParticipantNotFound(player_id)
        if participant.role == ParticipantRole.HOST:
            raise HostCannotBeRemoved()

        participants = [p.model_copy() for p in session.participants]
        for p in participants:
            if p.player_id == participant.player_id:
                p.is_active = False

        return await self.sessions.save(session, {"participants": participants})

    # ===== EXPENSES =====

    async def add_expenses(
        self,
        session_id,
        user_id,
        items_in: List[ExpenseItemInput]
    ) -> AddExpensesResponse:
        session = await self.get_for_host(session_id, user_id)
        await self.ensure_roster_open(session)

        new_items = [
            ExpenseItem(
                description=item.description,
                amount=item.amount,
                quantity=item.quantity
            )
            for item in items_in
        ]
        validate_expense_items(new_items)

        items = list(session.expense_items) + new_items
        session = await self._save_items(session, items)
        return AddExpensesResponse(
            items=[ExpenseItemResponse.from_item(item) for item in new_items],
            total_amount=session.total_amount or 0,
        )

    async def update_expense(
        self,
        session_id,
        user_id,
        item_id,
        expense_in: ExpenseUpdate
    ) -> ExpenseItemResponse:
        session = await self.get_for_host(session_id, user_id)
        await self.ensure_roster_open(session)

        item = session.find_expense(to_object_id(item_id))
        if item is None:
            raise ExpenseNotFound(item_id)

        updates = expense_in.model_dump(exclude_unset=True, exclude_none=True)
        description = updates.get("description", item.description)
        validate_amount(description, updates.get("amount"))
        validate_quantity(description, updates.get("quantity"))
        updated = item.model_copy(update=updates)

        items = [updated if i.item_id == item.item_id else i for i in session.expense_items]
        await self._save_items(session, items)
        return ExpenseItemResponse.from_item(updated)

    async def delete_expense(self, session_id, user_id, item_id) -> Session:
        session = await self.get_for_host(session_id, user_id)
        await self.ensure_roster_open(session)

        item = session.find_expense(to_object_id(item_id))
        if item is None:
            raise ExpenseNotFound(item_id)

        items = [
            i.model_copy(update={"is_active": False}) if i.item_id == item.item_id else i
            for i in session.expense_items
        ]
        return await self._save_items(session, items)

    async def get_expense_summary(self, session_id, user: User) -> ExpenseSummaryResponse:
        session = await self.sessions.get(session_id)
        ensure_visible(session, user)

        ledger = ExpenseLedger(session.expense_items)
        total = ledger.total()
        payer_count = len(session.payer_participants())
        return ExpenseSummaryResponse(
            items=[ExpenseItemResponse.from_item(item) for item in ledger.active_items()],
            total_amount=total,
            player_count=payer_count,
            per_person_amount=SplitCalculator.preview(total, payer_count),
        )

    async def _save_items(self, session: Session, items: List[ExpenseItem]) -> Session:
        """Persist items and the recomputed session total in one write."""
        return await self.sessions.save(
            session,
            {
                "expense_items": items,
                "total_amount": ExpenseLedger(items).stored_total(),
            }
        )
