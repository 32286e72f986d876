"""
SettlementEngine - split generation, payment verification and closure.

Flow:
1. Host generates a split: one obligation per active non-host participant
   at round(total / payer_count), then the session is SPLIT_CONFIRMED
2. Payers self-report payments (MARKED_PAID); host approves or rejects
3. Host may skip the self-report and mark a player paid directly
4. Host closes the session once every obligation is VERIFIED
"""

import logging
import math
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from sessionsplit.db.mongo import transaction
from sessionsplit.models.base import to_object_id
from sessionsplit.models.obligation import (
    Obligation,
    ObligationStatus,
    Payment,
    ProofStatus,
)
from sessionsplit.models.session import ParticipantRole, Session, SessionStatus
from sessionsplit.models.user import User
from sessionsplit.repositories.obligation_repo import ObligationStore
from sessionsplit.repositories.payment_repo import PaymentRepository
from sessionsplit.repositories.player_repo import PlayerRepository
from sessionsplit.repositories.session_repo import SessionRepository
from sessionsplit.repositories.user_repo import UserRepository
from sessionsplit.schemas.expense import ExpenseItemResponse
from sessionsplit.schemas.obligation import (
    CloseSessionResponse,
    CloseSummary,
    ExpenseLine,
    MarkPaidResponse,
    ObligationCounts,
    ObligationDetailResponse,
    ObligationHost,
    ObligationSessionInfo,
    ObligationsListResponse,
    ObligationSummary,
    PaymentResponse,
    PaymentStatusResponse,
    PaymentSubmit,
    PaymentSubmitResponse,
    PlayerObligationCounts,
    PlayerObligationItem,
    PlayerObligationsResponse,
    ProofResponse,
    SplitResponse,
    VerifyObligationResponse,
)
from sessionsplit.schemas.session import (
    BankAccount,
    ConfirmRosterResponse,
    HostResponse,
    Pagination,
    RosterStatusResponse,
    SessionDetailResponse,
    SessionListItem,
    SessionListResponse,
    SessionPlayerResponse,
)
from sessionsplit.services.expense_ledger import ExpenseLedger
from sessionsplit.services.roster import (
    FaceConfirmation,
    ManualRosterConfirmation,
    RosterConfirmation,
)
from sessionsplit.services.session_service import SessionService, ensure_visible
from sessionsplit.services.session_state import SessionStateMachine
from sessionsplit.services.split_calculator import SplitCalculator, SplitResult
from sessionsplit.utils.errors import (
    AlreadySettled,
    HostDoesNotOwe,
    InvalidTransition,
    NoParticipants,
    NotPayer,
    ObligationNotFound,
    ParticipantNotFound,
    PendingObligations,
    SessionLocked,
    StatusConflict,
    ValidationFailure,
)

logger = logging.getLogger(__name__)

PAYABLE_STATES = (ObligationStatus.PENDING, ObligationStatus.REJECTED)


def count_obligations(obligations: List[Obligation]) -> ObligationCounts:
    """Everything that is not VERIFIED counts as pending."""
    verified = sum(1 for o in obligations if o.status == ObligationStatus.VERIFIED)
    return ObligationCounts(
        total=len(obligations),
        pending=len(obligations) - verified,
        verified=verified,
    )


class SettlementEngine:

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        roster: Optional[RosterConfirmation] = None
    ):
        self.db = db
        self.sessions = SessionRepository(db)
        self.obligations = ObligationStore(db)
        self.payments = PaymentRepository(db)
        self.players = PlayerRepository(db)
        self.users = UserRepository(db)
        self.session_service = SessionService(db)
        self.roster = roster or ManualRosterConfirmation()

    # ===== SPLIT =====

    async def generate_split(self, session_id, user_id) -> SplitResponse:
        """
        Confirm the split and materialize one obligation per active non-host
        participant.

        The session is claimed first: SPLIT_CONFIRMED is written with a
        version check against the snapshot the amounts were computed from,
        so a concurrent expense or roster edit makes the split fail before
        any obligation exists. Safe to retry: a SPLIT_CONFIRMED session
        replays the stored split and fills in obligations still missing.
        """
        session = await self.sessions.get(session_id)
        SessionStateMachine.ensure_host(session, user_id)

        if session.status == SessionStatus.SPLIT_CONFIRMED:
            return await self._replay_split(session)
        SessionStateMachine.ensure_can_split(session)

        payers = session.payer_participants()
        if not payers:
            logger.warning("Split refused for session %s: no payers", session.id)
            raise NoParticipants()
        if session.host_participant() is None:
            raise ParticipantNotFound(f"host of session {session.id}")

        total = ExpenseLedger(session.expense_items).total()
        split = SplitCalculator.split(total, len(payers))
        target = SessionStateMachine.transition(session, SessionStatus.SPLIT_CONFIRMED)

        async with transaction(self.db) as db_session:
            try:
                session = await self.sessions.save(
                    session,
                    {"status": target, "total_amount": total},
                    db_session=db_session
                )
            except StatusConflict:
                current = await self.sessions.get(session.id)
                if current.status != SessionStatus.SPLIT_CONFIRMED:
                    logger.warning(
                        "Split of session %s lost to a concurrent edit; nothing written",
                        session.id,
                    )
                    raise
                # A concurrent retry confirmed the split first
                return await self._replay_split(current)

            obligations = await self._materialize(session, split.per_person, db_session)

        logger.info(
            "Split confirmed for session %s: total=%s payers=%s per_person=%s",
            session.id, total, split.payer_count, split.per_person,
        )
        return await self._split_response(session, split, obligations)

    async def _materialize(
        self,
        session: Session,
        per_person: int,
        db_session=None
    ) -> List[Obligation]:
        host = session.host_participant()
        obligations = []
        for payer in session.payer_participants():
            obligation = await self.obligations.create_or_get(
                session_id=session.id,
                payer_id=payer.player_id,
                payee_id=host.player_id,
                amount=per_person,
                db_session=db_session
            )
            obligations.append(obligation)
        return obligations

    async def _replay_split(self, session: Session) -> SplitResponse:
        payer_count = len(session.payer_participants())
        total = session.total_amount or 0
        if not payer_count:
            split = SplitResult(total=total, payer_count=0, per_person=0)
            return await self._split_response(session, split, [])

        split = SplitCalculator.split(total, payer_count)
        async with transaction(self.db) as db_session:
            # Repairs a split interrupted between the claim and the inserts
            obligations = await self._materialize(session, split.per_person, db_session)
        return await self._split_response(session, split, obligations)

    async def _split_response(
        self,
        session: Session,
        split: SplitResult,
        obligations: List[Obligation]
    ) -> SplitResponse:
        return SplitResponse(
            status=session.status,
            total_amount=split.total,
            player_count=split.payer_count,
            per_person_amount=split.per_person,
            # From the stored amounts, not the formula
            rounding_difference=sum(o.amount for o in obligations) - split.total,
            obligations=await self._summaries(obligations),
        )

    async def _summaries(self, obligations: List[Obligation]) -> List[ObligationSummary]:
        players = await self.players.get_players({o.payer_id for o in obligations})
        return [
            ObligationSummary(
                id=str(o.id),
                payer_id=str(o.payer_id),
                payer_name=players[o.payer_id].name if o.payer_id in players else "",
                amount=o.amount,
                status=o.status,
            )
            for o in obligations
        ]

    # ===== HOST ACTIONS =====

    async def mark_player_paid(self, session_id, player_id, user_id) -> MarkPaidResponse:
        """
        Host shortcut: create the player's obligation if needed and set it
        VERIFIED without a self-reported payment. Idempotent.
        """
        session = await self.sessions.get(session_id)
        SessionStateMachine.ensure_host(session, user_id)
        if session.status == SessionStatus.CLOSED:
            raise SessionLocked(session.status)

        participant = session.find_participant(to_object_id(player_id))
        if participant is None:
            raise ParticipantNotFound(player_id)
        if participant.role == ParticipantRole.HOST:
            raise HostDoesNotOwe()
        host = session.host_participant()

        async with transaction(self.db) as db_session:
            obligation = await self.obligations.get_for_payer(session.id, participant.player_id)
            if obligation is None:
                if SessionStateMachine.is_editable(session):
                    # Bump the version so an edit racing on the same snapshot
                    # fails instead of changing the amount under us
                    session = await self.sessions.save(session, {}, db_session=db_session)
                obligation = await self.obligations.create_or_get(
                    session_id=session.id,
                    payer_id=participant.player_id,
                    payee_id=host.player_id,
                    amount=self._current_per_person(session),
                    status=ObligationStatus.VERIFIED,
                    db_session=db_session
                )

            if obligation.status != ObligationStatus.VERIFIED:
                obligation = await self.obligations.transition(
                    obligation, ObligationStatus.VERIFIED, db_session=db_session
                )
                await self.payments.review_latest_proof(
                    obligation.id,
                    ProofStatus.VERIFIED,
                    verified_by=to_object_id(user_id),
                    db_session=db_session
                )

        logger.info("Host marked player %s paid in session %s", participant.player_id, session.id)
        return MarkPaidResponse(
            obligation_id=str(obligation.id),
            status=obligation.status,
            amount=obligation.amount,
        )

    def _current_per_person(self, session: Session) -> int:
        """Per-person amount under the non-host divisor policy."""
        if session.status == SessionStatus.SPLIT_CONFIRMED and session.total_amount is not None:
            total = session.total_amount
        else:
            total = ExpenseLedger(session.expense_items).total()
        return SplitCalculator.preview(total, len(session.payer_participants()))

    async def verify_obligation(
        self,
        session_id,
        obligation_id,
        action: str,
        user_id,
        rejection_reason: Optional[str] = None
    ) -> VerifyObligationResponse:
        """
        Approve or reject a self-reported payment.

        Only MARKED_PAID obligations can be reviewed; use mark_player_paid
        to settle one that was never reported. Rejection needs a reason and
        is copied onto the latest payment proof.
        """
        session = await self.sessions.get(session_id)
        SessionStateMachine.ensure_host(session, user_id)

        obligation = await self.obligations.get(obligation_id)
        if obligation.session_id != session.id:
            raise ObligationNotFound(obligation_id)

        if action == "approve":
            target, proof_status, reason = ObligationStatus.VERIFIED, ProofStatus.VERIFIED, None
        elif action == "reject":
            if not rejection_reason or not rejection_reason.strip():
                raise ValidationFailure("A rejection reason is required", field="rejection_reason")
            target, proof_status, reason = ObligationStatus.REJECTED, ProofStatus.REJECTED, rejection_reason.strip()
        else:
            raise ValidationFailure(f"Unknown action '{action}'", field="action")

        if obligation.status != ObligationStatus.MARKED_PAID:
            raise InvalidTransition(obligation.status, target)

        async with transaction(self.db) as db_session:
            obligation = await self.obligations.transition(obligation, target, db_session=db_session)
            await self.payments.review_latest_proof(
                obligation.id,
                proof_status,
                verified_by=to_object_id(user_id),
                rejection_reason=reason,
                db_session=db_session
            )

        logger.info("Obligation %s %sd by host", obligation.id, action)
        return VerifyObligationResponse(obligation_id=str(obligation.id), status=obligation.status)

    async def close_session(self, session_id, user_id) -> CloseSessionResponse:
        session = await self.sessions.get(session_id)
        SessionStateMachine.ensure_host(session, user_id)
        SessionStateMachine.ensure_can_close(session)

        obligations = await self.obligations.list_by_session(session.id)
        pending = [o for o in obligations if o.status != ObligationStatus.VERIFIED]
        if pending:
            logger.warning(
                "Close refused for session %s: %d unverified obligation(s)",
                session.id, len(pending),
            )
            raise PendingObligations(len(pending))

        session = await self.sessions.save(session, {"status": SessionStatus.CLOSED})
        logger.info("Session %s closed", session.id)

        return CloseSessionResponse(
            status=session.status,
            summary=CloseSummary(
                total_collected=sum(o.amount for o in obligations),
                participant_count=len(session.active_participants()),
                obligation_count=len(obligations),
            ),
        )

    # ===== PAYER ACTIONS =====

    async def submit_payment(
        self,
        obligation_id,
        payer_id,
        payment_in: PaymentSubmit
    ) -> PaymentSubmitResponse:
        """Payer self-report; allowed from PENDING and REJECTED only."""
        obligation = await self.obligations.get(obligation_id)
        if obligation.payer_id != to_object_id(payer_id):
            raise NotPayer()
        if obligation.status not in PAYABLE_STATES:
            raise AlreadySettled(obligation.status)
        if payment_in.amount is not None and payment_in.amount != obligation.amount:
            raise ValidationFailure(
                f"Payment amount {payment_in.amount} does not match obligation amount {obligation.amount}",
                field="amount",
            )

        async with transaction(self.db) as db_session:
            # The status compare-and-set runs first so a double submit
            # cannot leave two payments behind
            obligation = await self.obligations.transition(
                obligation, ObligationStatus.MARKED_PAID, db_session=db_session
            )
            payment = Payment(
                obligation_id=obligation.id,
                payer_id=obligation.payer_id,
                method=payment_in.method,
                amount=obligation.amount,
                reference_number=payment_in.reference_number,
            )
            await self.payments.create_payment(payment, db_session=db_session)

        return PaymentSubmitResponse(
            obligation_id=str(obligation.id),
            payment_id=str(payment.id),
            status=obligation.status,
            paid_at=payment.paid_at,
        )

    async def attach_proof(self, payment_id, payer_id, media_url: Optional[str]) -> ProofResponse:
        payment = await self.payments.get_payment(payment_id)
        if payment.payer_id != to_object_id(payer_id):
            raise NotPayer("This payment belongs to another player")

        obligation = await self.obligations.get(payment.obligation_id)
        if obligation.status == ObligationStatus.VERIFIED:
            raise AlreadySettled(obligation.status)

        payment = await self.payments.add_proof(payment, media_url)
        return ProofResponse.from_proof(payment.latest_proof())

    async def get_payment_status(self, payment_id, payer_id) -> PaymentStatusResponse:
        payment = await self.payments.get_payment(payment_id)
        if payment.payer_id != to_object_id(payer_id):
            raise NotPayer("This payment belongs to another player")
        obligation = await self.obligations.get(payment.obligation_id)

        return PaymentStatusResponse(
            payment_id=str(payment.id),
            obligation_id=str(obligation.id),
            amount=payment.amount,
            method=payment.method,
            reference_number=payment.reference_number,
            status=obligation.status,
            paid_at=payment.paid_at,
            proof=ProofResponse.from_proof(payment.latest_proof()),
        )

    # ===== ROSTER CONFIRMATION =====

    async def start_roster_confirmation(self, session_id, user_id, photo_url: str) -> RosterStatusResponse:
        session = await self.sessions.get(session_id)
        SessionStateMachine.ensure_host(session, user_id)
        target = SessionStateMachine.transition(session, SessionStatus.PROCESSING_FACES)

        await self.roster.submit_photo(session, photo_url)
        session = await self.sessions.save(
            session,
            {"status": target, "group_photo_url": photo_url}
        )
        return RosterStatusResponse(status=session.status, group_photo_url=session.group_photo_url)

    async def roster_results(self, session_id, user_id) -> RosterStatusResponse:
        session = await self.sessions.get(session_id)
        SessionStateMachine.ensure_host(session, user_id)

        results = await self.roster.detected_faces(session)
        if session.status == SessionStatus.PROCESSING_FACES and results.ready:
            target = SessionStateMachine.transition(session, SessionStatus.READY_TO_SPLIT)
            session = await self.sessions.save(session, {"status": target})

        return RosterStatusResponse(
            status=session.status,
            group_photo_url=session.group_photo_url,
            detected_faces=results.detected_faces,
        )

    async def confirm_roster(
        self,
        session_id,
        user_id,
        confirmations: List[FaceConfirmation]
    ) -> ConfirmRosterResponse:
        session = await self.sessions.get(session_id)
        SessionStateMachine.ensure_host(session, user_id)
        SessionStateMachine.ensure_editable(session)
        if session.status == SessionStatus.DRAFT:
            raise InvalidTransition(session.status, SessionStatus.READY_TO_SPLIT)

        player_ids = []
        for raw_id in await self.roster.confirm(session, confirmations):
            player = await self.players.get_player(raw_id)
            player_ids.append(player.id)

        session, _ = await self.session_service.add_participants(session, player_ids)
        if session.status == SessionStatus.PROCESSING_FACES:
            target = SessionStateMachine.transition(session, SessionStatus.READY_TO_SPLIT)
            session = await self.sessions.save(session, {"status": target})

        return ConfirmRosterResponse(confirmed_count=len(player_ids), status=session.status)

    # ===== READ-ONLY PROJECTIONS =====

    async def list_obligations(self, session_id, user: User) -> ObligationsListResponse:
        session = await self.sessions.get(session_id)
        ensure_visible(session, user)

        obligations = await self.obligations.list_by_session(session.id)
        return ObligationsListResponse(
            obligations=await self._summaries(obligations),
            summary=count_obligations(obligations),
        )

    async def get_session_detail(self, session_id, user: User) -> SessionDetailResponse:
        session = await self.sessions.get(session_id)
        ensure_visible(session, user)

        ledger = ExpenseLedger(session.expense_items)
        obligations = {
            o.payer_id: o for o in await self.obligations.list_by_session(session.id)
        }
        participants = session.active_participants()
        players = await self.players.get_players([p.player_id for p in participants])
        payer_count = len(session.payer_participants())
        per_person = SplitCalculator.preview(ledger.total(), payer_count)

        player_rows = []
        for participant in participants:
            player = players.get(participant.player_id)
            if player is None:
                continue
            obligation = obligations.get(participant.player_id)
            is_host = participant.role == ParticipantRole.HOST
            player_rows.append(SessionPlayerResponse(
                id=str(player.id),
                name=player.name,
                email=player.email,
                phone=player.phone,
                photo_url=player.photo_url,
                role=participant.role,
                payment_status=None if is_host else (
                    obligation.status.value if obligation else ObligationStatus.PENDING.value
                ),
                amount_owed=None if is_host else (obligation.amount if obligation else per_person),
                obligation_id=str(obligation.id) if obligation else None,
            ))

        host = await self.users.get_user_by_id(str(session.host_id))
        return SessionDetailResponse(
            id=str(session.id),
            name=session.name,
            description=session.description,
            date=session.session_date,
            status=session.status,
            group_photo_url=session.group_photo_url,
            host=self._host_response(session, host),
            players=player_rows,
            expenses=[ExpenseItemResponse.from_item(item) for item in ledger.active_items()],
            total_amount=ledger.total(),
            per_person_amount=per_person,
            paid_count=sum(1 for o in obligations.values() if o.status == ObligationStatus.VERIFIED),
            total_obligations=payer_count,
        )

    async def list_sessions(
        self,
        user: User,
        role: str = "all",
        status: Optional[SessionStatus] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10
    ) -> SessionListResponse:
        """The host's dashboard: sessions hosted or joined, with payment counts."""
        sessions, total_items = await self.sessions.list_for_user(
            user.id,
            player_id=user.player_id,
            role=role,
            status=status,
            sort_by=sort_by,
            sort_order=sort_order,
            skip=(page - 1) * limit,
            limit=limit
        )

        obligations = await self.obligations.list_by_sessions([s.id for s in sessions])
        hosts = await self.users.get_users({s.host_id for s in sessions})

        items = []
        for session in sessions:
            paid = sum(
                1 for o in obligations
                if o.session_id == session.id and o.status == ObligationStatus.VERIFIED
            )
            is_host = str(session.host_id) == str(user.id)
            items.append(SessionListItem(
                id=str(session.id),
                name=session.name,
                date=session.session_date,
                status=session.status,
                total_amount=session.total_amount,
                player_count=len(session.active_participants()),
                paid_count=paid,
                total_obligations=len(session.payer_participants()),
                my_role=ParticipantRole.HOST if is_host else ParticipantRole.PLAYER,
                host=self._host_response(session, hosts.get(session.host_id), with_bank=False),
            ))

        total_pages = math.ceil(total_items / limit) if limit else 0
        return SessionListResponse(
            items=items,
            pagination=Pagination(
                current_page=page,
                total_pages=total_pages,
                total_items=total_items,
                items_per_page=limit,
                has_next_page=page < total_pages,
                has_previous_page=page > 1,
            ),
        )

    @staticmethod
    def _host_response(session: Session, host: Optional[User], with_bank: bool = True) -> HostResponse:
        if host is None:
            return HostResponse(id=str(session.host_id), name="")
        bank = None
        if with_bank and host.bank_name:
            bank = BankAccount(
                bank_name=host.bank_name,
                account_number=host.bank_account_number,
                account_name=host.bank_account_name,
            )
        return HostResponse(id=str(host.id), name=host.name, bank_account=bank)

    async def list_player_obligations(
        self,
        payer_id,
        status: Optional[ObligationStatus] = None
    ) -> PlayerObligationsResponse:
        """A payer's obligations across sessions, deleted sessions included."""
        obligations = await self.obligations.list_by_payer(payer_id, status=status)
        sessions = await self.sessions.get_many({o.session_id for o in obligations})
        hosts = await self.users.get_users({s.host_id for s in sessions.values()})
        payments = await self.payments.latest_for_obligations([o.id for o in obligations])

        items = []
        for obligation in obligations:
            session = sessions.get(obligation.session_id)
            if session is None:
                continue
            items.append(PlayerObligationItem(
                id=str(obligation.id),
                session=self._session_info(session, hosts.get(session.host_id)),
                amount=obligation.amount,
                status=obligation.status,
                payment=PaymentResponse.from_payment(payments.get(obligation.id)),
            ))

        return PlayerObligationsResponse(
            obligations=items,
            summary=PlayerObligationCounts(
                total_owed=sum(
                    o.amount for o in obligations if o.status != ObligationStatus.VERIFIED
                ),
                pending=sum(1 for o in obligations if o.status == ObligationStatus.PENDING),
                paid=sum(1 for o in obligations if o.status != ObligationStatus.PENDING),
            ),
        )

    async def get_obligation_detail(self, obligation_id, payer_id) -> ObligationDetailResponse:
        obligation = await self.obligations.get(obligation_id)
        if obligation.payer_id != to_object_id(payer_id):
            raise NotPayer()

        session = await self.sessions.get(obligation.session_id, include_deleted=True)
        host = await self.users.get_user_by_id(str(session.host_id))
        payment = await self.payments.latest_for_obligation(obligation.id)
        ledger = ExpenseLedger(session.expense_items)
        payer_count = len(session.payer_participants())
        total = session.total_amount if session.total_amount is not None else ledger.total()

        return ObligationDetailResponse(
            id=str(obligation.id),
            session=self._session_info(session, host),
            host=ObligationHost(
                name=host.name if host else "",
                phone=host.phone if host else None,
                email=host.email if host else None,
            ),
            amount=obligation.amount,
            status=obligation.status,
            payment=PaymentResponse.from_payment(payment),
            expenses=[
                ExpenseLine(description=item.description, subtotal=item.subtotal())
                for item in ledger.active_items()
            ],
            player_count=payer_count,
            per_person_amount=SplitCalculator.preview(total, payer_count),
        )

    @staticmethod
    def _session_info(session: Session, host: Optional[User]) -> ObligationSessionInfo:
        return ObligationSessionInfo(
            id=str(session.id),
            name=session.name,
            date=session.session_date,
            host_name=host.name if host else "",
            host_phone=host.phone if host else None,
            is_active=session.is_active,
        )
