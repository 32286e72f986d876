import pytest
from bson import ObjectId

from sessionsplit.models.session import ParticipantRole, SessionStatus
from sessionsplit.repositories.session_repo import SessionRepository
from sessionsplit.schemas.expense import ExpenseItemInput, ExpenseUpdate
from sessionsplit.schemas.session import PlayerInput, SessionUpdate
from sessionsplit.utils.errors import (
    ExpenseNotFound,
    HostCannotBeRemoved,
    NotHost,
    ObligationsExist,
    ParticipantNotFound,
    SessionLocked,
    SessionNotFound,
    StatusConflict,
)


@pytest.mark.asyncio
async def test_create_session_adds_host_participant(make_session, host_user):
    session, _ = await make_session(players=0, expenses=())

    assert session.status == SessionStatus.DRAFT
    assert session.total_amount is None
    assert len(session.participants) == 1
    assert session.participants[0].player_id == host_user.player_id
    assert session.participants[0].role == ParticipantRole.HOST


@pytest.mark.asyncio
async def test_add_players_matches_existing_by_email(service, make_session, host_user, other_user):
    session, _ = await make_session(players=0, expenses=())

    result = await service.add_players(session.id, host_user.id, [
        PlayerInput(name="Oscar", email="OSCAR@example.com"),
        PlayerInput(name="Walk-in"),
    ])

    assert result.added_count == 2
    assert result.players[0].id == str(other_user.player_id)

    # Already in: nothing to add
    again = await service.add_players(session.id, host_user.id, [
        PlayerInput(name="Oscar", email="oscar@example.com"),
    ])
    assert again.added_count == 0


@pytest.mark.asyncio
async def test_only_host_can_edit(service, make_session, other_user):
    session, _ = await make_session()

    with pytest.raises(NotHost):
        await service.add_players(session.id, other_user.id, [PlayerInput(name="Sneaky")])


@pytest.mark.asyncio
async def test_remove_player_is_soft(service, make_session, host_user):
    session, player_ids = await make_session(players=2)

    session = await service.remove_player(session.id, host_user.id, player_ids[0])

    assert len(session.participants) == 3
    assert len(session.payer_participants()) == 1
    with pytest.raises(ParticipantNotFound):
        await service.remove_player(session.id, host_user.id, player_ids[0])


@pytest.mark.asyncio
async def test_removed_player_can_rejoin(service, make_session, host_user):
    session, player_ids = await make_session(players=1)
    session = await service.remove_player(session.id, host_user.id, player_ids[0])

    session, added = await service.add_participants(session, [ObjectId(player_ids[0])])

    assert [str(a) for a in added] == player_ids
    assert len(session.payer_participants()) == 1


@pytest.mark.asyncio
async def test_host_cannot_be_removed(service, make_session, host_user):
    session, _ = await make_session()

    with pytest.raises(HostCannotBeRemoved):
        await service.remove_player(session.id, host_user.id, host_user.player_id)


@pytest.mark.asyncio
async def test_expenses_keep_total_in_sync(service, make_session, host_user):
    session, _ = await make_session(players=4, expenses=())

    added = await service.add_expenses(session.id, host_user.id, [
        ExpenseItemInput(description="Court", amount=100000),
        ExpenseItemInput(description="Shuttlecocks", amount=17500, quantity=2),
    ])
    assert added.total_amount == 135000

    updated = await service.update_expense(
        session.id, host_user.id, added.items[1].id, ExpenseUpdate(quantity=4)
    )
    assert updated.subtotal == 70000

    await service.delete_expense(session.id, host_user.id, added.items[0].id)
    summary = await service.get_expense_summary(session.id, host_user)

    assert summary.total_amount == 70000
    assert summary.player_count == 4
    assert summary.per_person_amount == 17500
    assert [i.description for i in summary.items] == ["Shuttlecocks"]


@pytest.mark.asyncio
async def test_deleting_all_expenses_clears_total(service, make_session, host_user):
    session, _ = await make_session()
    item_id = session.expense_items[0].item_id

    session = await service.delete_expense(session.id, host_user.id, item_id)

    assert session.total_amount is None
    with pytest.raises(ExpenseNotFound):
        await service.delete_expense(session.id, host_user.id, item_id)


@pytest.mark.asyncio
async def test_update_session_fields(service, make_session, host_user):
    session, _ = await make_session()

    updated = await service.update_session(
        session.id, host_user.id, SessionUpdate(name="Thursday Futsal")
    )

    assert updated.name == "Thursday Futsal"
    assert updated.version == session.version + 1


@pytest.mark.asyncio
async def test_deleted_session_is_hidden(service, make_session, host_user):
    session, _ = await make_session()

    await service.delete_session(session.id, host_user.id)

    with pytest.raises(SessionNotFound):
        await service.get_for_host(session.id, host_user.id)


@pytest.mark.asyncio
async def test_summary_hidden_from_outsiders(service, make_session, other_user):
    session, _ = await make_session()

    with pytest.raises(SessionNotFound):
        await service.get_expense_summary(session.id, other_user)


@pytest.mark.asyncio
async def test_stale_session_write_conflicts(test_db, make_session):
    session, _ = await make_session()
    repo = SessionRepository(test_db)

    await repo.save(session, {"name": "First writer"})

    with pytest.raises(StatusConflict):
        await repo.save(session, {"name": "Second writer"})


@pytest.mark.asyncio
async def test_edits_locked_after_split(service, engine, make_session, host_user):
    session, _ = await make_session()
    await engine.generate_split(session.id, host_user.id)

    with pytest.raises(SessionLocked):
        await service.add_expenses(session.id, host_user.id, [
            ExpenseItemInput(description="Late snack", amount=5000),
        ])
    with pytest.raises(SessionLocked):
        await service.add_players(session.id, host_user.id, [PlayerInput(name="Latecomer")])


@pytest.mark.asyncio
async def test_edits_frozen_once_a_player_is_marked_paid(service, engine, make_session, host_user):
    session, player_ids = await make_session(players=2, expenses=(("Court", 100000, 1),))
    await engine.mark_player_paid(session.id, player_ids[0], host_user.id)
    item_id = session.expense_items[0].item_id

    with pytest.raises(ObligationsExist):
        await service.add_expenses(session.id, host_user.id, [
            ExpenseItemInput(description="Second court", amount=100000),
        ])
    with pytest.raises(ObligationsExist):
        await service.update_expense(session.id, host_user.id, item_id, ExpenseUpdate(amount=1))
    with pytest.raises(ObligationsExist):
        await service.delete_expense(session.id, host_user.id, item_id)
    with pytest.raises(ObligationsExist):
        await service.add_players(session.id, host_user.id, [PlayerInput(name="Latecomer")])
    with pytest.raises(ObligationsExist):
        await service.remove_player(session.id, host_user.id, player_ids[0])

    session = await service.sessions.get(session.id)
    assert session.total_amount == 100000
    assert len(session.payer_participants()) == 2
