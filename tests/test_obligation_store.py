import pytest
from bson import ObjectId

from sessionsplit.models.obligation import ObligationStatus, obligation_key
from sessionsplit.repositories.obligation_repo import (
    OBLIGATION_TRANSITIONS,
    ObligationStore,
)
from sessionsplit.utils.errors import InvalidTransition, ObligationNotFound, StatusConflict


@pytest.fixture
def store(test_db):
    return ObligationStore(test_db)


@pytest.fixture
def ids():
    return {"session": ObjectId(), "payer": ObjectId(), "payee": ObjectId()}


def test_key_is_session_and_payer():
    session_id, payer_id = ObjectId(), ObjectId()
    assert obligation_key(session_id, payer_id) == f"{session_id}:{payer_id}"


def test_transition_table():
    assert OBLIGATION_TRANSITIONS[ObligationStatus.VERIFIED] == frozenset()
    assert ObligationStatus.MARKED_PAID in OBLIGATION_TRANSITIONS[ObligationStatus.REJECTED]
    assert ObligationStatus.REJECTED not in OBLIGATION_TRANSITIONS[ObligationStatus.PENDING]
    assert ObligationStatus.PENDING not in {
        target for targets in OBLIGATION_TRANSITIONS.values() for target in targets
    }


@pytest.mark.asyncio
async def test_create_or_get_is_idempotent(store, ids):
    first = await store.create_or_get(ids["session"], ids["payer"], ids["payee"], 5000)
    second = await store.create_or_get(ids["session"], ids["payer"], ids["payee"], 9999)

    assert second.id == first.id
    assert second.amount == 5000
    assert len(await store.list_by_session(ids["session"])) == 1


@pytest.mark.asyncio
async def test_create_verified_sets_verified_at(store, ids):
    obligation = await store.create_or_get(
        ids["session"], ids["payer"], ids["payee"], 5000,
        status=ObligationStatus.VERIFIED
    )

    assert obligation.status == ObligationStatus.VERIFIED
    assert obligation.verified_at is not None


@pytest.mark.asyncio
async def test_transition_updates_status(store, ids):
    obligation = await store.create_or_get(ids["session"], ids["payer"], ids["payee"], 5000)

    marked = await store.transition(obligation, ObligationStatus.MARKED_PAID)
    assert marked.status == ObligationStatus.MARKED_PAID

    verified = await store.transition(marked, ObligationStatus.VERIFIED)
    assert verified.status == ObligationStatus.VERIFIED
    assert verified.verified_at is not None

    stored = await store.get(str(obligation.id))
    assert stored.status == ObligationStatus.VERIFIED


@pytest.mark.asyncio
async def test_transition_outside_graph(store, ids):
    obligation = await store.create_or_get(ids["session"], ids["payer"], ids["payee"], 5000)

    with pytest.raises(InvalidTransition):
        await store.transition(obligation, ObligationStatus.REJECTED)


@pytest.mark.asyncio
async def test_stale_status_loses(store, ids):
    obligation = await store.create_or_get(ids["session"], ids["payer"], ids["payee"], 5000)
    await store.transition(obligation, ObligationStatus.MARKED_PAID)

    # Same snapshot, second writer
    with pytest.raises(StatusConflict) as exc_info:
        await store.transition(obligation, ObligationStatus.MARKED_PAID)

    assert exc_info.value.extra["status"] == "MARKED_PAID"


@pytest.mark.asyncio
async def test_verified_is_final(store, ids):
    obligation = await store.create_or_get(
        ids["session"], ids["payer"], ids["payee"], 5000,
        status=ObligationStatus.VERIFIED
    )

    for target in ObligationStatus:
        with pytest.raises(InvalidTransition):
            await store.transition(obligation, target)


@pytest.mark.asyncio
async def test_get_unknown_or_malformed(store):
    with pytest.raises(ObligationNotFound):
        await store.get(ObjectId())
    with pytest.raises(ObligationNotFound):
        await store.get("not-an-id")


@pytest.mark.asyncio
async def test_list_by_payer_filters_status(store, ids):
    other_session = ObjectId()
    pending = await store.create_or_get(ids["session"], ids["payer"], ids["payee"], 5000)
    await store.create_or_get(
        other_session, ids["payer"], ids["payee"], 7000,
        status=ObligationStatus.VERIFIED
    )

    all_rows = await store.list_by_payer(ids["payer"])
    assert len(all_rows) == 2

    pending_rows = await store.list_by_payer(ids["payer"], status=ObligationStatus.PENDING)
    assert [o.id for o in pending_rows] == [pending.id]


@pytest.mark.asyncio
async def test_count_by_session(store, ids):
    assert await store.count_by_session(ids["session"]) == 0

    await store.create_or_get(ids["session"], ids["payer"], ids["payee"], 5000)
    await store.create_or_get(ids["session"], ObjectId(), ids["payee"], 5000)
    await store.create_or_get(ObjectId(), ids["payer"], ids["payee"], 5000)

    assert await store.count_by_session(ids["session"]) == 2
