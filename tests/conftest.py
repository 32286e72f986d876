from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient
from motor.motor_asyncio import AsyncIOMotorDatabase

from sessionsplit.db.mongo import create_indexes, get_db
from sessionsplit.main import app
from sessionsplit.repositories.user_repo import UserRepository
from sessionsplit.schemas.auth import UserSignup
from sessionsplit.schemas.expense import ExpenseItemInput
from sessionsplit.schemas.session import PlayerInput, SessionCreate
from sessionsplit.services.session_service import SessionService
from sessionsplit.services.settlement_engine import SettlementEngine

TEST_DB_NAME = "sessionsplit_test"


@pytest_asyncio.fixture
async def test_db() -> AsyncIOMotorDatabase:
    """Fresh in-memory database per test, with the production indexes."""
    db = AsyncMongoMockClient()[TEST_DB_NAME]
    await create_indexes(db)
    return db


@pytest_asyncio.fixture
async def host_user(test_db):
    return await UserRepository(test_db).create_user(UserSignup(
        name="Hannah Host",
        email="hannah@example.com",
        password="SecurePassword123",
        phone="0811111111",
        bank_name="BCA",
        bank_account_number="1234567890",
        bank_account_name="Hannah Host"
    ))


@pytest_asyncio.fixture
async def other_user(test_db):
    return await UserRepository(test_db).create_user(UserSignup(
        name="Oscar Other",
        email="oscar@example.com",
        password="SecurePassword123"
    ))


@pytest.fixture
def service(test_db):
    return SessionService(test_db)


@pytest.fixture
def engine(test_db):
    return SettlementEngine(test_db)


@pytest.fixture
def make_session(service, host_user):
    """
    Factory: a DRAFT session hosted by ``host_user`` with ``players``
    payers and the given expense items.

    Returns (session, [payer player ids as str]).
    """
    async def _make(players=3, expenses=(("Court rental", 120000, 1),)):
        session = await service.create_session(host_user, SessionCreate(
            name="Sunday Badminton",
            description="Weekly game",
            date=datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
        ))

        player_ids = []
        if players:
            added = await service.add_players(
                session.id,
                host_user.id,
                [PlayerInput(name=f"Player {i}") for i in range(1, players + 1)]
            )
            player_ids = [p.id for p in added.players]

        if expenses:
            await service.add_expenses(
                session.id,
                host_user.id,
                [
                    ExpenseItemInput(description=d, amount=a, quantity=q)
                    for d, a, q in expenses
                ]
            )

        session = await service.sessions.get(session.id)
        return session, player_ids

    return _make


@pytest_asyncio.fixture
async def client(test_db):
    """HTTP client against the app, with get_db pointed at the test database."""
    app.dependency_overrides[get_db] = lambda: test_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
