"""
End-to-end settlement flow over HTTP
"""
import pytest
import pytest_asyncio

from sessionsplit.core.config import settings


async def _signup(client, name, email):
    response = await client.post("/api/v1/auth/signup", json={
        "name": name,
        "email": email,
        "password": "SecurePassword123",
        "bank_name": "BCA",
        "bank_account_number": "9876543210",
    })
    assert response.status_code == 201
    data = response.json()
    return {"Authorization": f"Bearer {data['access_token']}"}, data["user"]


@pytest_asyncio.fixture
async def host(client):
    return await _signup(client, "Hannah Host", "hannah@example.com")


@pytest_asyncio.fixture
async def payer(client):
    return await _signup(client, "Paula Payer", "paula@example.com")


@pytest_asyncio.fixture
async def split_session(client, host, payer):
    """Host session with Paula plus one walk-in, 90000 split between them."""
    host_headers, _ = host
    created = await client.post("/api/v1/sessions", headers=host_headers, json={
        "name": "Friday Futsal",
        "date": "2026-10-16T19:00:00Z",
    })
    assert created.status_code == 201
    session_id = created.json()["id"]

    added = await client.post(f"/api/v1/sessions/{session_id}/players", headers=host_headers, json={
        "players": [
            {"name": "Paula", "email": "paula@example.com"},
            {"name": "Walk-in Wally"},
        ]
    })
    assert added.status_code == 201
    assert added.json()["added_count"] == 2

    expenses = await client.post(f"/api/v1/sessions/{session_id}/expenses", headers=host_headers, json={
        "items": [{"description": "Pitch", "amount": 90000}]
    })
    assert expenses.status_code == 201

    split = await client.post(f"/api/v1/sessions/{session_id}/split", headers=host_headers)
    assert split.status_code == 200
    return session_id, split.json()


@pytest.mark.asyncio
async def test_split_response(split_session):
    _, split = split_session

    assert split["status"] == "SPLIT_CONFIRMED"
    assert split["per_person_amount"] == 45000
    assert split["rounding_difference"] == 0
    assert len(split["obligations"]) == 2


@pytest.mark.asyncio
async def test_split_retry_returns_same_obligations(client, host, split_session):
    session_id, split = split_session

    again = await client.post(f"/api/v1/sessions/{session_id}/split", headers=host[0])

    assert again.status_code == 200
    assert sorted(o["id"] for o in again.json()["obligations"]) == sorted(o["id"] for o in split["obligations"])


@pytest.mark.asyncio
async def test_payer_pays_host_verifies_and_closes(client, host, payer, split_session):
    session_id, _ = split_session
    host_headers, _ = host
    payer_headers, payer_user = payer

    mine = await client.get("/api/v1/player/obligations", headers=payer_headers)
    assert mine.status_code == 200
    obligations = mine.json()["obligations"]
    assert len(obligations) == 1
    obligation_id = obligations[0]["id"]
    assert obligations[0]["amount"] == 45000

    paid = await client.post(f"/api/v1/player/obligations/{obligation_id}/pay", headers=payer_headers, json={
        "method": "TRANSFER",
        "reference_number": "TRX-42",
        "amount": 45000,
    })
    assert paid.status_code == 201
    payment_id = paid.json()["payment_id"]

    proof = await client.post(f"/api/v1/player/payments/{payment_id}/proof", headers=payer_headers, json={
        "media_url": "https://img.example.com/receipt.jpg"
    })
    assert proof.status_code == 201

    # Payer cannot approve their own payment
    forbidden = await client.post(
        f"/api/v1/sessions/{session_id}/obligations/{obligation_id}/verify",
        headers=payer_headers,
        json={"action": "approve"}
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["code"] == "not_host"

    approved = await client.post(
        f"/api/v1/sessions/{session_id}/obligations/{obligation_id}/verify",
        headers=host_headers,
        json={"action": "approve"}
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "VERIFIED"

    status = await client.get(f"/api/v1/player/payments/{payment_id}", headers=payer_headers)
    assert status.json()["proof"]["status"] == "VERIFIED"

    # The walk-in still owes
    blocked = await client.post(f"/api/v1/sessions/{session_id}/close", headers=host_headers)
    assert blocked.status_code == 400
    assert blocked.json()["code"] == "pending_obligations"
    assert blocked.json()["pending_count"] == 1

    detail = await client.get(f"/api/v1/sessions/{session_id}", headers=host_headers)
    walk_in = next(p for p in detail.json()["players"] if p["name"] == "Walk-in Wally")
    marked = await client.post(
        f"/api/v1/sessions/{session_id}/players/{walk_in['id']}/mark-paid",
        headers=host_headers
    )
    assert marked.status_code == 200

    closed = await client.post(f"/api/v1/sessions/{session_id}/close", headers=host_headers)
    assert closed.status_code == 200
    assert closed.json()["summary"]["total_collected"] == 90000


@pytest.mark.asyncio
async def test_payer_sees_session_detail(client, payer, split_session):
    session_id, _ = split_session

    detail = await client.get(f"/api/v1/sessions/{session_id}", headers=payer[0])

    assert detail.status_code == 200
    assert detail.json()["host"]["bank_account"]["bank_name"] == "BCA"


@pytest.mark.asyncio
async def test_locked_session_rejects_expenses(client, host, split_session):
    session_id, _ = split_session

    response = await client.post(f"/api/v1/sessions/{session_id}/expenses", headers=host[0], json={
        "items": [{"description": "Drinks", "amount": 10000}]
    })

    assert response.status_code == 409
    assert response.json()["code"] == "session_locked"


@pytest.mark.asyncio
async def test_unknown_session(client, host):
    response = await client.get("/api/v1/sessions/507f1f77bcf86cd799439011", headers=host[0])

    assert response.status_code == 404
    assert response.json()["code"] == "session_not_found"


@pytest.mark.asyncio
async def test_split_without_players(client, host):
    created = await client.post("/api/v1/sessions", headers=host[0], json={
        "name": "Solo run",
        "date": "2026-10-16T07:00:00Z",
    })

    response = await client.post(f"/api/v1/sessions/{created.json()['id']}/split", headers=host[0])

    assert response.status_code == 400
    assert response.json()["code"] == "no_participants"


@pytest.mark.asyncio
async def test_list_and_delete_sessions(client, host, payer, split_session):
    session_id, _ = split_session

    hosted = await client.get("/api/v1/sessions", params={"role": "host"}, headers=host[0])
    assert hosted.json()["pagination"]["total_items"] == 1

    joined = await client.get("/api/v1/sessions", params={"role": "player"}, headers=payer[0])
    assert [s["id"] for s in joined.json()["items"]] == [session_id]
    assert joined.json()["items"][0]["my_role"] == "PLAYER"

    deleted = await client.delete(f"/api/v1/sessions/{session_id}", headers=host[0])
    assert deleted.status_code == 204

    listed = await client.get("/api/v1/sessions", headers=host[0])
    assert listed.json()["pagination"]["total_items"] == 0

    # Payers keep their history
    history = await client.get("/api/v1/player/obligations", headers=payer[0])
    assert history.json()["obligations"][0]["session"]["is_active"] is False


@pytest.mark.asyncio
async def test_expenses_frozen_after_early_mark_paid(client, host):
    created = await client.post("/api/v1/sessions", headers=host[0], json={
        "name": "Tuesday Tennis",
        "date": "2026-10-20T18:00:00Z",
    })
    session_id = created.json()["id"]
    added = await client.post(f"/api/v1/sessions/{session_id}/players", headers=host[0], json={
        "players": [{"name": "Tara"}, {"name": "Tom"}]
    })
    tara_id = added.json()["players"][0]["id"]
    await client.post(f"/api/v1/sessions/{session_id}/expenses", headers=host[0], json={
        "items": [{"description": "Court", "amount": 100000}]
    })

    marked = await client.post(f"/api/v1/sessions/{session_id}/players/{tara_id}/mark-paid", headers=host[0])
    assert marked.status_code == 200

    response = await client.post(f"/api/v1/sessions/{session_id}/expenses", headers=host[0], json={
        "items": [{"description": "Balls", "amount": 100000}]
    })

    assert response.status_code == 409
    assert response.json()["code"] == "obligations_exist"


@pytest.mark.asyncio
async def test_decimal_expense_amounts(client, host, monkeypatch):
    monkeypatch.setattr(settings, "CURRENCY_DECIMALS", 2)
    created = await client.post("/api/v1/sessions", headers=host[0], json={
        "name": "Coffee run",
        "date": "2026-10-21T08:00:00Z",
    })
    session_id = created.json()["id"]

    response = await client.post(f"/api/v1/sessions/{session_id}/expenses", headers=host[0], json={
        "items": [{"description": "Latte", "amount": 12.50, "quantity": 2}]
    })

    assert response.status_code == 201
    assert response.json()["items"][0]["amount"] == 12.5
    assert response.json()["total_amount"] == 25.0

    too_fine = await client.post(f"/api/v1/sessions/{session_id}/expenses", headers=host[0], json={
        "items": [{"description": "Tip", "amount": 0.125}]
    })
    assert too_fine.status_code == 422
