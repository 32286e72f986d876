"""
Test authentication endpoints
"""
import pytest

SIGNUP = {
    "name": "John Doe",
    "email": "john@example.com",
    "password": "SecurePassword123",
    "phone": "0812345678",
}


@pytest.mark.asyncio
async def test_signup(client):
    response = await client.post("/api/v1/auth/signup", json=SIGNUP)

    assert response.status_code == 201
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["access_token"]
    assert data["user"]["email"] == "john@example.com"
    assert data["user"]["player_id"] is not None


@pytest.mark.asyncio
async def test_signup_duplicate_email(client):
    await client.post("/api/v1/auth/signup", json=SIGNUP)

    response = await client.post("/api/v1/auth/signup", json={**SIGNUP, "email": "JOHN@example.com"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Email already registered"


@pytest.mark.asyncio
async def test_signup_short_password(client):
    response = await client.post("/api/v1/auth/signup", json={**SIGNUP, "password": "short"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_login_and_me(client):
    await client.post("/api/v1/auth/signup", json=SIGNUP)

    login = await client.post("/api/v1/auth/login", json={
        "email": SIGNUP["email"],
        "password": SIGNUP["password"]
    })
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["name"] == "John Doe"


@pytest.mark.asyncio
async def test_login_wrong_password(client):
    await client.post("/api/v1/auth/signup", json=SIGNUP)

    response = await client.post("/api/v1/auth/login", json={
        "email": SIGNUP["email"],
        "password": "WrongPassword"
    })

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_with_invalid_token(client):
    response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_without_token(client):
    response = await client.get("/api/v1/auth/me")
    assert response.status_code in (401, 403)
