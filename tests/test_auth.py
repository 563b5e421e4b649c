import pytest

SIGNUP = {"email": "Founder@Example.com", "password": "launch2024", "name": " Sam Founder "}


@pytest.mark.asyncio
async def test_signup_success(client):
    response = await client.post("/api/v1/auth/signup", json=SIGNUP)

    assert response.status_code == 201, response.json()
    data = response.json()
    assert data["status"] == "success"
    assert data["message"] == "User registered successfully"
    assert data["data"]["user"]["email"] == "founder@example.com"
    assert data["data"]["user"]["name"] == "Sam Founder"
    assert data["data"]["token_type"] == "bearer"
    assert data["data"]["token"]


@pytest.mark.asyncio
async def test_signup_duplicate_email(client):
    await client.post("/api/v1/auth/signup", json=SIGNUP)
    response = await client.post("/api/v1/auth/signup", json=SIGNUP)

    assert response.status_code == 409
    assert response.json()["data"]["code"] == "DUPLICATE_ACCOUNT"


@pytest.mark.asyncio
@pytest.mark.parametrize("password", ["short1", "allletters", "12345678"])
async def test_signup_weak_password(client, password):
    response = await client.post("/api/v1/auth/signup", json={**SIGNUP, "password": password})

    assert response.status_code == 422
    assert response.json()["status"] == "error"


@pytest.mark.asyncio
async def test_login_and_me(client):
    await client.post("/api/v1/auth/signup", json=SIGNUP)

    login = await client.post(
        "/api/v1/auth/login", json={"email": "founder@example.com", "password": "launch2024"}
    )
    assert login.status_code == 200
    token = login.json()["data"]["token"]

    me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "founder@example.com"


@pytest.mark.asyncio
async def test_login_wrong_password(client):
    await client.post("/api/v1/auth/signup", json=SIGNUP)

    response = await client.post(
        "/api/v1/auth/login", json={"email": "founder@example.com", "password": "wrongpass1"}
    )

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password."


@pytest.mark.asyncio
async def test_me_requires_token(client):
    response = await client.get("/api/v1/auth/me")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_me_rejects_garbage_token(client):
    response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.token"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token"
