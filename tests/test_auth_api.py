from __future__ import annotations

from conftest import PASSWORD, auth, token_from


async def test_login_returns_token_and_user(client, staff):
    resp = await client.post("/api/auth/login", json={"email": "STAFF@example.com", "password": PASSWORD})
    assert resp.status_code == 200
    body = resp.json()
    assert body["token"]
    assert body["user"]["email"] == "staff@example.com"
    assert "password" not in body["user"]


async def test_login_with_wrong_password(client, staff):
    resp = await client.post("/api/auth/login", json={"email": "staff@example.com", "password": "Wrong1234"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid email or password"


async def test_register_is_always_a_plain_user(client):
    resp = await client.post(
        "/api/auth/register",
        json={"name": "New Person", "email": "new@example.com", "password": "Str0ngPass", "role": "admin"},
    )
    assert resp.status_code == 201
    assert resp.json()["user"]["role"] == "user"


async def test_register_duplicate_email_names_the_field(client, staff):
    resp = await client.post(
        "/api/auth/register",
        json={"name": "Again", "email": "staff@example.com", "password": "Str0ngPass"},
    )
    assert resp.status_code == 409
    assert resp.json()["errors"][0]["field"] == "email"


async def test_weak_password_is_rejected(client):
    resp = await client.post(
        "/api/auth/register",
        json={"name": "Weak", "email": "weak@example.com", "password": "password"},
    )
    assert resp.status_code == 422


async def test_logout_revokes_the_token(client, staff):
    headers = auth(staff)
    assert (await client.get("/api/auth/user", headers=headers)).status_code == 200
    assert (await client.post("/api/auth/logout", headers=headers)).status_code == 200
    resp = await client.get("/api/auth/user", headers=headers)
    assert resp.status_code == 401


async def test_missing_token_is_401(client):
    assert (await client.get("/api/couriers")).status_code == 401


async def test_password_reset_link_is_single_use(client, staff, outbox):
    resp = await client.post("/api/auth/forgot-password", json={"email": "staff@example.com"})
    assert resp.status_code == 200
    assert len(outbox) == 1
    token = token_from(outbox[0]["body"])

    resp = await client.post("/api/auth/reset-password", json={"token": token, "newPassword": "N3wPassword"})
    assert resp.status_code == 200
    resp = await client.post("/api/auth/reset-password", json={"token": token, "newPassword": "N3wPassword2"})
    assert resp.status_code == 400

    resp = await client.post("/api/auth/login", json={"email": "staff@example.com", "password": "N3wPassword"})
    assert resp.status_code == 200


async def test_forgot_password_does_not_reveal_unknown_accounts(client, outbox):
    resp = await client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert resp.status_code == 200
    assert outbox == []
