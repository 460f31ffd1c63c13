import pytest

from main import FORGOT_PASSWORD_MESSAGE

pytestmark = pytest.mark.anyio

REGISTRATION = {
    "firstName": "Grace",
    "lastName": "Hopper",
    "email": "Grace.Hopper@Example.com",
    "password": "cobol1959",
}


async def test_register_returns_principal_and_token(client, services):
    response = await client.post("/api/auth/register", json=REGISTRATION)

    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "grace.hopper@example.com"
    assert data["role"] == "student"
    assert "passwordHash" not in data
    assert services.tokens.verify(data["token"]).subject == data["_id"]


async def test_register_with_role(client):
    response = await client.post("/api/auth/register", json={**REGISTRATION, "role": "parent"})
    assert response.status_code == 201
    assert response.json()["role"] == "parent"


async def test_register_rejects_unknown_role(client):
    response = await client.post("/api/auth/register", json={**REGISTRATION, "role": "principal"})
    assert response.status_code == 400


async def test_register_duplicate_email_is_case_insensitive(client):
    await client.post("/api/auth/register", json=REGISTRATION)
    response = await client.post(
        "/api/auth/register", json={**REGISTRATION, "email": REGISTRATION["email"].lower()}
    )

    assert response.status_code == 400
    assert "already exists" in response.json()["message"]


async def test_register_missing_fields(client):
    response = await client.post("/api/auth/register", json={"email": "x@example.com"})
    assert response.status_code == 400
    assert "message" in response.json()


async def test_register_then_login_round_trip(client, services):
    registered = (await client.post("/api/auth/register", json=REGISTRATION)).json()

    response = await client.post(
        "/api/auth/login", json={"email": REGISTRATION["email"], "password": REGISTRATION["password"]}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["_id"] == registered["_id"]
    assert services.tokens.verify(data["token"]).subject == registered["_id"]


async def test_login_wrong_password(client, student):
    response = await client.post("/api/auth/login", json={"email": student["email"], "password": "nope-nope"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"


async def test_login_unknown_email_same_answer(client):
    response = await client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "whatever"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"


async def test_forgot_password_unregistered_email(client, db, mailer):
    before = list(db.users.find())
    response = await client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})

    assert response.status_code == 200
    assert response.json()["message"] == FORGOT_PASSWORD_MESSAGE
    assert list(db.users.find()) == before
    assert mailer.sent == []


async def test_forgot_password_registered_email_same_response(client, mailer, student):
    response = await client.post("/api/auth/forgot-password", json={"email": student["email"]})

    assert response.status_code == 200
    assert response.json()["message"] == FORGOT_PASSWORD_MESSAGE
    assert mailer.sent[-1]["to"] == student["email"]


async def test_reset_password_flow_is_single_use(client, mailer, student):
    await client.post("/api/auth/forgot-password", json={"email": student["email"]})
    token = mailer.last_reset_token()

    first = await client.put(f"/api/auth/reset-password/{token}", json={"newPassword": "reset-pass-1"})
    second = await client.put(f"/api/auth/reset-password/{token}", json={"newPassword": "reset-pass-2"})

    assert first.status_code == 200
    assert second.status_code == 400
    old = await client.post("/api/auth/login", json={"email": student["email"], "password": student["password"]})
    new = await client.post("/api/auth/login", json={"email": student["email"], "password": "reset-pass-1"})
    assert old.status_code == 401
    assert new.status_code == 200


async def test_reset_password_unknown_token(client):
    response = await client.put("/api/auth/reset-password/made-up-token", json={"newPassword": "whatever123"})
    assert response.status_code == 400
    assert response.json()["message"] == "Password reset token is invalid"


async def test_reset_password_too_short(client, mailer, student):
    await client.post("/api/auth/forgot-password", json={"email": student["email"]})
    response = await client.put(
        f"/api/auth/reset-password/{mailer.last_reset_token()}", json={"newPassword": "abc"}
    )
    assert response.status_code == 400


async def test_root_and_database_check(client):
    assert (await client.get("/")).status_code == 200
    response = await client.get("/test")
    assert response.status_code == 200
    assert response.json()["connection_status"] == "Connected"


async def test_forgot_password_generic_reply_when_mail_fails(client, mailer, student, monkeypatch):
    attempts = []

    def failing_send(to_email, subject, body):
        attempts.append(to_email)
        return False

    monkeypatch.setattr(mailer, "send", failing_send)
    response = await client.post("/api/auth/forgot-password", json={"email": student["email"]})

    assert response.status_code == 200
    assert response.json()["message"] == FORGOT_PASSWORD_MESSAGE
    assert attempts == [student["email"]]
