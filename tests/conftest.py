"""
Shared fixtures: an in-memory MongoDB (mongomock), a mailer that records
instead of sending, and an httpx client bound to a freshly built app.
"""
import os
import re

os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-testing-only")

import mongomock
import pytest
from httpx import ASGITransport, AsyncClient

from config import Settings
from database import ensure_indexes
from main import create_app
from schemas import Role

RESET_LINK = re.compile(r"/reset-password/(\S+)")


class RecordingMailer:
    is_configured = True

    def __init__(self):
        self.sent = []

    def send(self, to_email, subject, body):
        self.sent.append({"to": to_email, "subject": subject, "body": body})
        return True

    def last_reset_token(self):
        match = RESET_LINK.search(self.sent[-1]["body"])
        return match.group(1) if match else None


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_secret="test-jwt-secret-for-testing-only",
        bcrypt_rounds=4,
        frontend_url="http://portal.test",
    )


@pytest.fixture
def db():
    database = mongomock.MongoClient()["school_portal_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def app(settings, db, mailer):
    return create_app(settings=settings, database=db, mailer=mailer)


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def _make_user(services, email, role, password="password123"):
    doc, token = services.accounts.register("Test", role.value.title(), email, password, role)
    return {"id": str(doc["_id"]), "email": email, "password": password, "token": token,
            "headers": {"Authorization": f"Bearer {token}"}}


@pytest.fixture
def student(services):
    return _make_user(services, "student@example.com", Role.STUDENT)


@pytest.fixture
def teacher(services):
    return _make_user(services, "teacher@example.com", Role.TEACHER)


@pytest.fixture
def admin(services):
    return _make_user(services, "admin@example.com", Role.ADMIN, password="adminpassword123")
