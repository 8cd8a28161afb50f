"""Shared test fixtures and configuration for backend tests."""
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from servicedesk.config import (
    AppSettings,
    DatabaseSettings,
    JWTSecrets,
    Secrets,
    SessionSettings,
)
from servicedesk.deps import build_services
from servicedesk.directory.models import UserRole
from servicedesk.main import create_app

TEST_SECRET = "test-secret-key-for-servicedesk-suite-0123456789"


class FakeWebSocket:
    """Records everything the server does to a connection."""

    def __init__(self, fail_sends: bool = False) -> None:
        self.sent = []
        self.accepted = False
        self.close_code = None
        self.close_reason = None
        self.fail_sends = fail_sends

    async def accept(self) -> None:
        self.accepted = True

    async def close(self, code: int = 1000, reason=None) -> None:
        self.close_code = code
        self.close_reason = reason

    async def send_json(self, data: dict) -> None:
        if self.fail_sends:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    def frames(self, frame_type: str) -> list:
        return [f for f in self.sent if f.get("type") == frame_type]


def seed_people(services) -> SimpleNamespace:
    """Create one user per role plus a second standard and desk user."""
    directory = services.directory
    return SimpleNamespace(
        reporter=directory.create_user("Rita Reporter", "rita@example.com", UserRole.STANDARD),
        stranger=directory.create_user("Sam Stranger", "sam@example.com", UserRole.STANDARD),
        desk=directory.create_user("Dana Desk", "dana@example.com", UserRole.SERVICE_DESK),
        desk2=directory.create_user("Drew Desk", "drew@example.com", UserRole.SERVICE_DESK),
        admin=directory.create_user("Ada Admin", "ada@example.com", UserRole.ADMIN),
    )


@pytest.fixture
def settings():
    """Settings backed by an in-memory database and a known JWT secret."""
    return AppSettings(
        database=DatabaseSettings(path=":memory:"),
        sessions=SessionSettings(handshake_timeout_seconds=2),
        secrets=Secrets(jwt=JWTSecrets(secret_key=TEST_SECRET)),
    )


@pytest.fixture
def services(settings):
    """A standalone component stack (no FastAPI app)."""
    stack = build_services(settings)
    stack.registry.start()
    yield stack
    stack.db.close()


@pytest.fixture
def people(services):
    return seed_people(services)


@pytest.fixture
def make_ws():
    return FakeWebSocket


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def api_client(app):
    """TestClient with lifespan running (session registry started)."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def app_people(app):
    return seed_people(app.state.services)


@pytest.fixture
def auth_header(app):
    """Build an Authorization header for a user of the running app."""
    verifier = app.state.services.verifier

    def _header(user) -> dict:
        return {"Authorization": f"Bearer {verifier.issue(user.id)}"}

    return _header
