import importlib

import pytest

fastapi = pytest.importorskip("fastapi")
TestClient = pytest.importorskip("fastapi.testclient").TestClient

from docvault.application.auth_service import AuthService  # noqa: E402
from docvault.application.ingestion_service import IngestionService  # noqa: E402
from docvault.application.outcomes import Outcome, SequenceOutcomeSource  # noqa: E402
from docvault.core.domain.user import User  # noqa: E402
from docvault.infrastructure.security import auth as security  # noqa: E402
from docvault.infrastructure.security.token_blacklist import InMemoryTokenBlacklist  # noqa: E402


class DummyPool:
    """Minimal pool stub to avoid real DB connections in integration tests."""

    def connection(self):
        raise RuntimeError("Connection should not be used in mocked integration tests")


class RecordingRunner:
    """Collects background work instead of running it so responses stay deterministic."""

    def __init__(self):
        self.submitted = []
        self.delayed = []

    def submit(self, work, name=None):
        self.submitted.append(name)

    def submit_later(self, key, delay_seconds, work):
        self.delayed.append((key, delay_seconds))

    def cancel_pending(self, key):
        return False

    async def shutdown(self):
        return None


@pytest.fixture
def app_modules(monkeypatch, user_store, token_store, job_store):
    """
    Load app + routers with a fake pool and in-memory services.
    Returns modules and fakes for use in tests.
    """
    app_module = importlib.import_module("docvault.main")
    auth_module = importlib.import_module("docvault.interfaces.api.routers.auth")
    ingestion_module = importlib.import_module("docvault.interfaces.api.routers.ingestion")

    fake_pool = DummyPool()
    monkeypatch.setattr(app_module.db, "init_pool", lambda: None)
    monkeypatch.setattr(app_module.db, "close_pool", lambda: None)
    monkeypatch.setattr(app_module.db, "pool", fake_pool)
    monkeypatch.setattr(app_module.db, "get_pool", lambda: fake_pool)

    runner = RecordingRunner()
    auth_service = AuthService(
        users=user_store, tokens=token_store, blacklist=InMemoryTokenBlacklist()
    )
    ingestion_service = IngestionService(
        jobs=job_store,
        outcomes=SequenceOutcomeSource([Outcome.ok()]),
        runner=runner,
        processing_delay=(0, 0),
    )

    app = app_module.app
    app.dependency_overrides[auth_module.get_auth_service] = lambda: auth_service
    app.dependency_overrides[ingestion_module.get_ingestion_service] = lambda: ingestion_service
    yield {
        "app": app,
        "auth_service": auth_service,
        "ingestion_service": ingestion_service,
        "runner": runner,
        "pool": fake_pool,
    }
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_modules):
    return TestClient(app_modules["app"])


@pytest.fixture
def auth_header(user_store):
    """Builds a bearer header for a stored user with the given role."""

    def _make(role="editor", user_id=None):
        user_id = user_id or f"{role}-1"
        user_store.add(
            User(
                user_id=user_id,
                name=role.title(),
                email=f"{user_id}@example.com",
                password_hash=security.hash_password("password123"),
                role=role,
            )
        )
        token = security.create_access_token(user_id, f"{user_id}@example.com", role)
        return {"Authorization": f"Bearer {token}"}

    return _make
