import copy
import os
import sys
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

# Ensure apps/api is on path for imports inside the API package (e.g., `docvault.application`).
ROOT = Path(__file__).resolve().parents[1]
API_PATH = ROOT / "apps" / "api"
if str(API_PATH) not in sys.path:
    sys.path.insert(0, str(API_PATH))

# The security module refuses to import without a signing secret.
os.environ.setdefault("JWT_SECRET", "testsecret" * 4)

from docvault.core.domain.auth import RefreshToken  # noqa: E402
from docvault.core.domain.ingestion import IngestionJob  # noqa: E402
from docvault.core.domain.user import User  # noqa: E402


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryJobStore:
    """Stands in for ingestion_repository; hands out copies like a real database would."""

    def __init__(self) -> None:
        self.rows: Dict[str, IngestionJob] = {}
        self.history: List[Tuple[str, str]] = []

    def create_job(self, **fields) -> IngestionJob:
        now = _now()
        job = IngestionJob(job_id=str(uuid.uuid4()), created_at=now, updated_at=now, **fields)
        self.rows[job.job_id] = copy.deepcopy(job)
        self.history.append((job.job_id, job.status.value))
        return copy.deepcopy(job)

    def get_job(self, job_id: str) -> Optional[IngestionJob]:
        job = self.rows.get(job_id)
        return copy.deepcopy(job) if job else None

    def list_jobs(self, user_id=None, status=None, job_type=None) -> List[IngestionJob]:
        jobs = [
            job
            for job in self.rows.values()
            if (user_id is None or job.user_id == user_id)
            and (status is None or job.status == status)
            and (job_type is None or job.type == job_type)
        ]
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return [copy.deepcopy(job) for job in jobs]

    def save_job(self, job: IngestionJob) -> IngestionJob:
        job.updated_at = _now()
        self.rows[job.job_id] = copy.deepcopy(job)
        self.history.append((job.job_id, job.status.value))
        return copy.deepcopy(job)

    def statuses(self, job_id: str) -> List[str]:
        return [status for jid, status in self.history if jid == job_id]


class InMemoryUserStore:
    def __init__(self) -> None:
        self.rows: Dict[str, User] = {}

    def add(self, user: User) -> User:
        self.rows[user.user_id] = user
        return user

    def create_user(self, name: str, email: str, password_hash: str, role: str = "user") -> User:
        user = User(
            user_id=str(uuid.uuid4()),
            name=name,
            email=email.lower(),
            password_hash=password_hash,
            role=role,
            created_at=_now(),
        )
        return self.add(user)

    def get_user_by_email(self, email: str) -> Optional[User]:
        for user in self.rows.values():
            if user.email == email.lower():
                return user
        return None

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self.rows.get(user_id)


class InMemoryTokenStore:
    """Refresh-token store keyed by plain value; ``token_hash`` holds the value itself."""

    def __init__(self, users: InMemoryUserStore) -> None:
        self.users = users
        self.rows: Dict[str, RefreshToken] = {}
        self.saves = 0
        self._lock = threading.Lock()

    def create_token(self, user_id: str, token_value: str, expires_at: datetime) -> RefreshToken:
        token = RefreshToken(
            token_id=str(uuid.uuid4()),
            user_id=user_id,
            token_hash=token_value,
            is_revoked=False,
            expires_at=expires_at,
            created_at=_now(),
        )
        self.rows[token_value] = token
        return copy.copy(token)

    def find_by_value(self, token_value: str, with_owner: bool = False) -> Optional[RefreshToken]:
        token = self.rows.get(token_value)
        if token is None:
            return None
        found = copy.copy(token)
        if with_owner:
            found.user = self.users.get_user_by_id(token.user_id)
        return found

    def list_tokens(self, user_id: str, is_revoked: bool = False) -> List[RefreshToken]:
        return [
            copy.copy(token)
            for token in self.rows.values()
            if token.user_id == user_id and token.is_revoked == is_revoked
        ]

    def consume_token(self, token_id: str) -> bool:
        with self._lock:
            for token in self.rows.values():
                if token.token_id == token_id and not token.is_revoked:
                    token.is_revoked = True
                    return True
        return False

    def save_token(self, token: RefreshToken) -> RefreshToken:
        self.saves += 1
        stored = self.rows[token.token_hash]
        stored.is_revoked = stored.is_revoked or token.is_revoked
        stored.expires_at = token.expires_at
        return copy.copy(stored)

    def expire(self, token_value: str) -> None:
        self.rows[token_value].expires_at = _now() - timedelta(minutes=1)

    def for_user(self, user_id: str) -> List[RefreshToken]:
        return [token for token in self.rows.values() if token.user_id == user_id]


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def user_store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def token_store(user_store) -> InMemoryTokenStore:
    return InMemoryTokenStore(user_store)
