import hashlib
import uuid
from datetime import datetime
from typing import List, Optional

from docvault.core.domain.auth import RefreshToken
from docvault.infrastructure.db import connection as db
from docvault.infrastructure.db.user_repository import row_to_user


TABLE_CREATE = """
CREATE TABLE IF NOT EXISTS refresh_tokens (
    token_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    token_hash TEXT NOT NULL UNIQUE,
    is_revoked BOOLEAN NOT NULL DEFAULT FALSE,
    expires_at TIMESTAMPTZ NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

TABLE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_refresh_tokens_user ON refresh_tokens(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_refresh_tokens_active ON refresh_tokens(user_id) WHERE NOT is_revoked",
]

TOKEN_COLUMNS = "t.token_id, t.user_id, t.token_hash, t.is_revoked, t.expires_at, t.created_at"
OWNER_COLUMNS = (
    "u.user_id AS owner_user_id, u.name AS owner_name, u.email AS owner_email, "
    "u.password_hash AS owner_password_hash, u.role AS owner_role, "
    "u.is_active AS owner_is_active, u.created_at AS owner_created_at"
)


def ensure_table() -> None:
    pool = db.get_pool()
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(TABLE_CREATE)
        for stmt in TABLE_INDEXES:
            cur.execute(stmt)
        conn.commit()


def hash_token_value(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _row_to_token(row) -> RefreshToken:
    getter = row.get if hasattr(row, "get") else lambda k: row[k]
    owner = None
    # Owner columns are only selected by find_by_value(with_owner=True).
    if hasattr(row, "get") and row.get("owner_user_id"):
        owner = row_to_user(row, prefix="owner_")
    return RefreshToken(
        token_id=getter("token_id"),
        user_id=getter("user_id"),
        token_hash=getter("token_hash"),
        is_revoked=bool(getter("is_revoked")),
        expires_at=getter("expires_at"),
        created_at=getter("created_at"),
        user=owner,
    )


def create_token(user_id: str, token_value: str, expires_at: datetime) -> RefreshToken:
    """Persist a new refresh token. Only the sha256 of ``token_value`` is stored."""
    pool = db.get_pool()
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO refresh_tokens AS t (token_id, user_id, token_hash, is_revoked, expires_at)
            VALUES (%(token_id)s, %(user_id)s, %(token_hash)s, FALSE, %(expires_at)s)
            RETURNING t.token_id, t.user_id, t.token_hash, t.is_revoked, t.expires_at, t.created_at
            """,
            {
                "token_id": str(uuid.uuid4()),
                "user_id": user_id,
                "token_hash": hash_token_value(token_value),
                "expires_at": expires_at,
            },
        )
        row = cur.fetchone()
        conn.commit()
    return _row_to_token(row)


def find_by_value(token_value: str, with_owner: bool = False) -> Optional[RefreshToken]:
    pool = db.get_pool()
    if with_owner:
        query = f"""
            SELECT {TOKEN_COLUMNS}, {OWNER_COLUMNS}
            FROM refresh_tokens t
            LEFT JOIN users u ON u.user_id = t.user_id
            WHERE t.token_hash = %(token_hash)s
        """
    else:
        query = f"""
            SELECT {TOKEN_COLUMNS}
            FROM refresh_tokens t
            WHERE t.token_hash = %(token_hash)s
        """
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(query, {"token_hash": hash_token_value(token_value)})
        row = cur.fetchone()
    return _row_to_token(row) if row else None


def list_tokens(user_id: str, is_revoked: bool = False) -> List[RefreshToken]:
    pool = db.get_pool()
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(
            f"""
            SELECT {TOKEN_COLUMNS}
            FROM refresh_tokens t
            WHERE t.user_id = %(user_id)s AND t.is_revoked = %(is_revoked)s
            ORDER BY t.created_at
            """,
            {"user_id": user_id, "is_revoked": is_revoked},
        )
        rows = cur.fetchall()
    return [_row_to_token(row) for row in rows]


def consume_token(token_id: str) -> bool:
    """Revoke an active token in one statement; False when it was already revoked."""
    pool = db.get_pool()
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(
            """
            UPDATE refresh_tokens AS t
            SET is_revoked = TRUE
            WHERE t.token_id = %(token_id)s AND NOT t.is_revoked
            RETURNING t.token_id
            """,
            {"token_id": token_id},
        )
        row = cur.fetchone()
        conn.commit()
    return row is not None


def save_token(token: RefreshToken) -> RefreshToken:
    """
    Write back the mutable state of a token.

    Revocation is sticky: once stored as revoked, a later save cannot clear it.
    """
    pool = db.get_pool()
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(
            """
            UPDATE refresh_tokens AS t
            SET is_revoked = t.is_revoked OR %(is_revoked)s,
                expires_at = %(expires_at)s
            WHERE t.token_id = %(token_id)s
            RETURNING t.token_id, t.user_id, t.token_hash, t.is_revoked, t.expires_at, t.created_at
            """,
            {
                "token_id": token.token_id,
                "is_revoked": token.is_revoked,
                "expires_at": token.expires_at,
            },
        )
        row = cur.fetchone()
        conn.commit()
    if row is None:
        return token
    saved = _row_to_token(row)
    saved.user = token.user
    return saved
