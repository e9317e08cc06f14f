import uuid
from typing import Optional

from docvault.core.domain.user import User, UserRole
from docvault.infrastructure.db import connection as db

USER_COLUMNS = "user_id, name, email, password_hash, role, is_active, created_at"


def ensure_table() -> None:
    pool = db.get_pool()
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                user_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'user',
                is_active BOOLEAN NOT NULL DEFAULT TRUE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
            );
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_users_email ON users(email);")
        conn.commit()


def row_to_user(row, prefix: str = "") -> User:
    getter = row.get if hasattr(row, "get") else lambda k: row[k]
    return User(
        user_id=getter(f"{prefix}user_id"),
        name=getter(f"{prefix}name"),
        email=getter(f"{prefix}email"),
        password_hash=getter(f"{prefix}password_hash"),
        role=getter(f"{prefix}role"),
        is_active=bool(getter(f"{prefix}is_active")),
        created_at=getter(f"{prefix}created_at"),
    )


def create_user(
    name: str,
    email: str,
    password_hash: str,
    role: str = UserRole.USER.value,
) -> User:
    pool = db.get_pool()
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(
            f"""
            INSERT INTO users (user_id, name, email, password_hash, role)
            VALUES (%(user_id)s, %(name)s, %(email)s, %(password_hash)s, %(role)s)
            RETURNING {USER_COLUMNS}
            """,
            {
                "user_id": str(uuid.uuid4()),
                "name": name,
                "email": email.lower(),
                "password_hash": password_hash,
                "role": role,
            },
        )
        row = cur.fetchone()
        conn.commit()
    return row_to_user(row)


def get_user_by_email(email: str) -> Optional[User]:
    pool = db.get_pool()
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(
            f"SELECT {USER_COLUMNS} FROM users WHERE email = %(email)s",
            {"email": email.lower()},
        )
        row = cur.fetchone()
    return row_to_user(row) if row else None


def get_user_by_id(user_id: str) -> Optional[User]:
    pool = db.get_pool()
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(
            f"SELECT {USER_COLUMNS} FROM users WHERE user_id = %(user_id)s",
            {"user_id": user_id},
        )
        row = cur.fetchone()
    return row_to_user(row) if row else None
