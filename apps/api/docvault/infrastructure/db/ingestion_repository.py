import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from psycopg.types.json import Json

from docvault.core.domain.ingestion import (
    IngestionJob,
    IngestionStatus,
    IngestionType,
    SourceType,
)
from docvault.infrastructure.db import connection as db


TABLE_DDL = """
CREATE TABLE IF NOT EXISTS ingestion_jobs (
    job_id TEXT PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    description VARCHAR(1000),
    type TEXT NOT NULL,
    source_type TEXT,
    source_location TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    message VARCHAR(1000) NOT NULL,
    document_id VARCHAR(255),
    user_id TEXT NOT NULL,
    content TEXT,
    processing_options JSONB,
    target_options JSONB,
    metadata JSONB,
    retry_attempts INTEGER NOT NULL DEFAULT 0,
    last_error_message TEXT,
    last_retry_time TIMESTAMPTZ,
    error_details JSONB,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_ingestion_jobs_status ON ingestion_jobs(status);
CREATE INDEX IF NOT EXISTS idx_ingestion_jobs_user ON ingestion_jobs(user_id, created_at DESC);
"""

JOB_COLUMNS = (
    "job_id, name, description, type, source_type, source_location, status, message, "
    "document_id, user_id, content, processing_options, target_options, metadata, "
    "retry_attempts, last_error_message, last_retry_time, error_details, created_at, updated_at"
)

WRITABLE_KEYS = {
    "name",
    "description",
    "type",
    "source_type",
    "source_location",
    "status",
    "message",
    "document_id",
    "user_id",
    "content",
    "processing_options",
    "target_options",
    "metadata",
    "retry_attempts",
    "last_error_message",
    "last_retry_time",
    "error_details",
}
JSON_KEYS = {"processing_options", "target_options", "metadata", "error_details"}


def ensure_table() -> None:
    pool = db.get_pool()
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(TABLE_DDL)
        conn.commit()


def _to_param(key: str, value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if key in JSON_KEYS and value is not None:
        return Json(value)
    return value


def _row_to_job(row) -> IngestionJob:
    getter = row.get if hasattr(row, "get") else lambda k: row[k]
    source_type = getter("source_type")
    return IngestionJob(
        job_id=getter("job_id"),
        name=getter("name"),
        description=getter("description"),
        type=IngestionType(getter("type")),
        source_type=SourceType(source_type) if source_type else None,
        source_location=getter("source_location"),
        status=IngestionStatus(getter("status")),
        message=getter("message") or "",
        document_id=getter("document_id"),
        user_id=getter("user_id"),
        content=getter("content"),
        processing_options=getter("processing_options"),
        target_options=getter("target_options"),
        metadata=getter("metadata"),
        retry_attempts=int(getter("retry_attempts") or 0),
        last_error_message=getter("last_error_message"),
        last_retry_time=getter("last_retry_time"),
        error_details=getter("error_details"),
        created_at=getter("created_at"),
        updated_at=getter("updated_at"),
    )


def create_job(**fields) -> IngestionJob:
    pool = db.get_pool()
    params: Dict[str, Any] = {"job_id": str(uuid.uuid4())}
    for key, value in fields.items():
        if key not in WRITABLE_KEYS:
            raise ValueError(f"Unknown ingestion job field: {key}")
        params[key] = _to_param(key, value)

    columns = ", ".join(params)
    values = ", ".join(f"%({key})s" for key in params)
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(
            f"""
            INSERT INTO ingestion_jobs ({columns})
            VALUES ({values})
            RETURNING {JOB_COLUMNS}
            """,
            params,
        )
        row = cur.fetchone()
        conn.commit()
    return _row_to_job(row)


def get_job(job_id: str) -> Optional[IngestionJob]:
    pool = db.get_pool()
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(
            f"""
            SELECT {JOB_COLUMNS}
            FROM ingestion_jobs
            WHERE job_id = %(job_id)s
            """,
            {"job_id": job_id},
        )
        row = cur.fetchone()
    return _row_to_job(row) if row else None


def list_jobs(
    user_id: Optional[str] = None,
    status: Optional[IngestionStatus] = None,
    job_type: Optional[IngestionType] = None,
) -> List[IngestionJob]:
    """Jobs matching every given filter, newest first."""
    pool = db.get_pool()
    where = []
    params: Dict[str, Any] = {}
    for column, value in (("user_id", user_id), ("status", status), ("type", job_type)):
        if value is None:
            continue
        where.append(f"{column} = %({column})s")
        params[column] = _to_param(column, value)

    where_sql = f"WHERE {' AND '.join(where)}" if where else ""
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(
            f"""
            SELECT {JOB_COLUMNS}
            FROM ingestion_jobs
            {where_sql}
            ORDER BY created_at DESC
            """,
            params,
        )
        rows = cur.fetchall()
    return [_row_to_job(row) for row in rows]


def save_job(job: IngestionJob) -> IngestionJob:
    """Upsert the full job record keyed by ``job_id``."""
    pool = db.get_pool()
    keys = sorted(WRITABLE_KEYS)
    params: Dict[str, Any] = {"job_id": job.job_id}
    for key in keys:
        params[key] = _to_param(key, getattr(job, key))

    columns = ", ".join(["job_id", *keys])
    values = ", ".join(f"%({key})s" for key in ["job_id", *keys])
    set_sql = ", ".join(f"{key} = EXCLUDED.{key}" for key in keys)
    with pool.connection() as conn, conn.cursor() as cur:
        cur.execute(
            f"""
            INSERT INTO ingestion_jobs ({columns})
            VALUES ({values})
            ON CONFLICT (job_id) DO UPDATE
            SET {set_sql}, updated_at = now()
            RETURNING {JOB_COLUMNS}
            """,
            params,
        )
        row = cur.fetchone()
        conn.commit()
    return _row_to_job(row)
