from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class IngestionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


class IngestionType(str, Enum):
    DOCUMENT = "document"
    EMAIL = "email"
    API = "api"
    DATABASE = "database"


class SourceType(str, Enum):
    FILE = "file"
    API = "api"
    TEXT = "text"


class ErrorCategory(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


TERMINAL_STATUSES = frozenset({IngestionStatus.COMPLETED, IngestionStatus.FAILED})


@dataclass
class IngestionJob:
    job_id: str
    name: str
    type: IngestionType
    status: IngestionStatus
    message: str
    user_id: str
    description: Optional[str] = None
    source_type: Optional[SourceType] = None
    source_location: Optional[str] = None
    document_id: Optional[str] = None
    content: Optional[str] = None
    processing_options: Optional[Dict[str, Any]] = None
    target_options: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    retry_attempts: int = 0
    last_error_message: Optional[str] = None
    last_retry_time: Optional[datetime] = None
    error_details: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class IngestionRequest:
    """Fields a caller supplies to start a job; everything else is owned by the service."""

    name: str
    type: IngestionType
    description: Optional[str] = None
    source_type: Optional[SourceType] = None
    source_location: Optional[str] = None
    content: Optional[str] = None
    processing_options: Optional[Dict[str, Any]] = None
    target_options: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
