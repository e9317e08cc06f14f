from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from docvault.core.domain.ingestion import (
    IngestionJob,
    IngestionRequest,
    IngestionStatus,
    IngestionType,
    SourceType,
)


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str
    password: str = Field(..., min_length=8)

    @model_validator(mode="after")
    def normalize_email(self) -> "UserCreate":
        email_val = self.email.strip().lower()
        if "@" not in email_val or email_val.startswith("@") or email_val.endswith("@"):
            raise ValueError("Please provide a valid email address")
        self.email = email_val
        self.name = self.name.strip()
        if not self.name:
            raise ValueError("Name is required")
        return self


class UserLogin(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class UserSummary(BaseModel):
    id: str
    name: str
    email: str
    role: str


class UserPublic(BaseModel):
    user_id: str
    name: str
    email: str
    role: str
    is_active: bool = True


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserSummary


class MessageResponse(BaseModel):
    message: str


class IngestionMetadata(BaseModel):
    source: Optional[str] = None
    version: Optional[str] = None
    tags: Optional[List[str]] = None
    custom_metadata: Optional[Dict[str, Any]] = None


class IngestionRequestBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    type: IngestionType
    source_type: Optional[SourceType] = None
    source_location: Optional[str] = None
    content: Optional[str] = None
    processing_options: Optional[Dict[str, Any]] = None
    target_options: Optional[Dict[str, Any]] = None
    metadata: Optional[IngestionMetadata] = None

    def to_domain(self) -> IngestionRequest:
        return IngestionRequest(
            name=self.name.strip(),
            description=self.description,
            type=self.type,
            source_type=self.source_type,
            source_location=self.source_location,
            content=self.content,
            processing_options=self.processing_options,
            target_options=self.target_options,
            metadata=self.metadata.model_dump(exclude_none=True) if self.metadata else {},
        )


class IngestionJobResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    type: IngestionType
    status: IngestionStatus
    message: str
    source_type: Optional[SourceType] = None
    source_location: Optional[str] = None
    document_id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None
    retry_attempts: int = 0
    last_error_message: Optional[str] = None
    last_retry_time: Optional[datetime] = None
    error_details: Optional[Dict[str, Any]] = None

    @classmethod
    def from_job(cls, job: IngestionJob) -> "IngestionJobResponse":
        return cls(
            id=job.job_id,
            name=job.name,
            description=job.description,
            type=job.type,
            status=job.status,
            message=job.message,
            source_type=job.source_type,
            source_location=job.source_location,
            document_id=job.document_id,
            user_id=job.user_id,
            created_at=job.created_at,
            updated_at=job.updated_at,
            metadata=job.metadata,
            retry_attempts=job.retry_attempts,
            last_error_message=job.last_error_message,
            last_retry_time=job.last_retry_time,
            error_details=job.error_details,
        )
