import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from docvault.application.ingestion_service import IngestionService
from docvault.core.domain.ingestion import IngestionStatus, IngestionType
from docvault.core.domain.user import UserRole
from docvault.core.errors import ServiceError
from docvault.interfaces.api.routers.auth import require_roles, to_http_error
from docvault.interfaces.api.schemas import (
    IngestionJobResponse,
    IngestionRequestBody,
    UserPublic,
)

router = APIRouter()
logger = logging.getLogger("ingestion")

can_write = require_roles(UserRole.ADMIN, UserRole.EDITOR)
can_read = require_roles(UserRole.ADMIN, UserRole.EDITOR, UserRole.VIEWER)

_ingestion_service: Optional[IngestionService] = None


def get_ingestion_service() -> IngestionService:
    global _ingestion_service
    if _ingestion_service is None:
        _ingestion_service = IngestionService()
    return _ingestion_service


@router.post(
    "/ingestion", response_model=IngestionJobResponse, status_code=status.HTTP_202_ACCEPTED
)
async def trigger_ingestion(
    payload: IngestionRequestBody,
    current_user: UserPublic = Depends(can_write),
    service: IngestionService = Depends(get_ingestion_service),
) -> IngestionJobResponse:
    logger.info("Received request to trigger ingestion for: %s", payload.name)
    try:
        job = await service.trigger(payload.to_domain(), current_user.user_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return IngestionJobResponse.from_job(job)


@router.post(
    "/ingestion/batch",
    response_model=List[IngestionJobResponse],
    status_code=status.HTTP_202_ACCEPTED,
)
async def batch_ingestion(
    payload: List[IngestionRequestBody],
    current_user: UserPublic = Depends(can_write),
    service: IngestionService = Depends(get_ingestion_service),
) -> List[IngestionJobResponse]:
    logger.info("Received batch ingestion request with %s items", len(payload))
    try:
        jobs = await service.batch_trigger(
            [item.to_domain() for item in payload], current_user.user_id
        )
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return [IngestionJobResponse.from_job(job) for job in jobs]


@router.get("/ingestion", response_model=List[IngestionJobResponse])
def list_ingestions(
    user_id: Optional[str] = None,
    job_status: Optional[IngestionStatus] = None,
    job_type: Optional[IngestionType] = None,
    _: UserPublic = Depends(can_read),
    service: IngestionService = Depends(get_ingestion_service),
) -> List[IngestionJobResponse]:
    jobs = service.list_jobs(user_id=user_id, status=job_status, job_type=job_type)
    return [IngestionJobResponse.from_job(job) for job in jobs]


@router.get("/ingestion/{job_id}", response_model=IngestionJobResponse)
def ingestion_status(
    job_id: str,
    _: UserPublic = Depends(can_read),
    service: IngestionService = Depends(get_ingestion_service),
) -> IngestionJobResponse:
    try:
        job = service.get_status(job_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return IngestionJobResponse.from_job(job)


@router.delete("/ingestion/{job_id}", response_model=IngestionJobResponse)
def cancel_ingestion(
    job_id: str,
    _: UserPublic = Depends(can_write),
    service: IngestionService = Depends(get_ingestion_service),
) -> IngestionJobResponse:
    logger.info("Received request to cancel ingestion ID: %s", job_id)
    try:
        job = service.cancel(job_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return IngestionJobResponse.from_job(job)


@router.post("/ingestion/{job_id}/retry", response_model=IngestionJobResponse)
async def retry_ingestion(
    job_id: str,
    _: UserPublic = Depends(can_write),
    service: IngestionService = Depends(get_ingestion_service),
) -> IngestionJobResponse:
    logger.info("Received request to retry ingestion ID: %s", job_id)
    try:
        job = await service.retry(job_id)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return IngestionJobResponse.from_job(job)
