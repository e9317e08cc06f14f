import asyncio
import logging
import os
import random
import secrets
import traceback
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple

from docvault.application.background import BackgroundTaskRunner
from docvault.application.outcomes import Outcome, OutcomeSource, RandomOutcomeSource
from docvault.application.retry_policy import RetryConfig, RetryPolicy
from docvault.core.domain.ingestion import (
    TERMINAL_STATUSES,
    IngestionJob,
    IngestionRequest,
    IngestionStatus,
    IngestionType,
    SourceType,
)
from docvault.core.errors import BadRequest, NotFound
from docvault.infrastructure.db import ingestion_repository

logger = logging.getLogger("ingestion")

PROCESSING_MIN_SECONDS = float(os.environ.get("INGEST_PROCESSING_MIN_SECONDS", "2"))
PROCESSING_MAX_SECONDS = float(os.environ.get("INGEST_PROCESSING_MAX_SECONDS", "7"))
CANCEL_STOPS_RETRY = os.environ.get("INGEST_CANCEL_STOPS_RETRY", "false").lower() in {"1", "true", "yes"}

SYSTEM_USER_ID = "system"
CANCELED_MESSAGE = "Ingestion job was canceled by the user"

STATUS_MESSAGES = {
    IngestionStatus.PENDING: "Ingestion job is pending processing",
    IngestionStatus.PROCESSING: "Ingestion job is currently being processed",
    IngestionStatus.RETRYING: "Ingestion job is being retried after a failure",
    IngestionStatus.COMPLETED: "Ingestion job has been successfully completed",
    IngestionStatus.FAILED: "Ingestion job failed to process",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionService:
    """
    Owns the ingestion job state machine.

    PENDING -> PROCESSING -> COMPLETED | RETRYING | FAILED, RETRYING loops back
    to PROCESSING, and a manual retry moves FAILED back to PENDING. Processing
    runs as detached tasks on ``runner``; store calls made from coroutines go
    through ``asyncio.to_thread`` because the repository is blocking psycopg.

    Two processing steps for the same job can overlap (a manual retry while an
    automatic retry is still pending, or a cancel followed by a late step);
    nothing serializes them.
    """

    def __init__(
        self,
        jobs: Any = ingestion_repository,
        outcomes: Optional[OutcomeSource] = None,
        runner: Optional[BackgroundTaskRunner] = None,
        policy: Optional[RetryPolicy] = None,
        processing_delay: Tuple[float, float] = (PROCESSING_MIN_SECONDS, PROCESSING_MAX_SECONDS),
        cancel_stops_pending_retry: bool = CANCEL_STOPS_RETRY,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.jobs = jobs
        self.outcomes = outcomes or RandomOutcomeSource()
        self.runner = runner or BackgroundTaskRunner()
        self.policy = policy or RetryPolicy(RetryConfig.from_env())
        self.processing_delay = processing_delay
        self.cancel_stops_pending_retry = cancel_stops_pending_retry
        self._rng = rng or random.Random()

    async def trigger(self, request: IngestionRequest, user_id: Optional[str] = None) -> IngestionJob:
        logger.info("Triggering ingestion", extra={"job_name": request.name, "user_id": user_id})
        self._check_required_fields(request)

        job = await asyncio.to_thread(
            self.jobs.create_job,
            name=request.name,
            description=request.description,
            type=request.type,
            source_type=request.source_type,
            source_location=request.source_location,
            content=request.content,
            processing_options=request.processing_options,
            target_options=request.target_options,
            metadata=request.metadata,
            status=IngestionStatus.PENDING,
            message="Document ingestion is queued for processing",
            user_id=user_id or SYSTEM_USER_ID,
            retry_attempts=0,
        )
        logger.info("Ingestion job created", extra={"job_id": job.job_id})
        self._start_processing(job.job_id)
        return job

    def get_status(self, job_id: str) -> IngestionJob:
        return self._get_or_raise(job_id)

    def list_jobs(
        self,
        user_id: Optional[str] = None,
        status: Optional[IngestionStatus] = None,
        job_type: Optional[IngestionType] = None,
    ) -> List[IngestionJob]:
        return self.jobs.list_jobs(user_id=user_id, status=status, job_type=job_type)

    def cancel(self, job_id: str) -> IngestionJob:
        job = self._get_or_raise(job_id)
        if job.status in TERMINAL_STATUSES:
            raise BadRequest(f'Cannot cancel ingestion job with status "{job.status.value}"')

        job.status = IngestionStatus.FAILED
        job.message = CANCELED_MESSAGE
        saved = self.jobs.save_job(job)
        if self.cancel_stops_pending_retry and self.runner.cancel_pending(job_id):
            logger.info("Pending retry dropped on cancel", extra={"job_id": job_id})
        logger.info("Ingestion job canceled", extra={"job_id": job_id})
        return saved

    async def retry(self, job_id: str) -> IngestionJob:
        job = await asyncio.to_thread(self._get_or_raise, job_id)
        if job.status != IngestionStatus.FAILED:
            raise BadRequest(
                f'Cannot retry ingestion job with status "{job.status.value}". '
                "Only failed jobs can be retried."
            )

        job.retry_attempts = 0
        job.status = IngestionStatus.PENDING
        job.message = "Ingestion job has been queued for retry"
        job.last_retry_time = _utcnow()
        saved = await asyncio.to_thread(self.jobs.save_job, job)
        logger.info("Manual retry queued", extra={"job_id": job_id})
        self._start_processing(job_id)
        return saved

    async def batch_trigger(
        self, requests: Sequence[IngestionRequest], user_id: Optional[str] = None
    ) -> List[IngestionJob]:
        logger.info("Starting batch ingestion of %s items", len(requests))
        results = []
        for request in requests:
            results.append(await self.trigger(request, user_id))
        logger.info("Completed batch ingestion of %s items", len(results))
        return results

    async def process_job(self, job_id: str) -> None:
        """One processing attempt. Never raises; failures end up on the job record."""
        try:
            job = await asyncio.to_thread(self.jobs.get_job, job_id)
            if job is None:
                logger.error("Ingestion job %s not found during processing", job_id)
                return

            job.status = IngestionStatus.PROCESSING
            job.message = STATUS_MESSAGES[IngestionStatus.PROCESSING]
            job = await asyncio.to_thread(self.jobs.save_job, job)

            low, high = self.processing_delay
            processing_time = self._rng.uniform(low, high) if high > 0 else 0.0
            await asyncio.sleep(processing_time)

            outcome = self.outcomes.next_outcome(job)
            if outcome.success:
                await self._complete(job)
            else:
                await self._fail_attempt(job, outcome)
            logger.info(
                "Processing attempt for %s finished after %.2fs",
                job_id,
                processing_time,
                extra={"job_id": job_id, "success": outcome.success},
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error while processing ingestion job %s", job_id)
            await self._record_unexpected_failure(job_id, exc)

    async def _complete(self, job: IngestionJob) -> None:
        job.status = IngestionStatus.COMPLETED
        job.message = STATUS_MESSAGES[IngestionStatus.COMPLETED]
        if job.type == IngestionType.DOCUMENT:
            job.document_id = f"doc-{secrets.token_hex(4)}"
        await asyncio.to_thread(self.jobs.save_job, job)

    async def _fail_attempt(self, job: IngestionJob, outcome: Outcome) -> None:
        category = outcome.category
        error_message = outcome.error_message or "Unexpected processing error"
        job.last_error_message = error_message
        job.error_details = {
            "category": category.value if category else None,
            "timestamp": _utcnow().isoformat(),
            "description": f"Simulated error during processing of {job.type.value} ingestion",
        }

        if category is not None and self.policy.should_retry(category, job.retry_attempts):
            job.retry_attempts += 1
            job.last_retry_time = _utcnow()
            job.status = IngestionStatus.RETRYING
            job.message = (
                f"Retrying ingestion (attempt {job.retry_attempts} of {self.policy.max_retries})"
            )
            await asyncio.to_thread(self.jobs.save_job, job)

            delay_ms = self.policy.compute_delay(job.retry_attempts)
            logger.info(
                "Scheduling retry for job %s in %.0fms (attempt %s)",
                job.job_id,
                delay_ms,
                job.retry_attempts,
            )
            job_id = job.job_id
            self.runner.submit_later(job_id, delay_ms / 1000.0, lambda: self.process_job(job_id))
            return

        job.status = IngestionStatus.FAILED
        job.message = f"Ingestion failed after {job.retry_attempts} retry attempts: {error_message}"
        await asyncio.to_thread(self.jobs.save_job, job)
        logger.warning(
            "Ingestion job %s failed",
            job.job_id,
            extra={"job_id": job.job_id, "category": category.value if category else None},
        )

    async def _record_unexpected_failure(self, job_id: str, exc: Exception) -> None:
        try:
            job = await asyncio.to_thread(self.jobs.get_job, job_id)
            if job is None:
                return
            job.status = IngestionStatus.FAILED
            job.message = f"Unexpected error during processing: {exc}"
            job.last_error_message = str(exc)
            job.error_details = {
                "description": f"{type(exc).__name__}: {exc}",
                "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                "timestamp": _utcnow().isoformat(),
            }
            await asyncio.to_thread(self.jobs.save_job, job)
        except Exception as db_exc:
            logger.error("Failed to update job %s after error: %s", job_id, db_exc)

    def _start_processing(self, job_id: str) -> None:
        self.runner.submit(lambda: self.process_job(job_id), name=f"ingest:{job_id}")

    def _get_or_raise(self, job_id: str) -> IngestionJob:
        job = self.jobs.get_job(job_id)
        if job is None:
            raise NotFound(f'Ingestion job with ID "{job_id}" not found')
        return job

    @staticmethod
    def _check_required_fields(request: IngestionRequest) -> None:
        if not (request.name or "").strip():
            raise BadRequest("Ingestion name is required")
        if request.source_type in (SourceType.FILE, SourceType.API):
            if not (request.source_location or "").strip():
                raise BadRequest(f"source_location is required for {request.source_type.value} sources")
        elif not request.content:
            raise BadRequest("content is required for text ingestion")
