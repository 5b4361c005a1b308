"""
Job store access helpers.

All writes to a job go through this module so that the state machine
(pending -> queuing -> processing -> completed|failed) and the terminal-field
invariants hold no matter who is writing: the lifecycle controller or the
style transfer worker reporting back.
"""
from __future__ import annotations

import re
import secrets
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import InvalidJobTransitionError, JobNotFoundError
from ..logger import logger
from ..models import Job, JobStatus, STATUS_RANK, TERMINAL_STATUSES
from ..schemas import JobMetadata, JobResponse, WorkerStatusUpdate
from .events import event_bus

GENERIC_FAILURE_MESSAGE = "Processing failed. Please contact support."


class DuplicateSessionError(Exception):
    """A job insert hit a unique constraint, normally the payment session index."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Job already exists for session {session_id}")


def generate_job_id(email: str) -> str:
    local_part = (email or "").split("@", 1)[0].lower()
    slug = re.sub(r"[^a-z0-9]+", "-", local_part).strip("-")[:20] or "job"
    return f"{slug}-{secrets.token_hex(4)}"


async def get_job(db: AsyncSession, job_id: str) -> Optional[Job]:
    res = await db.execute(select(Job).filter(Job.job_id == job_id))
    return res.scalar_one_or_none()


async def get_job_or_404(db: AsyncSession, job_id: str) -> Job:
    job = await get_job(db, job_id)
    if not job:
        raise JobNotFoundError(job_id)
    return job


async def find_by_session(db: AsyncSession, session_id: str) -> Optional[Job]:
    res = await db.execute(select(Job).filter(Job.payment_session_id == session_id))
    return res.scalar_one_or_none()


async def create_job(db: AsyncSession, **fields) -> Job:
    """
    Insert a job in `queuing`.

    The unique index on payment_session_id turns a concurrent duplicate insert
    into DuplicateSessionError instead of a second job.
    """
    job = Job(status=JobStatus.QUEUING.value, progress=0, output_image_refs=[], **fields)
    db.add(job)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateSessionError(fields.get("payment_session_id"))
    await db.refresh(job)
    logger.info(
        f"Job created: {job.job_id}",
        extra={"job_id": job.job_id, "session_id": job.payment_session_id, "image_count": len(job.input_image_refs)},
    )
    event_bus.publish(job.job_id, job.status)
    return job


async def attach_execution(db: AsyncSession, job: Job, execution_ref: str) -> Job:
    job.processing_execution_ref = execution_ref
    await db.commit()
    await db.refresh(job)
    logger.info(
        f"Job {job.job_id} linked to execution {execution_ref}",
        extra={"job_id": job.job_id, "execution_ref": execution_ref},
    )
    return job


async def mark_failed(db: AsyncSession, job: Job, message: str = GENERIC_FAILURE_MESSAGE) -> Job:
    if job.status in TERMINAL_STATUSES:
        logger.warning(f"Job {job.job_id} already terminal ({job.status}), not marking failed")
        return job
    job.status = JobStatus.FAILED.value
    job.error_message = message
    job.completed_at = datetime.utcnow()
    await db.commit()
    await db.refresh(job)
    logger.warning(f"Job {job.job_id} marked failed", extra={"job_id": job.job_id})
    event_bus.publish(job.job_id, job.status)
    return job


async def update_payment_bookkeeping(
    db: AsyncSession,
    job: Job,
    *,
    payment_intent_id: Optional[str],
    payment_status: Optional[str],
    amount_total: Optional[int],
    currency: Optional[str],
) -> Job:
    """Refresh payment fields only. Status, inputs and outputs are left alone."""
    if payment_intent_id:
        job.payment_intent_id = payment_intent_id
    if payment_status:
        job.payment_status = payment_status
    if amount_total is not None:
        job.amount_total = amount_total
    if currency:
        job.currency = currency
    await db.commit()
    await db.refresh(job)
    return job


async def apply_worker_update(db: AsyncSession, job_id: str, update: WorkerStatusUpdate) -> Job:
    job = await get_job_or_404(db, job_id)
    requested = update.status

    if job.status in TERMINAL_STATUSES:
        if job.status == requested:
            # redelivered terminal report
            logger.info(f"Ignoring repeated {requested} report for job {job_id}")
            return job
        raise InvalidJobTransitionError(job_id, job.status, requested, "job is terminal")

    if STATUS_RANK[requested] < STATUS_RANK[job.status]:
        raise InvalidJobTransitionError(job_id, job.status, requested)

    if requested == JobStatus.COMPLETED.value:
        outputs = [u for u in update.outputImageUrls if u]
        if not outputs:
            raise InvalidJobTransitionError(job_id, job.status, requested, "no output images")
        job.output_image_refs = outputs
        job.progress = 100
        job.error_message = None
        job.completed_at = datetime.utcnow()
    elif requested == JobStatus.FAILED.value:
        job.error_message = update.errorMessage or GENERIC_FAILURE_MESSAGE
        job.completed_at = datetime.utcnow()
    elif update.progress is not None:
        job.progress = max(job.progress or 0, update.progress)

    job.status = requested
    await db.commit()
    await db.refresh(job)

    logger.info(
        f"Job {job_id} status updated to '{requested}'",
        extra={"job_id": job_id, "status": requested, "progress": job.progress},
    )
    event_bus.publish(job.job_id, job.status)
    return job


async def mark_downloaded(db: AsyncSession, job_id: str) -> Job:
    job = await get_job_or_404(db, job_id)
    job.is_downloaded = True
    await db.commit()
    await db.refresh(job)
    return job


def job_to_response(job: Job) -> JobResponse:
    """Convert Job model to the public job projection"""
    originals: List[str] = list(job.input_image_refs or [])
    processed: List[str] = list(job.output_image_refs or [])
    return JobResponse(
        id=job.job_id,
        status=job.status,
        progress=job.progress or 0,
        resultUrl=processed[0] if processed else None,
        originalImageUrls=originals,
        processedImages=processed,
        error=job.error_message,
        createdAt=job.created_at,
        updatedAt=job.updated_at,
        completedAt=job.completed_at,
        metadata=JobMetadata(
            style=job.selected_style or "Unknown",
            imageCount=len(originals),
            customerEmail=job.customer_email or "",
            paymentStatus=job.payment_status or "unknown",
        ),
    )
