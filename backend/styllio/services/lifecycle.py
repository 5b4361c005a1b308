"""
Turns a verified "checkout completed" notification into exactly one job.

Stripe delivers webhooks at least once, so the same session can arrive several
times, possibly concurrently. A job is looked up by payment session first; the
unique index on payment_session_id catches the concurrent case the lookup
cannot see.
"""
from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import JobCreationError, WebhookPayloadError
from ..logger import logger
from ..models import TERMINAL_STATUSES
from ..schemas import CheckoutCompletion
from . import claims, jobs, notifications, payments, storage
from .trigger import ProcessingTrigger, processing_trigger

NO_IMAGES_MESSAGE = "No images were provided for this order."


class LifecycleOutcome(str, enum.Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    BOOKKEEPING_UPDATED = "bookkeeping_updated"
    UNPAID = "unpaid"
    REJECTED = "rejected"


@dataclass(frozen=True)
class LifecycleResult:
    outcome: LifecycleOutcome
    job_id: Optional[str] = None


class JobLifecycleController:
    def __init__(
        self,
        trigger: ProcessingTrigger = processing_trigger,
        fetch_payment_status: Callable[[str], str] = payments.get_payment_intent_status,
        notify: Callable[..., Awaitable[bool]] = notifications.send_job_confirmation,
        url_for: Callable[[str], str] = storage.file_url,
    ):
        self.trigger = trigger
        self.fetch_payment_status = fetch_payment_status
        self.notify = notify
        self.url_for = url_for

    async def handle_payment_completed(self, db: AsyncSession, session: Any) -> LifecycleResult:
        try:
            completion = CheckoutCompletion.from_session(session)
        except ValidationError as e:
            raise WebhookPayloadError(f"Checkout session is missing required fields: {e.error_count()} error(s)")

        log_extra = {"session_id": completion.session_id}

        existing = await jobs.find_by_session(db, completion.session_id)
        if existing:
            if existing.status not in TERMINAL_STATUSES:
                logger.info(
                    f"Job {existing.job_id} already exists for session, skipping",
                    extra={**log_extra, "job_id": existing.job_id, "status": existing.status},
                )
                return LifecycleResult(LifecycleOutcome.DUPLICATE, existing.job_id)
            await jobs.update_payment_bookkeeping(
                db,
                existing,
                payment_intent_id=completion.payment_intent_id,
                payment_status=completion.payment_status,
                amount_total=completion.amount_total,
                currency=completion.currency,
            )
            logger.info(
                f"Updated payment details of finished job {existing.job_id}",
                extra={**log_extra, "job_id": existing.job_id},
            )
            return LifecycleResult(LifecycleOutcome.BOOKKEEPING_UPDATED, existing.job_id)

        if not completion.payment_intent_id:
            logger.warning("Checkout session has no payment intent, nothing to verify", extra=log_extra)
            return LifecycleResult(LifecycleOutcome.UNPAID)

        intent_status = await asyncio.to_thread(self.fetch_payment_status, completion.payment_intent_id)
        if intent_status != payments.PAYMENT_SUCCEEDED:
            logger.warning(
                f"Payment intent not succeeded ({intent_status}), no job created",
                extra={**log_extra, "payment_intent_id": completion.payment_intent_id},
            )
            return LifecycleResult(LifecycleOutcome.UNPAID)

        if not completion.customer_email:
            raise WebhookPayloadError("No email found in Stripe session")

        image_urls = [self.url_for(file_id) for file_id in completion.file_ids]

        try:
            job = await jobs.create_job(
                db,
                job_id=jobs.generate_job_id(completion.customer_email),
                payment_session_id=completion.session_id,
                payment_intent_id=completion.payment_intent_id,
                payment_status=completion.payment_status or intent_status,
                amount_total=completion.amount_total,
                currency=completion.currency,
                customer_email=completion.customer_email,
                customer_name=completion.customer_name,
                selected_style=completion.selected_style,
                input_image_refs=image_urls,
            )
        except jobs.DuplicateSessionError as e:
            concurrent = await jobs.find_by_session(db, completion.session_id)
            if concurrent is None:
                # the conflict was not on the session, e.g. a job id collision
                raise JobCreationError(f"Job insert conflicted for session {completion.session_id}") from e
            logger.info(
                "Concurrent delivery created the job first, skipping",
                extra={**log_extra, "job_id": concurrent.job_id},
            )
            return LifecycleResult(LifecycleOutcome.DUPLICATE, concurrent.job_id)

        job_id = job.job_id
        if completion.owner_id:
            await claims.grant_read(db, job_id, completion.owner_id)

        if not image_urls:
            await jobs.mark_failed(db, job, NO_IMAGES_MESSAGE)
            return LifecycleResult(LifecycleOutcome.REJECTED, job_id)

        try:
            execution_ref = await asyncio.to_thread(
                self.trigger.trigger, job_id, image_urls, completion.selected_style
            )
        except Exception:
            await jobs.mark_failed(db, job)
            raise
        await jobs.attach_execution(db, job, execution_ref)

        await self._confirm(db, job_id, completion.customer_email)
        return LifecycleResult(LifecycleOutcome.CREATED, job_id)

    async def _confirm(self, db: AsyncSession, job_id: str, email: str) -> None:
        try:
            claim_token = await claims.issue_claim_token(db, job_id)
            await self.notify(email, job_id, claim_token)
        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to send job confirmation: {e}", extra={"job_id": job_id})


lifecycle_controller = JobLifecycleController()
