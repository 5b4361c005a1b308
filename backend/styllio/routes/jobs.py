"""
Job routes - lookup, change notifications, access claims
"""
import asyncio
import json
from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import AsyncSessionLocal, get_db
from ..logger import logger
from ..models import TERMINAL_STATUSES
from ..schemas import ClaimRequest, JobResponse, OkResponse
from ..services import claims, jobs
from ..services.events import event_bus

router = APIRouter(prefix="/jobs", tags=["Jobs"])

KEEPALIVE_SECONDS = 15.0

def _sse(data: dict) -> str:
    return f"data: {json.dumps(data)}\n\n"

@router.get("", response_model=JobResponse)
async def find_job_by_session(
    sessionId: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    """Find the job created for a checkout session"""
    job = await jobs.find_by_session(db, sessionId)
    if not job:
        # expected while the webhook has not been processed yet
        raise HTTPException(status_code=404, detail="No job found with the provided session ID")
    return jobs.job_to_response(job)

@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, db: AsyncSession = Depends(get_db)):
    """Get current state of a job"""
    job = await jobs.get_job_or_404(db, job_id)
    return jobs.job_to_response(job)

async def job_event_stream(
    job_id: str,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """
    Snapshot of the job followed by its change notifications, as SSE frames.

    The snapshot is read after subscribing so a change in between is never lost.
    """
    async with event_bus.subscribe(job_id) as queue:
        async with AsyncSessionLocal() as session:
            job = await jobs.get_job_or_404(session, job_id)
        yield _sse({"jobId": job_id, "status": job.status})
        if job.status in TERMINAL_STATUSES:
            return
        while True:
            if is_disconnected is not None and await is_disconnected():
                logger.info("Job event subscriber disconnected", extra={"job_id": job_id})
                return
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            yield _sse(event)
            if event["status"] in TERMINAL_STATUSES:
                return

@router.get("/{job_id}/events")
async def job_events(job_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    """
    Server-sent change notifications for one job.

    Each event only says the job changed; clients re-fetch GET /jobs/{job_id}.
    The stream ends after a terminal status.
    """
    await jobs.get_job_or_404(db, job_id)
    return StreamingResponse(
        job_event_stream(job_id, request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )

@router.post("/{job_id}/claim", response_model=OkResponse)
async def claim_job(job_id: str, request: ClaimRequest, db: AsyncSession = Depends(get_db)):
    """Redeem a single-use claim token for read access to a job"""
    await jobs.get_job_or_404(db, job_id)
    await claims.redeem_claim_token(db, job_id, request.claimToken, request.userId)
    return OkResponse()

@router.post("/{job_id}/downloaded", response_model=OkResponse)
async def mark_downloaded(job_id: str, db: AsyncSession = Depends(get_db)):
    await jobs.mark_downloaded(db, job_id)
    return OkResponse()
