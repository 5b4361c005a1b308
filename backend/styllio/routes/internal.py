"""
Internal routes used by the style transfer worker
"""
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..db import get_db
from ..exceptions import AuthenticationError
from ..schemas import JobResponse, WorkerStatusUpdate
from ..services import jobs

router = APIRouter(prefix="/internal", tags=["Internal"])

async def require_worker(x_worker_key: Optional[str] = Header(None)) -> None:
    if not settings.WORKER_API_KEY or not x_worker_key:
        raise AuthenticationError("Worker key required")
    if not secrets.compare_digest(x_worker_key, settings.WORKER_API_KEY):
        raise AuthenticationError("Invalid worker key")

@router.post("/jobs/{job_id}/status", response_model=JobResponse, dependencies=[Depends(require_worker)])
async def report_job_status(
    job_id: str,
    update: WorkerStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    The only write path for the worker: progress, completion with output URLs, or failure.
    """
    job = await jobs.apply_worker_update(db, job_id, update)
    return jobs.job_to_response(job)
