"""
Account routes - jobs visible to the current anonymous identity
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..schemas import JobListResponse
from ..auth import get_current_user_id
from ..services import claims, jobs

router = APIRouter(prefix="/account", tags=["Account"])

@router.get("/jobs", response_model=JobListResponse)
async def list_my_jobs(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Jobs the caller has been granted read access to"""
    readable = await claims.readable_jobs(db, user_id)
    return JobListResponse(
        jobs=[jobs.job_to_response(job) for job in readable],
        total=len(readable),
    )
