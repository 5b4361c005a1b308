from __future__ import annotations

import hashlib
import secrets
import uuid
from datetime import datetime, timedelta
from typing import List

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import ClaimTokenError
from ..logger import logger
from ..models import ClaimToken, Job, JobPermission

READ = "read"


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


async def issue_claim_token(db: AsyncSession, job_id: str) -> str:
    """Create a single-use claim token for a job. Only the hash is stored."""
    raw_token = secrets.token_urlsafe(32)
    db.add(ClaimToken(
        id=str(uuid.uuid4()),
        job_id=job_id,
        token_hash=hash_token(raw_token),
        expires_at=datetime.utcnow() + timedelta(hours=settings.CLAIM_TOKEN_TTL_HOURS),
        used=False,
    ))
    await db.commit()
    return raw_token


async def grant_read(db: AsyncSession, job_id: str, user_id: str) -> bool:
    """Grant read access on a job. Returns False when the grant already existed."""
    res = await db.execute(
        select(JobPermission).filter(
            JobPermission.job_id == job_id,
            JobPermission.user_id == user_id,
            JobPermission.permission == READ,
        )
    )
    if res.scalar_one_or_none():
        return False
    db.add(JobPermission(job_id=job_id, user_id=user_id, permission=READ))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return False
    return True


async def redeem_claim_token(db: AsyncSession, job_id: str, raw_token: str, user_id: str) -> None:
    res = await db.execute(
        select(ClaimToken).filter(
            ClaimToken.job_id == job_id,
            ClaimToken.token_hash == hash_token(raw_token),
            ClaimToken.used == False,  # noqa: E712
        ).limit(1)
    )
    claim = res.scalar_one_or_none()
    if not claim:
        raise ClaimTokenError("Invalid or used token")
    if claim.expires_at and claim.expires_at < datetime.utcnow():
        raise ClaimTokenError("Token expired")

    # single-use guard: a concurrent redemption matches no row here
    marked = await db.execute(
        update(ClaimToken)
        .where(ClaimToken.id == claim.id, ClaimToken.used == False)  # noqa: E712
        .values(used=True, used_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if marked.rowcount != 1:
        await db.rollback()
        raise ClaimTokenError("Invalid or used token")

    existing = await db.execute(
        select(JobPermission).filter(
            JobPermission.job_id == job_id,
            JobPermission.user_id == user_id,
            JobPermission.permission == READ,
        )
    )
    if not existing.scalar_one_or_none():
        db.add(JobPermission(job_id=job_id, user_id=user_id, permission=READ))
    await db.commit()

    logger.info("Job access claimed", extra={"job_id": job_id, "user_id": user_id})


async def readable_jobs(db: AsyncSession, user_id: str) -> List[Job]:
    res = await db.execute(
        select(Job)
        .join(JobPermission, JobPermission.job_id == Job.job_id)
        .filter(JobPermission.user_id == user_id, JobPermission.permission == READ)
        .order_by(Job.created_at.desc())
    )
    return list(res.scalars().all())
