from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select

from styllio.db import AsyncSessionLocal
from styllio.logger import logger
from styllio.models import Job as JobModel
from styllio.models import JobStatus

ACTIVE_STATUSES = (JobStatus.QUEUING.value, JobStatus.PROCESSING.value)


@dataclass(frozen=True)
class StuckJob:
    job_id: str
    status: str
    customer_email: str
    execution_ref: Optional[str]
    updated_at: Optional[datetime]


async def find_stuck_jobs(*, older_than: timedelta, now: Optional[datetime] = None) -> List[StuckJob]:
    cutoff = (now or datetime.utcnow()) - older_than
    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(JobModel)
            .where(JobModel.status.in_(ACTIVE_STATUSES))
            .where(JobModel.updated_at < cutoff)
            .order_by(JobModel.updated_at)
        )
        return [
            StuckJob(
                job_id=job.job_id,
                status=job.status,
                customer_email=job.customer_email,
                execution_ref=job.processing_execution_ref,
                updated_at=job.updated_at,
            )
            for job in result.scalars().all()
        ]


async def report(*, minutes: int) -> int:
    stuck = await find_stuck_jobs(older_than=timedelta(minutes=minutes))
    for job in stuck:
        logger.warning(
            "Job has not progressed",
            extra={
                "job_id": job.job_id,
                "status": job.status,
                "customer_email": job.customer_email,
                "execution_ref": job.execution_ref,
                "updated_at": job.updated_at.isoformat() if job.updated_at else None,
            },
        )
    logger.info("Stuck job scan finished", extra={"count": len(stuck), "threshold_minutes": minutes})
    return len(stuck)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="List jobs stuck in queuing/processing. Read-only.",
    )
    parser.add_argument(
        "--minutes",
        type=int,
        default=60,
        help="Report jobs whose last update is older than this (default: 60).",
    )
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    count = asyncio.run(report(minutes=args.minutes))
    raise SystemExit(1 if count else 0)


if __name__ == "__main__":
    main()
