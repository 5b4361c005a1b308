import enum
from datetime import datetime
from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint, JSON
Base = declarative_base()


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    QUEUING = "queuing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED.value, JobStatus.FAILED.value})

# position along pending -> queuing -> processing -> {completed|failed}
STATUS_RANK = {
    JobStatus.PENDING.value: 0,
    JobStatus.QUEUING.value: 1,
    JobStatus.PROCESSING.value: 2,
    JobStatus.COMPLETED.value: 3,
    JobStatus.FAILED.value: 3,
}


class Job(Base):
    __tablename__ = "jobs"
    job_id = Column(String, primary_key=True, index=True)
    payment_session_id = Column(String, nullable=False, unique=True, index=True)
    payment_intent_id = Column(String, nullable=True)
    payment_status = Column(String, nullable=True)
    amount_total = Column(Integer, nullable=True)
    currency = Column(String, nullable=True)
    customer_email = Column(String, nullable=False)
    customer_name = Column(String, nullable=True)
    status = Column(String, nullable=False, default=JobStatus.QUEUING.value)
    progress = Column(Integer, nullable=False, default=0)
    selected_style = Column(String, nullable=False)
    input_image_refs = Column(JSON, nullable=False, default=list)
    output_image_refs = Column(JSON, nullable=False, default=list)
    processing_execution_ref = Column(String, nullable=True)
    error_message = Column(String, nullable=True)
    is_downloaded = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)


class UploadOwnership(Base):
    __tablename__ = "upload_ownerships"
    file_id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    filename = Column(String, nullable=True)
    content_type = Column(String, nullable=True)
    size = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ClaimToken(Base):
    __tablename__ = "claim_tokens"
    id = Column(String, primary_key=True)
    job_id = Column(String, ForeignKey("jobs.job_id"), nullable=False, index=True)
    token_hash = Column(String, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class JobPermission(Base):
    __tablename__ = "job_permissions"
    __table_args__ = (UniqueConstraint("job_id", "user_id", "permission", name="uq_job_permission"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String, ForeignKey("jobs.job_id"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    permission = Column(String, nullable=False, default="read")
    created_at = Column(DateTime, default=datetime.utcnow)
