"""
Pydantic schemas for request/response validation
"""
import json
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List, Any
from datetime import datetime

# ===== Common Schemas =====

class HealthResponse(BaseModel):
    status: str
    service: str

class OkResponse(BaseModel):
    ok: bool = True

# ===== Anonymous Session Schemas =====

class AnonymousSessionResponse(BaseModel):
    token: str
    userId: str

# ===== File Schemas =====

class UploadResponse(BaseModel):
    fileId: str
    fileUrl: str
    name: Optional[str] = None
    size: int
    type: str

class DeleteFileResponse(BaseModel):
    success: bool
    message: str

# ===== Checkout Schemas =====

class CheckoutRequest(BaseModel):
    style: str
    fileIds: List[str] = Field(min_length=1)
    customerEmail: Optional[EmailStr] = None

class CheckoutResponse(BaseModel):
    url: str
    sessionId: str

class CheckoutSessionSummary(BaseModel):
    id: str
    paymentStatus: Optional[str] = None
    customerEmail: Optional[str] = None
    amountTotal: Optional[int] = None
    currency: Optional[str] = None
    metadata: dict = {}

    @classmethod
    def from_session(cls, session: Any) -> "CheckoutSessionSummary":
        metadata = _get(session, "metadata") or {}
        return cls(
            id=_get(session, "id"),
            paymentStatus=_get(session, "payment_status"),
            customerEmail=_get(_get(session, "customer_details"), "email"),
            amountTotal=_get(session, "amount_total"),
            currency=_get(session, "currency"),
            metadata=dict(metadata),
        )

class CheckoutCompletion(BaseModel):
    """
    Typed view of a completed checkout session.

    Stripe metadata is loosely typed: `fileIds` arrives either as a JSON-encoded
    string or as a native list depending on who created the session. It is
    normalized here so nothing downstream branches on the wire shape.
    """

    session_id: str
    payment_intent_id: Optional[str] = None
    payment_status: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    selected_style: str = ""
    file_ids: List[str] = []
    owner_id: Optional[str] = None

    @field_validator("file_ids", mode="before")
    @classmethod
    def _parse_file_ids(cls, value: Any) -> List[str]:
        return parse_file_ids(value)

    @classmethod
    def from_session(cls, session: Any) -> "CheckoutCompletion":
        metadata = _get(session, "metadata") or {}
        details = _get(session, "customer_details") or {}
        return cls(
            session_id=_get(session, "id"),
            payment_intent_id=_id_of(_get(session, "payment_intent")),
            payment_status=_get(session, "payment_status"),
            customer_email=_get(details, "email") or _get(session, "customer_email"),
            customer_name=_get(details, "name"),
            amount_total=_get(session, "amount_total"),
            currency=_get(session, "currency"),
            selected_style=_get(metadata, "selectedStyle") or "",
            file_ids=_get(metadata, "fileIds"),
            owner_id=_get(metadata, "ownerId") or None,
        )


def _get(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    try:
        return obj.get(key)
    except AttributeError:
        return getattr(obj, key, None)


def _id_of(value: Any) -> Optional[str]:
    # expanded objects carry their id
    if value is None or isinstance(value, str):
        return value
    return _get(value, "id")


def parse_file_ids(value: Any) -> List[str]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v) for v in value if isinstance(v, str) and v]

# ===== Job Schemas =====

class JobMetadata(BaseModel):
    style: str
    imageCount: int
    customerEmail: str
    paymentStatus: str

class JobResponse(BaseModel):
    id: str
    status: str
    progress: int
    resultUrl: Optional[str] = None
    originalImageUrls: List[str]
    processedImages: List[str]
    error: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    completedAt: Optional[datetime] = None
    metadata: JobMetadata

class JobListResponse(BaseModel):
    jobs: List[JobResponse]
    total: int

class ClaimRequest(BaseModel):
    claimToken: str = Field(min_length=1)
    userId: str = Field(min_length=1)

class WorkerStatusUpdate(BaseModel):
    status: str = Field(pattern="^(processing|completed|failed)$")
    outputImageUrls: List[str] = []
    errorMessage: Optional[str] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
