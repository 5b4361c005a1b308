"""
Checkout routes
"""
import asyncio

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user_id
from ..config import settings
from ..db import get_db
from ..exceptions import InvalidCheckoutError
from ..logger import logger
from ..schemas import CheckoutRequest, CheckoutResponse, CheckoutSessionSummary
from ..services import payments, uploads

router = APIRouter(prefix="/checkout", tags=["Checkout"])

@router.post("", response_model=CheckoutResponse, status_code=201)
async def create_checkout(
    request: CheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a hosted checkout session for the caller's uploads"""
    if request.style not in settings.AVAILABLE_STYLES:
        raise InvalidCheckoutError(f"Unknown style: {request.style}")

    file_ids = list(dict.fromkeys(request.fileIds))
    await uploads.require_owner_of_all(db, file_ids, user_id)

    session = await asyncio.to_thread(
        payments.create_checkout_session,
        style=request.style,
        file_ids=file_ids,
        customer_email=request.customerEmail,
        owner_id=user_id,
    )
    logger.info(
        "Checkout started",
        extra={"session_id": session["id"], "user_id": user_id, "style": request.style},
    )
    return CheckoutResponse(url=session["url"], sessionId=session["id"])

@router.get("/session", response_model=CheckoutSessionSummary)
async def get_checkout_session(session_id: str = Query(...)):
    """Summary of a checkout session for the success page"""
    session = await asyncio.to_thread(payments.retrieve_checkout_session, session_id)
    return CheckoutSessionSummary.from_session(session)
