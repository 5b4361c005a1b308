"""
Payment gateway webhooks
"""
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from ..db import get_db
from ..logger import logger
from ..services import payments
from ..services.lifecycle import lifecycle_controller

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

CHECKOUT_COMPLETED = "checkout.session.completed"

@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Receive Stripe events.

    Answers 200 only once the event is fully handled; any failure surfaces as a
    non-2xx status so Stripe redelivers the event.
    """
    payload = await request.body()
    event = payments.construct_event(payload, stripe_signature)

    event_type = event["type"]
    logger.info("Stripe webhook received", extra={"event_type": event_type, "event_id": event["id"]})

    if event_type == CHECKOUT_COMPLETED:
        result = await lifecycle_controller.handle_payment_completed(db, event["data"]["object"])
        logger.info(
            "Checkout completion handled",
            extra={"event_id": event["id"], "outcome": result.outcome.value, "job_id": result.job_id},
        )
    else:
        logger.info(f"Unhandled event type: {event_type}")

    return {"received": True}
