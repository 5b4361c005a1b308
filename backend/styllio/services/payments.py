"""
Stripe gateway: hosted checkout sessions, webhook verification and payment re-verification.
"""
from __future__ import annotations

import json
from typing import Any, List, Optional

import stripe

from ..config import settings
from ..exceptions import (
    PaymentVerificationError,
    StyllioBaseException,
    WebhookSignatureError,
)
from ..logger import logger
from .pricing import total_price

stripe.api_key = settings.STRIPE_SECRET_KEY

PAYMENT_SUCCEEDED = "succeeded"


def construct_event(payload: bytes, signature: Optional[str]) -> Any:
    """Verify the signature of a raw webhook body and parse it. Nothing is parsed before verification."""
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise StyllioBaseException("Webhook secret not configured", "WEBHOOK_NOT_CONFIGURED", 500)
    if not signature:
        raise WebhookSignatureError("No Stripe signature")
    try:
        return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
    except stripe.SignatureVerificationError as e:
        logger.warning("Stripe webhook signature verification failed", extra={"error": str(e)})
        raise WebhookSignatureError()
    except ValueError as e:
        logger.warning("Stripe webhook payload could not be parsed", extra={"error": str(e)})
        raise WebhookSignatureError("Invalid webhook payload")


def get_payment_intent_status(payment_intent_id: str) -> str:
    """Authoritative status of a payment intent, fetched from Stripe."""
    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.StripeError as e:
        logger.error(
            f"Failed to retrieve payment intent: {e}",
            extra={"payment_intent_id": payment_intent_id, "error_type": type(e).__name__},
        )
        raise PaymentVerificationError()
    return intent["status"]


def create_checkout_session(
    *,
    style: str,
    file_ids: List[str],
    customer_email: Optional[str],
    owner_id: Optional[str] = None,
) -> Any:
    amount = total_price(len(file_ids))
    product_name = f"Styllio {style} x{len(file_ids)}"
    base_url = settings.PUBLIC_BASE_URL.rstrip("/")
    metadata = {
        "productName": product_name,
        "selectedStyle": style,
        "fileIds": json.dumps(file_ids),
    }
    if owner_id:
        metadata["ownerId"] = owner_id
    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": settings.CURRENCY,
                    "unit_amount": amount,
                    "product_data": {
                        "name": product_name,
                        "description": f"{len(file_ids)} image(s) in {style} style",
                    },
                },
                "quantity": 1,
            }],
            success_url=f"{base_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/failure",
            customer_email=customer_email,
            metadata=metadata,
        )
    except stripe.StripeError as e:
        logger.error(f"Failed to create checkout session: {e}", extra={"error_type": type(e).__name__})
        raise StyllioBaseException("Failed to create checkout session", "PAYMENT_GATEWAY_ERROR", 502)

    logger.info(
        "Checkout session created",
        extra={"session_id": session["id"], "amount": amount, "image_count": len(file_ids)},
    )
    return session


def retrieve_checkout_session(session_id: str) -> Any:
    try:
        return stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as e:
        logger.error(f"Failed to fetch checkout session: {e}", extra={"session_id": session_id})
        raise PaymentVerificationError("Failed to fetch session details")
