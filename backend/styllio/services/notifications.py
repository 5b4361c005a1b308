from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

import httpx

from ..config import settings
from ..logger import logger


def job_status_url(job_id: str, claim_token: Optional[str] = None) -> str:
    url = f"{settings.PUBLIC_BASE_URL.rstrip('/')}/jobs/{job_id}"
    if claim_token:
        url = f"{url}?{urlencode({'claim': claim_token})}"
    return url


async def send_job_confirmation(email: str, job_id: str, claim_token: Optional[str] = None) -> bool:
    """
    Email the customer a link to the job status page.

    Best effort: delivery problems are logged and reported as False, never raised.
    """
    if not settings.EMAIL_API_KEY:
        logger.warning("Email API key not configured, skipping confirmation", extra={"job_id": job_id})
        return False

    link = job_status_url(job_id, claim_token)
    message = {
        "from": settings.EMAIL_FROM,
        "to": [email],
        "subject": "Your Styllio images are on their way",
        "html": (
            "<p>Thanks for your order! We're stylizing your photos now.</p>"
            f'<p>Follow the progress and download the results here: <a href="{link}">{link}</a></p>'
        ),
    }
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                settings.EMAIL_API_URL,
                json=message,
                headers={"Authorization": f"Bearer {settings.EMAIL_API_KEY}"},
            )
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Failed to send confirmation email: {e}", extra={"job_id": job_id})
        return False

    logger.info("Confirmation email sent", extra={"job_id": job_id})
    return True
