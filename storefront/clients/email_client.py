"""
HTTP client for the transactional email provider.

Sends messages through a Resend-compatible HTTP API. Sending is best-effort:
failures are logged and reported as False, never raised.
"""
import asyncio
import logging
from typing import List, Optional

import httpx

from ..config import EMAIL_API_URL, EMAIL_API_KEY, EMAIL_FROM, EMAIL_TIMEOUT, EMAIL_MAX_ATTEMPTS

logger = logging.getLogger(__name__)

RETRY_DELAY = 1.0  # seconds, doubled after each failed attempt


async def send_email(to: List[str], subject: str, html: str, reply_to: Optional[str] = None) -> bool:
    """
    Send an email through the provider API.

    Args:
        to: Recipient addresses
        subject: Email subject
        html: HTML body
        reply_to: Optional reply-to address

    Returns:
        True if the provider accepted the message, False otherwise
    """
    if not EMAIL_API_KEY:
        logger.warning("Email not configured. EMAIL_API_KEY missing; skipping '%s'", subject)
        return False

    payload = {"from": EMAIL_FROM, "to": to, "subject": subject, "html": html}
    if reply_to:
        payload["reply_to"] = reply_to
    headers = {"Authorization": f"Bearer {EMAIL_API_KEY}"}

    delay = RETRY_DELAY
    for attempt in range(1, EMAIL_MAX_ATTEMPTS + 1):
        try:
            async with httpx.AsyncClient(timeout=EMAIL_TIMEOUT) as client:
                response = await client.post(EMAIL_API_URL, json=payload, headers=headers)
            if response.status_code < 400:
                logger.info(f"Email '{subject}' sent to {', '.join(to)}")
                return True
            logger.error(
                f"Email provider rejected '{subject}' (attempt {attempt}/{EMAIL_MAX_ATTEMPTS}): "
                f"HTTP {response.status_code} {response.text}"
            )
            # Client errors will not succeed on retry
            if response.status_code < 500:
                return False
        except httpx.HTTPError as e:
            logger.error(f"Email provider error for '{subject}' (attempt {attempt}/{EMAIL_MAX_ATTEMPTS}): {e}")

        if attempt < EMAIL_MAX_ATTEMPTS:
            await asyncio.sleep(delay)
            delay *= 2

    return False
