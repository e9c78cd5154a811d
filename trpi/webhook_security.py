"""
Webhook Security Module

Signature verification for inbound webhooks:
- Constant-time signature comparison
- Timestamp validation against replays
- Verification over the raw request body
"""

import base64
import binascii
import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


class WebhookSignatureError(Exception):
    """Raised when webhook signature verification fails"""

    pass


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time to prevent timing attacks"""
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def decode_signing_key(secret: str) -> bytes:
    """Daily secrets are base64 encoded; fall back to raw bytes for anything else"""
    try:
        return base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError):
        return secret.encode("utf-8")


def compute_daily_signature(secret: str, timestamp: str, payload: bytes) -> str:
    """Base64 HMAC-SHA256 of "{timestamp}.{body}" keyed with the decoded secret"""
    message = timestamp.encode("utf-8") + b"." + payload
    digest = hmac.new(decode_signing_key(secret), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_timestamp(
    timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS, now: Optional[float] = None
) -> bool:
    """
    Verify webhook timestamp is within acceptable range.

    Args:
        timestamp: Unix timestamp as string (seconds or milliseconds)
        max_age: Maximum age in seconds

    Returns:
        True if timestamp is valid, False otherwise
    """
    if not timestamp:
        return False

    try:
        webhook_time = int(timestamp)
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False

    if webhook_time > 10**12:
        webhook_time //= 1000
    age = abs(int(now if now is not None else time.time()) - webhook_time)
    if age > max_age:
        logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
        return False
    return True


def verify_daily_signature(
    secret: str, signature: str, timestamp: str, payload: bytes, now: Optional[float] = None
) -> None:
    """Raise WebhookSignatureError unless the signature and timestamp check out"""
    if not signature or not timestamp:
        raise WebhookSignatureError("Missing webhook signature headers")
    if not verify_timestamp(timestamp, now=now):
        raise WebhookSignatureError("Webhook timestamp outside allowed window")
    expected = compute_daily_signature(secret, timestamp, payload)
    if not constant_time_compare(expected, signature.strip()):
        raise WebhookSignatureError("Signature mismatch")


async def verify_daily_webhook(request: Request, secret: str) -> bytes:
    """
    Verify a Daily.co webhook and return the raw body.

    Raises HTTPException(401) on any verification failure.
    """
    # Raw body before any parsing
    raw_body = await request.body()
    signature = request.headers.get("X-Webhook-Signature", "")
    timestamp = request.headers.get("X-Webhook-Timestamp", "")

    try:
        verify_daily_signature(secret, signature, timestamp, raw_body)
    except WebhookSignatureError as e:
        logger.error(f"❌ Daily webhook rejected: {e}")
        raise HTTPException(status_code=401, detail="Invalid webhook signature") from e

    logger.debug("✅ Daily webhook signature verified")
    return raw_body
