"""
Webhook Security Module

HubSpot v3 request signature verification:
- Constant-time signature comparison
- Timestamp validation against replayed deliveries
"""

import base64
import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300

SIGNATURE_HEADER = "x-hubspot-signature-v3"
TIMESTAMP_HEADERS = ("x-hubspot-request-timestamp", "x-request-timestamp")


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256_base64(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload and return base64 encoded"""
    signature = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    return base64.b64encode(signature).decode("utf-8")


def verify_timestamp(timestamp_ms: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS) -> bool:
    """
    Verify a HubSpot timestamp (epoch milliseconds) is within max_age seconds of now.
    """
    if not timestamp_ms:
        logger.warning("🚫 Missing webhook timestamp")
        return False

    try:
        age = abs(time.time() * 1000 - int(timestamp_ms)) / 1000
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp_ms}")
        return False

    if age > max_age:
        logger.warning(f"🚫 Webhook timestamp too old: {int(age)}s (max: {max_age}s)")
        return False
    return True


def hubspot_signature_v3(secret: str, method: str, uri: str, body: bytes, timestamp: str) -> str:
    """Base64 HMAC-SHA256 of method + uri + body + timestamp"""
    source = method.encode("utf-8") + uri.encode("utf-8") + body + timestamp.encode("utf-8")
    return compute_hmac_sha256_base64(secret, source)


def signed_request_uri(request: Request) -> str:
    """
    The URI HubSpot signed: always https with the public Host header.

    TLS ends at the proxy, so ``request.url`` can carry an http scheme or an
    internal host that HubSpot never saw.
    """
    host = request.headers.get("host") or request.url.netloc
    uri = f"https://{host}{request.url.path}"
    if request.url.query:
        uri = f"{uri}?{request.url.query}"
    return uri


async def verify_hubspot_webhook(request: Request, secret: Optional[str]) -> bytes:
    """
    Verify a HubSpot v3 signed request; returns the raw body.

    Raises:
        HTTPException(401): on a missing secret, stale timestamp or bad signature
    """
    raw_body = await request.body()

    if not secret:
        logger.error("❌ HUBSPOT_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=401, detail="Unauthorized")

    signature = request.headers.get(SIGNATURE_HEADER, "")
    timestamp = next((request.headers.get(h) for h in TIMESTAMP_HEADERS if request.headers.get(h)), None)

    if not signature:
        logger.error("❌ Missing HubSpot signature header")
        raise HTTPException(status_code=401, detail="Unauthorized")

    if not verify_timestamp(timestamp):
        raise HTTPException(status_code=401, detail="Unauthorized")

    expected = hubspot_signature_v3(
        secret, request.method, signed_request_uri(request), raw_body, timestamp
    )
    # Some HubSpot app configurations prefix the digest with its version
    received = signature.removeprefix("v3=")

    if not constant_time_compare(expected, received):
        logger.warning("⚠️ Invalid HubSpot webhook signature")
        raise HTTPException(status_code=401, detail="Unauthorized")

    logger.info("✅ HubSpot webhook signature verified")
    return raw_body
