from __future__ import annotations

import hashlib
import hmac
import logging
import time

logger = logging.getLogger(__name__)

MAX_REQUEST_AGE_SECONDS = 300


def compute_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    base = b"v0:" + timestamp.encode("utf-8") + b":" + body
    digest = hmac.new(signing_secret.encode("utf-8"), base, hashlib.sha256).hexdigest()
    return f"v0={digest}"


def verify_slack_signature(
    signing_secret: str,
    timestamp: str | None,
    signature: str | None,
    body: bytes,
    now: float | None = None,
) -> bool:
    """Check a Slack request signature and reject stale timestamps."""

    if not signature or not timestamp:
        logger.warning("Missing Slack signature or timestamp")
        return False
    try:
        sent_at = int(timestamp)
    except ValueError:
        logger.warning(f"Malformed Slack timestamp: {timestamp!r}")
        return False
    current = time.time() if now is None else now
    if abs(current - sent_at) > MAX_REQUEST_AGE_SECONDS:
        logger.warning(f"Slack request timestamp too old: {timestamp}")
        return False
    expected = compute_signature(signing_secret, timestamp, body)
    if not signature.isascii() or not hmac.compare_digest(expected, signature):
        logger.warning("Invalid Slack signature")
        return False
    return True
