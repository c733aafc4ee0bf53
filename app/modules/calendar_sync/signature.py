"""Calendar webhook signature verification."""

from __future__ import annotations

import hashlib
import hmac
import logging

from app.shared.exceptions import UnauthenticatedException

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Calendly-Webhook-Signature"


def compute_signature(signing_key: str, message: bytes) -> str:
    """Hex HMAC-SHA256 of ``message``."""
    return hmac.new(signing_key.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _parse_header(header: str) -> dict[str, str]:
    parts: dict[str, str] = {}
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def verify_signature(raw_body: bytes, header: str | None, signing_key: str) -> None:
    """Accept ``sha256=<hex>`` over the body or ``t=<ts>,v1=<hex>`` over ``<ts>.<body>``."""
    if not header:
        logger.warning("Calendar webhook missing signature header")
        raise UnauthenticatedException("Missing webhook signature")

    parts = _parse_header(header)
    if "sha256" in parts:
        expected = compute_signature(signing_key, raw_body)
        provided = parts["sha256"]
    elif "t" in parts and "v1" in parts:
        expected = compute_signature(signing_key, parts["t"].encode("utf-8") + b"." + raw_body)
        provided = parts["v1"]
    else:
        logger.warning("Calendar webhook signature header is malformed")
        raise UnauthenticatedException("Invalid webhook signature")

    if not hmac.compare_digest(expected, provided):
        logger.warning("Calendar webhook signature mismatch")
        raise UnauthenticatedException("Invalid webhook signature")
