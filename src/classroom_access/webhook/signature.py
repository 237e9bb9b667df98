"""HMAC-SHA256 webhook signature verification.

GitHub signs every delivery with the shared webhook secret and sends the
hex digest in the ``X-Hub-Signature-256`` header as ``sha256=<hex>``.
The digest covers the exact raw request body, so verification must run
on the bytes received, never on re-serialized JSON.
"""

import hashlib
import hmac
from typing import Optional, Union

import structlog

logger = structlog.get_logger(__name__)

SIGNATURE_PREFIX = "sha256="


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def generate_signature(payload: Union[str, bytes], secret: Union[str, bytes]) -> str:
    """Compute the ``sha256=<hex>`` signature header for a payload."""
    digest = hmac.new(_to_bytes(secret), _to_bytes(payload), hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(
    payload: Union[str, bytes],
    signature: Optional[str],
    secret: Union[str, bytes],
) -> bool:
    """Check a delivery signature in constant time.

    A missing header, malformed hex or a digest of the wrong length is a
    verification failure, never an exception.

    Args:
        payload: The raw request body.
        signature: Value of the ``X-Hub-Signature-256`` header.
        secret: The shared webhook secret.

    Returns:
        True if the signature matches the payload.
    """
    if not signature:
        logger.warning("No signature provided in webhook request")
        return False

    received_hex = signature[len(SIGNATURE_PREFIX):] if signature.startswith(SIGNATURE_PREFIX) else signature
    try:
        received = bytes.fromhex(received_hex)
    except ValueError:
        logger.warning("Malformed webhook signature")
        return False

    expected = hmac.new(_to_bytes(secret), _to_bytes(payload), hashlib.sha256).digest()
    if len(received) != len(expected):
        logger.warning("Signature length mismatch")
        return False

    if not hmac.compare_digest(received, expected):
        logger.warning("Invalid webhook signature")
        return False

    return True
