"""HMAC-SHA256 signing of webhook payloads."""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(body: bytes, secret: str) -> str:
    """
    Sign a payload with a webhook secret.

    Args:
        body: Exact bytes sent as the request body
        secret: Shared webhook secret

    Returns:
        Signature header value, `sha256=<hex digest>`
    """
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """
    Check a received signature in constant time.

    Args:
        body: Raw request body as received
        signature: Value of the X-Webhook-Signature header
        secret: Receiver's copy of the shared secret

    Returns:
        True if the signature matches
    """
    expected = compute_signature(body, secret)
    return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))
