"""Tests for webhook payload signing."""

import hashlib
import hmac

from gateway.utils.signing import SIGNATURE_PREFIX, compute_signature, verify_signature

SECRET = "whsec-test-secret-value"
BODY = b'{"event":"offer.created","data":{"id":"o-1"},"attempt":1}'


def test_signature_is_prefixed_hex_hmac() -> None:
    """Test that the signature is `sha256=` plus the HMAC-SHA256 hex digest."""
    expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()

    signature = compute_signature(BODY, SECRET)

    assert signature == f"{SIGNATURE_PREFIX}{expected}"
    assert len(signature) == len("sha256=") + 64


def test_signature_is_deterministic() -> None:
    """Test that equal inputs give equal signatures."""
    assert compute_signature(BODY, SECRET) == compute_signature(BODY, SECRET)


def test_verify_accepts_matching_signature() -> None:
    """Test that a receiver with the secret can verify the body."""
    assert verify_signature(BODY, compute_signature(BODY, SECRET), SECRET) is True


def test_verify_rejects_tampered_body() -> None:
    """Test that a one-byte change breaks verification."""
    signature = compute_signature(BODY, SECRET)
    assert verify_signature(BODY.replace(b"o-1", b"o-2"), signature, SECRET) is False


def test_verify_rejects_wrong_secret() -> None:
    """Test that a different secret does not verify."""
    signature = compute_signature(BODY, SECRET)
    assert verify_signature(BODY, signature, "another-secret") is False


def test_verify_rejects_bare_digest() -> None:
    """Test that the prefix is part of the signature."""
    digest = compute_signature(BODY, SECRET).removeprefix(SIGNATURE_PREFIX)
    assert verify_signature(BODY, digest, SECRET) is False
