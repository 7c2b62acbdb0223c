"""API key generation, parsing and hashing utilities."""

import hashlib
import secrets
import uuid

import bcrypt

from gateway.config import settings

KEY_PREFIX = "sk"


def generate_key_id() -> str:
    """Generate a new key identifier (32 hex chars, no separators)."""
    return uuid.uuid4().hex


def generate_api_key(key_id: str) -> str:
    """
    Generate a high-entropy API key token for a key id.

    The token has the form `sk_<key_id>_<secret>` so that validation can
    find the stored record without scanning every hash.

    Args:
        key_id: Identifier the token is bound to

    Returns:
        Plaintext API key token
    """
    # 24 random bytes keep the whole token under bcrypt's 72-byte input limit
    return f"{KEY_PREFIX}_{key_id}_{secrets.token_urlsafe(24)}"


def parse_api_key(api_key: str) -> str | None:
    """
    Extract the key id from a presented token.

    Args:
        api_key: Presented token

    Returns:
        The embedded key id, or None if the token is malformed
    """
    parts = api_key.split("_", 2)
    if len(parts) != 3 or parts[0] != KEY_PREFIX:
        return None
    key_id, secret = parts[1], parts[2]
    if len(key_id) != 32 or not secret:
        return None
    try:
        int(key_id, 16)
    except ValueError:
        return None
    return key_id


def fingerprint_api_key(api_key: str) -> str:
    """
    Fast, non-reversible fingerprint used as the validation cache key.

    Args:
        api_key: Presented token

    Returns:
        SHA256 hex digest of the token
    """
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def hash_api_key(api_key: str, rounds: int | None = None) -> str:
    """
    Hash an API key using bcrypt.

    Args:
        api_key: Plain text API key to hash
        rounds: bcrypt cost factor (defaults to settings.bcrypt_rounds)

    Returns:
        Bcrypt hash of the API key
    """
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    hashed = bcrypt.hashpw(api_key.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_api_key(api_key: str, key_hash: str) -> bool:
    """
    Verify an API key against its hash.

    Args:
        api_key: Plain text API key to verify
        key_hash: Bcrypt hash to verify against

    Returns:
        True if the API key matches the hash, False otherwise
    """
    try:
        return bcrypt.checkpw(api_key.encode("utf-8"), key_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash or over-long presented key
        return False
