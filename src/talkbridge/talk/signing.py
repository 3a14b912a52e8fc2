"""HMAC-SHA256 signing used by the Nextcloud Talk bot API."""

import hashlib
import hmac
import secrets


def generate_random() -> str:
    """Random nonce for an outgoing request (64 hex characters)."""
    return secrets.token_hex(32)


def sign(secret: str, random: str, data: str | bytes) -> str:
    """
    Compute the signature ``HMAC-SHA256(secret, random + data)``.

    Args:
        secret: Shared bot secret
        random: Nonce sent alongside the signature
        data: Raw request body (inbound) or message text (outbound)

    Returns:
        Lowercase hex digest
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hmac.new(
        secret.encode("utf-8"), random.encode("utf-8") + data, hashlib.sha256
    ).hexdigest()


def verify_signature(secret: str, random: str, body: bytes, signature: str) -> bool:
    """
    Check an inbound webhook signature in constant time.

    Returns:
        True if ``signature`` matches the expected digest
    """
    if not secret or not random or not signature:
        return False
    expected = sign(secret, random, body)
    return hmac.compare_digest(expected, signature.strip().lower())
