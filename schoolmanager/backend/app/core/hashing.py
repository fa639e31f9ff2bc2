import hashlib
import hmac
from typing import Optional


def compute_webhook_signature(secret: str, raw_body: bytes) -> str:
    """
    Compute the gateway signature for a webhook body.

    The signature must be computed over the exact bytes received, before any
    JSON parsing, otherwise re-serialisation differences break verification.

    Args:
        secret: Shared webhook secret
        raw_body: Unparsed request body

    Returns:
        HMAC-SHA512 hexdigest
    """
    return hmac.new(secret.encode(), raw_body, hashlib.sha512).hexdigest()


def verify_webhook_signature(secret: Optional[str], raw_body: bytes, signature: Optional[str]) -> bool:
    """Constant-time check of a webhook signature header"""
    if not secret or not signature:
        return False
    expected = compute_webhook_signature(secret, raw_body)
    return hmac.compare_digest(expected, signature.strip().lower())
