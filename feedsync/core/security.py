"""
Security utilities - never log or return secrets.
"""

import base64
import hashlib
import hmac
from typing import Any, Dict

REDACTED = "***REDACTED***"

SENSITIVE_KEYS = {
    "consumer_key",
    "consumer_secret",
    "access_token",
    "authorization",
    "password",
    "secret",
    "token",
}


def sanitize_dict_for_logging(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Copy of `data` with credential fields redacted, recursively.

    Keys are matched case-insensitively, so both `Authorization` headers and
    `access_token` payload fields are caught.
    """
    result = {}
    for key, value in data.items():
        if str(key).lower() in SENSITIVE_KEYS:
            result[key] = REDACTED
        elif isinstance(value, dict):
            result[key] = sanitize_dict_for_logging(value)
        elif isinstance(value, list):
            result[key] = [
                sanitize_dict_for_logging(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value
    return result


def verify_woo_webhook_signature(body: bytes, signature: str, secret: str) -> bool:
    """
    Verify a WooCommerce webhook delivery.
    
    WooCommerce signs the raw request body with HMAC-SHA256 using the
    webhook secret and sends it base64 encoded in X-WC-Webhook-Signature.
    
    Args:
        body: Raw request body.
        signature: Header value.
        secret: Configured webhook secret.
    
    Returns:
        True if the signature matches.
    """
    if not signature or not secret:
        return False
    
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")
    return hmac.compare_digest(expected, signature)
