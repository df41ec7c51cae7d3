"""
Webhook signature verification - HMAC-SHA256 over the exact received bytes.

Senders put the lowercase hex digest in X-Webhook-Signature, or in
X-Hub-Signature-256 with a "sha256=" prefix.
"""
import hashlib
import hmac
import logging
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-webhook-signature", "x-hub-signature-256")


def compute_signature(secret: str, body: bytes) -> str:
    """Lowercase hex HMAC-SHA256 of body keyed by secret."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(
    secret: str,
    signature: str,
    body: bytes,
    header_prefix: str = "sha256=",
) -> bool:
    """
    Validate an HMAC-SHA256 webhook signature against the raw body.
    Accepts the signature with or without the "sha256=" prefix.
    Comparison is constant-time and over bytes, so a header carrying
    non-ASCII characters simply fails to match.
    """
    if not secret or not signature:
        return False

    sig = signature.strip()
    if sig.startswith(header_prefix):
        sig = sig[len(header_prefix):]

    expected = compute_signature(secret, body)
    return hmac.compare_digest(expected.encode("ascii"), sig.lower().encode("utf-8"))


def extract_signature(headers: Mapping[str, str]) -> Optional[str]:
    """Return the first signature header present (case-insensitive), else None."""
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in SIGNATURE_HEADERS:
        value = lowered.get(name)
        if value:
            return value
    return None


def compute_payload_hash(body: bytes) -> str:
    """Compute SHA-256 hash of raw payload for audit and fingerprint fallback."""
    return hashlib.sha256(body).hexdigest()
