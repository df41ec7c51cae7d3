"""
Tests for aidwatch/utils/webhook_signatures.py - HMAC-SHA256 over the raw body.
"""
import hashlib
import hmac

from aidwatch.utils.webhook_signatures import (
    compute_payload_hash,
    compute_signature,
    extract_signature,
    verify_signature,
)

SECRET = "whsec_" + "ab" * 32
BODY = b'{"title":"Flooding in Jonglei","description":"Heavy rains..."}'


class TestComputeSignature:
    def test_matches_reference_hmac(self):
        expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
        assert compute_signature(SECRET, BODY) == expected

    def test_is_lowercase_hex(self):
        sig = compute_signature(SECRET, BODY)
        assert len(sig) == 64
        assert sig == sig.lower()


class TestVerifySignature:
    def test_valid_bare_hex(self):
        assert verify_signature(SECRET, compute_signature(SECRET, BODY), BODY) is True

    def test_valid_with_sha256_prefix(self):
        sig = "sha256=" + compute_signature(SECRET, BODY)
        assert verify_signature(SECRET, sig, BODY) is True

    def test_uppercase_hex_accepted(self):
        sig = compute_signature(SECRET, BODY).upper()
        assert verify_signature(SECRET, sig, BODY) is True

    def test_tampered_body_rejected(self):
        sig = compute_signature(SECRET, BODY)
        tampered = BODY.replace(b"Jonglei", b"Juba")
        assert verify_signature(SECRET, sig, tampered) is False

    def test_wrong_secret_rejected(self):
        sig = compute_signature("whsec_other", BODY)
        assert verify_signature(SECRET, sig, BODY) is False

    def test_empty_signature_rejected(self):
        assert verify_signature(SECRET, "", BODY) is False

    def test_empty_secret_rejected(self):
        assert verify_signature("", compute_signature(SECRET, BODY), BODY) is False

    def test_whitespace_around_signature_ignored(self):
        sig = f"  {compute_signature(SECRET, BODY)}\n"
        assert verify_signature(SECRET, sig, BODY) is True

    def test_non_ascii_signature_rejected(self):
        assert verify_signature(SECRET, "sha256=\u00e9\u00e9", BODY) is False
        assert verify_signature(SECRET, "\u00e9" * 64, BODY) is False


class TestExtractSignature:
    def test_webhook_signature_header(self):
        assert extract_signature({"X-Webhook-Signature": "abc"}) == "abc"

    def test_hub_signature_header(self):
        assert extract_signature({"X-Hub-Signature-256": "sha256=abc"}) == "sha256=abc"

    def test_prefers_webhook_signature(self):
        headers = {"x-hub-signature-256": "sha256=hub", "x-webhook-signature": "plain"}
        assert extract_signature(headers) == "plain"

    def test_missing_returns_none(self):
        assert extract_signature({"content-type": "application/json"}) is None

    def test_empty_value_treated_as_missing(self):
        assert extract_signature({"x-webhook-signature": ""}) is None


class TestPayloadHash:
    def test_sha256_hex(self):
        assert compute_payload_hash(BODY) == hashlib.sha256(BODY).hexdigest()

    def test_differs_per_body(self):
        assert compute_payload_hash(b"{}") != compute_payload_hash(b"[]")
