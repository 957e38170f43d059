"""Tests for webhook HMAC signature verification."""

import hashlib
import hmac
import json
from unittest.mock import patch

import pytest

from dairyops.common import signature as signature_module
from dairyops.common.signature import (
    WebhookVerifier,
    compute_signature,
    parse_signature,
    sign_header,
    verify_signature,
)

SECRET = "test-secret"
BODY = json.dumps({"txn_ref": "abc-1", "amount": 1000}).encode("utf-8")


def _hex(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class TestComputeSignature:
    """Digest computation."""

    def test_matches_reference_hmac(self):
        assert compute_signature(SECRET, BODY) == _hex(SECRET, BODY)

    def test_lowercase_hex_of_32_bytes(self):
        digest = compute_signature(SECRET, BODY)
        assert len(digest) == 64
        assert digest == digest.lower()

    def test_sign_header_formats(self):
        expected = _hex(SECRET, BODY)
        assert sign_header(SECRET, BODY) == f"sha256={expected}"
        assert sign_header(SECRET, BODY, prefixed=False) == expected


class TestParseSignature:
    """Accepted and rejected wire shapes."""

    def test_bare_hex(self):
        assert parse_signature("ab" * 32) == bytes([0xAB]) * 32

    def test_prefixed_hex(self):
        assert parse_signature("sha256=" + "0f" * 32) == bytes([0x0F]) * 32

    def test_uppercase_hex(self):
        assert parse_signature("AB" * 32) == bytes([0xAB]) * 32

    @pytest.mark.parametrize(
        "value",
        [
            None,
            "",
            "bad",
            "ab" * 31,
            "ab" * 33,
            "zz" * 32,
            "sha1=" + "ab" * 32,
            "sha256=",
            "sha256=sha256=" + "ab" * 32,
            " " + "ab" * 32,
        ],
    )
    def test_rejected_shapes(self, value):
        assert parse_signature(value) is None


class TestVerifySignature:
    """Verification properties."""

    def test_bare_hex_accepted(self):
        assert verify_signature(BODY, _hex(SECRET, BODY), SECRET) is True

    def test_prefixed_hex_accepted(self):
        assert verify_signature(BODY, "sha256=" + _hex(SECRET, BODY), SECRET) is True

    def test_uppercase_hex_accepted(self):
        assert verify_signature(BODY, _hex(SECRET, BODY).upper(), SECRET) is True

    def test_absent_signature_rejected(self):
        assert verify_signature(BODY, None, SECRET) is False
        assert verify_signature(BODY, "", SECRET) is False

    def test_empty_secret_fails_closed(self):
        # Even a digest computed with the empty key must not verify
        assert verify_signature(BODY, _hex("", BODY), "") is False

    def test_wrong_secret_rejected(self):
        assert verify_signature(BODY, _hex("other-secret", BODY), SECRET) is False

    def test_malformed_signature_rejected(self):
        assert verify_signature(BODY, "bad", SECRET) is False

    def test_single_bit_flip_in_body_invalidates(self):
        sig = _hex(SECRET, BODY)
        for index in (0, len(BODY) // 2, len(BODY) - 1):
            flipped = bytearray(BODY)
            flipped[index] ^= 0x01
            assert verify_signature(bytes(flipped), sig, SECRET) is False
        assert verify_signature(BODY, sig, SECRET) is True

    def test_empty_body_signs(self):
        assert verify_signature(b"", _hex(SECRET, b""), SECRET) is True

    def test_reserialized_body_does_not_verify(self):
        """Whitespace differences change the digest."""
        raw = b'{"txn_ref": "abc-1",   "amount": 1000}'
        sig = _hex(SECRET, raw)
        reserialized = json.dumps(json.loads(raw), separators=(",", ":")).encode()
        assert verify_signature(raw, sig, SECRET) is True
        assert verify_signature(reserialized, sig, SECRET) is False


class TestConstantTimeComparison:
    """Equal-length digests go through hmac.compare_digest."""

    def test_uses_compare_digest_on_decoded_bytes(self):
        with patch.object(
            signature_module.hmac, "compare_digest", wraps=hmac.compare_digest
        ) as compare:
            assert verify_signature(BODY, _hex(SECRET, BODY), SECRET) is True

        compare.assert_called_once()
        claimed, expected = compare.call_args.args
        assert isinstance(claimed, bytes) and isinstance(expected, bytes)
        assert len(claimed) == len(expected) == 32

    def test_mismatched_digest_still_compared_in_constant_time(self):
        with patch.object(
            signature_module.hmac, "compare_digest", wraps=hmac.compare_digest
        ) as compare:
            assert verify_signature(BODY, "00" * 32, SECRET) is False

        compare.assert_called_once()

    def test_malformed_signature_skips_comparison(self):
        with patch.object(signature_module.hmac, "compare_digest") as compare:
            assert verify_signature(BODY, "bad", SECRET) is False
        compare.assert_not_called()


class TestWebhookVerifier:
    """Verifier bound to a configured secret."""

    def test_configured(self):
        assert WebhookVerifier(SECRET).configured is True
        assert WebhookVerifier("").configured is False
        assert WebhookVerifier(None).configured is False

    def test_verify_delegates(self):
        verifier = WebhookVerifier(SECRET)
        assert verifier.verify(BODY, sign_header(SECRET, BODY)) is True
        assert verifier.verify(BODY, "bad") is False

    def test_unconfigured_never_verifies(self):
        assert WebhookVerifier(None).verify(BODY, _hex("", BODY)) is False
