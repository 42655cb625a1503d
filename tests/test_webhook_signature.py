"""Webhook HMAC signature: sign/verify agreement and tamper detection."""

from __future__ import annotations

import base64
import hashlib
import hmac

import pytest

from webhooks.signature import sign, verify

SECRET = b"cf-test-secret"
TIMESTAMP = "1704067200"
BODY = b'{"type":"PAYMENT_SUCCESS_WEBHOOK","data":{"order_id":"o1"}}'


def _mutate(text: str, index: int) -> str:
    replacement = "A" if text[index] != "A" else "B"
    return text[:index] + replacement + text[index + 1:]


class TestSign:
    def test_matches_hmac_sha256_base64(self):
        expected = base64.b64encode(
            hmac.new(SECRET, TIMESTAMP.encode() + BODY, hashlib.sha256).digest()
        ).decode()
        assert sign(SECRET, TIMESTAMP, BODY) == expected

    def test_str_and_bytes_body_agree(self):
        assert sign(SECRET, TIMESTAMP, BODY.decode()) == sign(SECRET, TIMESTAMP, BODY)


class TestVerify:
    def test_accepts_own_signature(self):
        assert verify(sign(SECRET, TIMESTAMP, BODY), TIMESTAMP, BODY, SECRET) is True

    def test_accepts_empty_body(self):
        assert verify(sign(SECRET, TIMESTAMP, b""), TIMESTAMP, b"", SECRET) is True

    def test_rejects_every_single_byte_signature_mutation(self):
        signature = sign(SECRET, TIMESTAMP, BODY)
        for i in range(len(signature)):
            assert verify(_mutate(signature, i), TIMESTAMP, BODY, SECRET) is False

    def test_rejects_every_single_byte_timestamp_mutation(self):
        signature = sign(SECRET, TIMESTAMP, BODY)
        for i in range(len(TIMESTAMP)):
            assert verify(signature, _mutate(TIMESTAMP, i), BODY, SECRET) is False

    def test_rejects_every_single_byte_body_mutation(self):
        signature = sign(SECRET, TIMESTAMP, BODY)
        for i in range(len(BODY)):
            tampered = bytearray(BODY)
            tampered[i] ^= 0x01
            assert verify(signature, TIMESTAMP, bytes(tampered), SECRET) is False

    def test_rejects_wrong_secret(self):
        signature = sign(b"another-secret", TIMESTAMP, BODY)
        assert verify(signature, TIMESTAMP, BODY, SECRET) is False

    @pytest.mark.parametrize("secret", [b"", None])
    def test_empty_secret_fails_closed(self, secret):
        """An unconfigured secret never authenticates, even a matching signature."""
        signature = sign(b"", TIMESTAMP, BODY)
        assert verify(signature, TIMESTAMP, BODY, secret) is False

    def test_non_ascii_signature_is_false_not_error(self):
        assert verify("sïgnature", TIMESTAMP, BODY, SECRET) is False

    @pytest.mark.parametrize("signature,timestamp", [("", TIMESTAMP), ("abc", "")])
    def test_empty_inputs_are_false(self, signature, timestamp):
        assert verify(signature, timestamp, BODY, SECRET) is False
