"""
Tests for token handling and webhook signatures
"""
from datetime import timedelta

import pytest

from app.core.exceptions import AuthenticationError
from app.core.hashing import compute_webhook_signature, verify_webhook_signature
from app.core.security import create_access_token, decode_token


class TestTokens:

    def test_round_trip(self):
        token = create_access_token({"sub": "account-1"})
        assert decode_token(token)["sub"] == "account-1"

    def test_expired_token(self):
        token = create_access_token({"sub": "account-1"}, expires_delta=timedelta(seconds=-1))
        with pytest.raises(AuthenticationError) as exc_info:
            decode_token(token)
        assert exc_info.value.code == "token_expired"

    def test_tampered_token(self):
        header, _, signature = create_access_token({"sub": "account-1"}).split(".")
        forged_claims = create_access_token({"sub": "account-2"}).split(".")[1]
        with pytest.raises(AuthenticationError):
            decode_token(f"{header}.{forged_claims}.{signature}")


class TestWebhookSignature:

    def test_known_vector(self):
        # HMAC-SHA512("key", "The quick brown fox jumps over the lazy dog")
        expected = (
            "b42af09057bac1e2d41708e48a902e09b5ff7f12ab428a4fe86653c73dd248fb"
            "82f948a549f7b791a5b41915ee4d1ec3935357e4e2317250d0372afa2ebeeb3a"
        )
        assert compute_webhook_signature("key", b"The quick brown fox jumps over the lazy dog") == expected

    def test_verify(self):
        body = b'{"event":"charge.success"}'
        signature = compute_webhook_signature("secret", body)

        assert verify_webhook_signature("secret", body, signature)
        assert verify_webhook_signature("secret", body, signature.upper())
        assert not verify_webhook_signature("secret", body + b" ", signature)
        assert not verify_webhook_signature("other", body, signature)
        assert not verify_webhook_signature(None, body, signature)
        assert not verify_webhook_signature("secret", body, None)
