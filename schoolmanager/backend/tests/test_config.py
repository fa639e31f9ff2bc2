"""
Tests for settings validation
"""
import pytest
from pydantic import ValidationError

from app.core.config import Settings


def make_settings(**overrides) -> Settings:
    values = {"JWT_SECRET_KEY": "k", "DATABASE_URL": "sqlite+aiosqlite:///:memory:"}
    values.update(overrides)
    return Settings(**values)


class TestSettings:

    def test_batch_size_clamped_to_storage_ceiling(self):
        assert make_settings(MAX_BATCH_SIZE=9999).MAX_BATCH_SIZE == 500
        assert make_settings(MAX_BATCH_SIZE=200).MAX_BATCH_SIZE == 200

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            make_settings(MAX_BATCH_SIZE=0)

    def test_concurrency_clamped(self):
        assert make_settings(DELETE_CONCURRENCY=0).DELETE_CONCURRENCY == 1
        assert make_settings(DELETE_CONCURRENCY=50).DELETE_CONCURRENCY == 8

    def test_cors_origins_split(self):
        settings = make_settings(BACKEND_CORS_ORIGINS="https://a.example, https://b.example")
        assert settings.BACKEND_CORS_ORIGINS == ["https://a.example", "https://b.example"]

    def test_webhook_secret_falls_back_to_secret_key(self):
        assert make_settings(PAYSTACK_SECRET_KEY="sk", PAYSTACK_WEBHOOK_SECRET=None).webhook_secret == "sk"
        assert make_settings(PAYSTACK_SECRET_KEY="sk", PAYSTACK_WEBHOOK_SECRET="wh").webhook_secret == "wh"
