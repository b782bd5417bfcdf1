"""
Tests for settings
"""
import logging

import pytest
from pydantic import ValidationError

from tally.config import Settings


def make(**overrides):
    return Settings(_env_file=None, **overrides)


class TestSettings:

    def test_redis_url_from_parts(self):
        settings = make(REDIS_HOST="cache", REDIS_PORT=6380, REDIS_DB=2, REDIS_PASSWORD="pw")
        assert settings.get_redis_url() == "redis://:pw@cache:6380/2"

    def test_explicit_redis_url(self):
        settings = make(REDIS_URL="redis://elsewhere:6379/0")
        assert settings.get_redis_url() == "redis://elsewhere:6379/0"

    def test_log_level_by_environment(self):
        assert make(ENVIRONMENT="production").get_log_level() == logging.INFO
        assert make(ENVIRONMENT="development").get_log_level() == logging.DEBUG

    def test_log_level_override(self):
        assert make(ENVIRONMENT="production", LOG_LEVEL="warn").get_log_level() == logging.WARNING
        assert make(LOG_LEVEL="error").get_log_level() == logging.ERROR

    def test_precision_from_error_rate(self):
        assert make().hll_precision == 12
        assert make(HLL_ERROR_RATE=0.01).hll_precision == 14

    def test_window_defaults(self):
        settings = make()
        assert settings.STATS_WINDOW_DAYS == 30
        assert settings.MAX_STATS_WINDOW_DAYS == 366

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        monkeypatch.setenv("FINGERPRINT_DAILY_ROTATION", "false")

        settings = make()

        assert settings.STORAGE_BACKEND == "memory"
        assert settings.FINGERPRINT_DAILY_ROTATION is False

    def test_frozen(self):
        settings = make()
        with pytest.raises(ValidationError):
            settings.API_KEY = "changed"
