"""
Configuration management for Tally
"""
import logging
from typing import List

from pydantic_settings import BaseSettings

from tally.core.sketches.hyperloglog import HyperLogLog


class Settings(BaseSettings):
    """Application settings, immutable once loaded"""

    # Application
    APP_NAME: str = "Tally"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = ""
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # Public host serving the beacon, used in the tracking script
    DOMAIN: str = "localhost"

    # Required on /stats when set
    API_KEY: str = ""

    # Storage
    STORAGE_BACKEND: str = "redis"  # "redis" or "memory"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_URL: str = ""
    REDIS_SOCKET_TIMEOUT: float = 2.0
    REDIS_KEY_PREFIX: str = "tally"

    # HyperLogLog Settings
    HLL_ERROR_RATE: float = 0.02  # 2% error rate

    # Aggregation rows are kept forever when 0
    RETENTION_DAYS: int = 0

    # Default /stats window, and the widest window a query may ask for
    STATS_WINDOW_DAYS: int = 30
    MAX_STATS_WINDOW_DAYS: int = 366

    # Request headers set by the trusted reverse proxy
    PROXY_IP_HEADER: str = "CF-Connecting-IP"
    COUNTRY_HEADER: str = "CF-IPCountry"

    # Visitor fingerprinting
    FINGERPRINT_SALT: str = ""
    FINGERPRINT_DAILY_ROTATION: bool = True

    # API Settings
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        frozen = True

    @property
    def hll_precision(self) -> int:
        """HyperLogLog precision matching HLL_ERROR_RATE"""
        return HyperLogLog.precision_for_error(self.HLL_ERROR_RATE)

    def get_redis_url(self) -> str:
        """Get Redis connection URL"""
        if self.REDIS_URL:
            return self.REDIS_URL

        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    def get_log_level(self) -> int:
        """
        Logging level: INFO in production, DEBUG elsewhere

        LOG_LEVEL (debug, info, warn, error) overrides the default.
        """
        level = logging.INFO if self.ENVIRONMENT == "production" else logging.DEBUG

        overrides = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warn": logging.WARNING,
            "warning": logging.WARNING,
            "error": logging.ERROR,
        }
        return overrides.get(self.LOG_LEVEL.lower(), level)
