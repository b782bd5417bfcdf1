"""
Day bucketing utilities for aggregation keys and queries
"""
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional


class DayBucketer:
    """
    Utility for bucketing timestamps into UTC days
    Used for Redis key generation and date-window queries
    """

    @staticmethod
    def utc_today(now: Optional[datetime] = None) -> date:
        """
        Current UTC date, truncated to midnight

        Args:
            now: Reference time (default: server clock)

        Returns:
            UTC calendar day
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        return now.date()

    @staticmethod
    def bucket_day(day: date) -> str:
        """Day bucket string (e.g., "2025-10-16")"""
        return day.isoformat()

    @staticmethod
    def parse_day(value: str) -> date:
        """
        Parse an ISO date string

        Args:
            value: String like "2025-10-16"

        Returns:
            date
        """
        try:
            return date.fromisoformat(value)
        except ValueError:
            raise ValueError(f"Invalid date: {value}. Expected YYYY-MM-DD")

    @staticmethod
    def window(end_day: date, days: int) -> tuple:
        """
        Query window ending at end_day and reaching back the given number of days

        Returns:
            (start_day, end_day)
        """
        # Clamp at the first representable day
        start_ordinal = max(end_day.toordinal() - days, date.min.toordinal())
        return date.fromordinal(start_ordinal), end_day

    @staticmethod
    def span_days(start_day: date, end_day: date) -> int:
        """Number of days in [start_day, end_day], 0 when start_day is after end_day"""
        return max((end_day - start_day).days + 1, 0)

    @staticmethod
    def days_descending(start_day: date, end_day: date) -> List[date]:
        """
        Every day in [start_day, end_day], most recent first

        Empty when start_day is after end_day.
        """
        span = (end_day - start_day).days
        return [end_day - timedelta(days=offset) for offset in range(span + 1)]

    @staticmethod
    def get_retention_seconds(retention_days: int) -> int:
        """
        Redis TTL in seconds for day buckets

        Args:
            retention_days: Days to keep (0 keeps forever)

        Returns:
            TTL in seconds, 0 when no expiry should be set
        """
        if retention_days <= 0:
            return 0
        # Keep the bucket for the whole of its last day
        return int(timedelta(days=retention_days + 1).total_seconds())


class RedisKeyGenerator:
    """
    Generate consistent Redis keys for aggregation rows
    """

    def __init__(self, prefix: str = "tally"):
        self.prefix = prefix

    def hll_key(self, table: str, domain: str, day: date, value: str) -> str:
        """
        Generate HyperLogLog register key

        Returns:
            Redis key (e.g., "tally:hll:pages:example.com:2025-10-16:/pricing")
        """
        bucket = DayBucketer.bucket_day(day)
        return f"{self.prefix}:hll:{table}:{domain}:{bucket}:{value}"

    def index_key(self, table: str, domain: str, day: date) -> str:
        """
        Generate key of the set listing dimension values seen on a day

        Returns:
            Redis key (e.g., "tally:idx:pages:example.com:2025-10-16")
        """
        bucket = DayBucketer.bucket_day(day)
        return f"{self.prefix}:idx:{table}:{domain}:{bucket}"
