"""
Aggregation store for per-day HyperLogLog rows

One estimator per (table, domain, dimension value, day). Writes are a
create-or-merge that must be atomic per key; reads return every row of a
domain over a day window, most recent day first.
"""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import redis
from redis import Redis

from tally.core.errors import StorageError
from tally.core.monoids.hll_monoid import HLLMonoid
from tally.core.sketches.hyperloglog import HyperLogLog
from tally.models.events import DimensionKey, Table
from tally.utils.time_windows import DayBucketer, RedisKeyGenerator

logger = logging.getLogger(__name__)

Row = Tuple[DimensionKey, HyperLogLog]

# Create-or-merge of one register, run atomically by Redis.
# KEYS[1] register string, KEYS[2] index set of dimension values
# ARGV: register count, index, rank, dimension value, ttl seconds
MERGE_UPSERT_SCRIPT = """
local registers = KEYS[1]
local m = tonumber(ARGV[1])
local index = tonumber(ARGV[2])
local rank = tonumber(ARGV[3])

local size = redis.call('STRLEN', registers)
if size == 0 then
  redis.call('SETRANGE', registers, m - 1, string.char(0))
elseif size ~= m then
  return redis.error_reply('register length ' .. size .. ' does not match ' .. m)
end

local current = string.byte(redis.call('GETRANGE', registers, index, index))
if rank > current then
  redis.call('SETRANGE', registers, index, string.char(rank))
end

redis.call('SADD', KEYS[2], ARGV[4])

local ttl = tonumber(ARGV[5])
if ttl > 0 then
  redis.call('EXPIRE', registers, ttl)
  redis.call('EXPIRE', KEYS[2], ttl)
end
return rank > current and 1 or 0
"""


def _sort_rows(rows: List[Row]) -> List[Row]:
    """Day descending, then dimension value"""
    rows.sort(key=lambda row: row[0].dimension_value)
    rows.sort(key=lambda row: row[0].day, reverse=True)
    return rows


class AggregationStore(ABC):
    """
    Keyed table of estimators, one table per dimension
    """

    def __init__(self, precision: int = 12):
        self.precision = precision
        self.monoid = HLLMonoid(precision=precision)
        self._locator = HyperLogLog(precision)

    @abstractmethod
    def merge_upsert(self, table: Table, key: DimensionKey, fingerprint: bytes) -> None:
        """
        Add fingerprint to the row at key, creating the row if needed

        Concurrent calls on the same key must all be reflected.

        Raises:
            StorageError: If the store cannot apply the update
        """
        ...

    @abstractmethod
    def read_range(
        self, table: Table, domain: str, start_day: date, end_day: date
    ) -> List[Row]:
        """
        Rows of a domain with start_day <= day <= end_day

        Returns:
            (key, estimator) pairs ordered by day descending

        Raises:
            StorageError: If the store cannot be read
        """
        ...

    @abstractmethod
    def ping(self) -> bool:
        """Check the store is reachable"""
        ...

    def merge_estimators(self, estimators: Sequence[HyperLogLog]) -> HyperLogLog:
        """
        Union of estimators

        Args:
            estimators: HLLs to merge (empty gives the empty HLL)

        Returns:
            Merged HLL
        """
        return self.monoid.merge_paths(estimators)


class RedisAggregationStore(AggregationStore):
    """
    Redis-backed aggregation store

    Registers live in a plain string key, updated in place by a Lua script
    so each merge is a single atomic server-side operation.
    """

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        precision: int = 12,
        retention_days: int = 0,
        key_prefix: str = "tally",
        redis_url: str = "redis://localhost:6379/0",
        socket_timeout: Optional[float] = None,
    ):
        """
        Initialize Redis storage

        Args:
            redis_client: Optional Redis client (creates new if None)
            precision: HyperLogLog precision of every row
            retention_days: TTL for rows in days (0 keeps forever)
            key_prefix: Namespace for all keys
            redis_url: Connection URL used when no client is given
            socket_timeout: Per-command timeout in seconds
        """
        super().__init__(precision=precision)

        if redis_client is not None:
            self.redis = redis_client
        else:
            self.redis = redis.from_url(
                redis_url,
                decode_responses=False,  # Registers are raw bytes
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )

        self.key_gen = RedisKeyGenerator(prefix=key_prefix)
        self.ttl = DayBucketer.get_retention_seconds(retention_days)
        self._merge_upsert = self.redis.register_script(MERGE_UPSERT_SCRIPT)

    def ping(self) -> bool:
        """Check Redis connection"""
        try:
            return bool(self.redis.ping())
        except redis.RedisError:
            return False

    def merge_upsert(self, table: Table, key: DimensionKey, fingerprint: bytes) -> None:
        index, rank = self._locator.position(fingerprint)
        keys = [
            self.key_gen.hll_key(table.value, key.domain, key.day, key.dimension_value),
            self.key_gen.index_key(table.value, key.domain, key.day),
        ]
        args = [1 << self.precision, index, rank, key.dimension_value, self.ttl]

        try:
            self._merge_upsert(keys=keys, args=args)
        except redis.RedisError as e:
            raise StorageError(f"merge_upsert failed for {table.value} {key}: {e}") from e

    def read_range(
        self, table: Table, domain: str, start_day: date, end_day: date
    ) -> List[Row]:
        days = DayBucketer.days_descending(start_day, end_day)
        if not days:
            return []

        try:
            # One round trip for the index sets, one for the registers
            pipe = self.redis.pipeline(transaction=False)
            for day in days:
                pipe.smembers(self.key_gen.index_key(table.value, domain, day))
            members_per_day = pipe.execute()

            keys: List[DimensionKey] = []
            for day, members in zip(days, members_per_day):
                for member in members:
                    value = member.decode("utf-8") if isinstance(member, bytes) else member
                    keys.append(DimensionKey(domain=domain, dimension_value=value, day=day))

            if not keys:
                return []

            payloads = self.redis.mget(
                [
                    self.key_gen.hll_key(table.value, k.domain, k.day, k.dimension_value)
                    for k in keys
                ]
            )
        except redis.RedisError as e:
            raise StorageError(f"read_range failed for {table.value} {domain}: {e}") from e

        rows = []
        for key, payload in zip(keys, payloads):
            if payload is None:
                # Index outlived its row
                continue
            rows.append((key, HyperLogLog.from_bytes(payload)))

        return _sort_rows(rows)


class MemoryAggregationStore(AggregationStore):
    """
    In-process aggregation store for development and tests

    A single lock serializes writers, which keeps merge_upsert atomic.
    """

    def __init__(self, precision: int = 12):
        super().__init__(precision=precision)
        self._rows: Dict[Tuple[Table, DimensionKey], HyperLogLog] = {}
        self._lock = threading.Lock()

    def ping(self) -> bool:
        return True

    def merge_upsert(self, table: Table, key: DimensionKey, fingerprint: bytes) -> None:
        with self._lock:
            hll = self._rows.get((table, key))
            if hll is None:
                hll = self._rows[(table, key)] = self.monoid.zero()
            hll.add(fingerprint)

    def read_range(
        self, table: Table, domain: str, start_day: date, end_day: date
    ) -> List[Row]:
        with self._lock:
            rows = [
                (key, hll.copy())
                for (row_table, key), hll in self._rows.items()
                if row_table == table
                and key.domain == domain
                and start_day <= key.day <= end_day
            ]
        return _sort_rows(rows)

    def __len__(self) -> int:
        return len(self._rows)


def create_store(settings) -> AggregationStore:
    """
    Build the store named by STORAGE_BACKEND

    Args:
        settings: Application settings

    Returns:
        AggregationStore instance
    """
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "memory":
        logger.warning("Using in-memory aggregation store, data is lost on restart")
        return MemoryAggregationStore(precision=settings.hll_precision)
    if backend == "redis":
        return RedisAggregationStore(
            precision=settings.hll_precision,
            retention_days=settings.RETENTION_DAYS,
            key_prefix=settings.REDIS_KEY_PREFIX,
            redis_url=settings.get_redis_url(),
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )
    raise ValueError(f"Unknown storage backend: {settings.STORAGE_BACKEND}")
