"""
Tests for the aggregation stores
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

import fakeredis
import pytest

from tally.config import Settings
from tally.core.errors import StorageError
from tally.core.sketches.hyperloglog import HyperLogLog
from tally.core.storage import MemoryAggregationStore, RedisAggregationStore, create_store
from tally.models.events import DimensionKey, Table

DAY = date(2025, 10, 16)


def key(value="/", day=DAY, domain="example.com"):
    return DimensionKey(domain=domain, dimension_value=value, day=day)


class TestMergeUpsert:
    """merge_upsert on every backend"""

    def test_creates_row(self, store):
        store.merge_upsert(Table.PAGES, key("/a"), b"visitor-1")

        rows = store.read_range(Table.PAGES, "example.com", DAY, DAY)

        assert len(rows) == 1
        row_key, hll = rows[0]
        assert row_key == key("/a")
        assert hll.cardinality() == 1

    def test_merges_into_existing_row(self, store):
        for fingerprint in (b"visitor-1", b"visitor-2", b"visitor-3", b"visitor-1"):
            store.merge_upsert(Table.PAGES, key("/a"), fingerprint)

        [(_, hll)] = store.read_range(Table.PAGES, "example.com", DAY, DAY)
        assert hll.cardinality() == 3

    def test_matches_local_estimator(self, store):
        """Stored registers equal an estimator built in-process"""
        expected = HyperLogLog(12)
        for i in range(300):
            fingerprint = f"visitor-{i}".encode()
            expected.add(fingerprint)
            store.merge_upsert(Table.SOURCES, key("news.ycombinator.com"), fingerprint)

        [(_, hll)] = store.read_range(Table.SOURCES, "example.com", DAY, DAY)
        assert hll == expected

    def test_tables_are_independent(self, store):
        store.merge_upsert(Table.PAGES, key("/"), b"visitor-1")
        store.merge_upsert(Table.COUNTRIES, key("FR"), b"visitor-1")

        pages = store.read_range(Table.PAGES, "example.com", DAY, DAY)
        countries = store.read_range(Table.COUNTRIES, "example.com", DAY, DAY)
        sources = store.read_range(Table.SOURCES, "example.com", DAY, DAY)

        assert [k.dimension_value for k, _ in pages] == ["/"]
        assert [k.dimension_value for k, _ in countries] == ["FR"]
        assert sources == []

    def test_dimension_values_with_separators(self, store):
        store.merge_upsert(Table.PAGES, key("/a:b/c"), b"visitor-1")

        [(row_key, _)] = store.read_range(Table.PAGES, "example.com", DAY, DAY)
        assert row_key.dimension_value == "/a:b/c"


class TestReadRange:
    """read_range on every backend"""

    def test_ordered_by_day_descending(self, store):
        for offset in (3, 0, 1):
            day = DAY - timedelta(days=offset)
            store.merge_upsert(Table.PAGES, key("/b", day), b"visitor-1")
            store.merge_upsert(Table.PAGES, key("/a", day), b"visitor-1")

        rows = store.read_range(Table.PAGES, "example.com", DAY - timedelta(days=5), DAY)

        assert [(k.day, k.dimension_value) for k, _ in rows] == [
            (DAY, "/a"),
            (DAY, "/b"),
            (DAY - timedelta(days=1), "/a"),
            (DAY - timedelta(days=1), "/b"),
            (DAY - timedelta(days=3), "/a"),
            (DAY - timedelta(days=3), "/b"),
        ]

    def test_window_bounds_are_inclusive(self, store):
        for offset in range(5):
            store.merge_upsert(Table.PAGES, key("/", DAY - timedelta(days=offset)), b"v")

        rows = store.read_range(
            Table.PAGES, "example.com", DAY - timedelta(days=3), DAY - timedelta(days=1)
        )

        assert [k.day for k, _ in rows] == [DAY - timedelta(days=i) for i in (1, 2, 3)]

    def test_start_after_end_is_empty(self, store):
        store.merge_upsert(Table.PAGES, key("/"), b"visitor-1")
        assert store.read_range(Table.PAGES, "example.com", DAY, DAY - timedelta(days=1)) == []

    def test_unknown_domain_is_empty(self, store):
        store.merge_upsert(Table.PAGES, key("/"), b"visitor-1")
        assert store.read_range(Table.PAGES, "unknown.org", DAY, DAY) == []

    def test_domains_are_isolated(self, store):
        store.merge_upsert(Table.PAGES, key("/", domain="example.com"), b"visitor-1")
        store.merge_upsert(Table.PAGES, key("/", domain="example.org"), b"visitor-2")

        rows = store.read_range(Table.PAGES, "example.org", DAY, DAY)
        assert [k.domain for k, _ in rows] == ["example.org"]

    def test_window_at_first_representable_day(self, store):
        first = date.min
        store.merge_upsert(Table.PAGES, key("/", day=first), b"visitor-1")
        store.merge_upsert(Table.PAGES, key("/", day=first + timedelta(days=2)), b"visitor-1")

        rows = store.read_range(Table.PAGES, "example.com", first, first + timedelta(days=2))

        assert [k.day for k, _ in rows] == [first + timedelta(days=2), first]


class TestMergeEstimators:

    def test_empty_list(self, store):
        merged = store.merge_estimators([])
        assert merged.cardinality() == 0
        assert merged.precision == store.precision

    def test_union(self, store):
        a = HyperLogLog(12)
        b = HyperLogLog(12)
        a.add(b"shared")
        b.add(b"shared")
        b.add(b"other")

        assert store.merge_estimators([a, b]).cardinality() == 2
        assert store.merge_estimators([a, b]) == store.monoid.merge_paths([a, b])


class TestConcurrency:

    def test_no_lost_updates(self, store):
        """Concurrent writers to one key are all reflected"""
        fingerprints = [f"visitor-{i}".encode() for i in range(400)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda f: store.merge_upsert(Table.PAGES, key("/hot"), f), fingerprints))

        expected = HyperLogLog(12)
        for fingerprint in fingerprints:
            expected.add(fingerprint)

        [(_, hll)] = store.read_range(Table.PAGES, "example.com", DAY, DAY)
        assert hll == expected


class TestRedisAggregationStore:
    """Redis-specific behavior"""

    def test_registers_stored_as_raw_bytes(self, redis_store, fake_redis):
        redis_store.merge_upsert(Table.PAGES, key("/"), b"visitor-1")

        raw = fake_redis.get(redis_store.key_gen.hll_key("pages", "example.com", DAY, "/"))
        assert len(raw) == 1 << 12
        assert HyperLogLog.from_bytes(raw).cardinality() == 1

    def test_no_ttl_by_default(self, redis_store, fake_redis):
        redis_store.merge_upsert(Table.PAGES, key("/"), b"visitor-1")

        assert fake_redis.ttl(redis_store.key_gen.hll_key("pages", "example.com", DAY, "/")) == -1

    def test_retention_sets_ttl(self, fake_redis):
        store = RedisAggregationStore(redis_client=fake_redis, precision=12, retention_days=90)
        store.merge_upsert(Table.PAGES, key("/"), b"visitor-1")

        assert fake_redis.ttl(store.key_gen.hll_key("pages", "example.com", DAY, "/")) > 0
        assert fake_redis.ttl(store.key_gen.index_key("pages", "example.com", DAY)) > 0

    def test_precision_mismatch_is_storage_error(self, fake_redis):
        RedisAggregationStore(redis_client=fake_redis, precision=10).merge_upsert(
            Table.PAGES, key("/"), b"visitor-1"
        )

        with pytest.raises(StorageError):
            RedisAggregationStore(redis_client=fake_redis, precision=12).merge_upsert(
                Table.PAGES, key("/"), b"visitor-2"
            )

    def test_missing_row_is_skipped(self, redis_store, fake_redis):
        redis_store.merge_upsert(Table.PAGES, key("/"), b"visitor-1")
        fake_redis.delete(redis_store.key_gen.hll_key("pages", "example.com", DAY, "/"))

        assert redis_store.read_range(Table.PAGES, "example.com", DAY, DAY) == []

    def test_unreachable_redis(self):
        server = fakeredis.FakeServer()
        store = RedisAggregationStore(redis_client=fakeredis.FakeRedis(server=server))
        server.connected = False

        assert store.ping() is False
        with pytest.raises(StorageError):
            store.merge_upsert(Table.PAGES, key("/"), b"visitor-1")
        with pytest.raises(StorageError):
            store.read_range(Table.PAGES, "example.com", DAY, DAY)


class TestCreateStore:

    def test_memory_backend(self):
        store = create_store(Settings(_env_file=None, STORAGE_BACKEND="memory"))
        assert isinstance(store, MemoryAggregationStore)
        assert store.precision == 12

    def test_redis_backend(self):
        store = create_store(
            Settings(_env_file=None, STORAGE_BACKEND="redis", HLL_ERROR_RATE=0.01)
        )
        assert isinstance(store, RedisAggregationStore)
        assert store.precision == 14

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_store(Settings(_env_file=None, STORAGE_BACKEND="postgres"))
