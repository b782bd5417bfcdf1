"""
Shared fixtures
"""
from datetime import date

import fakeredis
import pytest

from tally import create_app
from tally.config import Settings
from tally.core.bot_filter import BotFilter
from tally.core.errors import StorageError
from tally.core.fingerprint import FingerprintHasher
from tally.core.pipeline import IngestionPipeline
from tally.core.query import QueryService
from tally.core.storage import MemoryAggregationStore, RedisAggregationStore

TODAY = date(2025, 10, 16)

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36"
)
GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


class FailingStore(MemoryAggregationStore):
    """Memory store whose writes to some tables always fail"""

    def __init__(self, failing_tables=(), fail_reads=False, precision=12):
        super().__init__(precision=precision)
        self.failing_tables = set(failing_tables)
        self.fail_reads = fail_reads

    def merge_upsert(self, table, key, fingerprint):
        if table in self.failing_tables:
            raise StorageError(f"{table.value} unavailable")
        super().merge_upsert(table, key, fingerprint)

    def read_range(self, table, domain, start_day, end_day):
        if self.fail_reads:
            raise StorageError("store unavailable")
        return super().read_range(table, domain, start_day, end_day)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def settings():
    return Settings(_env_file=None, STORAGE_BACKEND="memory", ENVIRONMENT="test")


@pytest.fixture
def memory_store():
    return MemoryAggregationStore(precision=12)


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis()


@pytest.fixture
def redis_store(fake_redis):
    return RedisAggregationStore(redis_client=fake_redis, precision=12)


@pytest.fixture(params=["memory", "redis"])
def store(request):
    """Every store backend"""
    if request.param == "memory":
        return MemoryAggregationStore(precision=12)
    return RedisAggregationStore(redis_client=fakeredis.FakeRedis(), precision=12)


@pytest.fixture(scope="session")
def bot_filter():
    return BotFilter()


@pytest.fixture
def pipeline(memory_store, bot_filter, today):
    return IngestionPipeline(
        store=memory_store,
        bot_filter=bot_filter,
        hasher=FingerprintHasher(salt="test-salt"),
        today=lambda: today,
    )


@pytest.fixture
def query_service(memory_store, today):
    return QueryService(memory_store, window_days=30, today=lambda: today)


@pytest.fixture
def app(settings, memory_store, bot_filter, today):
    app = create_app(settings, store=memory_store, bot_filter=bot_filter, today=lambda: today)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
