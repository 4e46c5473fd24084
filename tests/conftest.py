# tests/conftest.py
import pytest
import pytest_asyncio
from loguru import logger

from requestweave.cache import CacheStore
from requestweave.client import ApiClient
from requestweave.config import ClientSettings
from requestweave.retry import RetryPolicy
from requestweave.types import CacheConfig, RetryConfig

BASE_URL = "https://api.example.com"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def settings() -> ClientSettings:
    """Settings isolated from any local .env file."""
    return ClientSettings(
        _env_file=None,
        base_url=BASE_URL,
        max_retries=3,
        retry_initial_delay=1.0,
        retry_max_delay=10.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def cache_store(clock: FakeClock) -> CacheStore:
    return CacheStore(CacheConfig(enabled=True, ttl=5.0), clock=clock)


@pytest.fixture
def retry_policy(recording_sleep: RecordingSleep) -> RetryPolicy:
    return RetryPolicy(
        RetryConfig(max_retries=3, initial_delay=1.0, max_delay=10.0),
        sleep=recording_sleep,
    )


@pytest_asyncio.fixture
async def api_client(settings, cache_store, retry_policy):
    """ApiClient with a fake-clock cache and a non-sleeping retry policy."""
    client = ApiClient(settings, cache=cache_store, retry_policy=retry_policy)
    yield client
    await client.aclose()


@pytest.fixture
def caplog_loguru():
    """Collects formatted loguru messages emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(
        lambda message: messages.append(message.record["message"]), level="DEBUG"
    )
    yield messages
    logger.remove(handler_id)
