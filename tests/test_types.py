import httpx
import pytest

from requestweave.exceptions import ConfigurationError
from requestweave.types import (
    CacheConfig,
    RequestData,
    RequestOptions,
    RetryConfig,
    merge_config,
)


def test_request_data_builds_standalone_request():
    data = RequestData(
        method="POST",
        path="/orders",
        url="https://api.example.com/orders",
        params={"dry_run": "1"},
        json_data={"sku": "A-1"},
        headers={"X-Tenant": "t1"},
        timeout=2.0,
    )

    request = data.build_request()

    assert request.method == "POST"
    assert str(request.url) == "https://api.example.com/orders?dry_run=1"
    assert request.headers["X-Tenant"] == "t1"
    assert request.extensions["timeout"]["connect"] == 2.0


@pytest.mark.asyncio
async def test_request_data_merges_client_defaults():
    data = RequestData(method="GET", path="/items", url="https://api.example.com/items")

    async with httpx.AsyncClient(headers={"User-Agent": "ua"}, timeout=7.0) as client:
        request = data.build_request(client)

    assert request.headers["User-Agent"] == "ua"
    assert request.extensions["timeout"]["read"] == 7.0


def test_merge_config_keeps_unspecified_fields():
    merged = merge_config(RetryConfig(max_retries=5, initial_delay=2.0), {"max_delay": 30.0})
    assert merged == RetryConfig(max_retries=5, initial_delay=2.0, max_delay=30.0)


def test_merge_config_accepts_models_with_only_set_fields():
    merged = merge_config(CacheConfig(enabled=False, ttl=10.0), CacheConfig(ttl=60.0))
    assert merged.enabled is False
    assert merged.ttl == 60.0


def test_merge_config_none_returns_current():
    current = CacheConfig()
    assert merge_config(current, None) is current


def test_merge_config_rejects_invalid_values():
    with pytest.raises(ConfigurationError, match="Invalid RetryConfig update"):
        merge_config(RetryConfig(), {"initial_delay": -0.5})


def test_request_options_forbid_unknown_fields():
    with pytest.raises(ValueError):
        RequestOptions(cache=False)
    assert RequestOptions().use_cache is True
    assert RequestOptions().dedupe is True
