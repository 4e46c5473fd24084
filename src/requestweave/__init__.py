"""Requestweave: an asynchronous HTTP client pipeline for a single backend.

This package wraps an httpx transport with response caching, in-flight
request deduplication, ordered middleware and bounded exponential-backoff
retry, and returns every outcome in one ``ResponseEnvelope`` shape.
"""

__version__ = "0.1.0"

from . import (
    auth,
    cache,
    client,
    config,
    dedup,
    exceptions,
    log_config,
    middleware,
    models,
    resources,
    retry,
    types,
)
from .auth import CredentialProvider, InMemoryCredentialStore, StaticTokenCredentials
from .cache import CacheEntry, CacheStore
from .client import ApiClient, create_client
from .config import ClientSettings, get_settings
from .dedup import RequestDeduplicator, generate_signature
from .log_config import configure_logging
from .middleware import (
    Middleware,
    MiddlewarePipeline,
    auth_middleware,
    logging_middleware,
)
from .models import EnvelopeMetadata, ResponseEnvelope
from .retry import RetryPolicy
from .types import CacheConfig, RequestData, RequestOptions, RetryConfig

__all__ = [
    "__version__",
    "ApiClient",
    "CacheConfig",
    "CacheEntry",
    "CacheStore",
    "ClientSettings",
    "CredentialProvider",
    "EnvelopeMetadata",
    "InMemoryCredentialStore",
    "Middleware",
    "MiddlewarePipeline",
    "RequestData",
    "RequestDeduplicator",
    "RequestOptions",
    "ResponseEnvelope",
    "RetryConfig",
    "RetryPolicy",
    "StaticTokenCredentials",
    "auth",
    "auth_middleware",
    "cache",
    "client",
    "config",
    "configure_logging",
    "create_client",
    "dedup",
    "exceptions",
    "generate_signature",
    "get_settings",
    "log_config",
    "logging_middleware",
    "middleware",
    "models",
    "resources",
    "retry",
    "types",
]
