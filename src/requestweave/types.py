# requestweave/types.py
"""Core type definitions and data structures for requestweave.

This module defines the request descriptor that flows through middleware,
the runtime cache and retry configuration models, per-call options, and the
type aliases for middleware hooks.
"""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

import httpx
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeFloat,
    NonNegativeInt,
    ValidationError,
)

from .exceptions import ConfigurationError, RequestweaveError

SAFE_METHODS: frozenset[str] = frozenset(["GET"])
"""Methods whose successful responses may be cached and coalesced."""


class RequestData(BaseModel):
    """Encapsulates a single logical request as seen by middleware.

    Request hooks receive an instance and return it (or a replacement); the
    instance is then frozen into an ``httpx.Request`` once per attempt.
    ``attempt`` is the retry state: 1 for the initial try, incremented for
    every retry.
    """

    method: str
    path: str
    url: str
    params: dict[str, Any] | None = None
    json_data: Any | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: float | None = None
    attempt: int = 1
    signature: str | None = None

    model_config = ConfigDict(extra="allow")

    def build_request(self, client: httpx.AsyncClient | None = None) -> httpx.Request:
        """Builds an httpx.Request object from the stored data.

        With a ``client``, the client's default headers and timeout are merged
        in the same way ``httpx.AsyncClient.request`` would merge them.
        """
        if client is not None:
            return client.build_request(
                method=self.method,
                url=self.url,
                params=self.params,
                json=self.json_data,
                headers=self.headers,
                timeout=(
                    self.timeout
                    if self.timeout is not None
                    else httpx.USE_CLIENT_DEFAULT
                ),
            )
        extensions: dict[str, Any] = {}
        if self.timeout is not None:
            extensions["timeout"] = httpx.Timeout(self.timeout).as_dict()
        return httpx.Request(
            method=self.method,
            url=self.url,
            params=self.params,
            json=self.json_data,
            headers=self.headers,
            extensions=extensions,
        )


class CacheConfig(BaseModel):
    """Runtime cache configuration. ``ttl`` is in seconds."""

    enabled: bool = True
    ttl: NonNegativeFloat = 300.0


class RetryConfig(BaseModel):
    """Runtime retry configuration. Delays are in seconds."""

    max_retries: NonNegativeInt = 3
    initial_delay: NonNegativeFloat = 1.0
    max_delay: NonNegativeFloat = 10.0


ConfigT = TypeVar("ConfigT", bound=BaseModel)


def merge_config(
    current: ConfigT, update: ConfigT | Mapping[str, Any] | None
) -> ConfigT:
    """Merges a partial update into a config model, validating the result.

    Raises:
        ConfigurationError: If the merged values do not validate.
    """
    if update is None:
        return current
    if isinstance(update, BaseModel):
        changes = update.model_dump(exclude_unset=True)
    else:
        changes = dict(update)
    try:
        return type(current).model_validate({**current.model_dump(), **changes})
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid {type(current).__name__} update {changes}: {e}"
        ) from e


class RequestOptions(BaseModel):
    """Per-call overrides accepted by the client verbs."""

    params: Mapping[str, Any] | None = None
    headers: dict[str, str] | None = None
    timeout: float | None = None
    use_cache: bool = True
    dedupe: bool = True
    retry: dict[str, Any] | None = None

    model_config = ConfigDict(extra="forbid")


RequestHook = Callable[[RequestData], RequestData | None | Awaitable[RequestData | None]]
"""Type alias for a middleware request hook.

Args:
    request (RequestData): The request descriptor produced by the previous hook.
Return:
    RequestData | None: The descriptor to pass on. ``None`` keeps the input,
    which allows hooks that mutate in place. May be returned from a coroutine.
"""

ResponseHook = Callable[
    [httpx.Response], httpx.Response | None | Awaitable[httpx.Response | None]
]
"""Type alias for a middleware response hook.

Called with the raw ``httpx.Response`` of a successful call, in registration
order. Returning ``None`` keeps the response unchanged.
"""

ErrorHook = Callable[
    [RequestweaveError],
    RequestweaveError | None | Awaitable[RequestweaveError | None],
]
"""Type alias for a middleware error hook.

Called once per failed logical call (after retries are exhausted), in
registration order. Returning ``None`` keeps the error unchanged.
"""
