"""Client facade for the requestweave request pipeline.

This module provides the ApiClient class, the public surface of the package.
Each call resolves to exactly one of three outcomes before it is folded into a
``ResponseEnvelope``:

- ``CacheHit``: a fresh cached payload answers an idempotent read. Nothing
  else runs, neither transport nor dedup nor retry nor middleware.
- ``Transported``: the request went through the middleware request phase, the
  transport (retried on 5xx), and the middleware response phase.
- ``Failed``: the request failed for good and the failure went through the
  middleware error phase exactly once.

Idempotent reads are additionally coalesced by the RequestDeduplicator, so
concurrent identical reads share one trip through the pipeline.
"""

import copy
import ssl
from collections.abc import Iterable, Mapping
from functools import partial
from http import HTTPStatus
from typing import Any, Self

import certifi
import httpx
from pydantic import ValidationError

from .auth import CredentialProvider
from .cache import CacheStore
from .config import ClientSettings, get_settings
from .dedup import RequestDeduplicator, generate_signature
from .exceptions import (
    APIError,
    ApplicationError,
    ConfigurationError,
    NetworkError,
    RequestweaveError,
    TimeoutError,
    default_error_message,
)
from .log_config import logger
from .middleware import (
    Middleware,
    MiddlewarePipeline,
    UnauthorizedSignal,
    auth_middleware,
    logging_middleware,
)
from .models import (
    CacheHit,
    EnvelopeMetadata,
    Failed,
    Outcome,
    ResponseEnvelope,
    ResponseUnwrapper,
    SuccessEnvelopeUnwrapper,
    Transported,
)
from .retry import RetryPolicy
from .types import (
    SAFE_METHODS,
    CacheConfig,
    RequestData,
    RequestOptions,
    RetryConfig,
    merge_config,
)

REQUEST_ID_HEADER = "x-request-id"


class ApiClient:
    """Asynchronous client for a single backend origin.

    Key features:
    - Response caching for GET requests with a per-entry TTL
    - Coalescing of concurrent identical GET requests
    - Ordered request/response/error middleware (auth-token injection and
      logging by default)
    - Bounded exponential-backoff retry for 5xx responses
    - A uniform ``ResponseEnvelope`` for every outcome; no transport or API
      exception ever escapes ``get``/``post``/``put``/``delete``

    Attributes:
        _settings: Configuration settings for the client.
        _base_url: The base URL for API requests.
        _cache: The response cache for idempotent reads.
        _deduplicator: Coalesces concurrent identical reads.
        _retry_policy: Decides whether and when to re-issue a failed attempt.
        _middleware: The ordered middleware pipeline.
        _response_unwrapper: Adapts the backend's JSON body to the envelope.
        _http_client: The underlying httpx.AsyncClient used as transport.
        _should_close_client: Flag indicating if this instance owns the _http_client.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        base_url: str | None = None,
        credentials: CredentialProvider | None = None,
        on_unauthorized: UnauthorizedSignal | None = None,
        middlewares: Iterable[Middleware] = (),
        include_default_middlewares: bool = True,
        response_unwrapper: ResponseUnwrapper | None = None,
        http_client: httpx.AsyncClient | None = None,
        cache: CacheStore | None = None,
        deduplicator: RequestDeduplicator | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        """Initialize the ApiClient.

        Args:
            settings: Client settings. Defaults to ``get_settings()``.
            base_url: Overrides ``settings.base_url``.
            credentials: Provider of the bearer token. When given, the auth
                middleware is installed first in the default pipeline.
            on_unauthorized: Signal fired after credentials are cleared on a 401.
            middlewares: Extra middleware, run after the defaults.
            include_default_middlewares: Install the auth and logging middleware.
            response_unwrapper: Adapter for the backend body format.
            http_client: Optional pre-configured httpx.AsyncClient instance.
            cache: Optional pre-built cache store.
            deduplicator: Optional pre-built deduplicator.
            retry_policy: Optional pre-built retry policy.
        """
        self._settings = settings or get_settings()
        self._base_url: str = (base_url or self._settings.base_url).rstrip("/")
        self._response_unwrapper: ResponseUnwrapper = (
            response_unwrapper or SuccessEnvelopeUnwrapper()
        )

        # Explicit None checks: an empty store or deduplicator is falsy.
        if cache is None:
            cache = CacheStore(
                CacheConfig(
                    enabled=self._settings.cache_enabled,
                    ttl=self._settings.cache_ttl_seconds,
                ),
                max_size=self._settings.cache_max_size,
            )
        self._cache = cache

        if deduplicator is None:
            deduplicator = RequestDeduplicator(self._settings.dedup_stale_after_seconds)
        self._deduplicator = deduplicator

        if retry_policy is None:
            retry_policy = RetryPolicy(
                RetryConfig(
                    max_retries=self._settings.max_retries,
                    initial_delay=self._settings.retry_initial_delay,
                    max_delay=self._settings.retry_max_delay,
                ),
                retry_network_errors=self._settings.retry_network_errors,
            )
        self._retry_policy = retry_policy

        entries: list[Middleware] = []
        if include_default_middlewares:
            if credentials is not None:
                entries.append(auth_middleware(credentials, on_unauthorized))
            entries.append(logging_middleware())
        entries.extend(middlewares)
        self._middleware = MiddlewarePipeline(entries)

        self._should_close_client = http_client is None
        self._http_client = http_client or self._create_default_http_client()

        logger.debug(
            f"ApiClient initialized for {self._base_url} with {len(self._middleware)} middleware(s)."
        )

    def _create_default_http_client(self) -> httpx.AsyncClient:
        """Create a default httpx.AsyncClient with configured settings."""
        try:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            verify_ssl: ssl.SSLContext | bool = ssl_context
            logger.debug("Using certifi SSL context.")
        except Exception:
            verify_ssl = True
            logger.warning(
                "certifi not found or failed to load. Using default SSL verification."
            )

        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._settings.request_timeout,
            verify=verify_ssl,
            headers={
                **self._settings.default_headers,
                "User-Agent": self._settings.user_agent,
            },
        )

    # --- Configuration surface ---

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def deduplicator(self) -> RequestDeduplicator:
        return self._deduplicator

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def middleware(self) -> MiddlewarePipeline:
        return self._middleware

    def set_cache_config(self, config: CacheConfig | Mapping[str, Any]) -> CacheConfig:
        """Merge a partial cache configuration. Stored entries keep their TTL."""
        return self._cache.reconfigure(config)

    def set_retry_config(self, config: RetryConfig | Mapping[str, Any]) -> RetryConfig:
        """Merge a partial retry configuration; applies to calls started afterwards."""
        return self._retry_policy.reconfigure(config)

    def add_middleware(self, middleware: Middleware) -> None:
        self._middleware.add(middleware)

    def remove_middleware(self, middleware: Middleware) -> bool:
        return self._middleware.remove(middleware)

    def clear_cache(self) -> None:
        self._cache.clear()

    def invalidate_cache(self, path_prefix: str) -> int:
        """Drop cached reads whose path starts with ``path_prefix``."""
        return self._cache.invalidate(path_prefix)

    # --- Public call surface ---

    async def get(
        self, path: str, options: RequestOptions | None = None, **overrides: Any
    ) -> ResponseEnvelope[Any]:
        return await self.request("GET", path, options=options, **overrides)

    async def post(
        self,
        path: str,
        body: Any | None = None,
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> ResponseEnvelope[Any]:
        return await self.request("POST", path, body, options=options, **overrides)

    async def put(
        self,
        path: str,
        body: Any | None = None,
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> ResponseEnvelope[Any]:
        return await self.request("PUT", path, body, options=options, **overrides)

    async def delete(
        self, path: str, options: RequestOptions | None = None, **overrides: Any
    ) -> ResponseEnvelope[Any]:
        return await self.request("DELETE", path, options=options, **overrides)

    async def request(
        self,
        method: str,
        path: str,
        body: Any | None = None,
        *,
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> ResponseEnvelope[Any]:
        """Perform a call and return its envelope.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, etc.).
            path: Request path relative to the base URL.
            body: JSON-serializable request body.
            options: Per-call options.
            **overrides: Individual ``RequestOptions`` fields, applied on top
                of ``options``.

        Returns:
            ResponseEnvelope: Always. Failures populate ``error`` and ``status``.
        """
        method = method.upper()
        path = "/" + path.lstrip("/")
        try:
            opts = self._resolve_options(options, overrides)
            outcome = await self._resolve(method, path, body, opts)
        except RequestweaveError as e:
            logger.error(f"{method} {path} failed before reaching the transport: {e}")
            outcome = Failed(error=await self._middleware.run_error(e), attempts=0)
        except Exception as e:
            logger.exception(f"Unexpected error during {method} {path}: {e}")
            error = RequestweaveError(f"An unexpected error occurred: {e}")
            outcome = Failed(error=await self._middleware.run_error(error), attempts=0)
        return self._to_envelope(outcome)

    # --- Pipeline ---

    @staticmethod
    def _resolve_options(
        options: RequestOptions | None, overrides: Mapping[str, Any]
    ) -> RequestOptions:
        if not overrides:
            return options or RequestOptions()
        base = options.model_dump(exclude_unset=True) if options else {}
        try:
            return RequestOptions.model_validate({**base, **overrides})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid request options: {e}") from e

    def _is_cacheable(self, method: str, path: str, opts: RequestOptions) -> bool:
        if method not in SAFE_METHODS or not opts.use_cache or not self._cache.enabled:
            return False
        return not any(
            path.startswith("/" + prefix.lstrip("/"))
            for prefix in self._settings.cache_exclude_paths
        )

    async def _resolve(
        self, method: str, path: str, body: Any | None, opts: RequestOptions
    ) -> Outcome:
        """Resolve a call to CacheHit, Transported or Failed."""
        params = dict(opts.params) if opts.params else None
        signature = generate_signature(method, path, params, body)
        cacheable = self._is_cacheable(method, path, opts)

        if cacheable:
            entry = self._cache.lookup(signature)
            if entry is not None:
                logger.debug(f"Serving {method} {path} from cache")
                return CacheHit(payload=entry.payload)

        retry_config = (
            merge_config(self._retry_policy.config, opts.retry) if opts.retry else None
        )
        work = partial(
            self._perform,
            method,
            path,
            params,
            body,
            opts,
            signature,
            cacheable,
            retry_config,
        )
        if method in SAFE_METHODS and opts.dedupe:
            return await self._deduplicator.execute(signature, work)
        return await work()

    async def _perform(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        body: Any | None,
        opts: RequestOptions,
        signature: str,
        cacheable: bool,
        retry_config: RetryConfig | None,
    ) -> Transported | Failed:
        """Run one logical call through middleware, transport and retry.

        Failures come back as ``Failed`` after the error phase has run, so a
        coalesced call runs its error hooks once for all of its waiters.
        """
        request_data = RequestData(
            method=method,
            path=path,
            url=f"{self._base_url}{path}",
            params=params,
            json_data=body,
            headers=dict(opts.headers or {}),
            timeout=opts.timeout,
            signature=signature,
        )
        request_data = await self._middleware.run_request(request_data)

        try:
            response, attempts = await self._retry_policy.execute(
                partial(self._send_once, request_data), config=retry_config
            )
        except RequestweaveError as e:
            attempts = e.attempts
            error = await self._middleware.run_error(e)
            return Failed(error=error, attempts=attempts)

        try:
            response = await self._middleware.run_response(response)
            payload = self._response_unwrapper.unwrap(self._parse_body(response))
        except Exception as e:
            logger.exception(f"Unexpected error processing response for {method} {path}: {e}")
            error = RequestweaveError(
                f"An unexpected error occurred while processing the response: {e}",
                status=HTTPStatus.INTERNAL_SERVER_ERROR.value,
                response=response,
            )
            return Failed(error=await self._middleware.run_error(error), attempts=attempts)

        if cacheable and self._cache.enabled:
            self._cache.store(signature, payload, path=path)

        return Transported(response=response, payload=payload, attempts=attempts)

    async def _send_once(self, request_data: RequestData, attempt: int) -> httpx.Response:
        """Execute a single transport attempt.

        Raises:
            APIError: For HTTP error responses (4xx/5xx).
            ApplicationError: For a 2xx body reporting ``success: false``.
            TimeoutError: If the attempt times out.
            NetworkError: If no response was received.
            RequestweaveError: If the request cannot be built, and for other
                unexpected errors.
        """
        request_data.attempt = attempt
        try:
            request = request_data.build_request(self._http_client)
        except Exception as e:
            logger.exception(
                f"Failed to build request {request_data.method} {request_data.url}: {e}"
            )
            raise RequestweaveError(
                f"Failed to build request {request_data.method} {request_data.url}: {e}"
            ) from e

        try:
            logger.debug(f"Sending request (attempt {attempt}): {request.method} {request.url}")
            logger.trace(f"Request Headers: {request.headers}")
            response = await self._http_client.send(request)
            logger.debug(f"Received response: {response.status_code} for {request.url}")
        except httpx.TimeoutException as e:
            logger.error(f"Request timed out: {request.url}")
            raise TimeoutError("Request timed out", request=request) from e
        except httpx.RequestError as e:
            logger.error(f"Network error occurred for {request.url}: {e}")
            raise NetworkError(
                f"Network error for {request.url}: {e}", request=request
            ) from e

        try:
            body = self._parse_body(response)
            if response.status_code >= HTTPStatus.BAD_REQUEST:
                raise APIError.from_response(
                    response, self._response_unwrapper.error_message(body)
                )
            if self._response_unwrapper.is_failure(body):
                raise ApplicationError(
                    self._response_unwrapper.error_message(body)
                    or default_error_message(None),
                    response=response,
                    request=request,
                )
        except RequestweaveError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error handling response from {request.url}: {e}")
            raise RequestweaveError(
                f"An unexpected error occurred during request execution: {e}",
                request=request,
            ) from e
        return response

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _request_id(
        response: httpx.Response | None, request: httpx.Request | None
    ) -> str | None:
        if response is not None:
            if request_id := response.headers.get(REQUEST_ID_HEADER):
                return request_id
            try:
                request = response.request
            except RuntimeError:
                pass
        if isinstance(request, httpx.Request):
            return request.headers.get(REQUEST_ID_HEADER)
        return None

    def _to_envelope(self, outcome: Outcome) -> ResponseEnvelope[Any]:
        """Fold an outcome into the response envelope."""
        # Each envelope gets its own copy; cache entries and coalesced
        # waiters must not share mutable payloads with callers.
        if isinstance(outcome, CacheHit):
            return ResponseEnvelope(
                data=copy.deepcopy(outcome.payload),
                status=HTTPStatus.OK.value,
                metadata=EnvelopeMetadata(cached=True, attempts=0),
            )

        metadata = EnvelopeMetadata(attempts=outcome.attempts)
        if isinstance(outcome, Transported):
            if request_id := self._request_id(outcome.response, None):
                metadata.request_id = request_id
            return ResponseEnvelope(
                data=copy.deepcopy(outcome.payload),
                status=outcome.response.status_code,
                metadata=metadata,
            )

        error = outcome.error
        if request_id := self._request_id(error.response, error.request):
            metadata.request_id = request_id
        return ResponseEnvelope(
            data=None,
            error=error.message or default_error_message(error.status),
            status=error.envelope_status,
            metadata=metadata,
        )

    # --- Lifecycle ---

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._should_close_client and not self._http_client.is_closed:
            await self._http_client.aclose()
            logger.info(f"ApiClient internal HTTP client closed. Client ID: {id(self)}.")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        await self.aclose()


def create_client(
    settings: ClientSettings | None = None,
    middlewares: Iterable[Middleware] = (),
    *,
    cache: CacheConfig | Mapping[str, Any] | None = None,
    retry: RetryConfig | Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> ApiClient:
    """Build an ApiClient and apply partial cache and retry configuration.

    Args:
        settings: Client settings. Defaults to ``get_settings()``.
        middlewares: Extra middleware, run after the defaults.
        cache: Partial cache configuration applied after construction.
        retry: Partial retry configuration applied after construction.
        **kwargs: Forwarded to ``ApiClient``.
    """
    client = ApiClient(settings, middlewares=middlewares, **kwargs)
    if cache is not None:
        client.set_cache_config(cache)
    if retry is not None:
        client.set_retry_config(retry)
    return client
