"""Ordered request/response/error middleware.

A ``MiddlewarePipeline`` holds ``Middleware`` entries, each optionally
supplying three hooks. Every phase runs the hooks in registration order (no
reversal on the way back) and each hook sees the previous hook's output.
The entry list is snapshotted at the start of a phase, so adding or removing
middleware while a call is in flight never disturbs that call.
"""

import inspect
from collections.abc import Awaitable, Callable, Iterable, Iterator
from http import HTTPStatus
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict

from .auth import CredentialProvider
from .exceptions import RequestweaveError
from .log_config import logger
from .types import ErrorHook, RequestData, RequestHook, ResponseHook

UnauthorizedSignal = Callable[[], None | Awaitable[None]]
"""Callback raised on a 401, e.g. to send the user to the login surface."""


class Middleware(BaseModel):
    """A pipeline entry. Any of the hooks may be omitted."""

    name: str | None = None
    on_request: RequestHook | None = None
    on_response: ResponseHook | None = None
    on_error: ErrorHook | None = None

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def __str__(self) -> str:
        return self.name or f"Middleware@{id(self):x}"


class MiddlewarePipeline:
    """Ordered sequence of middleware entries."""

    def __init__(self, middlewares: Iterable[Middleware] = ()):
        self._entries: list[Middleware] = list(middlewares)

    @property
    def entries(self) -> tuple[Middleware, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self.entries)

    def add(self, middleware: Middleware) -> None:
        """Append ``middleware``; it runs after every entry already registered."""
        self._entries.append(middleware)
        logger.debug(f"Middleware added: {middleware}")

    def remove(self, middleware: Middleware) -> bool:
        """Remove ``middleware`` (matched by identity).

        Returns:
            bool: Whether the entry was registered.
        """
        remaining = [entry for entry in self._entries if entry is not middleware]
        removed = len(remaining) != len(self._entries)
        self._entries = remaining
        if removed:
            logger.debug(f"Middleware removed: {middleware}")
        return removed

    async def run_request(self, request: RequestData) -> RequestData:
        return await self._run_phase("on_request", request)

    async def run_response(self, response: httpx.Response) -> httpx.Response:
        return await self._run_phase("on_response", response)

    async def run_error(self, error: RequestweaveError) -> RequestweaveError:
        return await self._run_phase("on_error", error)

    async def _run_phase(self, hook_name: str, value: Any) -> Any:
        entries = tuple(self._entries)
        for middleware in entries:
            hook = getattr(middleware, hook_name)
            if hook is None:
                continue
            try:
                result = hook(value)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.exception(
                    f"Error executing {hook_name} hook of {middleware}: {e}"
                )
                continue
            if result is not None:
                value = result
        return value


def auth_middleware(
    credentials: CredentialProvider,
    on_unauthorized: UnauthorizedSignal | None = None,
) -> Middleware:
    """Builds the middleware that owns bearer-token handling.

    The request hook injects ``Authorization: Bearer <token>`` when the
    provider has a token. The error hook recognizes a 401, clears the stored
    credentials and fires ``on_unauthorized``.
    """

    def inject_token(request: RequestData) -> RequestData:
        token = credentials.get_token()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        return request

    async def handle_unauthorized(error: RequestweaveError) -> RequestweaveError:
        if error.status == HTTPStatus.UNAUTHORIZED:
            logger.warning("Received 401 Unauthorized; clearing stored credentials.")
            credentials.clear_token()
            if on_unauthorized is not None:
                signal = on_unauthorized()
                if inspect.isawaitable(signal):
                    await signal
        return error

    return Middleware(
        name="auth", on_request=inject_token, on_error=handle_unauthorized
    )


def logging_middleware() -> Middleware:
    """Builds a middleware that logs every request, response and error."""

    def log_request(request: RequestData) -> None:
        logger.info(f"[API Request] {request.method.upper()} {request.url}")
        logger.debug(f"Params: {request.params} Body: {request.json_data}")

    def log_response(response: httpx.Response) -> None:
        logger.info(f"[API Response] {response.status_code} {response.request.url}")

    def log_error(error: RequestweaveError) -> None:
        request = error.request
        target = f"{request.method} {request.url}" if request is not None else "N/A"
        logger.error(f"[API Error] {target} status={error.status}: {error.message}")

    return Middleware(
        name="logging",
        on_request=log_request,
        on_response=log_response,
        on_error=log_error,
    )
