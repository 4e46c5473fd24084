"""In-flight request deduplication.

Concurrent calls that share a request signature are coalesced into a single
underlying execution; every caller observes the outcome of that one
execution, success or failure.
"""

import asyncio
import hashlib
import json
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict

from .exceptions import ConfigurationError
from .log_config import logger

T = TypeVar("T")


def generate_signature(
    method: str,
    path: str,
    params: Mapping[str, Any] | None = None,
    body: Any | None = None,
) -> str:
    """Generate a deterministic key from method, path, query parameters and body.

    Parameters and body are serialized as JSON with sorted keys, so deep-equal
    inputs always produce the same key regardless of insertion order. Values
    are keyed by how they go over the wire: ``1`` and ``1.0`` are sent as
    different text and get different keys. Values JSON cannot represent are
    rejected rather than stringified, so two distinct objects never share a
    key just because their ``str()`` matches.

    Args:
        method: HTTP method (e.g., 'GET', 'POST').
        path: Request path relative to the base URL.
        params: Query parameters.
        body: JSON request body.

    Returns:
        str: A hex digest identifying the request.

    Raises:
        ConfigurationError: If params or body are not JSON serializable.
    """
    try:
        key_parts = [
            method.upper(),
            "/" + path.lstrip("/"),
            json.dumps(dict(params or {}), sort_keys=True, separators=(",", ":")),
            json.dumps(body, sort_keys=True, separators=(",", ":")),
        ]
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Request parameters and body must be JSON serializable: {e}"
        ) from e
    return hashlib.md5("|".join(key_parts).encode("utf-8")).hexdigest()


class PendingCall(BaseModel):
    """Bookkeeping for one outstanding coalesced call."""

    handle: asyncio.Future
    started_at: float
    waiters: int = 0

    model_config = ConfigDict(arbitrary_types_allowed=True)


class RequestDeduplicator:
    """Coalesces concurrent calls sharing a signature into one execution.

    The pending record is registered before the work gets a chance to run, so
    callers arriving on the next scheduler tick already find it. Records are
    removed when the work settles. A sweep of records older than
    ``stale_after`` seconds guards against handles that never settle; it runs
    on every ``execute`` and logs a warning when it reclaims anything.

    Attributes:
        _pending: Outstanding calls keyed by signature.
        _stale_after: Age in seconds after which a record counts as leaked.
        _clock: Monotonic time source in seconds, injectable for tests.
    """

    DEFAULT_STALE_AFTER: float = 60.0
    """Default staleness window for the leak sweep, in seconds."""

    generate_signature = staticmethod(generate_signature)

    def __init__(
        self,
        stale_after: float = DEFAULT_STALE_AFTER,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._pending: dict[str, PendingCall] = {}
        self._stale_after = stale_after
        self._clock = clock

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, signature: object) -> bool:
        return signature in self._pending

    def sweep_stale(self) -> int:
        """Drop records older than the staleness window.

        The underlying work is left running; only the bookkeeping is dropped so
        that new callers issue a fresh call.

        Returns:
            int: The number of records reclaimed.
        """
        now = self._clock()
        stale = [
            signature
            for signature, record in self._pending.items()
            if now - record.started_at > self._stale_after
        ]
        for signature in stale:
            self._pending.pop(signature, None)
            logger.warning(
                f"Reclaimed pending call {signature} older than {self._stale_after}s; "
                "its handle never settled"
            )
        return len(stale)

    async def execute(self, signature: str, work: Callable[[], Awaitable[T]]) -> T:
        """Run ``work`` once for all concurrent callers sharing ``signature``.

        Args:
            signature: The request signature.
            work: Zero-argument coroutine function performing the call.

        Returns:
            The result of the single execution of ``work``.

        Raises:
            Whatever ``work`` raised, delivered to every waiting caller.
            asyncio.CancelledError: If this caller is cancelled. The shared
                work is cancelled only once every waiter has gone.
        """
        self.sweep_stale()

        record = self._pending.get(signature)
        if record is None:
            logger.debug(f"Starting new call for signature: {signature}")
            handle = asyncio.ensure_future(work())
            record = PendingCall(handle=handle, started_at=self._clock())
            self._pending[signature] = record
            handle.add_done_callback(
                lambda finished: self._settle(signature, finished)
            )
        else:
            logger.debug(f"Joining in-flight call for signature: {signature}")

        record.waiters += 1
        try:
            return await asyncio.shield(record.handle)
        except asyncio.CancelledError:
            if not record.handle.done() and record.waiters == 1:
                logger.debug(f"Last waiter cancelled, cancelling call {signature}")
                record.handle.cancel()
            raise
        finally:
            record.waiters -= 1

    def _settle(self, signature: str, handle: asyncio.Future) -> None:
        record = self._pending.get(signature)
        # A swept record may have been replaced by a newer call for the same key.
        if record is not None and record.handle is handle:
            del self._pending[signature]
        if not handle.cancelled():
            # Mark the exception retrieved; waiters re-raise it themselves.
            handle.exception()
