# requestweave/models.py
"""Response-side models and protocols for requestweave.

This module defines the uniform ``ResponseEnvelope`` returned by every client
call, the ``ResponseUnwrapper`` protocol that adapts a backend's JSON body to
the envelope, and the three-way outcome a call resolves to before it is
folded into an envelope.
"""

import random
import string
import time
from typing import Any, Generic, Literal, Protocol, TypeVar, runtime_checkable

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .exceptions import RequestweaveError

T = TypeVar("T")

_REQUEST_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_request_id() -> str:
    """Short random base-36 token used when the backend sends no request id."""
    return "".join(random.choices(_REQUEST_ID_ALPHABET, k=7))


def now_ms() -> int:
    return int(time.time() * 1000)


class EnvelopeMetadata(BaseModel):
    """Metadata attached to every envelope.

    Extra keys are allowed so middleware or subclasses can attach more context.
    """

    timestamp: int = Field(default_factory=now_ms)
    request_id: str = Field(default_factory=generate_request_id)
    cached: bool = False
    attempts: int = 0

    model_config = ConfigDict(extra="allow")


class ResponseEnvelope(BaseModel, Generic[T]):
    """The only shape the client returns, whatever the outcome."""

    data: T | None = None
    error: str | None = None
    status: int
    metadata: EnvelopeMetadata = Field(default_factory=EnvelopeMetadata)

    @property
    def ok(self) -> bool:
        return self.error is None


@runtime_checkable
class ResponseUnwrapper(Protocol):
    """Protocol for adapting a backend's JSON body to the envelope.

    The client calls ``is_failure`` on every 2xx body; a failing body becomes
    an ``ApplicationError`` carrying ``error_message``. Otherwise ``unwrap``
    produces the envelope's ``data``.
    """

    def unwrap(self, body: Any) -> Any:
        """Extract the payload that becomes ``ResponseEnvelope.data``."""
        ...

    def is_failure(self, body: Any) -> bool:
        """Whether a 2xx body reports an application-level failure."""
        ...

    def error_message(self, body: Any) -> str | None:
        """Extract a human readable error message, if the body carries one."""
        ...


class SuccessEnvelopeUnwrapper:
    """Unwrapper for backends answering ``{"success", "message", "data"}``.

    Bodies without a ``success`` key are legacy responses and pass through
    unchanged.

    Example:
        ```json
        {"success": true, "message": "OK", "data": {"id": 1}}
        ```
        unwraps to ``{"id": 1}``.
    """

    def unwrap(self, body: Any) -> Any:
        if isinstance(body, dict) and "success" in body:
            return body.get("data")
        return body

    def is_failure(self, body: Any) -> bool:
        return isinstance(body, dict) and body.get("success") is False

    def error_message(self, body: Any) -> str | None:
        if isinstance(body, dict):
            message = body.get("message")
            if isinstance(message, str) and message:
                return message
        return None


class CacheHit(BaseModel):
    """A fresh cache entry answered the call; no transport was involved."""

    kind: Literal["cache_hit"] = "cache_hit"
    payload: Any


class Transported(BaseModel):
    """The transport answered successfully, possibly after retries."""

    kind: Literal["transported"] = "transported"
    response: httpx.Response
    payload: Any
    attempts: int

    model_config = ConfigDict(arbitrary_types_allowed=True)


class Failed(BaseModel):
    """The call failed; ``error`` has already passed the error hooks."""

    kind: Literal["failed"] = "failed"
    error: RequestweaveError
    attempts: int

    model_config = ConfigDict(arbitrary_types_allowed=True)


Outcome = CacheHit | Transported | Failed
