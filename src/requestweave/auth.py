"""Credential providers consumed by the auth middleware.

The client never reaches into ambient storage for tokens. A provider
implementing ``CredentialProvider`` is passed in at construction and the auth
middleware reads from it before each call and clears it on a 401.
"""

from typing import Protocol, runtime_checkable

from .exceptions import ConfigurationError
from .log_config import logger


@runtime_checkable
class CredentialProvider(Protocol):
    """Protocol for the external credential store the client depends on.

    How the token is persisted (browser storage, keyring, a file) is the
    provider's business; the client only needs to read and clear it.
    """

    def get_token(self) -> str | None:
        """Returns the current bearer token, or None when signed out."""
        ...

    def clear_token(self) -> None:
        """Forgets the current token. Must be idempotent."""
        ...


class InMemoryCredentialStore:
    """Implements CredentialProvider by holding the token in memory.

    Attributes:
        _token: The current bearer token, if any.
        clear_count: How many times ``clear_token`` found a token to drop.
    """

    def __init__(self, token: str | None = None):
        self._token: str | None = token or None
        self.clear_count = 0
        logger.debug("InMemoryCredentialStore initialized.")

    def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str) -> None:
        """Stores a new bearer token.

        Raises:
            ConfigurationError: If the token is empty.
        """
        if not token:
            raise ConfigurationError("InMemoryCredentialStore requires a non-empty token.")
        self._token = token

    def clear_token(self) -> None:
        if self._token is not None:
            self.clear_count += 1
            logger.debug("Stored credentials cleared.")
        self._token = None


class StaticTokenCredentials:
    """Implements CredentialProvider for a pre-issued, long-lived API token.

    Clearing is a no-op apart from a warning: the token is configuration, not
    session state, so a 401 means the token itself is wrong.
    """

    def __init__(self, token: str | None):
        if not token:
            raise ConfigurationError("StaticTokenCredentials requires a non-empty 'token'.")
        self._token: str = token

    def get_token(self) -> str | None:
        return self._token

    def clear_token(self) -> None:
        logger.warning("Backend rejected the static API token; it cannot be cleared.")
