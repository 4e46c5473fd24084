"""Resource mixins built on the ApiClient.

This module provides reusable base classes and mixins for the usual CRUD
operations against one REST collection (``/suppliers``, ``/orders`` ...).
Reads go through the client's cache and deduplication; successful writes
invalidate the cached reads under the collection path, so a list fetched
after a create never serves the pre-create payload.

The mixins are composable: a concrete resource client inherits from the ones
it needs.
"""

from typing import TYPE_CHECKING, Any, Protocol

from pydantic import BaseModel

from .exceptions import ConfigurationError
from .log_config import logger
from .models import ResponseEnvelope

if TYPE_CHECKING:
    from .client import ApiClient


class ResourceClientProtocol(Protocol):
    """Interface the mixins expect from the class they are mixed into."""

    _api_client: "ApiClient"
    _entity_path: str
    _entity_model: type[BaseModel] | None

    def _item_path(self, entity_id: str | int) -> str: ...

    def _parse_entity(self, envelope: ResponseEnvelope[Any]) -> ResponseEnvelope[Any]: ...

    def _invalidate(self, envelope: ResponseEnvelope[Any]) -> None: ...


class BaseResourceClient:
    """Base class for all resource clients.

    Attributes:
        _api_client: The ``ApiClient`` used for making requests.
        _entity_path: The collection path (e.g., "suppliers"). Must be defined
            by concrete subclasses.
        _entity_model: Optional Pydantic model for a single entity. If
            provided, ``get``, ``create`` and ``update`` validate the envelope
            data into it; ``list`` validates each item of a list payload.
    """

    _entity_path: str = ""
    _entity_model: type[BaseModel] | None = None

    def __init__(self, api_client: "ApiClient"):
        if not self._entity_path:
            raise ConfigurationError(
                f"{self.__class__.__name__} must define _entity_path"
            )
        self._api_client = api_client
        logger.debug(f"{self.__class__.__name__} initialized")

    def _item_path(self, entity_id: str | int) -> str:
        return f"{self._entity_path.rstrip('/')}/{entity_id}"

    def _parse_entity(self, envelope: ResponseEnvelope[Any]) -> ResponseEnvelope[Any]:
        """Validate envelope data into ``_entity_model``; keep raw data on failure."""
        if self._entity_model is None or envelope.data is None:
            return envelope
        try:
            if isinstance(envelope.data, list):
                parsed: Any = [
                    self._entity_model.model_validate(item) for item in envelope.data
                ]
            else:
                parsed = self._entity_model.model_validate(envelope.data)
        except Exception as e:
            logger.warning(
                f"Failed to parse {self._entity_path} data with {self._entity_model.__name__}: {e}. "
                "Returning raw data."
            )
            return envelope
        return envelope.model_copy(update={"data": parsed})

    def _invalidate(self, envelope: ResponseEnvelope[Any]) -> None:
        if envelope.ok:
            self._api_client.invalidate_cache(self._entity_path)


class ListableMixin:
    """Mixin that provides ``list()`` for a collection."""

    async def list(
        self: ResourceClientProtocol, params: dict[str, Any] | None = None
    ) -> ResponseEnvelope[Any]:
        """Fetch the collection, optionally filtered by query parameters."""
        logger.info(f"Listing {self._entity_path} with params {params}")
        envelope = await self._api_client.get(self._entity_path, params=params)
        return self._parse_entity(envelope)


class GettableMixin:
    """Mixin that provides ``get()`` for a single entity."""

    async def get(
        self: ResourceClientProtocol, entity_id: str | int
    ) -> ResponseEnvelope[Any]:
        """Fetch one entity by its ID."""
        logger.info(f"Fetching {self._entity_path} entity with ID: {entity_id}")
        envelope = await self._api_client.get(self._item_path(entity_id))
        return self._parse_entity(envelope)


class CreatableMixin:
    """Mixin that provides ``create()``; invalidates cached reads on success."""

    async def create(
        self: ResourceClientProtocol, payload: BaseModel | dict[str, Any]
    ) -> ResponseEnvelope[Any]:
        body = (
            payload.model_dump(exclude_none=True, by_alias=True)
            if isinstance(payload, BaseModel)
            else payload
        )
        envelope = await self._api_client.post(self._entity_path, body)
        self._invalidate(envelope)
        return self._parse_entity(envelope)


class UpdatableMixin:
    """Mixin that provides ``update()``; invalidates cached reads on success."""

    async def update(
        self: ResourceClientProtocol,
        entity_id: str | int,
        payload: BaseModel | dict[str, Any],
    ) -> ResponseEnvelope[Any]:
        body = (
            payload.model_dump(exclude_none=True, by_alias=True)
            if isinstance(payload, BaseModel)
            else payload
        )
        envelope = await self._api_client.put(self._item_path(entity_id), body)
        self._invalidate(envelope)
        return self._parse_entity(envelope)


class DeletableMixin:
    """Mixin that provides ``delete()``; invalidates cached reads on success."""

    async def delete(
        self: ResourceClientProtocol, entity_id: str | int
    ) -> ResponseEnvelope[Any]:
        envelope = await self._api_client.delete(self._item_path(entity_id))
        self._invalidate(envelope)
        return envelope
