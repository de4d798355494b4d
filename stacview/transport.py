"""
Catalog transport: the collaborator that talks to a STAC API
"""

import asyncio
import logging
from typing import Optional, Protocol

import requests
from pystac_client import Client
from pystac_client.exceptions import APIError

from .config import Settings, get_settings
from .errors import TransportError
from .models import CollectionSummary, SearchRequest, SearchResponse

logger = logging.getLogger(__name__)


class CatalogTransport(Protocol):
    async def list_collections(self) -> list[CollectionSummary]: ...

    async def get_collection(self, collection_id: str) -> CollectionSummary: ...

    async def search(self, request: SearchRequest) -> SearchResponse: ...


def format_collection(collection) -> CollectionSummary:
    """Format a pystac Collection into a CollectionSummary"""
    return CollectionSummary(
        id=collection.id,
        title=collection.title,
        description=(collection.description or "")[0:500] or None,
    )


def error_message(response: Optional[requests.Response], default: str) -> str:
    """User-facing message from an error response body, falling back to a default"""
    if response is None:
        return default
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        return body.get("message") or body.get("description") or default
    return default


class HttpCatalogTransport:
    """STAC API transport over HTTP: pystac_client for collections, a plain POST for /search"""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.stac_api_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self._client: Optional[Client] = None

    def _open_client(self) -> Client:
        if self._client is None:
            self._client = Client.open(self.base_url)
        return self._client

    def _list_collections(self) -> list[CollectionSummary]:
        try:
            collections = [format_collection(c) for c in self._open_client().get_collections()]
        except (APIError, requests.RequestException) as e:
            logger.error(f"Failed to fetch collections from {self.base_url}: {e}")
            raise TransportError("Failed to fetch collections") from e
        logger.info(f"Found {len(collections)} collections")
        return collections

    def _get_collection(self, collection_id: str) -> CollectionSummary:
        try:
            collection = self._open_client().get_collection(collection_id)
        except (APIError, requests.RequestException) as e:
            logger.error(f"Failed to fetch collection {collection_id}: {e}")
            raise TransportError("Failed to fetch collection") from e
        return format_collection(collection)

    def _search(self, request: SearchRequest) -> SearchResponse:
        url = f"{self.base_url}/search"
        try:
            response = self.session.post(url, json=request.to_payload(), timeout=self.settings.request_timeout)
            response.raise_for_status()
            body = response.json()
        except requests.HTTPError as e:
            logger.error(f"STAC search error: {e}")
            raise TransportError(
                error_message(e.response, "Failed to search items"), status_code=e.response.status_code
            ) from e
        except (requests.RequestException, ValueError) as e:
            logger.error(f"STAC search error: {e}")
            raise TransportError("Failed to search items") from e
        return SearchResponse.from_stac(body)

    async def list_collections(self) -> list[CollectionSummary]:
        return await asyncio.to_thread(self._list_collections)

    async def get_collection(self, collection_id: str) -> CollectionSummary:
        return await asyncio.to_thread(self._get_collection, collection_id)

    async def search(self, request: SearchRequest) -> SearchResponse:
        return await asyncio.to_thread(self._search, request)
