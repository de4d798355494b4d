"""
Search lifecycle: issues requests and owns the authoritative result state
"""

import logging
from typing import Callable, Optional

from .errors import TransportError
from .models import (
    CollectionState,
    InteractionState,
    SearchFilter,
    SearchRequest,
    SearchResponse,
    SearchResultState,
    SearchStatus,
)
from .transport import CatalogTransport

logger = logging.getLogger(__name__)

SEARCH_FAILED = "Failed to search items"
COLLECTIONS_FAILED = "Failed to fetch collections"
COLLECTION_FAILED = "Failed to fetch collection"


def user_message(error: Exception, default: str) -> str:
    if isinstance(error, TransportError) and error.message:
        return error.message
    return default


class SearchOrchestrator:
    """
    Runs item searches and collection lookups against a catalog transport

    Every search gets a sequence number. A completion is applied only if it belongs
    to the most recently issued search, so a slow response to an older search can
    never overwrite newer results. Collection state is kept apart from search state
    and a failure in one never touches the other.
    """

    def __init__(
        self,
        transport: CatalogTransport,
        search_filter: Optional[SearchFilter] = None,
        interaction: Optional[InteractionState] = None,
    ):
        self.transport = transport
        self.search_filter = search_filter if search_filter is not None else SearchFilter()
        self.interaction = interaction if interaction is not None else InteractionState()
        self.results = SearchResultState()
        self.collections = CollectionState()
        self.last_request: Optional[SearchRequest] = None
        self._issued = 0
        self._subscribers: list[Callable[[], None]] = []

    def subscribe(self, callback: Callable[[], None]) -> None:
        """Register a callback run after every state transition"""
        self._subscribers.append(callback)

    def _notify(self) -> None:
        for callback in self._subscribers:
            callback()

    def is_current(self, sequence: int) -> bool:
        return sequence == self._issued

    def begin_search(self, request: SearchRequest) -> int:
        """Mark a new search as in flight and return its sequence number"""
        self._issued += 1
        self.last_request = request
        self.results.status = SearchStatus.LOADING
        self.results.error_message = None
        logger.info(f"Issuing search #{self._issued}: {request.to_payload()}")
        self._notify()
        return self._issued

    def complete_search(self, sequence: int, response: SearchResponse) -> bool:
        """Apply a search response. Returns False if it was superseded and dropped."""
        if not self.is_current(sequence):
            logger.debug(f"Dropping stale response for search #{sequence} (latest is #{self._issued})")
            return False
        self.results = SearchResultState(
            items=list(response.items),
            next_token=response.next,
            status=SearchStatus.READY,
        )
        if self.results.find(self.interaction.selected_item_id) is None:
            self.interaction.clear_selection()
        logger.info(f"Search #{sequence} returned {len(response.items)} items")
        self._notify()
        return True

    def fail_search(self, sequence: int, error: Exception) -> bool:
        """Record a search failure. Returns False if it was superseded and dropped."""
        if not self.is_current(sequence):
            logger.debug(f"Dropping stale failure for search #{sequence}: {error}")
            return False
        message = user_message(error, SEARCH_FAILED)
        logger.error(f"Search #{sequence} failed: {error}")
        self.results = SearchResultState(status=SearchStatus.FAILED, error_message=message)
        self.interaction.clear_selection()
        self._notify()
        return True

    async def search(self, request: SearchRequest) -> SearchResultState:
        sequence = self.begin_search(request)
        try:
            response = await self.transport.search(request)
        except Exception as e:
            self.fail_search(sequence, e)
        else:
            self.complete_search(sequence, response)
        return self.results

    async def next_page(self, limit: Optional[int] = None) -> SearchResultState:
        """
        Continue the last search with the recorded continuation token

        The token belongs to the query that returned it, so the previous request is
        reused as is. Filter edits made since then apply to the next new search only.
        """
        if not self.results.next_token or self.last_request is None:
            return self.results
        update = {"next": self.results.next_token}
        if limit is not None:
            update["limit"] = limit
        request = self.last_request.model_copy(update=update)
        return await self.search(request)

    async def list_collections(self) -> CollectionState:
        self.collections.status = SearchStatus.LOADING
        self.collections.error_message = None
        self._notify()
        try:
            collections = await self.transport.list_collections()
        except Exception as e:
            logger.error(f"Collection listing failed: {e}")
            self.collections.collections = []
            self.collections.status = SearchStatus.FAILED
            self.collections.error_message = user_message(e, COLLECTIONS_FAILED)
        else:
            self.collections.collections = collections
            self.collections.status = SearchStatus.READY
        self._notify()
        return self.collections

    async def get_collection(self, collection_id: str) -> CollectionState:
        self.collections.status = SearchStatus.LOADING
        self.collections.error_message = None
        try:
            collection = await self.transport.get_collection(collection_id)
        except Exception as e:
            logger.error(f"Collection lookup for {collection_id} failed: {e}")
            self.collections.selected_collection = None
            self.collections.status = SearchStatus.FAILED
            self.collections.error_message = user_message(e, COLLECTION_FAILED)
        else:
            self.collections.selected_collection = collection
            self.collections.status = SearchStatus.READY
        self._notify()
        return self.collections

    def clear_error(self) -> None:
        self.results.error_message = None
        self.collections.error_message = None
        self._notify()

    def reset(self) -> None:
        """Clear filter, results, pagination and selection; any in-flight search is abandoned"""
        self._issued += 1
        self.last_request = None
        self.search_filter.collections = set()
        self.search_filter.date_range.start = None
        self.search_filter.date_range.end = None
        self.search_filter.aoi = None
        self.search_filter.bbox = None
        self.results = SearchResultState()
        self.interaction.clear_selection()
        logger.info("Search state reset")
        self._notify()
