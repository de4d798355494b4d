"""
Catalog browsing session: filter editing, search, selection and map sync in one place
"""

import logging
from typing import Any, Iterable, Optional

from .config import Settings, get_settings
from .errors import FilterError
from .mapsync import AoiOverlay, MapLayerSynchronizer, MapSurface
from .models import (
    CollectionState,
    DateInput,
    DateRange,
    DisplayMode,
    InteractionState,
    SearchFilter,
    SearchRequest,
    SearchResultState,
)
from .normalizer import build_search_request
from .orchestrator import SearchOrchestrator
from .transport import CatalogTransport

logger = logging.getLogger(__name__)


class CatalogSession:
    """
    Wires user events to state and state to the map

    Every orchestrator transition triggers a render of the map layer synchronizer,
    so the map always reflects the latest issued search.
    """

    def __init__(self, transport: CatalogTransport, surface: MapSurface, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.search_filter = SearchFilter()
        self.interaction = InteractionState()
        self.orchestrator = SearchOrchestrator(transport, self.search_filter, self.interaction)
        self.synchronizer = MapLayerSynchronizer(surface, self.interaction, self.settings)
        self.aoi = AoiOverlay(surface, self.search_filter)
        self.orchestrator.subscribe(self._on_state_change)

    @property
    def results(self) -> SearchResultState:
        return self.orchestrator.results

    @property
    def collections(self) -> CollectionState:
        return self.orchestrator.collections

    def _on_state_change(self) -> None:
        self.synchronizer.render(self.orchestrator.results.items)

    # Filter editing

    def set_collections(self, collection_ids: Iterable[str]) -> None:
        self.search_filter.collections = set(collection_ids)

    def toggle_collection(self, collection_id: str, checked: bool) -> None:
        if checked:
            self.search_filter.collections.add(collection_id)
        else:
            self.search_filter.collections.discard(collection_id)

    def select_all_collections(self) -> None:
        self.set_collections(c.id for c in self.orchestrator.collections.collections)

    def deselect_all_collections(self) -> None:
        self.set_collections([])

    def set_date_range(self, start: Optional[DateInput] = None, end: Optional[DateInput] = None) -> None:
        self.search_filter.date_range.start = start or None
        self.search_filter.date_range.end = end or None

    def set_bbox(self, bbox: Optional[tuple[float, float, float, float]]) -> None:
        self.search_filter.bbox = tuple(bbox) if bbox is not None else None

    def draw_created(self, geometry: Any, handle: Any) -> None:
        self.aoi.on_created(geometry, handle)

    def draw_edited(self, geometry: Any) -> None:
        self.aoi.on_edited(geometry)

    def draw_deleted(self) -> None:
        self.aoi.on_deleted()

    # Search

    def build_request(self, limit: Optional[int] = None) -> SearchRequest:
        """Normalize the filter; an unreadable date drops the datetime constraint"""
        if limit is None:
            limit = self.settings.default_limit
        try:
            return build_search_request(self.search_filter, limit=limit)
        except FilterError as e:
            logger.warning(f"{e}, searching without a date constraint")
            undated = self.search_filter.model_copy(update={"date_range": DateRange()})
            return build_search_request(undated, limit=limit)

    async def search(self, limit: Optional[int] = None) -> SearchResultState:
        return await self.orchestrator.search(self.build_request(limit))

    async def next_page(self) -> SearchResultState:
        return await self.orchestrator.next_page()

    async def load_collections(self) -> CollectionState:
        return await self.orchestrator.list_collections()

    async def load_collection(self, collection_id: str) -> CollectionState:
        return await self.orchestrator.get_collection(collection_id)

    def clear_error(self) -> None:
        self.orchestrator.clear_error()

    def clear(self) -> None:
        """Reset filter, drawn AOI, results and selection together"""
        self.aoi.clear()
        self.orchestrator.reset()

    # Selection and display

    def select_item(self, item_id: Optional[str]) -> None:
        self.synchronizer.handle_click(item_id)

    def hover_item(self, item_id: str) -> None:
        self.synchronizer.handle_hover(item_id)

    def unhover_item(self, item_id: str) -> None:
        self.synchronizer.handle_hover_exit(item_id)

    def set_display_mode(self, mode: DisplayMode) -> None:
        self.interaction.display_mode = mode
        self.synchronizer.render()

    def set_show_all_extents(self, visible: bool) -> None:
        self.interaction.show_all_extents = visible
        self.synchronizer.render()
