"""
Map layer synchronization

The overlays that should be on the map are computed from state alone
(``desired_overlays``); ``MapLayerSynchronizer.render`` then diffs that set against
the layers it added earlier, keyed by item id and role, and applies the minimal
add / remove / restyle calls to the map surface.

Overlay keys:

- ``extent:<id>``          outline of every result when all extents are shown
- ``hover:<id>``           dashed preview of the hovered, unselected item
- ``active-outline:<id>``  outline of the selected item
- ``active-tiles:<id>``    tile layer of the selected item
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from .config import Settings, get_settings
from .geometry import geometry_bounds, is_valid_bbox, validate_geometry
from .models import CatalogItem, DisplayMode, InteractionState, OutlineStyle, SearchFilter, TileLayerSpec
from .tiles import resolve_tile_layer

logger = logging.getLogger(__name__)

OUTLINE = "outline"
TILES = "tiles"

EXTENT_STYLE = OutlineStyle(color="#3388ff", weight=2, opacity=0.7)
EXTENT_HOVER_STYLE = OutlineStyle(color="#ff6600", weight=3, opacity=1.0)
EXTENT_SELECTED_STYLE = OutlineStyle(color="#ff0000", weight=3, opacity=1.0)
PREVIEW_STYLE = OutlineStyle(color="#3388ff", weight=2, opacity=0.9, dash_array="5, 5")
ACTIVE_OUTLINE_STYLE = OutlineStyle(color="#ff0000", weight=2, opacity=0.8)


class MapSurface(Protocol):
    """Primitives provided by the map rendering library"""

    def add_outline(self, key: str, geometry: dict, style: OutlineStyle) -> Any: ...

    def add_tile_layer(self, key: str, spec: TileLayerSpec) -> Any: ...

    def remove_layer(self, handle: Any) -> None: ...

    def set_style(self, handle: Any, style: OutlineStyle) -> None: ...

    def fit_bounds(self, bbox: tuple[float, float, float, float], padding: int) -> None: ...

    def add_to_edit_group(self, handle: Any) -> None: ...

    def remove_from_edit_group(self, handle: Any) -> None: ...

    def hide_tile(self, handle: Any, tile: Any) -> None: ...


@dataclass
class OverlaySpec:
    kind: str
    item_id: str
    geometry: Optional[dict] = None
    style: Optional[OutlineStyle] = None
    tile_layer: Optional[TileLayerSpec] = None

    def same_layer(self, other: "OverlaySpec") -> bool:
        """True if other can be reached from self by restyling alone"""
        return (self.kind, self.item_id, self.geometry, self.tile_layer) == (
            other.kind,
            other.item_id,
            other.geometry,
            other.tile_layer,
        )


def _extent_style(item: CatalogItem, selected: Optional[CatalogItem], hovered: Optional[CatalogItem]) -> OutlineStyle:
    if item is selected:
        return EXTENT_SELECTED_STYLE
    if item is hovered:
        return EXTENT_HOVER_STYLE
    return EXTENT_STYLE


def desired_overlays(
    items: list[CatalogItem], interaction: InteractionState, settings: Settings
) -> dict[str, OverlaySpec]:
    """
    The complete overlay set for the given results and interaction state

    Selection and hover ids that do not match a current item are treated as absent.
    Items without geometry never produce an outline.
    """
    by_id = {item.id: item for item in items}
    selected = by_id.get(interaction.selected_item_id) if interaction.selected_item_id else None
    hovered = by_id.get(interaction.hovered_item_id) if interaction.hovered_item_id else None

    overlays: dict[str, OverlaySpec] = {}

    if interaction.show_all_extents:
        for item in items:
            if not item.geometry:
                continue
            overlays[f"extent:{item.id}"] = OverlaySpec(
                kind=OUTLINE, item_id=item.id, geometry=item.geometry, style=_extent_style(item, selected, hovered)
            )

    if hovered is not None and hovered is not selected and hovered.geometry:
        overlays[f"hover:{hovered.id}"] = OverlaySpec(
            kind=OUTLINE, item_id=hovered.id, geometry=hovered.geometry, style=PREVIEW_STYLE
        )

    if selected is not None:
        tile_layer = None
        if interaction.display_mode == DisplayMode.IMAGERY:
            tile_layer = resolve_tile_layer(
                selected,
                page_scheme=settings.page_scheme,
                page_origin=settings.page_origin,
                extension=settings.tile_extension,
                default_min_zoom=settings.default_min_zoom,
                default_max_zoom=settings.default_max_zoom,
            )
        if tile_layer is not None:
            overlays[f"active-tiles:{selected.id}"] = OverlaySpec(
                kind=TILES, item_id=selected.id, tile_layer=tile_layer
            )
        if selected.geometry and (tile_layer is None or settings.outline_with_imagery):
            overlays[f"active-outline:{selected.id}"] = OverlaySpec(
                kind=OUTLINE, item_id=selected.id, geometry=selected.geometry, style=ACTIVE_OUTLINE_STYLE
            )

    return overlays


def item_bounds(item: CatalogItem) -> Optional[tuple[float, float, float, float]]:
    """Item bbox if it is well formed, otherwise the bounds of its geometry"""
    if is_valid_bbox(item.bbox):
        return tuple(float(v) for v in item.bbox)
    return geometry_bounds(item.geometry)


@dataclass
class TileLoadTracker:
    """
    Counts tile fetches of the active tile layer

    Errored tiles count as settled. Events from any other layer handle are ignored,
    so a replaced or removed layer can no longer move the counts.
    """

    handle: Any = None
    issued: int = 0
    loaded: int = 0
    errored: int = 0
    view_loaded: bool = False

    def start(self, handle: Any) -> None:
        self.handle = handle
        self.issued = self.loaded = self.errored = 0
        self.view_loaded = False

    def stop(self) -> None:
        self.start(None)

    def attends(self, handle: Any) -> bool:
        return self.handle is not None and handle is self.handle

    @property
    def settled(self) -> int:
        return self.loaded + self.errored

    @property
    def pending(self) -> bool:
        if self.handle is None or self.view_loaded:
            return False
        return self.issued == 0 or self.settled < self.issued


@dataclass
class _Layer:
    spec: OverlaySpec
    handle: Any


class MapLayerSynchronizer:
    """Keeps the map surface in line with the result list and interaction state"""

    def __init__(self, surface: MapSurface, interaction: InteractionState, settings: Optional[Settings] = None):
        self.surface = surface
        self.interaction = interaction
        self.settings = settings or get_settings()
        self.tiles = TileLoadTracker()
        self._items: list[CatalogItem] = []
        self._layers: dict[str, _Layer] = {}
        self._fitted_item_id: Optional[str] = None

    def item_for_handle(self, handle: Any) -> Optional[str]:
        for layer in self._layers.values():
            if layer.handle is handle:
                return layer.spec.item_id
        return None

    def render(self, items: Optional[list[CatalogItem]] = None) -> None:
        """Reconcile the map with the desired overlay set. Passing items replaces the result list."""
        if items is not None:
            self._items = list(items)
        desired = desired_overlays(self._items, self.interaction, self.settings)

        for key in list(self._layers):
            target = desired.get(key)
            if target is None or not self._layers[key].spec.same_layer(target):
                self._remove(key)

        for key, target in desired.items():
            layer = self._layers.get(key)
            if layer is None:
                self._add(key, target)
            elif layer.spec.style != target.style:
                self.surface.set_style(layer.handle, target.style)
                layer.spec = target

        self._fit_to_selection()
        self.interaction.tile_load_pending = self.tiles.pending

    def clear(self) -> None:
        for key in list(self._layers):
            self._remove(key)
        self._items = []
        self._fitted_item_id = None
        self.interaction.tile_load_pending = False

    def _add(self, key: str, spec: OverlaySpec) -> None:
        if spec.kind == TILES:
            handle = self.surface.add_tile_layer(key, spec.tile_layer)
            self.tiles.start(handle)
            logger.info(f"Added tile layer for {spec.item_id}: {spec.tile_layer.url}")
        else:
            handle = self.surface.add_outline(key, spec.geometry, spec.style)
        self._layers[key] = _Layer(spec=spec, handle=handle)

    def _remove(self, key: str) -> None:
        layer = self._layers.pop(key)
        if self.tiles.attends(layer.handle):
            self.tiles.stop()
        self.surface.remove_layer(layer.handle)

    def _fit_to_selection(self) -> None:
        selected_id = self.interaction.selected_item_id
        item = next((i for i in self._items if i.id == selected_id), None) if selected_id else None
        if item is None:
            self._fitted_item_id = None
            return
        if item.id == self._fitted_item_id:
            return
        self._fitted_item_id = item.id
        bounds = item_bounds(item)
        if bounds is None:
            logger.debug(f"No usable bounds for {item.id}, leaving view unchanged")
            return
        self.surface.fit_bounds(bounds, self.settings.fit_padding)

    # Interaction events

    def handle_click(self, item_id: Optional[str]) -> None:
        self.interaction.selected_item_id = item_id
        self.render()

    def handle_hover(self, item_id: str) -> None:
        self.interaction.hovered_item_id = item_id
        self.render()

    def handle_hover_exit(self, item_id: str) -> None:
        if self.interaction.hovered_item_id == item_id:
            self.interaction.hovered_item_id = None
            self.render()

    # Tile events of the active layer

    def on_tile_loading(self, handle: Any) -> None:
        if not self.tiles.attends(handle):
            return
        self.tiles.issued += 1
        self.tiles.view_loaded = False
        self.interaction.tile_load_pending = self.tiles.pending

    def on_tile_loaded(self, handle: Any) -> None:
        if not self.tiles.attends(handle):
            return
        self.tiles.loaded += 1
        self.interaction.tile_load_pending = self.tiles.pending

    def on_tile_error(self, handle: Any, tile: Any = None) -> None:
        if not self.tiles.attends(handle):
            return
        logger.warning(f"Tile loading error for {tile!r}")
        self.surface.hide_tile(handle, tile)
        self.tiles.errored += 1
        self.interaction.tile_load_pending = self.tiles.pending

    def on_tile_layer_load(self, handle: Any) -> None:
        """All tiles of the current view have been fetched"""
        if not self.tiles.attends(handle):
            return
        self.tiles.view_loaded = True
        self.interaction.tile_load_pending = False


class AoiOverlay:
    """
    The single drawn area of interest

    A newly drawn shape retires the previous one from both the edit group and the
    map. The validated geometry is written to the search filter.
    """

    def __init__(self, surface: MapSurface, search_filter: SearchFilter):
        self.surface = surface
        self.search_filter = search_filter
        self.handle: Any = None

    def _retire(self) -> None:
        if self.handle is None:
            return
        self.surface.remove_from_edit_group(self.handle)
        self.surface.remove_layer(self.handle)
        self.handle = None

    def _store(self, geometry: Any) -> None:
        self.search_filter.aoi = validate_geometry(geometry)
        if self.search_filter.aoi is None:
            logger.warning("Drawn shape is not a usable geometry, searching without an AOI")

    def on_created(self, geometry: Any, handle: Any) -> None:
        if handle is not self.handle:
            self._retire()
        self.handle = handle
        self.surface.add_to_edit_group(handle)
        self._store(geometry)

    def on_edited(self, geometry: Any) -> None:
        self._store(geometry)

    def on_deleted(self) -> None:
        # the drawing tool has already taken the shape off the map
        if self.handle is not None:
            self.surface.remove_from_edit_group(self.handle)
            self.handle = None
        self.search_filter.aoi = None

    def clear(self) -> None:
        self._retire()
        self.search_filter.aoi = None
