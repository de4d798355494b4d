"""
Centralized Pydantic models for stacview
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

TILE_ROLES = {"tiles", "data"}

DateInput = Union[datetime, date, str]


class SearchStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class DisplayMode(str, Enum):
    IMAGERY = "imagery"
    EXTENT_ONLY = "extent_only"


class DateRange(BaseModel):
    """Raw date picker values, either endpoint optional"""

    start: Optional[DateInput] = None
    end: Optional[DateInput] = None


class SearchFilter(BaseModel):
    """Filter state as edited by the operator"""

    collections: set[str] = Field(default_factory=set)
    date_range: DateRange = Field(default_factory=DateRange)
    aoi: Optional[dict[str, Any]] = None
    bbox: Optional[tuple[float, float, float, float]] = None


class SearchRequest(BaseModel):
    """A STAC API item search request body"""

    limit: int = 100
    bbox: Optional[list[float]] = None
    intersects: Optional[dict[str, Any]] = None
    datetime: Optional[str] = None
    collections: Optional[list[str]] = None
    next: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """Wire form: only the fields that are set."""
        payload: dict[str, Any] = {"limit": self.limit}
        for field in ("bbox", "intersects", "datetime", "collections", "next"):
            value = getattr(self, field)
            if value is not None:
                payload[field] = value
        return payload


class Asset(BaseModel):
    """Represents an asset of a STAC item"""

    href: str
    roles: set[str] = Field(default_factory=set)
    tile_min_zoom: Optional[int] = None
    tile_max_zoom: Optional[int] = None

    @property
    def is_tile_asset(self) -> bool:
        return bool(self.roles & TILE_ROLES)

    @classmethod
    def from_stac(cls, asset: dict[str, Any]) -> "Asset":
        return cls(
            href=asset.get("href", ""),
            roles=set(asset.get("roles") or []),
            tile_min_zoom=asset.get("tiles:min_zoom"),
            tile_max_zoom=asset.get("tiles:max_zoom"),
        )


class ItemProperties(BaseModel):
    model_config = ConfigDict(extra="allow")

    datetime: Optional[str] = None
    description: Optional[str] = None


class CatalogItem(BaseModel):
    """A single STAC item from a search response"""

    id: str
    collection: Optional[str] = None
    geometry: Optional[dict[str, Any]] = None
    bbox: Optional[list[float]] = None
    properties: ItemProperties = Field(default_factory=ItemProperties)
    assets: dict[str, Asset] = Field(default_factory=dict)

    @classmethod
    def from_stac(cls, feature: dict[str, Any]) -> "CatalogItem":
        """Build an item from a STAC Item feature as returned by /search"""
        return cls(
            id=feature["id"],
            collection=feature.get("collection"),
            geometry=feature.get("geometry"),
            bbox=feature.get("bbox"),
            properties=ItemProperties(**(feature.get("properties") or {})),
            assets={key: Asset.from_stac(value) for key, value in (feature.get("assets") or {}).items()},
        )


class CollectionSummary(BaseModel):
    """Represents a summary of a STAC collection"""

    id: str
    title: Optional[str] = None
    description: Optional[str] = None

    @property
    def label(self) -> str:
        return self.title or self.id


class SearchResponse(BaseModel):
    items: list[CatalogItem] = Field(default_factory=list)
    next: Optional[str] = None

    @classmethod
    def from_stac(cls, body: dict[str, Any]) -> "SearchResponse":
        """Parse a FeatureCollection; the continuation token comes from `next` or a rel=next link"""
        next_token = body.get("next")
        if next_token is None:
            for link in body.get("links") or []:
                if link.get("rel") == "next":
                    next_token = (link.get("body") or {}).get("next") or link.get("href")
                    break
        return cls(
            items=[CatalogItem.from_stac(feature) for feature in body.get("features") or []],
            next=next_token,
        )


class SearchResultState(BaseModel):
    items: list[CatalogItem] = Field(default_factory=list)
    next_token: Optional[str] = None
    status: SearchStatus = SearchStatus.IDLE
    error_message: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.next_token is not None

    def find(self, item_id: Optional[str]) -> Optional[CatalogItem]:
        if item_id is None:
            return None
        for item in self.items:
            if item.id == item_id:
                return item
        return None


class CollectionState(BaseModel):
    collections: list[CollectionSummary] = Field(default_factory=list)
    selected_collection: Optional[CollectionSummary] = None
    status: SearchStatus = SearchStatus.IDLE
    error_message: Optional[str] = None


class InteractionState(BaseModel):
    """Local view state: selection, hover and display options"""

    selected_item_id: Optional[str] = None
    hovered_item_id: Optional[str] = None
    display_mode: DisplayMode = DisplayMode.IMAGERY
    show_all_extents: bool = True
    tile_load_pending: bool = False

    def clear_selection(self) -> None:
        self.selected_item_id = None
        self.hovered_item_id = None
        self.tile_load_pending = False


class TileLayerSpec(BaseModel):
    """Everything the map surface needs to add a tile layer"""

    url: str
    min_zoom: int = 0
    max_zoom: int = 18
    opacity: float = 1.0
    z_index: int = 1000
    tms: bool = False
    cross_origin: bool = True
    attribution: str = ""


class OutlineStyle(BaseModel):
    model_config = ConfigDict(frozen=True)

    color: str = "#3388ff"
    weight: int = 2
    opacity: float = 0.7
    fill: bool = False
    dash_array: Optional[str] = None


def item_summary(item: CatalogItem) -> dict[str, Optional[str]]:
    """Popup / list-entry summary of an item"""
    return {
        "id": item.id,
        "collection": item.collection or "N/A",
        "date": item.properties.datetime[:10] if item.properties.datetime else "N/A",
        "description": item.properties.description,
    }
