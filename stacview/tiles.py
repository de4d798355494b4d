"""
Tile URL templates for item tile assets

Two forms are derived from one asset href:

- the viewer template, ``.../{z}/{x}/{y}.png``, used for the active tile layer
- the exchange template, ``.../{z}/{x}/{-y}.png``, the TMS row convention
  expected by QGIS and ArcGIS XYZ connections
"""

from typing import Optional
from urllib.parse import urlparse

from .models import Asset, CatalogItem, TileLayerSpec

ROW = "{y}"
TMS_ROW = "{-y}"

DEFAULT_MIN_ZOOM = 0
DEFAULT_MAX_ZOOM = 18


def secure_href(href: str, page_scheme: str = "https") -> str:
    """Upgrade http to https when the hosting page is served over https"""
    if href.startswith("http://") and page_scheme == "https":
        return "https://" + href[len("http://") :]
    return href


def _placeholder_path(href: str, row: str, extension: str) -> str:
    base = href if href.endswith("/") else href + "/"
    return f"{base}{{z}}/{{x}}/{row}.{extension}"


def viewer_template(href: str, page_scheme: str = "https", extension: str = "png") -> str:
    url = secure_href(href, page_scheme)
    if "{z}" not in url:
        return _placeholder_path(url, ROW, extension)
    return url.replace(TMS_ROW, ROW)


def exchange_template(href: str, page_scheme: str = "https", extension: str = "png") -> str:
    url = secure_href(href, page_scheme)
    if "{z}" not in url:
        return _placeholder_path(url, TMS_ROW, extension)
    if TMS_ROW in url:
        return url
    return url.replace(ROW, TMS_ROW)


def find_tile_asset(item: CatalogItem) -> Optional[Asset]:
    """First asset with a tiles or data role that has an href"""
    for asset in item.assets.values():
        if asset.is_tile_asset and asset.href:
            return asset
    return None


def zoom_range(
    asset: Asset, default_min: int = DEFAULT_MIN_ZOOM, default_max: int = DEFAULT_MAX_ZOOM
) -> tuple[int, int]:
    min_zoom = asset.tile_min_zoom if asset.tile_min_zoom is not None else default_min
    max_zoom = asset.tile_max_zoom if asset.tile_max_zoom is not None else default_max
    return min_zoom, max_zoom


def is_tms_source(url: str) -> bool:
    """gdal2tiles output is served under /tiles/ and numbers rows bottom-up"""
    return "/tiles/" in url and "tms=false" not in url


def is_same_origin(url: str, page_origin: Optional[str]) -> bool:
    if not page_origin:
        return False
    # placeholders are not valid in a netloc check, swap in sample values
    sample = url.replace("{z}", "0").replace("{x}", "0").replace(ROW, "0").replace(TMS_ROW, "0")
    try:
        tile = urlparse(sample)
        page = urlparse(page_origin)
    except ValueError:
        return False
    return (tile.scheme, tile.netloc) == (page.scheme, page.netloc)


def resolve_tile_layer(
    item: CatalogItem,
    page_scheme: str = "https",
    page_origin: Optional[str] = None,
    extension: str = "png",
    default_min_zoom: int = DEFAULT_MIN_ZOOM,
    default_max_zoom: int = DEFAULT_MAX_ZOOM,
) -> Optional[TileLayerSpec]:
    """Tile layer spec for an item's tile asset, or None when it has none"""
    asset = find_tile_asset(item)
    if asset is None:
        return None
    url = viewer_template(asset.href, page_scheme, extension)
    min_zoom, max_zoom = zoom_range(asset, default_min_zoom, default_max_zoom)
    return TileLayerSpec(
        url=url,
        min_zoom=min_zoom,
        max_zoom=max_zoom,
        tms=is_tms_source(url),
        cross_origin=not is_same_origin(url, page_origin),
        attribution=item.id,
    )
