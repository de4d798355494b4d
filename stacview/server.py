import logging
from pathlib import Path
from typing import Any, Optional

import aiofiles
from fastmcp import FastMCP

from .config import get_settings
from .errors import FilterError
from .models import CollectionSummary, DateRange, SearchFilter, SearchStatus, item_summary
from .normalizer import build_search_request
from .orchestrator import SearchOrchestrator
from .tiles import exchange_template, find_tile_asset, viewer_template
from .transport import HttpCatalogTransport

logger = logging.getLogger(__name__)

settings = get_settings()
logging.basicConfig(level=settings.log_level)


class QueryError(Exception):
    """Raised when query operations fail"""

    pass


mcp = FastMCP("stacview")

orchestrator = SearchOrchestrator(HttpCatalogTransport(settings))
guide_path = (Path(__file__).parent / "resources" / "usage_guide.md").resolve()


@mcp.tool()
async def list_collections() -> list[CollectionSummary]:
    """
    Lists the collections available in the STAC catalog.

    Returns:
        A list of collections with id, title and description.
    """
    state = await orchestrator.list_collections()
    if state.status == SearchStatus.FAILED:
        raise QueryError(state.error_message)
    return state.collections


@mcp.tool()
async def search_items(
    collections: Optional[list[str]] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    aoi: Optional[dict] = None,
    bbox: Optional[list[float]] = None,
    limit: int = 100,
    next: Optional[str] = None,
) -> dict[str, Any]:
    """
    ### Search catalog items by collection, date range and area of interest

    **Parameters**
    - **collections** (array of strings, optional): collection ids to search in.
    - **start_date** / **end_date** (string, optional): `YYYY-MM-DD` dates or full
      RFC 3339 instants. Either may be omitted for an open-ended range. A date-only
      end includes the whole day.
    - **aoi** (GeoJSON geometry or Feature, optional): area of interest. Unsupported
      or malformed shapes are ignored.
    - **bbox** (array of 4 floats, optional): (min lon, min lat, max lon, max lat).
    - **limit** (integer): page size, 1 to 1000 (default 100).
    - **next** (string, optional): continuation token from a previous call.

    **Returns**
    - the search request that was sent, a summary of each item with its tile
      templates, and the token for the next page if there is one.
    """
    if bbox is not None and len(bbox) != 4:
        raise ValueError("Bounding box must have exactly 4 coordinates")

    if limit <= 0 or limit > 1000:
        raise ValueError("limit must be between 1 and 1000")

    search_filter = SearchFilter(
        collections=set(collections or []),
        date_range=DateRange(start=start_date, end=end_date),
        aoi=aoi,
        bbox=tuple(bbox) if bbox else None,
    )
    try:
        request = build_search_request(search_filter, limit=limit, next_token=next)
    except FilterError as e:
        raise ValueError(str(e)) from e

    # each call is an independent search
    results = await SearchOrchestrator(orchestrator.transport).search(request)
    if results.status != SearchStatus.READY:
        raise QueryError(f"Catalog search failed: {results.error_message or results.status.value}")

    items = []
    for item in results.items:
        summary = item_summary(item)
        asset = find_tile_asset(item)
        if asset:
            summary["xyz"] = viewer_template(asset.href, settings.page_scheme, settings.tile_extension)
            summary["tms"] = exchange_template(asset.href, settings.page_scheme, settings.tile_extension)
        items.append(summary)

    return {"request": request.to_payload(), "items": items, "next": results.next_token}


@mcp.tool()
def tile_templates(href: str, page_scheme: str = "https") -> dict[str, str]:
    """
    Returns the XYZ template of a tile asset for web viewers and the `{-y}` TMS
    template for QGIS / ArcGIS XYZ connections.

    Args:
        href (str): the tile asset href, with or without a `{z}/{x}/{y}` path.
        page_scheme (str): `https` upgrades `http://` hrefs (default `https`).
    """
    if not href or not href.strip():
        raise ValueError("href cannot be empty")
    return {
        "xyz": viewer_template(href, page_scheme, settings.tile_extension),
        "tms": exchange_template(href, page_scheme, settings.tile_extension),
    }


@mcp.tool()
async def usage_guide() -> str:
    """Returns instructions for loading catalog tiles into QGIS and ArcGIS."""
    try:
        async with aiofiles.open(guide_path) as f:
            content = await f.read()
        return content
    except OSError as e:
        return f"File not found. {e}"


@mcp.resource(f"file://{guide_path.as_posix()}", mime_type="text/markdown")
async def usage_guide_doc() -> str:
    """Returns the tile usage guide."""
    async with aiofiles.open(guide_path) as f:
        return await f.read()


def main():
    mcp.run()


if __name__ == "__main__":
    main()
