"""
Validation and repair of drawn area-of-interest geometries
"""

import copy
import logging
from typing import Any, Optional

from shapely.errors import GeometryTypeError
from shapely.geometry import shape

from .errors import InvalidGeometryError

logger = logging.getLogger(__name__)

SUPPORTED_TYPES = {"Point", "LineString", "Polygon", "MultiPoint", "MultiLineString", "MultiPolygon"}


def close_ring(ring: list) -> list:
    """Append the first position to a ring whose ends differ. Closed rings are returned as is."""
    if ring and list(ring[0]) != list(ring[-1]):
        ring.append(list(ring[0]))
    return ring


def validate_geometry(value: Any) -> Optional[dict[str, Any]]:
    """
    Validate a drawn geometry and close any open polygon rings

    Args:
        value: a GeoJSON Feature or bare geometry

    Returns:
        A repaired copy of the geometry, or None if it cannot be used as an AOI
    """
    if not isinstance(value, dict):
        return None

    if value.get("type") == "Feature":
        value = value.get("geometry")
        if not isinstance(value, dict):
            return None

    geometry_type = value.get("type")
    if geometry_type not in SUPPORTED_TYPES:
        logger.info(f"Unsupported geometry type: {geometry_type}")
        return None
    if not value.get("coordinates"):
        logger.info(f"{geometry_type} geometry has no coordinates")
        return None

    geometry = copy.deepcopy(value)
    try:
        if geometry_type == "Polygon":
            for ring in geometry["coordinates"]:
                close_ring(ring)
        elif geometry_type == "MultiPolygon":
            for polygon in geometry["coordinates"]:
                for ring in polygon:
                    close_ring(ring)
    except (TypeError, IndexError) as e:
        logger.info(f"Malformed {geometry_type} coordinates: {e}")
        return None

    return geometry


def require_valid_geometry(value: Any) -> dict[str, Any]:
    """Like validate_geometry, but raise InvalidGeometryError instead of returning None"""
    geometry = validate_geometry(value)
    if geometry is None:
        raise InvalidGeometryError(f"Not a usable geometry: {value!r}")
    return geometry


def geometry_bounds(geometry: Optional[dict[str, Any]]) -> Optional[tuple[float, float, float, float]]:
    """Bounds (minx, miny, maxx, maxy) of a GeoJSON geometry, or None when empty or unparseable"""
    if not geometry:
        return None
    try:
        geom = shape(geometry)
    except (GeometryTypeError, ValueError, TypeError, AttributeError, KeyError, IndexError) as e:
        logger.info(f"Could not compute bounds: {e}")
        return None
    if geom.is_empty:
        return None
    return tuple(float(v) for v in geom.bounds)


def is_valid_bbox(bbox: Any, allow_antimeridian: bool = False) -> bool:
    """
    Four numbers with min <= max. With allow_antimeridian, minx > maxx is accepted
    as a box crossing the 180th meridian.
    """
    if not isinstance(bbox, (list, tuple)) or len(bbox) != 4:
        return False
    try:
        minx, miny, maxx, maxy = (float(v) for v in bbox)
    except (TypeError, ValueError):
        return False
    if miny > maxy:
        return False
    return allow_antimeridian or minx <= maxx
