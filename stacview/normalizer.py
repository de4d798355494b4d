"""
Build STAC API search requests from filter state
"""

import logging
import re
from datetime import date, datetime, time, timezone
from typing import Optional

from dateutil import parser as date_parser

from .errors import FilterError
from .geometry import is_valid_bbox, validate_geometry
from .models import DateInput, SearchFilter, SearchRequest

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100
OPEN_END = ".."

CALENDAR_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

START_OF_DAY = time(0, 0, 0, 0)
END_OF_DAY = time(23, 59, 59, 999000)


def format_instant(value: datetime) -> str:
    """RFC 3339 UTC instant with millisecond precision, e.g. 2020-12-31T23:59:59.999Z"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def to_instant(value: DateInput, end_of_day: bool = False) -> datetime:
    """
    Resolve a date picker value to a UTC instant

    Calendar dates (``date`` objects or ``YYYY-MM-DD`` strings) resolve to the start of
    the day, or to its last millisecond when ``end_of_day`` is set. Anything else is
    treated as a precise instant and kept as is.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, str):
        text = value.strip()
        if not CALENDAR_DATE.match(text):
            try:
                parsed = date_parser.isoparse(text)
            except ValueError:
                try:
                    parsed = date_parser.parse(text)
                except (ValueError, OverflowError) as e:
                    raise FilterError(f"Unrecognized date: {value!r}") from e
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        try:
            value = date.fromisoformat(text)
        except ValueError as e:
            raise FilterError(f"Unrecognized date: {value!r}") from e

    if isinstance(value, date):
        return datetime.combine(value, END_OF_DAY if end_of_day else START_OF_DAY, tzinfo=timezone.utc)

    raise FilterError(f"Unsupported date value: {value!r}")


def format_date_range(start: Optional[DateInput] = None, end: Optional[DateInput] = None) -> Optional[str]:
    """
    Format a STAC datetime interval

    Args:
        start: start of the range, or None for an open start
        end: end of the range, or None for an open end

    Returns:
        "start/end", "start/..", "../end", or None when neither endpoint is given
    """
    if start in (None, "") and end in (None, ""):
        return None
    start_text = format_instant(to_instant(start)) if start not in (None, "") else OPEN_END
    end_text = format_instant(to_instant(end, end_of_day=True)) if end not in (None, "") else OPEN_END
    return f"{start_text}/{end_text}"


def build_search_request(
    search_filter: SearchFilter,
    limit: Optional[int] = None,
    next_token: Optional[str] = None,
) -> SearchRequest:
    """
    Assemble a search request from filter state and paging controls

    Args:
        search_filter: the operator's filter
        limit: page size, 100 when unset
        next_token: continuation token from a previous response

    Returns:
        A SearchRequest ready for the catalog transport
    """
    params = {"limit": DEFAULT_LIMIT if limit is None else limit}

    if search_filter.collections:
        params["collections"] = sorted(search_filter.collections)

    if search_filter.aoi is not None:
        geometry = validate_geometry(search_filter.aoi)
        if geometry is not None:
            params["intersects"] = geometry
        else:
            logger.warning("Ignoring invalid AOI geometry, searching without a spatial filter")

    if search_filter.bbox is not None:
        if is_valid_bbox(search_filter.bbox, allow_antimeridian=True):
            params["bbox"] = [float(v) for v in search_filter.bbox]
        else:
            logger.warning(f"Ignoring malformed bbox {search_filter.bbox}")

    datetime_range = format_date_range(search_filter.date_range.start, search_filter.date_range.end)
    if datetime_range:
        params["datetime"] = datetime_range

    if next_token:
        params["next"] = next_token

    logger.info(f"Search parameters: {params}")
    return SearchRequest(**params)
