"""GSI address search: municipality name to coordinates.

Fallback for municipalities missing from the static location table. Uses
the Geospatial Information Authority of Japan address-search API, which
needs no key. Results (including misses) are cached in memory with a TTL.
"""

import logging
import time

import httpx

from townlens.config import settings
from townlens.core.types import Location
from townlens.observability.tracing import trace
from townlens.utils import normalize_label

logger = logging.getLogger(__name__)

# name -> (location or None, monotonic timestamp)
_geocode_cache: dict[str, tuple[Location | None, float]] = {}


def clear_geocode_cache() -> None:
    _geocode_cache.clear()


@trace(name="geocode_city_name", span_type="TOOL")
async def geocode_city_name(name: str) -> Location | None:
    """Coordinates for a municipality name, or None if GSI has no match.

    GSI returns GeoJSON features with ``[lng, lat]`` coordinates.
    """
    key = normalize_label(name)
    if key in _geocode_cache:
        cached, cached_at = _geocode_cache[key]
        if time.monotonic() - cached_at < settings.geocode_cache_ttl_seconds:
            logger.info("Geocode cache hit for: %s", name)
            return cached

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.get(settings.gsi_geocode_url, params={"q": name})
            resp.raise_for_status()
            features = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("GSI geocode failed for %s: %s", name, exc)
        return None

    location = None
    for feature in features if isinstance(features, list) else []:
        coords = (feature.get("geometry") or {}).get("coordinates")
        if isinstance(coords, list) and len(coords) >= 2:
            lng, lat = coords[0], coords[1]
            if isinstance(lat, (int, float)) and isinstance(lng, (int, float)):
                location = Location(lat=float(lat), lng=float(lng))
                break

    if location is None:
        logger.warning("No geocoding results for: %s", name)

    _geocode_cache[key] = (location, time.monotonic())
    return location
