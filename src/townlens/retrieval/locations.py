"""Municipality location index and nearby-city search.

Coordinates are approximate municipal office locations. Codes missing from
the table can be resolved through the GSI geocoder
(``resolve_location_async``).
"""

import logging
import math

from townlens.catalog import readings
from townlens.core.types import Location, NearbyCity
from townlens.retrieval.geocode import geocode_city_name

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
DEFAULT_NEARBY_LIMIT = 6

CITY_LOCATIONS: dict[str, Location] = {
    # 東京23区
    "13101": Location(35.6940, 139.7536),
    "13102": Location(35.6707, 139.7720),
    "13103": Location(35.6581, 139.7516),
    "13104": Location(35.6938, 139.7034),
    "13105": Location(35.7081, 139.7522),
    "13106": Location(35.7126, 139.7800),
    "13107": Location(35.7107, 139.8015),
    "13108": Location(35.6730, 139.8171),
    "13109": Location(35.6092, 139.7302),
    "13110": Location(35.6415, 139.6982),
    "13111": Location(35.5614, 139.7161),
    "13112": Location(35.6464, 139.6532),
    "13113": Location(35.6640, 139.6982),
    "13114": Location(35.7074, 139.6638),
    "13115": Location(35.6995, 139.6364),
    "13116": Location(35.7261, 139.7167),
    "13117": Location(35.7528, 139.7336),
    "13118": Location(35.7362, 139.7833),
    "13119": Location(35.7512, 139.7092),
    "13120": Location(35.7356, 139.6517),
    "13121": Location(35.7750, 139.8044),
    "13122": Location(35.7434, 139.8471),
    "13123": Location(35.7067, 139.8683),
    # 多摩地域
    "13201": Location(35.6664, 139.3160),
    "13202": Location(35.6939, 139.4077),
    "13203": Location(35.7178, 139.5661),
    "13204": Location(35.6836, 139.5595),
    "13208": Location(35.6506, 139.5407),
    "13209": Location(35.5484, 139.4386),
    # 政令指定都市
    "01100": Location(43.0621, 141.3544),
    "04100": Location(38.2682, 140.8694),
    "11100": Location(35.8617, 139.6455),
    "12100": Location(35.6073, 140.1063),
    "14100": Location(35.4437, 139.6380),
    "14130": Location(35.5308, 139.7029),
    "14150": Location(35.5714, 139.3733),
    "15100": Location(37.9161, 139.0364),
    "22100": Location(34.9756, 138.3828),
    "22130": Location(34.7108, 137.7261),
    "23100": Location(35.1815, 136.9066),
    "26100": Location(35.0116, 135.7681),
    "27100": Location(34.6937, 135.5023),
    "27140": Location(34.5733, 135.4830),
    "28100": Location(34.6901, 135.1955),
    "33100": Location(34.6551, 133.9195),
    "34100": Location(34.3853, 132.4553),
    "40100": Location(33.8835, 130.8752),
    "40130": Location(33.5902, 130.4017),
    "43100": Location(32.8032, 130.7079),
    # 横浜市の区
    "14101": Location(35.5084, 139.6826),
    "14102": Location(35.4766, 139.6295),
    # 首都圏・近畿圏
    "11203": Location(35.8078, 139.7241),
    "12203": Location(35.7219, 139.9310),
    "12204": Location(35.6947, 139.9827),
    "12217": Location(35.8676, 139.9757),
    "14204": Location(35.3192, 139.5467),
    "14205": Location(35.3390, 139.4900),
    "23212": Location(34.9587, 137.0851),
    "27203": Location(34.7813, 135.4697),
    "27205": Location(34.7594, 135.5168),
    "28204": Location(34.7377, 135.3416),
}


def haversine_km(a: Location, b: Location) -> float:
    """Great-circle distance in kilometres."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, h)))


def resolve_location(code: str) -> Location | None:
    return CITY_LOCATIONS.get(code)


async def resolve_location_async(code: str, name: str | None = None) -> Location | None:
    """Table lookup, falling back to the GSI geocoder by display name."""
    location = CITY_LOCATIONS.get(code)
    if location is not None:
        return location
    query = name or readings.display_name(code)
    if query == code:
        logger.info("No name to geocode for %s", code)
        return None
    return await geocode_city_name(query)


def nearby_cities(
    code: str,
    radius_km: float = 20.0,
    limit: int = DEFAULT_NEARBY_LIMIT,
) -> list[NearbyCity]:
    """Cities within ``radius_km`` of ``code``, nearest first, excluding itself."""
    origin = CITY_LOCATIONS.get(code)
    if origin is None:
        return []
    found = []
    for other, location in CITY_LOCATIONS.items():
        if other == code:
            continue
        distance = haversine_km(origin, location)
        if distance <= radius_km:
            found.append(NearbyCity(
                municipality_code=other,
                city_name=readings.display_name(other),
                distance_km=round(distance, 1),
            ))
    found.sort(key=lambda c: (c.distance_km, c.municipality_code))
    return found[:limit]
