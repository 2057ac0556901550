"""
Spherical geometry helpers for tour lookups.

Distances follow the conventions of 2dsphere queries: an equatorial earth
radius of 6378.1 km, radii expressed in radians, coordinates as [lng, lat].
"""

import math
from typing import Optional

from natours.core.errors import BadRequestError

EARTH_RADIUS_KM = 6378.1
EARTH_RADIUS_MI = 3963.2
EARTH_RADIUS_M = EARTH_RADIUS_KM * 1000

# Metres -> requested unit
DISTANCE_MULTIPLIERS = {"mi": 0.000621371, "km": 0.001}


def parse_latlng(latlng: str) -> tuple[float, float]:
    try:
        lat_raw, lng_raw = latlng.split(",")
        return float(lat_raw), float(lng_raw)
    except ValueError:
        raise BadRequestError("Please provide latitude and longitude in the format lat,lng.")


def radius_in_radians(distance: float, unit: str) -> float:
    return distance / (EARTH_RADIUS_MI if unit == "mi" else EARTH_RADIUS_KM)


def distance_multiplier(unit: str) -> float:
    return DISTANCE_MULTIPLIERS["mi" if unit == "mi" else "km"]


def central_angle(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle angle between two points, in radians (haversine)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * math.asin(min(1.0, math.sqrt(a)))


def point_latlng(point: Optional[dict]) -> Optional[tuple[float, float]]:
    """Extract (lat, lng) from a stored GeoJSON point, if it has coordinates."""
    if not point:
        return None
    coordinates = point.get("coordinates") or []
    if len(coordinates) != 2:
        return None
    lng, lat = coordinates
    return lat, lng
