"""
Geolocation helpers: great-circle distance, radius checks, geohash encoding and
display formatting.
"""
from math import radians, sin, cos, atan2, sqrt
from typing import Tuple

from schemas import GeoPoint
from time_window import round_half_up

EARTH_RADIUS_M = 6371000.0
CHECK_IN_RADIUS_METERS = 150

GEOHASH_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    dLat = radians(lat2 - lat1)
    dLon = radians(lon2 - lon1)
    a = sin(dLat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dLon / 2) ** 2
    # float error can push a a hair past 1 for antipodal points
    a = min(1.0, a)
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Distance in meters between two points along the shortest great circle."""
    return haversine(a.latitude, a.longitude, b.latitude, b.longitude)


def is_within_radius(distance: float, radius: float = CHECK_IN_RADIUS_METERS) -> bool:
    return distance <= radius


def check_school_radius(location: GeoPoint, school_location: GeoPoint,
                        radius: float = CHECK_IN_RADIUS_METERS) -> Tuple[bool, int]:
    """Return (inside, distance rounded to the meter) for a location near a school."""
    distance = distance_meters(location, school_location)
    return distance <= radius, round_meters(distance)


def round_meters(meters: float) -> int:
    return round_half_up(meters)


def geohash(latitude: float, longitude: float, precision: int = 9) -> str:
    """
    Encode a coordinate as a base-32 geohash of ``precision`` characters.

    Bits alternate longitude/latitude starting with longitude, five bits per
    character. Nearby points share longer prefixes.
    """
    if precision < 1:
        raise ValueError("precision must be at least 1")

    lat_range = [-90.0, 90.0]
    lon_range = [-180.0, 180.0]
    chars = []
    bit = 0
    ch = 0
    even = True

    while len(chars) < precision:
        if even:
            mid = (lon_range[0] + lon_range[1]) / 2
            if longitude > mid:
                ch |= 1 << (4 - bit)
                lon_range[0] = mid
            else:
                lon_range[1] = mid
        else:
            mid = (lat_range[0] + lat_range[1]) / 2
            if latitude > mid:
                ch |= 1 << (4 - bit)
                lat_range[0] = mid
            else:
                lat_range[1] = mid

        even = not even
        if bit < 4:
            bit += 1
        else:
            chars.append(GEOHASH_BASE32[ch])
            bit = 0
            ch = 0

    return "".join(chars)


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round_meters(meters)}m"
    return f"{meters / 1000:.1f}km"
