"""
Geohash encoding and distance helpers.

All functions here are pure and synchronous.
"""

from __future__ import annotations

import math

GEOHASH_ALPHABET = "0123456789bcdefghjkmnpqrstuvwxyz"
DEFAULT_PRECISION = 7
EARTH_RADIUS_METERS = 6_371_000.0
METERS_PER_DEGREE_LAT = 111_320.0

# Used when an address is verified without coordinates.
DEFAULT_COORDINATES: tuple[float, float] = (0.0, 0.0)

_DECODE_MAP = {ch: i for i, ch in enumerate(GEOHASH_ALPHABET)}


def _check_coordinates(latitude: float, longitude: float) -> None:
    if not -90.0 <= latitude <= 90.0:
        msg = f"Latitude out of range: {latitude}"
        raise ValueError(msg)
    if not -180.0 <= longitude <= 180.0:
        msg = f"Longitude out of range: {longitude}"
        raise ValueError(msg)


def encode_geohash(latitude: float, longitude: float, precision: int = DEFAULT_PRECISION) -> str:
    """
    Encode a coordinate pair as a geohash string of ``precision`` characters.

    Bits alternate between longitude (even positions) and latitude (odd
    positions); a coordinate on or above the midpoint of its current range
    yields a 1 bit. Every 5 bits become one alphabet symbol.

    Raises:
        ValueError: If the coordinates are out of range or precision < 1.
    """
    if precision < 1:
        msg = f"Precision must be at least 1, got {precision}"
        raise ValueError(msg)
    _check_coordinates(latitude, longitude)

    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]
    chars: list[str] = []
    bits = 0
    bit_count = 0

    for i in range(precision * 5):
        if i % 2 == 0:
            value, bounds = longitude, lng_range
        else:
            value, bounds = latitude, lat_range

        mid = (bounds[0] + bounds[1]) / 2
        bits <<= 1
        if value >= mid:
            bits |= 1
            bounds[0] = mid
        else:
            bounds[1] = mid

        bit_count += 1
        if bit_count == 5:
            chars.append(GEOHASH_ALPHABET[bits])
            bits = 0
            bit_count = 0

    return "".join(chars)


def decode_geohash_bounds(geohash: str) -> tuple[float, float, float, float]:
    """
    Return the cell covered by ``geohash`` as (min_lat, min_lng, max_lat, max_lng).

    Raises:
        ValueError: If the hash is empty or contains a symbol outside the alphabet.
    """
    if not geohash:
        msg = "Geohash must not be empty"
        raise ValueError(msg)

    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]
    is_lng = True
    for ch in geohash.lower():
        if ch not in _DECODE_MAP:
            msg = f"Invalid geohash character: {ch!r}"
            raise ValueError(msg)
        value = _DECODE_MAP[ch]
        for shift in range(4, -1, -1):
            bounds = lng_range if is_lng else lat_range
            mid = (bounds[0] + bounds[1]) / 2
            if (value >> shift) & 1:
                bounds[0] = mid
            else:
                bounds[1] = mid
            is_lng = not is_lng

    return lat_range[0], lng_range[0], lat_range[1], lng_range[1]


def haversine_distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(latitude: float, longitude: float, radius_m: float) -> tuple[float, float, float, float]:
    """Degree window (min_lat, min_lng, max_lat, max_lng) enclosing a circle of ``radius_m``."""
    d_lat = radius_m / METERS_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(latitude))
    # Near the poles every longitude is within reach.
    d_lng = 180.0 if cos_lat < 1e-6 else radius_m / (METERS_PER_DEGREE_LAT * cos_lat)
    return (
        max(-90.0, latitude - d_lat),
        max(-180.0, longitude - d_lng),
        min(90.0, latitude + d_lat),
        min(180.0, longitude + d_lng),
    )
