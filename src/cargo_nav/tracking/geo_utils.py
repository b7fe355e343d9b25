# geo_utils.py
# Pure mathematical / geographic helper functions.
# No side effects, no imports from other project modules except models.

import math
from typing import List, Sequence

import numpy as np

from .models import Coord


EARTH_RADIUS_M = 6_371_000.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres between two points given in decimal degrees."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_m(a: Coord, b: Coord) -> float:
    return haversine_distance(a.lat, a.lng, b.lat, b.lng)


def distance_km(a: Coord, b: Coord) -> float:
    return distance_m(a, b) / 1000.0


def haversine_many(origin: Coord, targets: Sequence[Coord]) -> np.ndarray:
    """
    Distances in metres from origin to every target, vectorised.

    Same formula as haversine_distance(), evaluated over arrays.
    """
    if not targets:
        return np.empty(0, dtype=float)
    lats = np.radians(np.fromiter((c.lat for c in targets), dtype=float, count=len(targets)))
    lngs = np.radians(np.fromiter((c.lng for c in targets), dtype=float, count=len(targets)))
    lat0 = math.radians(origin.lat)
    lng0 = math.radians(origin.lng)

    a = (
        np.sin((lats - lat0) / 2) ** 2
        + math.cos(lat0) * np.cos(lats) * np.sin((lngs - lng0) / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def calculate_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing from point 1 to point 2, degrees clockwise from north in [0, 360)."""
    rlat1, rlon1 = math.radians(lat1), math.radians(lon1)
    rlat2, rlon2 = math.radians(lat2), math.radians(lon2)
    d_lon = rlon2 - rlon1
    y = math.sin(d_lon) * math.cos(rlat2)
    x = math.cos(rlat1) * math.sin(rlat2) - math.sin(rlat1) * math.cos(rlat2) * math.cos(d_lon)
    return (math.degrees(math.atan2(y, x)) + 360) % 360


def decode_polyline(encoded: str, precision: int = 5) -> List[Coord]:
    """
    Decode an encoded polyline (Google format) into coordinates.

    Raises:
        ValueError: if the string ends in the middle of a value.
    """
    points: List[Coord] = []
    index = lat = lng = 0
    factor = 10 ** precision
    length = len(encoded)

    while index < length:
        deltas = []
        for _ in range(2):
            shift = result = 0
            while True:
                if index >= length:
                    raise ValueError("Truncated polyline.")
                byte = ord(encoded[index]) - 63
                index += 1
                result |= (byte & 0x1F) << shift
                shift += 5
                if byte < 0x20:
                    break
            deltas.append(~(result >> 1) if result & 1 else result >> 1)
        lat += deltas[0]
        lng += deltas[1]
        points.append(Coord(lat / factor, lng / factor))

    return points
