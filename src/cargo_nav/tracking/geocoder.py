# geocoder.py
# Address → coordinate lookup for deals that carry no stored coordinates.
# Uses OSMnx (Nominatim underneath); the blocking call runs off the loop.

import asyncio
import logging
from typing import Callable, Dict, Optional, Tuple

import osmnx as ox

from .models import Coord

logger = logging.getLogger(__name__)

GeocodeFn = Callable[[str], Tuple[float, float]]


class Geocoder:
    """
    Resolves free-form addresses, caching results for the process lifetime.

    Args:
        geocode_fn: (address) -> (lat, lng); defaults to osmnx.geocode.
    """

    def __init__(self, geocode_fn: Optional[GeocodeFn] = None) -> None:
        self._geocode = geocode_fn or ox.geocode
        self._cache: Dict[str, Coord] = {}

    async def resolve(self, address: str) -> Optional[Coord]:
        """
        Look up an address.

        Returns:
            Coord, or None when the address cannot be resolved; the caller
            then hands the raw address to the directions service.
        """
        key = (address or "").strip()
        if not key:
            return None
        if key in self._cache:
            return self._cache[key]

        try:
            lat, lng = await asyncio.to_thread(self._geocode, key)
            coord = Coord(float(lat), float(lng))
        except Exception as e:
            logger.warning(f"Geocoding failed for '{key}': {e}")
            return None

        self._cache[key] = coord
        logger.info(f"Geocoded '{key}' → {coord}")
        return coord
