# directions.py
# Route acquisition from the external directions service (Google Directions
# JSON API). Every failure is mapped to RouteUnavailableError so the caller
# can offer a retry with the same addresses.

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import aiohttp

from .errors import RouteUnavailableError
from .geo_utils import decode_polyline
from .models import Coord, Distance, Duration, Route, RouteStep
from .nav_config import NavConfig

logger = logging.getLogger(__name__)

Place = Union[Coord, str]

_TAG_RE = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class DirectionsRequest:
    origin: Place
    destination: Place
    travel_mode: str = "driving"
    alternatives: bool = True
    language: Optional[str] = None

    def to_params(self, api_key: str) -> Dict[str, str]:
        params = {
            "origin": _place_param(self.origin),
            "destination": _place_param(self.destination),
            "mode": self.travel_mode.lower(),
            "alternatives": "true" if self.alternatives else "false",
            "key": api_key,
        }
        if self.language:
            params["language"] = self.language
        return params


def _place_param(place: Place) -> str:
    if isinstance(place, Coord):
        return place.as_param()
    place = (place or "").strip()
    if not place:
        raise ValueError("Empty address.")
    return place


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _latlng(d: Dict[str, Any]) -> Coord:
    return Coord(float(d["lat"]), float(d["lng"]))


def _distance(d: Dict[str, Any]) -> Distance:
    return Distance(text=d.get("text", ""), meters=float(d["value"]))


def _duration(d: Dict[str, Any]) -> Duration:
    return Duration(text=d.get("text", ""), seconds=float(d["value"]))


def strip_html(text: str) -> str:
    return _TAG_RE.sub("", text or "").strip()


def parse_route(raw: Dict[str, Any]) -> Route:
    """Convert one entry of the service's `routes` array into a Route."""
    leg = raw["legs"][0]

    points = tuple(decode_polyline(raw["overview_polyline"]["points"]))
    steps = tuple(
        RouteStep(
            instruction=strip_html(s.get("html_instructions", "")),
            distance=_distance(s["distance"]),
            duration=_duration(s["duration"]),
            start_location=_latlng(s["start_location"]),
            end_location=_latlng(s["end_location"]),
            maneuver=s.get("maneuver"),
        )
        for s in leg.get("steps", [])
    )

    bounds = None
    raw_bounds = raw.get("bounds")
    if raw_bounds:
        bounds = (_latlng(raw_bounds["southwest"]), _latlng(raw_bounds["northeast"]))

    traffic = leg.get("duration_in_traffic")
    return Route(
        distance=_distance(leg["distance"]),
        duration=_duration(leg["duration"]),
        duration_in_traffic=_duration(traffic) if traffic else None,
        points=points,
        steps=steps,
        start_address=leg.get("start_address", ""),
        end_address=leg.get("end_address", ""),
        summary=raw.get("summary", ""),
        warnings=tuple(raw.get("warnings", [])),
        bounds=bounds,
    )


def parse_directions_response(data: Any) -> List[Route]:
    """
    Parse a full service response.

    Raises:
        RouteUnavailableError: on a non-OK status, no routes, or a payload
        that does not have the expected shape.
    """
    if not isinstance(data, dict):
        raise RouteUnavailableError("malformed", "Directions response is not an object.")

    status = data.get("status")
    if status != "OK":
        reason = "no_route" if status in ("ZERO_RESULTS", "NOT_FOUND") else "service"
        raise RouteUnavailableError(
            reason,
            f"Directions error: {status}",
            {"status": status, "error_message": data.get("error_message")},
        )

    try:
        routes = [parse_route(r) for r in data["routes"]]
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise RouteUnavailableError("malformed", f"Malformed directions response: {e}") from e

    if not routes:
        raise RouteUnavailableError("no_route", "Directions returned no routes.")
    return routes


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class DirectionsClient:
    """
    Async client for the directions service.

    Args:
        config:  NavConfig with the API URL, key and timeout.
        session: Shared aiohttp session; one is created (and owned) if omitted.
    """

    def __init__(
        self,
        config: Optional[NavConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config or NavConfig()
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch_routes(self, request: DirectionsRequest) -> List[Route]:
        """
        Request routes, first one being the service's preferred route.

        Raises:
            RouteUnavailableError: for every failure mode.
        """
        try:
            params = request.to_params(self.config.google_maps_api_key)
        except ValueError as e:
            raise RouteUnavailableError("malformed", str(e)) from e

        logger.info(f"Directions request: {params['origin']} → {params['destination']} ({params['mode']})")
        session = await self._get_session()
        try:
            async with session.get(
                self.config.directions_url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.config.http_timeout_s),
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    raise RouteUnavailableError(
                        "network",
                        f"Directions HTTP {response.status}",
                        {"status": response.status, "body": body[:500]},
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RouteUnavailableError("network", f"Directions request failed: {e}") from e
        except ValueError as e:
            raise RouteUnavailableError("malformed", f"Directions response is not JSON: {e}") from e

        routes = parse_directions_response(data)
        logger.info(
            f"Directions: {len(routes)} route(s), first {routes[0].distance.text} / {routes[0].duration.text}"
        )
        return routes
