# route_corridor.py
# Off-route check: distance from a position to the route polyline.
# Coordinates are projected to a local metric plane around the route start,
# accurate enough for the few-kilometre scale of a corridor check.

import math
from typing import Optional, Tuple

from shapely.geometry import LineString, Point

from .models import Coord, Route
from .geo_utils import EARTH_RADIUS_M


class RouteCorridor:
    """
    Wraps a route polyline projected to metres.

    Args:
        route:       Route whose points (or step starts/ends) form the line.
        threshold_m: Distance from the line beyond which a position is off-route.
    """

    def __init__(self, route: Route, threshold_m: float) -> None:
        self.threshold_m = threshold_m
        coords = list(route.points)
        if len(coords) < 2:
            coords = [s.start_location for s in route.steps]
            if route.steps:
                coords.append(route.steps[-1].end_location)

        self._origin: Optional[Coord] = coords[0] if coords else None
        self._line: Optional[LineString] = None
        if len(coords) >= 2:
            self._line = LineString([self._project(c) for c in coords])

    def _project(self, c: Coord) -> Tuple[float, float]:
        lat0 = math.radians(self._origin.lat)
        x = EARTH_RADIUS_M * math.radians(c.lng - self._origin.lng) * math.cos(lat0)
        y = EARTH_RADIUS_M * math.radians(c.lat - self._origin.lat)
        return x, y

    def distance_to_route_m(self, position: Coord) -> Optional[float]:
        """Metres from position to the nearest point of the line, None without a line."""
        if self._line is None:
            return None
        return float(self._line.distance(Point(self._project(position))))

    def is_off_route(self, position: Coord) -> bool:
        dist = self.distance_to_route_m(position)
        return dist is not None and dist > self.threshold_m
