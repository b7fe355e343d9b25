# map_renderer.py
# Draws the route, start/end markers and a live position marker.
#
# The route is rasterised once per route change onto a "world" canvas
# (Web Mercator pixels). The viewport is a crop of that canvas, so
# recentering never redraws the route, and the live marker / traveled trail
# are composited onto the crop only, so they never touch the route layer.

import logging
import math
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .models import Coord, Route
from .nav_config import NavConfig

logger = logging.getLogger(__name__)

TILE_SIZE = 256
MAX_CANVAS_PX = 4096
# Oldest trail points are dropped past this
MAX_TRAIL_POINTS = 2000

# BGR
BACKGROUND    = (242, 239, 233)
ROUTE_COLORS  = [(244, 133, 66), (83, 168, 52), (4, 188, 251), (53, 67, 234)]
SHADOW        = (60, 60, 60)
START_COLOR   = (94, 197, 34)
END_COLOR     = (68, 68, 239)
STEP_COLOR    = (255, 255, 255)
TRAIL_COLOR   = (129, 185, 16)
MARKER_COLOR  = (246, 130, 59)


def _world_px(coord: Coord, zoom: int) -> Tuple[float, float]:
    size = TILE_SIZE * (2 ** zoom)
    x = (coord.lng + 180.0) / 360.0 * size
    lat = max(min(coord.lat, 85.05112878), -85.05112878)
    s = math.sin(math.radians(lat))
    y = (0.5 - math.log((1 + s) / (1 - s)) / (4 * math.pi)) * size
    return x, y


class MapRenderer:
    """Sink for (route, position, follow mode). Produces no data."""

    def render(self, route: Optional[Route], position: Optional[Coord], follow_mode: bool) -> None:
        raise NotImplementedError


class CanvasMapRenderer(MapRenderer):
    """
    OpenCV/numpy map renderer.

    Args:
        config: NavConfig with viewport size and preferred zoom.
    """

    def __init__(self, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        self.width = self.config.map_width_px
        self.height = self.config.map_height_px
        self.follow_mode = self.config.follow_mode

        self._route: Optional[Route] = None
        self._base: Optional[np.ndarray] = None
        self._zoom = self.config.map_zoom
        self._offset = (0.0, 0.0)                  # world px of canvas (0, 0)
        self._center: Optional[Tuple[float, float]] = None
        self._position: Optional[Coord] = None
        self._trail: List[Tuple[int, int]] = []
        self.max_trail_points = MAX_TRAIL_POINTS

        self.route_draws = 0
        self.marker_moves = 0

    # ------------------------------------------------------------------
    # Sink
    # ------------------------------------------------------------------

    def render(self, route: Optional[Route], position: Optional[Coord], follow_mode: bool) -> None:
        self.follow_mode = follow_mode
        if route is not None and route is not self._route:
            self.draw_route(route)
        if position is not None:
            self.update_position(position)

    # ------------------------------------------------------------------
    # Route layer
    # ------------------------------------------------------------------

    def draw_route(self, route: Route, alternatives: Sequence[Route] = ()) -> None:
        """Rasterise route (and faint alternatives) onto a fresh canvas."""
        points = list(route.points) or [s.start_location for s in route.steps]
        if not points:
            logger.warning("Route has no geometry, nothing to draw.")
            return

        everything = points + [p for alt in alternatives for p in alt.points]
        self._zoom = self._fit_zoom(everything)
        xs, ys = zip(*(_world_px(p, self._zoom) for p in everything))
        pad_x, pad_y = self.width / 2, self.height / 2
        self._offset = (min(xs) - pad_x, min(ys) - pad_y)
        canvas_w = int(max(xs) - min(xs) + 2 * pad_x) + 1
        canvas_h = int(max(ys) - min(ys) + 2 * pad_y) + 1

        base = np.full((canvas_h, canvas_w, 3), BACKGROUND, dtype=np.uint8)

        for i, alt in enumerate(alternatives, start=1):
            if alt.points:
                cv2.polylines(base, [self._pixels(alt.points)], False,
                              ROUTE_COLORS[i % len(ROUTE_COLORS)], 3, cv2.LINE_AA)

        line = self._pixels(points)
        cv2.polylines(base, [line], False, SHADOW, 10, cv2.LINE_AA)
        cv2.polylines(base, [line], False, ROUTE_COLORS[0], 6, cv2.LINE_AA)

        for step in route.steps[1:]:
            cv2.circle(base, self._pixel(step.start_location), 4, STEP_COLOR, -1, cv2.LINE_AA)

        self._draw_label_marker(base, self._pixel(points[0]), START_COLOR, "A")
        self._draw_label_marker(base, self._pixel(points[-1]), END_COLOR, "B")

        self._base = base
        self._route = route
        self._trail = []
        mid = self._pixel(points[len(points) // 2])
        self._center = (float(mid[0]), float(mid[1]))
        self.route_draws += 1
        logger.info(f"Route drawn at zoom {self._zoom} ({canvas_w}x{canvas_h} px).")

    def _fit_zoom(self, points: Sequence[Coord]) -> int:
        zoom = self.config.map_zoom
        while zoom > 1:
            xs, ys = zip(*(_world_px(p, zoom) for p in points))
            if max(xs) - min(xs) + self.width <= MAX_CANVAS_PX and max(ys) - min(ys) + self.height <= MAX_CANVAS_PX:
                break
            zoom -= 1
        return zoom

    def _pixel(self, coord: Coord) -> Tuple[int, int]:
        x, y = _world_px(coord, self._zoom)
        return int(round(x - self._offset[0])), int(round(y - self._offset[1]))

    def _pixels(self, coords: Sequence[Coord]) -> np.ndarray:
        return np.array([self._pixel(c) for c in coords], dtype=np.int32).reshape(-1, 1, 2)

    @staticmethod
    def _draw_label_marker(img: np.ndarray, at: Tuple[int, int], color, label: str) -> None:
        cv2.circle(img, at, 14, (255, 255, 255), -1, cv2.LINE_AA)
        cv2.circle(img, at, 11, color, -1, cv2.LINE_AA)
        cv2.putText(img, label, (at[0] - 6, at[1] + 6), cv2.FONT_HERSHEY_SIMPLEX,
                    0.6, (255, 255, 255), 2, cv2.LINE_AA)

    # ------------------------------------------------------------------
    # Live marker / viewport
    # ------------------------------------------------------------------

    def update_position(self, coord: Coord) -> None:
        """Move the live marker; recenters when follow mode is on."""
        self._position = coord
        self.marker_moves += 1
        if self._base is None:
            return
        px = self._pixel(coord)
        if not self._trail or self._trail[-1] != px:
            self._trail.append(px)
            if len(self._trail) > self.max_trail_points:
                del self._trail[: len(self._trail) - self.max_trail_points]
        if self.follow_mode:
            self._center = (float(px[0]), float(px[1]))

    def recenter(self, coord: Optional[Coord] = None) -> None:
        """Center the viewport on coord, or on the live marker."""
        target = coord or self._position
        if target is None or self._base is None:
            return
        px = self._pixel(target)
        self._center = (float(px[0]), float(px[1]))

    def frame(self) -> np.ndarray:
        """Current viewport image (BGR), route layer untouched."""
        view = np.full((self.height, self.width, 3), BACKGROUND, dtype=np.uint8)
        if self._base is None or self._center is None:
            return view

        left = int(round(self._center[0] - self.width / 2))
        top = int(round(self._center[1] - self.height / 2))
        base_h, base_w = self._base.shape[:2]

        src_x0, src_y0 = max(left, 0), max(top, 0)
        src_x1, src_y1 = min(left + self.width, base_w), min(top + self.height, base_h)
        if src_x1 > src_x0 and src_y1 > src_y0:
            view[src_y0 - top:src_y1 - top, src_x0 - left:src_x1 - left] = \
                self._base[src_y0:src_y1, src_x0:src_x1]

        if len(self._trail) > 1:
            trail = np.array([(x - left, y - top) for x, y in self._trail], dtype=np.int32).reshape(-1, 1, 2)
            cv2.polylines(view, [trail], False, TRAIL_COLOR, 4, cv2.LINE_AA)

        if self._position is not None:
            x, y = self._pixel(self._position)
            cv2.circle(view, (x - left, y - top), 12, (255, 255, 255), -1, cv2.LINE_AA)
            cv2.circle(view, (x - left, y - top), 8, MARKER_COLOR, -1, cv2.LINE_AA)

        return view

    def save(self, path: str) -> bool:
        ok = bool(cv2.imwrite(path, self.frame()))
        if ok:
            logger.info(f"Map snapshot written to {path}")
        else:
            logger.error(f"Failed to write map snapshot to {path}")
        return ok
