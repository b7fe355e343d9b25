# models.py
# Shared data structures and enums used across all tracking modules.

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set, Tuple


# ---------------------------------------------------------------------------
# Coordinate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coord:
    """Immutable geographic coordinate in decimal degrees."""
    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lng}")

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}

    @staticmethod
    def from_dict(d: dict) -> "Coord":
        return Coord(float(d["lat"]), float(d["lng"]))

    def as_param(self) -> str:
        """`lat,lng` form used by directions query strings."""
        return f"{self.lat},{self.lng}"


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Distance:
    text: str
    meters: float


@dataclass(frozen=True)
class Duration:
    text: str
    seconds: float


def _distance_from(d: Optional[dict]) -> Optional[Distance]:
    if d is None:
        return None
    return Distance(text=d.get("text", ""), meters=float(d["value"]))


def _duration_from(d: Optional[dict]) -> Optional[Duration]:
    if d is None:
        return None
    return Duration(text=d.get("text", ""), seconds=float(d["value"]))


@dataclass(frozen=True)
class RouteStep:
    """A single turn-by-turn instruction in a route."""
    instruction: str
    distance: Distance
    duration: Duration
    start_location: Coord
    end_location: Coord
    maneuver: Optional[str] = None      # "turn-left" | "roundabout-right" | ...

    def to_dict(self) -> dict:
        return {
            "instruction": self.instruction,
            "distance": {"text": self.distance.text, "value": self.distance.meters},
            "duration": {"text": self.duration.text, "value": self.duration.seconds},
            "start_location": self.start_location.to_dict(),
            "end_location": self.end_location.to_dict(),
            "maneuver": self.maneuver,
        }

    @staticmethod
    def from_dict(d: dict) -> "RouteStep":
        return RouteStep(
            instruction=d["instruction"],
            distance=_distance_from(d["distance"]),
            duration=_duration_from(d["duration"]),
            start_location=Coord.from_dict(d["start_location"]),
            end_location=Coord.from_dict(d["end_location"]),
            maneuver=d.get("maneuver"),
        )


@dataclass(frozen=True)
class Route:
    """One route candidate returned by the directions service."""
    distance: Distance
    duration: Duration
    points: Tuple[Coord, ...]
    steps: Tuple[RouteStep, ...]
    duration_in_traffic: Optional[Duration] = None
    start_address: str = ""
    end_address: str = ""
    summary: str = ""
    warnings: Tuple[str, ...] = ()
    bounds: Optional[Tuple[Coord, Coord]] = None      # (southwest, northeast)

    @property
    def origin(self) -> Optional[Coord]:
        if self.steps:
            return self.steps[0].start_location
        return self.points[0] if self.points else None

    @property
    def destination(self) -> Optional[Coord]:
        if self.steps:
            return self.steps[-1].end_location
        return self.points[-1] if self.points else None

    def to_dict(self) -> dict:
        return {
            "distance": {"text": self.distance.text, "value": self.distance.meters},
            "duration": {"text": self.duration.text, "value": self.duration.seconds},
            "duration_in_traffic": (
                {"text": self.duration_in_traffic.text, "value": self.duration_in_traffic.seconds}
                if self.duration_in_traffic else None
            ),
            "start_address": self.start_address,
            "end_address": self.end_address,
            "summary": self.summary,
            "warnings": list(self.warnings),
            "points": [p.to_dict() for p in self.points],
            "steps": [s.to_dict() for s in self.steps],
            "bounds": [c.to_dict() for c in self.bounds] if self.bounds else None,
        }

    @staticmethod
    def from_dict(d: dict) -> "Route":
        bounds = d.get("bounds")
        return Route(
            distance=_distance_from(d["distance"]),
            duration=_duration_from(d["duration"]),
            duration_in_traffic=_duration_from(d.get("duration_in_traffic")),
            points=tuple(Coord.from_dict(p) for p in d.get("points", [])),
            steps=tuple(RouteStep.from_dict(s) for s in d.get("steps", [])),
            start_address=d.get("start_address", ""),
            end_address=d.get("end_address", ""),
            summary=d.get("summary", ""),
            warnings=tuple(d.get("warnings", [])),
            bounds=(Coord.from_dict(bounds[0]), Coord.from_dict(bounds[1])) if bounds else None,
        )


# ---------------------------------------------------------------------------
# Position stream
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PositionFix:
    """One device position update."""
    coords: Coord
    speed_kmh: float
    timestamp_ms: int
    heading: Optional[float] = None     # degrees, 0 = north
    accuracy_m: Optional[float] = None

    @staticmethod
    def from_raw(
        lat: float,
        lng: float,
        speed_ms: Optional[float] = None,
        timestamp_ms: Optional[int] = None,
        heading: Optional[float] = None,
        accuracy_m: Optional[float] = None,
    ) -> "PositionFix":
        """Build a fix from raw device values (speed in m/s, may be missing)."""
        return PositionFix(
            coords=Coord(lat, lng),
            speed_kmh=speed_ms * 3.6 if speed_ms else 0.0,
            timestamp_ms=timestamp_ms if timestamp_ms is not None else int(time.time() * 1000),
            heading=heading,
            accuracy_m=accuracy_m,
        )


@dataclass(frozen=True)
class PositionSample:
    """Row written to the remote position store."""
    deal_id: str
    carrier_id: str
    latitude: float
    longitude: float
    timestamp: str                      # ISO-8601, UTC

    def to_row(self) -> dict:
        return {
            "deal_id": self.deal_id,
            "carrier_id": self.carrier_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "recorded_at": self.timestamp,
        }


# ---------------------------------------------------------------------------
# Tracking session
# ---------------------------------------------------------------------------

@dataclass
class TrackingSession:
    """
    Mutable state of one active delivery.

    Created when navigation starts and thrown away when it stops.
    last_announced_step_index only grows, notified_thresholds and
    traveled_path only gain entries, arrived flips to True once.
    """
    deal_id: Optional[str] = None
    current_position: Optional[Coord] = None
    current_step_index: int = 0
    last_announced_step_index: int = -1
    notified_thresholds: Set[float] = field(default_factory=set)
    traveled_path: List[Coord] = field(default_factory=list)
    traveled_distance_m: float = 0.0
    heading: Optional[float] = None
    speed_kmh: float = 0.0
    arrived: bool = False
    off_route: bool = False
    started_at: float = field(default_factory=time.time)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Announcement:
    """A turn-by-turn instruction to speak."""
    step_index: int
    text: str


@dataclass(frozen=True)
class ProximityEvent:
    """Emitted once per threshold when the destination gets closer than it."""
    threshold_km: float
    distance_km: float
    text: str


@dataclass
class UpdateResult:
    """Returned by DeliveryNavigator.handle_position() for every fix."""
    position: Coord
    current_step_index: int
    distance_to_destination_km: Optional[float] = None
    announcement: Optional[Announcement] = None
    proximity: Optional[ProximityEvent] = None
    arrived_now: bool = False
    off_route: bool = False

    def to_dict(self) -> dict:
        return {
            "lat": self.position.lat,
            "lng": self.position.lng,
            "current_step_index": self.current_step_index,
            "distance_to_destination_km": self.distance_to_destination_km,
            "announcement": self.announcement.text if self.announcement else None,
            "proximity_km": self.proximity.threshold_km if self.proximity else None,
            "arrived_now": self.arrived_now,
            "off_route": self.off_route,
        }


# ---------------------------------------------------------------------------
# Deal (owned by the backend)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DealRecord:
    id: str
    status: str
    pickup_address: str
    delivery_address: str
    order_status: str = ""
    carrier_id: Optional[str] = None
    client_id: Optional[str] = None
    pickup_coords: Optional[Coord] = None
    delivery_coords: Optional[Coord] = None

    @staticmethod
    def from_row(row: dict) -> "DealRecord":
        """Build from a `deals` row with its embedded `order`."""
        order = row.get("order") or {}
        if isinstance(order, list):
            order = order[0] if order else {}

        def _coords(prefix: str) -> Optional[Coord]:
            lat, lng = order.get(f"{prefix}_lat"), order.get(f"{prefix}_lng")
            if lat is None or lng is None:
                return None
            return Coord(float(lat), float(lng))

        return DealRecord(
            id=row["id"],
            status=row.get("status", ""),
            order_status=order.get("status", ""),
            pickup_address=order.get("pickup_address", ""),
            delivery_address=order.get("delivery_address", ""),
            carrier_id=row.get("carrier_id"),
            client_id=row.get("client_id"),
            pickup_coords=_coords("pickup"),
            delivery_coords=_coords("delivery"),
        )

    @property
    def is_cancelled(self) -> bool:
        return "cancelled" in (self.status, self.order_status)


# ---------------------------------------------------------------------------
# Navigator status
# ---------------------------------------------------------------------------

class NavigatorState(Enum):
    IDLE              = "idle"
    ROUTE_LOADING     = "route_loading"
    ROUTE_READY       = "route_ready"
    ROUTE_UNAVAILABLE = "route_unavailable"
    TRACKING          = "tracking"
    STOPPED           = "stopped"
    CANCELLED         = "cancelled"
