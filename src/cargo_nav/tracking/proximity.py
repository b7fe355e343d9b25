# proximity.py
# Staged distance-to-destination notifications and the arrival flag.

from dataclasses import dataclass
from typing import Optional

from .models import Coord, ProximityEvent, TrackingSession
from .geo_utils import distance_km
from .nav_config import NavConfig
from .speech_text import proximity_phrase


@dataclass
class ProximityResult:
    distance_km: float
    event: Optional[ProximityEvent] = None
    arrived_now: bool = False


class ProximityDetector:
    """
    Fires each threshold once per session and the arrival event once.

    Thresholds are checked in descending order and only the first newly
    crossed one fires per evaluation, even if the position jumped past
    several. Arrival uses its own tighter radius so GPS jitter around the
    last threshold does not flip it.
    """

    def __init__(self, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        self._thresholds = tuple(sorted(self.config.proximity_thresholds_km, reverse=True))

    def evaluate(
        self,
        session: TrackingSession,
        position: Coord,
        destination: Coord,
    ) -> ProximityResult:
        dist = distance_km(position, destination)
        result = ProximityResult(distance_km=dist)

        for threshold in self._thresholds:
            if dist <= threshold and threshold not in session.notified_thresholds:
                session.notified_thresholds.add(threshold)
                result.event = ProximityEvent(
                    threshold_km=threshold,
                    distance_km=dist,
                    text=proximity_phrase(dist, self.config.language),
                )
                break

        if dist <= self.config.arrival_radius_km and not session.arrived:
            session.arrived = True
            result.arrived_now = True

        return result
