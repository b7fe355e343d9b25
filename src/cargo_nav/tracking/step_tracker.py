# step_tracker.py
# Decides which turn-by-turn instruction to speak for a position.
# Call evaluate() on every GPS update; it only mutates the session passed in.

from typing import Optional, Sequence

import numpy as np

from .models import Announcement, Coord, RouteStep, TrackingSession
from .geo_utils import haversine_many
from .nav_config import NavConfig
from .speech_text import format_distance_speech, instruction_phrase


def closest_step_index(position: Coord, steps: Sequence[RouteStep]) -> int:
    """
    Index of the step whose start location is nearest to position.

    Nearest-start heuristic, not a projection onto the path: a route that
    loops back near an earlier step start can pick the wrong step. Ties go
    to the lowest index. Returns -1 for an empty route.
    """
    if not steps:
        return -1
    distances = haversine_many(position, [s.start_location for s in steps])
    return int(np.argmin(distances))


class StepTracker:
    """
    Turn-by-turn announcer for a single route.

    Usage:
        tracker = StepTracker(config)
        tracker.load_route(route.steps)

        # Inside GPS loop:
        announcement = tracker.evaluate(session, position)
    """

    def __init__(self, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        self._steps: Sequence[RouteStep] = ()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def load_route(self, steps: Sequence[RouteStep]) -> None:
        """Replace the route. Session state is owned by the caller."""
        self._steps = tuple(steps)

    @property
    def steps(self) -> Sequence[RouteStep]:
        return self._steps

    # ------------------------------------------------------------------
    # Core method: call on every GPS update
    # ------------------------------------------------------------------

    def evaluate(self, session: TrackingSession, position: Coord) -> Optional[Announcement]:
        """
        Update the session's step indices for position.

        Returns an Announcement only when the closest step lies beyond the
        last announced one, so no step is spoken twice and announcements
        never go backwards, whatever order positions arrive in.
        """
        index = closest_step_index(position, self._steps)
        if index < 0:
            return None

        session.current_step_index = index
        if index <= session.last_announced_step_index:
            return None

        step = self._steps[index]
        distance_text = format_distance_speech(step.distance.meters, self.config.language)
        session.last_announced_step_index = index
        return Announcement(
            step_index=index,
            text=instruction_phrase(step.instruction, distance_text, self.config.language),
        )
