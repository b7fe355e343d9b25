# nav_logger.py
# Handles all file I/O for the navigator.
# Saves the active route as JSON, per-update events as JSON lines and the
# traveled track as CSV.

import json
import os
import logging
from datetime import datetime
from typing import Optional

import pandas as pd

from .models import Route, TrackingSession, UpdateResult
from .nav_config import NavConfig

# Standard Python logger: configure at app entry point if needed
logger = logging.getLogger(__name__)


class NavLogger:
    """
    Persists route data and navigation events to local files.

    Args:
        config: NavConfig instance for file paths and directories.
    """

    def __init__(self, config: Optional[NavConfig] = None) -> None:
        self.config = config or NavConfig()
        os.makedirs(self.config.log_dir, exist_ok=True)

    # ------------------------------------------------------------------
    # Route persistence
    # ------------------------------------------------------------------

    def save_route(self, route: Route, deal_id: Optional[str] = None) -> bool:
        """
        Serialize a route to JSON.

        Returns:
            True on success, False on failure.
        """
        filepath = self.config.route_filepath
        try:
            data = {
                "saved_at": datetime.now().isoformat(),
                "deal_id": deal_id,
                "step_count": len(route.steps),
                "route": route.to_dict(),
            }
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            logger.info(f"Route saved to {filepath} ({len(route.steps)} steps).")
            return True
        except IOError as e:
            logger.error(f"Failed to save route to {filepath}: {e}")
            return False

    def load_route(self, filepath: Optional[str] = None) -> Optional[Route]:
        """
        Load a previously saved route from JSON.

        Args:
            filepath: Path override; uses config default if omitted.

        Returns:
            Route, or None if loading failed.
        """
        path = filepath or self.config.route_filepath
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            route = Route.from_dict(data["route"])
            logger.info(f"Route loaded from {path} ({len(route.steps)} steps).")
            return route
        except (IOError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to load route from {path}: {e}")
            return None

    # ------------------------------------------------------------------
    # Session event logging
    # ------------------------------------------------------------------

    def log_event(self, result: UpdateResult, deal_id: Optional[str] = None) -> None:
        """Append a single processed position update to the session log."""
        entry = {"timestamp": datetime.now().isoformat(), "deal_id": deal_id}
        entry.update(result.to_dict())
        try:
            with open(self.config.events_filepath, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except IOError as e:
            logger.error(f"Failed to write event log: {e}")

    # ------------------------------------------------------------------
    # Track export
    # ------------------------------------------------------------------

    def save_track(self, session: TrackingSession, filepath: Optional[str] = None) -> bool:
        """
        Write the session's traveled path as CSV (seq, lat, lng).

        Returns:
            True on success, False if there was nothing to write or I/O failed.
        """
        if not session.traveled_path:
            return False
        path = filepath or self.config.track_filepath
        df = pd.DataFrame({
            "seq": range(len(session.traveled_path)),
            "lat": [c.lat for c in session.traveled_path],
            "lng": [c.lng for c in session.traveled_path],
        })
        df["deal_id"] = session.deal_id or ""
        try:
            df.to_csv(path, index=False)
        except IOError as e:
            logger.error(f"Failed to save track to {path}: {e}")
            return False
        logger.info(f"Track saved to {path} ({len(df)} points, {session.traveled_distance_m:.0f} m).")
        return True
