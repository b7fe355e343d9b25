# nav_config.py
# All tuneable constants in one place.
# Pass a NavConfig instance to every module that needs settings.

import os
from dataclasses import dataclass
from typing import Optional, Tuple


# ---------------------------------------------------------------------------
# Fixed notification constants
# ---------------------------------------------------------------------------

PROXIMITY_THRESHOLDS_KM: Tuple[float, ...] = (5.0, 1.0, 0.5, 0.1)   # descending
ARRIVAL_RADIUS_KM: float = 0.05

DIRECTIONS_URL: str = "https://maps.googleapis.com/maps/api/directions/json"


# ---------------------------------------------------------------------------
# Main config
# ---------------------------------------------------------------------------

@dataclass
class NavConfig:
    # Proximity / arrival
    proximity_thresholds_km: Tuple[float, ...] = PROXIMITY_THRESHOLDS_KM
    arrival_radius_km: float = ARRIVAL_RADIUS_KM
    off_route_threshold_m: float = 100.0   # distance from the route line → off-route

    # Geolocation
    position_timeout_s: float = 15.0       # no fix within this window → TIMEOUT error

    # Directions
    directions_url: str = DIRECTIONS_URL
    google_maps_api_key: str = ""
    travel_mode: str = "driving"
    request_alternatives: bool = True
    http_timeout_s: float = 15.0

    # Backend (REST endpoint of the hosted database)
    backend_url: str = ""
    backend_key: str = ""
    positions_table: str = "gps_locations"
    carrier_id: str = ""
    status_poll_interval_s: float = 5.0

    # Voice
    language: str = "ru"                   # "ru" | "en"
    voice_enabled: bool = True
    voice_gender: str = "male"             # "male" | "female"
    voice_rate: float = 1.0                # 0.5 – 2.0, relative to engine default
    phrase_cooldown_s: float = 15.0        # identical phrase is dropped inside this window
    max_voice_queue: int = 3

    # Map
    map_width_px: int = 800
    map_height_px: int = 600
    map_zoom: int = 15
    follow_mode: bool = False

    # Logging
    log_dir: str = "."                     # directory for saved JSON / CSV files
    route_filename: str = "active_route.json"
    events_filename: str = "nav_session.jsonl"
    track_filename: str = "traveled_track.csv"
    map_snapshot_filename: Optional[str] = None

    @property
    def route_filepath(self) -> str:
        return os.path.join(self.log_dir, self.route_filename)

    @property
    def events_filepath(self) -> str:
        return os.path.join(self.log_dir, self.events_filename)

    @property
    def track_filepath(self) -> str:
        return os.path.join(self.log_dir, self.track_filename)

    @classmethod
    def from_env(cls, **overrides) -> "NavConfig":
        """Build a config from environment variables, then apply overrides."""
        values = dict(
            google_maps_api_key=os.environ.get("GOOGLE_MAPS_API_KEY", ""),
            backend_url=os.environ.get("SUPABASE_URL", "").rstrip("/"),
            backend_key=os.environ.get("SUPABASE_KEY", ""),
            carrier_id=os.environ.get("CARRIER_ID", ""),
            log_dir=os.environ.get("NAV_LOG_DIR", "."),
            language=os.environ.get("NAV_LANGUAGE", "ru"),
        )
        values.update(overrides)
        return cls(**values)
