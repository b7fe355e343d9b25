# main.py
# Entry point: simulates one delivery by feeding the route's own polyline
# into the navigator as if it were the device GPS.
# In production, push real device fixes into the QueuePositionSource instead.
#
# Needs GOOGLE_MAPS_API_KEY for a live route; without it the last saved
# route (logs/active_route.json) is replayed.

import asyncio
import logging

from .deal_store import QueueStatusFeed
from .geocoder import Geocoder
from .geolocation import QueuePositionSource
from .map_renderer import CanvasMapRenderer
from .models import PositionFix
from .nav_config import NavConfig
from .nav_logger import NavLogger
from .navigator import DeliveryNavigator

# ------------------------------------------------------------------
# Logging setup: configure once here, all modules inherit
# ------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

# ------------------------------------------------------------------
# Config: tweak thresholds or paths here, not inside the modules
# ------------------------------------------------------------------
config = NavConfig.from_env(
    log_dir="logs",
    voice_enabled=False,
    follow_mode=True,
    map_snapshot_filename="map_snapshot.png",
)

# ------------------------------------------------------------------
# Simulation endpoints (Tverskaya → Kursky station, Moscow)
# ------------------------------------------------------------------
ORIGIN      = "Тверская улица, 13, Москва"
DESTINATION = "Площадь Курского вокзала, 1, Москва"

GPS_INTERVAL_S = 0.05
SPEED_MS = 12.0


async def main() -> None:
    source = QueuePositionSource()
    renderer = CanvasMapRenderer(config)
    nav = DeliveryNavigator(
        config,
        position_source=source,
        status_feed=QueueStatusFeed(),
        renderer=renderer,
        nav_logger=NavLogger(config),
        geocoder=Geocoder(),
        on_notice=lambda msg: print(f"  [!] {msg}"),
    )

    # 1. Request a route, fall back to the saved one
    success, msg = await nav.plan_route(ORIGIN, DESTINATION)
    if not success:
        print(f"[Main] Route request failed: {msg}")
        success, msg = nav.load_saved_route()
    if not success:
        print(f"[Main] Could not start navigation: {msg}")
        await nav.close()
        return
    print(f"[Main] {msg}")

    # 2. Start tracking
    success, msg = await nav.start_tracking()
    if not success:
        print(f"[Main] {msg}")
        await nav.close()
        return

    print("\n--- GPS Loop Active ---")

    # 3. GPS loop: replace with real GPS feed in production
    for point in nav.selected_route.points:
        source.push(PositionFix.from_raw(point.lat, point.lng, speed_ms=SPEED_MS))
        await asyncio.sleep(GPS_INTERVAL_S)
        if nav.session is not None and nav.session.arrived:
            print("  ✓  Destination reached.")
            break

    await nav.stop_tracking()
    if config.map_snapshot_filename:
        renderer.save(f"{config.log_dir}/{config.map_snapshot_filename}")
    await nav.close()

    print("\n--- Session complete ---")
    print(f"    Log files written to: {config.log_dir}/")


if __name__ == "__main__":
    asyncio.run(main())
