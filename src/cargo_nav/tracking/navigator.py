# navigator.py
# Public entry point for delivery navigation.
# Owns the session lifecycle and event wiring; the algorithms live in the
# specialist modules (step_tracker, proximity, route_corridor, ...).

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from .deal_store import (
    DealStatusFeed, DealStore, PositionSink, PositionWriter, ProximityNotifier,
)
from .directions import DirectionsClient, DirectionsRequest, Place
from .errors import DealStoreError, GeolocationError, RouteUnavailableError
from .geo_utils import calculate_bearing, distance_m
from .geocoder import Geocoder
from .geolocation import GeolocationWatcher, PositionSource, QueuePositionSource
from .map_renderer import MapRenderer
from .models import (
    Coord, DealRecord, NavigatorState, PositionFix, PositionSample, Route,
    TrackingSession, UpdateResult,
)
from .nav_config import NavConfig
from .nav_logger import NavLogger
from .proximity import ProximityDetector
from .route_corridor import RouteCorridor
from .speech_text import (
    arrival_phrase, cancelled_phrase, navigation_started_phrase,
    off_route_phrase, route_summary_phrase,
)
from .step_tracker import StepTracker

logger = logging.getLogger(__name__)

# Movement below this is GPS noise for heading purposes
_MIN_HEADING_MOVE_M = 2.0


class DeliveryNavigator:
    """
    High-level navigation facade for one carrier and one deal.

    Typical lifecycle:
        nav = DeliveryNavigator(config, position_source=source, ...)
        await nav.load_deal(deal)
        ok, msg = await nav.plan_route()
        if not ok:
            ok, msg = await nav.retry_route()
        await nav.start_tracking()
        ...
        await nav.stop_tracking()
        await nav.close()

    Collaborators left as None are simply not used (no voice, no map,
    no persistence, no cancellation feed, no files).

    Args:
        config:          NavConfig; defaults to NavConfig().
        directions:      DirectionsClient.
        position_source: Device position subscription.
        position_sink:   Remote store for position samples.
        status_feed:     Deal status changes (cancellation).
        announcer:       Voice output with speak(text) / stop().
        renderer:        MapRenderer sink.
        nav_logger:      NavLogger for route / event / track files.
        geocoder:        Geocoder for deals without coordinates.
        proximity_notifier: Tells the client when a threshold is crossed.
        on_notice:       Called with every user-visible message.
        on_exit:         Called when the navigation view must be left.
    """

    def __init__(
        self,
        config: Optional[NavConfig] = None,
        directions: Optional[DirectionsClient] = None,
        position_source: Optional[PositionSource] = None,
        position_sink: Optional[PositionSink] = None,
        status_feed: Optional[DealStatusFeed] = None,
        announcer=None,
        renderer: Optional[MapRenderer] = None,
        nav_logger: Optional[NavLogger] = None,
        geocoder: Optional[Geocoder] = None,
        on_notice: Optional[Callable[[str], None]] = None,
        on_exit: Optional[Callable[[], None]] = None,
        proximity_notifier: Optional[ProximityNotifier] = None,
    ) -> None:
        self.config = config or NavConfig()

        # Collaborators
        self._directions = directions or DirectionsClient(self.config)
        self._source     = position_source or QueuePositionSource()
        self._writer     = PositionWriter(position_sink) if position_sink else None
        self._status_feed = status_feed
        self._announcer  = announcer
        self._renderer   = renderer
        self._logger     = nav_logger
        self._geocoder   = geocoder
        self._on_notice  = on_notice
        self._on_exit    = on_exit
        self._notifier   = proximity_notifier

        # Specialist modules
        self._step_tracker = StepTracker(self.config)
        self._proximity    = ProximityDetector(self.config)
        self._watcher      = GeolocationWatcher(
            self._source, self.handle_position, self._on_geolocation_error, self.config,
            on_end=self._on_stream_end,
        )
        self._corridor: Optional[RouteCorridor] = None

        # State
        self.state = NavigatorState.IDLE
        self.deal: Optional[DealRecord] = None
        self.origin: Optional[Place] = None
        self.destination: Optional[Place] = None
        self.destination_coords: Optional[Coord] = None
        self.travel_mode = self.config.travel_mode
        self.follow_mode = self.config.follow_mode
        self.routes: List[Route] = []
        self.selected_index = 0
        self.session: Optional[TrackingSession] = None
        self.notices: List[str] = []
        self._last_request: Optional[DirectionsRequest] = None
        self._cancel_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def is_tracking(self) -> bool:
        return self.state == NavigatorState.TRACKING

    @property
    def selected_route(self) -> Optional[Route]:
        if 0 <= self.selected_index < len(self.routes):
            return self.routes[self.selected_index]
        return None

    @property
    def deal_id(self) -> Optional[str]:
        return self.deal.id if self.deal else None

    # ------------------------------------------------------------------
    # Deal
    # ------------------------------------------------------------------

    async def load_deal(self, deal: DealRecord) -> bool:
        """
        Take origin / destination from a deal.

        Stored coordinates win; otherwise addresses are geocoded, and if
        that fails too the address strings go to the directions service.
        The deal's status feed is watched from here until close(), so a
        cancellation ends navigation whatever state it is in.
        """
        if deal.is_cancelled:
            self._notice(cancelled_phrase(self.config.language))
            return False

        self.deal = deal
        if self.state == NavigatorState.CANCELLED:
            self.state = NavigatorState.IDLE
        self._watch_status(deal.id)
        self.origin = deal.pickup_coords or deal.pickup_address
        self.destination = deal.delivery_coords or deal.delivery_address
        self.destination_coords = deal.delivery_coords

        if self._geocoder is not None:
            if not isinstance(self.origin, Coord):
                self.origin = await self._geocoder.resolve(deal.pickup_address) or self.origin
            if not isinstance(self.destination, Coord):
                coords = await self._geocoder.resolve(deal.delivery_address)
                if coords is not None:
                    self.destination = self.destination_coords = coords

        logger.info(f"Deal {deal.id} loaded: {deal.pickup_address} → {deal.delivery_address}")
        return True

    async def load_deal_by_id(self, store: DealStore, deal_id: str) -> bool:
        try:
            deal = await store.fetch_deal(deal_id)
        except DealStoreError as e:
            self._notice(e.message)
            return False
        return await self.load_deal(deal)

    # ------------------------------------------------------------------
    # Route acquisition
    # ------------------------------------------------------------------

    async def plan_route(
        self,
        origin: Optional[Place] = None,
        destination: Optional[Place] = None,
        travel_mode: Optional[str] = None,
    ) -> Tuple[bool, str]:
        """
        Request routes for the given (or previously loaded) endpoints.

        Returns:
            (success, message)
        """
        if origin is not None:
            self.origin = origin
        if destination is not None:
            self.destination = destination
            self.destination_coords = destination if isinstance(destination, Coord) else None
        if travel_mode is not None:
            self.travel_mode = travel_mode

        if not self.origin or not self.destination:
            return False, "Origin and destination are required."

        self._last_request = DirectionsRequest(
            origin=self.origin,
            destination=self.destination,
            travel_mode=self.travel_mode,
            alternatives=self.config.request_alternatives,
            language=self.config.language,
        )
        return await self._fetch_routes(self._last_request)

    async def retry_route(self) -> Tuple[bool, str]:
        """Re-issue the last request with the same endpoints."""
        if self._last_request is None:
            return False, "No route request to retry."
        logger.info("Retrying route request.")
        return await self._fetch_routes(self._last_request)

    async def _fetch_routes(self, request: DirectionsRequest) -> Tuple[bool, str]:
        tracking = self.is_tracking
        if not tracking:
            self.state = NavigatorState.ROUTE_LOADING

        try:
            routes = await self._directions.fetch_routes(request)
        except RouteUnavailableError as e:
            logger.warning(f"Route calculation failed ({e.reason}): {e.message}")
            if not tracking:
                self.state = NavigatorState.ROUTE_UNAVAILABLE
            self._notice(e.message)
            return False, e.message

        self.routes = routes
        self.select_route(0)
        if not tracking:
            self.state = NavigatorState.ROUTE_READY

        route = routes[0]
        self._speak(route_summary_phrase(route.distance.text, route.duration.text, self.config.language))
        if self._logger is not None:
            self._logger.save_route(route, self.deal_id)

        logger.info(f"Route ready: {len(route.steps)} steps, {len(routes)} alternative(s).")
        return True, f"Route ready. {len(route.steps)} steps."

    def load_saved_route(self, filepath: Optional[str] = None) -> Tuple[bool, str]:
        """Resume with the route last written by NavLogger, without a network call."""
        if self._logger is None:
            return False, "No route log configured."
        route = self._logger.load_route(filepath)
        if route is None:
            return False, "No saved route."
        self.routes = [route]
        self.select_route(0)
        if not self.is_tracking:
            self.state = NavigatorState.ROUTE_READY
        return True, f"Saved route loaded. {len(route.steps)} steps."

    def select_route(self, index: int) -> bool:
        """Make one of the fetched alternatives the active route."""
        if not 0 <= index < len(self.routes):
            return False
        self.selected_index = index
        route = self.routes[index]

        self._step_tracker.load_route(route.steps)
        self._corridor = RouteCorridor(route, self.config.off_route_threshold_m)
        if not isinstance(self.destination, Coord):
            self.destination_coords = self.destination_coords or route.destination

        if self._renderer is not None:
            alternatives = [r for i, r in enumerate(self.routes) if i != index]
            if hasattr(self._renderer, "draw_route"):
                self._renderer.draw_route(route, alternatives)
            else:
                self._renderer.render(route, None, self.follow_mode)
        return True

    # ------------------------------------------------------------------
    # Tracking control
    # ------------------------------------------------------------------

    async def start_tracking(self) -> Tuple[bool, str]:
        """
        Begin a fresh tracking session.

        Returns:
            (success, message). Calling it while tracking changes nothing.
        """
        if self.is_tracking:
            logger.info("Tracking already active, skipping.")
            return False, "Tracking already active."
        if self.state == NavigatorState.CANCELLED:
            return False, "Deal cancelled."
        if self.selected_route is None:
            return False, "No route to follow."

        self.session = TrackingSession(deal_id=self.deal_id)
        if self._writer is not None:
            self._writer.open()

        if not await self._watcher.start():
            self._notice("Geolocation unavailable.")
            return False, "Geolocation unavailable."

        self.state = NavigatorState.TRACKING
        self._speak(navigation_started_phrase(self.config.language))
        logger.info(f"Tracking started for deal {self.deal_id}.")
        return True, "Tracking started."

    async def stop_tracking(self) -> None:
        """
        End the session: no more fixes processed, no more writes, voice cut.

        The map keeps its last frame. Safe to call any number of times.
        """
        was_tracking = self.is_tracking
        if was_tracking:
            self.state = NavigatorState.STOPPED
        if self._writer is not None:
            self._writer.close()

        await self._watcher.stop()
        if self._announcer is not None:
            self._announcer.stop()

        if was_tracking:
            self._finish_session()

    async def close(self) -> None:
        """Stop tracking, stop watching the deal status and release clients."""
        await self.stop_tracking()
        await self._stop_watching_status()
        await self._directions.close()
        if self._notifier is not None:
            await self._notifier.drain()
            await self._notifier.close()

    def _on_stream_end(self) -> None:
        if not self.is_tracking:
            return
        self.state = NavigatorState.STOPPED
        if self._writer is not None:
            self._writer.close()
        self._notice("Position stream ended.")
        self._finish_session()

    def _finish_session(self) -> None:
        session = self.session
        if session is None:
            return
        if self._logger is not None:
            self._logger.save_track(session)
        logger.info(f"Navigation stopped after {time.time() - session.started_at:.0f} s.")

    # ------------------------------------------------------------------
    # External cancellation
    # ------------------------------------------------------------------

    def _watch_status(self, deal_id: str) -> None:
        if self._status_feed is None:
            return
        previous = self._cancel_task
        if previous is not None and not previous.done():
            previous.cancel()
        self._cancel_task = asyncio.create_task(
            self._listen_for_cancellation(deal_id), name="deal-status",
        )

    async def _stop_watching_status(self) -> None:
        task, self._cancel_task = self._cancel_task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _listen_for_cancellation(self, deal_id: str) -> None:
        try:
            async for status in self._status_feed.subscribe(deal_id):
                logger.info(f"Deal {deal_id} status: {status}")
                if status == "cancelled":
                    await self._handle_cancellation()
                    return
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Status feed for deal {deal_id} failed.")

    async def _handle_cancellation(self) -> None:
        logger.warning(f"Deal {self.deal_id} cancelled by the other party.")
        await self.stop_tracking()
        self.state = NavigatorState.CANCELLED
        self._notice(cancelled_phrase(self.config.language))
        if self._on_exit is not None:
            self._on_exit()

    # ------------------------------------------------------------------
    # GPS update: called by the watcher on every position fix
    # ------------------------------------------------------------------

    def handle_position(self, fix: PositionFix) -> Optional[UpdateResult]:
        """
        Process one fix: session bookkeeping, persistence, announcements,
        proximity, off-route, map, event log.

        Returns:
            UpdateResult, or None when no session is tracking.
        """
        session = self.session
        if session is None or not self.is_tracking:
            return None

        position = fix.coords
        self._update_motion(session, fix)

        if self._writer is not None and session.deal_id:
            self._writer.submit(PositionSample(
                deal_id=session.deal_id,
                carrier_id=self._carrier_id(),
                latitude=position.lat,
                longitude=position.lng,
                timestamp=datetime.fromtimestamp(fix.timestamp_ms / 1000, tz=timezone.utc).isoformat(),
            ))

        announcement = self._step_tracker.evaluate(session, position)
        result = UpdateResult(
            position=position,
            current_step_index=session.current_step_index,
            announcement=announcement,
        )
        if announcement is not None:
            self._speak(announcement.text)

        if self.destination_coords is not None:
            proximity = self._proximity.evaluate(session, position, self.destination_coords)
            result.distance_to_destination_km = proximity.distance_km
            result.proximity = proximity.event
            result.arrived_now = proximity.arrived_now
            if proximity.event is not None:
                logger.info(f"Within {proximity.event.threshold_km:g} km of destination.")
                self._speak(proximity.event.text)
                if self._notifier is not None and session.deal_id:
                    client_id = self.deal.client_id if self.deal else None
                    self._notifier.submit(session.deal_id, client_id, proximity.event.threshold_km)
            if proximity.arrived_now:
                logger.info(f"Arrived at destination of deal {session.deal_id}.")
                self._speak(arrival_phrase(self.config.language))
                self._notice(arrival_phrase(self.config.language))

        if self._corridor is not None and not session.arrived:
            off_route = self._corridor.is_off_route(position)
            if off_route and not session.off_route:
                logger.info("Left the route corridor.")
                self._speak(off_route_phrase(self.config.language))
            session.off_route = off_route
        result.off_route = session.off_route

        if self._renderer is not None:
            self._renderer.render(self.selected_route, position, self.follow_mode)
        if self._logger is not None:
            self._logger.log_event(result, session.deal_id)
        return result

    def _update_motion(self, session: TrackingSession, fix: PositionFix) -> None:
        previous = session.current_position
        position = fix.coords
        if previous is not None:
            moved = distance_m(previous, position)
            session.traveled_distance_m += moved
            if fix.heading is None and moved >= _MIN_HEADING_MOVE_M:
                session.heading = calculate_bearing(previous.lat, previous.lng, position.lat, position.lng)
        if fix.heading is not None:
            session.heading = fix.heading
        session.speed_kmh = fix.speed_kmh
        session.current_position = position
        session.traveled_path.append(position)

    # ------------------------------------------------------------------
    # Map controls
    # ------------------------------------------------------------------

    def set_follow_mode(self, enabled: bool) -> None:
        self.follow_mode = enabled
        if enabled:
            self.recenter()

    def recenter(self) -> None:
        if self._renderer is not None and hasattr(self._renderer, "recenter"):
            current = self.session.current_position if self.session else None
            self._renderer.recenter(current)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _carrier_id(self) -> str:
        # The configured id wins; otherwise the carrier assigned on the deal
        if self.config.carrier_id:
            return self.config.carrier_id
        return (self.deal.carrier_id if self.deal else None) or ""

    def _speak(self, text: str) -> None:
        if self._announcer is not None and self.config.voice_enabled:
            self._announcer.speak(text)

    def _notice(self, message: str) -> None:
        self.notices.append(message)
        logger.info(f"[Notice] {message}")
        if self._on_notice is not None:
            self._on_notice(message)

    def _on_geolocation_error(self, error: GeolocationError) -> None:
        self._notice(error.message)
