# geolocation.py
# Continuous device position stream.
# A PositionSource is the OS-level subscription; GeolocationWatcher consumes
# it on the event loop and hands every fix to a callback in delivery order.

import asyncio
import logging
from typing import Callable, List, Optional, Sequence, Union

from .errors import GeolocationError, GeolocationErrorReason
from .models import Coord, PositionFix
from .nav_config import NavConfig

logger = logging.getLogger(__name__)

PositionCallback = Callable[[PositionFix], None]
ErrorCallback = Callable[[GeolocationError], None]
EndCallback = Callable[[], None]


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

class PositionSource:
    """
    A device position subscription.

    open() starts the subscription (may raise GeolocationError, e.g. when
    permission is denied), read() waits for the next fix and returns None
    once the stream has ended, close() releases the subscription.
    """

    async def open(self) -> None:
        pass

    async def read(self) -> Optional[PositionFix]:
        raise NotImplementedError

    async def close(self) -> None:
        pass


_END = object()


class QueuePositionSource(PositionSource):
    """
    Source fed from outside the loop, e.g. by a device or web handler.

    Fixes pushed while the subscription is closed are dropped. Every open()
    starts a fresh queue.
    """

    def __init__(self) -> None:
        self._queue: Optional[asyncio.Queue] = None
        self.open_count = 0

    @property
    def is_open(self) -> bool:
        return self._queue is not None

    async def open(self) -> None:
        self._queue = asyncio.Queue()
        self.open_count += 1

    def push(self, fix: PositionFix) -> None:
        self._put(fix)

    def push_error(self, error: GeolocationError) -> None:
        self._put(error)

    def finish(self) -> None:
        """End the stream; read() returns None after queued items."""
        self._put(_END)

    def _put(self, item: object) -> None:
        if self._queue is None:
            logger.debug("Position source closed, dropping %r", item)
            return
        self._queue.put_nowait(item)

    async def read(self) -> Optional[PositionFix]:
        queue = self._queue
        if queue is None:
            return None
        item = await queue.get()
        if item is _END:
            return None
        if isinstance(item, GeolocationError):
            raise item
        return item

    async def close(self) -> None:
        self._queue = None


class ReplayPositionSource(PositionSource):
    """
    Replays a recorded or simulated trail at a fixed interval.

    Args:
        trail:      Coordinates, or complete PositionFix objects.
        interval_s: Delay between consecutive fixes.
        speed_ms:   Speed reported with bare coordinates.
    """

    def __init__(
        self,
        trail: Sequence[Union[Coord, PositionFix]],
        interval_s: float = 1.0,
        speed_ms: Optional[float] = None,
    ) -> None:
        self._trail: List[Union[Coord, PositionFix]] = list(trail)
        self.interval_s = interval_s
        self.speed_ms = speed_ms
        self._index = 0

    async def open(self) -> None:
        self._index = 0

    async def read(self) -> Optional[PositionFix]:
        if self._index >= len(self._trail):
            return None
        if self._index > 0 and self.interval_s > 0:
            await asyncio.sleep(self.interval_s)
        item = self._trail[self._index]
        self._index += 1
        if isinstance(item, PositionFix):
            return item
        return PositionFix.from_raw(item.lat, item.lng, speed_ms=self.speed_ms)


# ---------------------------------------------------------------------------
# Watcher
# ---------------------------------------------------------------------------

class GeolocationWatcher:
    """
    Owns at most one running subscription to a PositionSource.

    Usage:
        watcher = GeolocationWatcher(source, on_position, on_error, config)
        await watcher.start()
        ...
        await watcher.stop()

    Errors (permission, unavailable, timeout) go to on_error and never end
    the watch; only the source running dry or stop() does.
    When the source runs dry on its own, on_end is called once the
    subscription has been released.
    """

    def __init__(
        self,
        source: PositionSource,
        on_position: PositionCallback,
        on_error: Optional[ErrorCallback] = None,
        config: Optional[NavConfig] = None,
        on_end: Optional[EndCallback] = None,
    ) -> None:
        self.config = config or NavConfig()
        self._source = source
        self._on_position = on_position
        self._on_error = on_error
        self._on_end = on_end
        self._task: Optional[asyncio.Task] = None

    @property
    def is_watching(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> bool:
        """
        Open the source and start consuming it.

        Returns:
            False when a watch is already running (no second stream is
            created) or the source refused to open.
        """
        if self.is_watching:
            logger.info("Geolocation watch already active, skipping.")
            return False

        try:
            await self._source.open()
        except GeolocationError as e:
            self._report(e)
            return False

        self._task = asyncio.create_task(self._run(), name="geolocation-watch")
        logger.info("Geolocation watch started.")
        return True

    async def stop(self) -> None:
        """Cancel the watch and release the source. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        # A task cancelled before its first step never reaches _run's finally
        await self._source.close()
        logger.info("Geolocation watch stopped.")

    async def _run(self) -> None:
        pending: Optional[asyncio.Future] = None
        ended = False
        try:
            while True:
                if pending is None:
                    pending = asyncio.ensure_future(self._source.read())
                done, _ = await asyncio.wait({pending}, timeout=self.config.position_timeout_s)
                if not done:
                    self._report(GeolocationError(
                        GeolocationErrorReason.TIMEOUT,
                        f"No position within {self.config.position_timeout_s:g} s.",
                    ))
                    continue

                read, pending = pending, None
                try:
                    fix = read.result()
                except GeolocationError as e:
                    self._report(e)
                    continue

                if fix is None:
                    logger.info("Position stream ended.")
                    ended = True
                    break

                try:
                    self._on_position(fix)
                except Exception:
                    logger.exception("Position handler failed for %s", fix.coords)
        finally:
            if pending is not None:
                pending.cancel()
            await self._source.close()

        if ended and self._on_end is not None:
            self._on_end()

    def _report(self, error: GeolocationError) -> None:
        logger.warning(f"Geolocation error: {error.message}")
        if self._on_error is not None:
            self._on_error(error)
