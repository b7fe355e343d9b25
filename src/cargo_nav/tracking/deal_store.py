# deal_store.py
# Everything the navigator reads from or writes to the hosted backend:
#   - the deal record (addresses, coordinates, status)
#   - fire-and-forget position samples
#   - a feed of deal status changes (cancellation interrupts navigation)
#   - proximity notifications to the client as the carrier closes in
#
# The backend is reached through its REST (PostgREST) endpoint with aiohttp.

import asyncio
import logging
from typing import AsyncIterator, Dict, Optional, Set

import aiohttp

from .errors import DealStoreError
from .models import DealRecord, PositionSample
from .nav_config import NavConfig

logger = logging.getLogger(__name__)

DEAL_SELECT = (
    "id,status,client_id,carrier_id,"
    "order:orders!order_id(id,status,pickup_address,delivery_address,"
    "pickup_lat,pickup_lng,delivery_lat,delivery_lng)"
)


class _RestClient:
    """Shared session / header handling for the backend REST endpoint."""

    def __init__(
        self,
        config: Optional[NavConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config or NavConfig()
        self._session = session
        self._owns_session = session is None

    def _url(self, table: str) -> str:
        return f"{self.config.backend_url}/rest/v1/{table}"

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.config.backend_key,
            "Authorization": f"Bearer {self.config.backend_key}",
        }

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


# ---------------------------------------------------------------------------
# Deal read
# ---------------------------------------------------------------------------

class DealStore(_RestClient):
    """Reads deal records."""

    async def fetch_deal(self, deal_id: str) -> DealRecord:
        """
        Load one deal with its order.

        Raises:
            DealStoreError: on transport errors, HTTP errors or a missing deal.
        """
        session = await self._get_session()
        params = {"id": f"eq.{deal_id}", "select": DEAL_SELECT}
        try:
            async with session.get(
                self._url("deals"),
                params=params,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.config.http_timeout_s),
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    raise DealStoreError(
                        f"Deal read failed: HTTP {response.status}",
                        {"deal_id": deal_id, "body": body[:500]},
                    )
                rows = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DealStoreError(f"Deal read failed: {e}", {"deal_id": deal_id}) from e

        if not rows:
            raise DealStoreError(f"Deal {deal_id} not found.", {"deal_id": deal_id})
        try:
            return DealRecord.from_row(rows[0])
        except (KeyError, TypeError, ValueError) as e:
            raise DealStoreError(f"Malformed deal row: {e}", {"deal_id": deal_id}) from e


# ---------------------------------------------------------------------------
# Position persistence
# ---------------------------------------------------------------------------

class PositionSink:
    """Destination for position samples."""

    async def write(self, sample: PositionSample) -> None:
        raise NotImplementedError


class RestPositionSink(_RestClient, PositionSink):
    """Appends samples to the positions table."""

    async def write(self, sample: PositionSample) -> None:
        session = await self._get_session()
        headers = dict(self._headers(), Prefer="return=minimal")
        try:
            async with session.post(
                self._url(self.config.positions_table),
                json=sample.to_row(),
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.config.http_timeout_s),
            ) as response:
                if response.status not in (200, 201, 204):
                    body = await response.text()
                    raise DealStoreError(
                        f"Position write failed: HTTP {response.status}",
                        {"body": body[:500]},
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DealStoreError(f"Position write failed: {e}") from e


class PositionWriter:
    """
    Best-effort, fire-and-forget delivery of samples to a sink.

    submit() returns immediately; each sample is written by its own task.
    Failures are logged and dropped, never retried: samples come often
    enough that losing one does not matter to whoever is watching.
    """

    def __init__(self, sink: PositionSink) -> None:
        self._sink = sink
        self._tasks: Set[asyncio.Task] = set()
        self._accepting = True
        self.submitted = 0
        self.failed = 0

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def open(self) -> None:
        self._accepting = True

    def submit(self, sample: PositionSample) -> bool:
        """Schedule a write. Returns False once the writer is closed."""
        if not self._accepting:
            return False
        task = asyncio.create_task(self._write(sample), name="position-write")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.submitted += 1
        return True

    async def _write(self, sample: PositionSample) -> None:
        try:
            await self._sink.write(sample)
        except Exception as e:
            self.failed += 1
            logger.warning(f"Position sample dropped for deal {sample.deal_id}: {e}")

    def close(self) -> None:
        """Stop accepting samples; writes already in flight finish on their own."""
        self._accepting = False

    async def drain(self) -> None:
        """Wait for in-flight writes."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# ---------------------------------------------------------------------------
# Client notification
# ---------------------------------------------------------------------------

class ProximityNotifier(_RestClient):
    """
    Tells the client the carrier is within a threshold distance.

    Calls the backend's proximity-notification function. submit() is
    fire-and-forget like PositionWriter: failures are logged and counted.
    """

    FUNCTION = "proximity-notification"

    def __init__(
        self,
        config: Optional[NavConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        carrier_name: str = "Водитель",
    ) -> None:
        super().__init__(config, session)
        self.carrier_name = carrier_name
        self._tasks: Set[asyncio.Task] = set()
        self.sent = 0
        self.failed = 0

    def _function_url(self) -> str:
        return f"{self.config.backend_url}/functions/v1/{self.FUNCTION}"

    async def send(self, deal_id: str, client_id: Optional[str], threshold_km: float) -> None:
        """
        Post one notification.

        Raises:
            DealStoreError: on transport or HTTP errors.
        """
        session = await self._get_session()
        body = {
            "dealId": deal_id,
            "clientId": client_id,
            "distanceKm": threshold_km,
            "carrierName": self.carrier_name,
        }
        try:
            async with session.post(
                self._function_url(),
                json=body,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.config.http_timeout_s),
            ) as response:
                if response.status not in (200, 201, 204):
                    text = await response.text()
                    raise DealStoreError(
                        f"Proximity notification failed: HTTP {response.status}",
                        {"deal_id": deal_id, "body": text[:500]},
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DealStoreError(f"Proximity notification failed: {e}", {"deal_id": deal_id}) from e
        self.sent += 1

    def submit(self, deal_id: str, client_id: Optional[str], threshold_km: float) -> None:
        task = asyncio.create_task(
            self._send_quietly(deal_id, client_id, threshold_km), name="proximity-notify",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send_quietly(self, deal_id: str, client_id: Optional[str], threshold_km: float) -> None:
        try:
            await self.send(deal_id, client_id, threshold_km)
        except DealStoreError as e:
            self.failed += 1
            logger.warning(f"Proximity notification for deal {deal_id} dropped: {e.message}")

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# ---------------------------------------------------------------------------
# Status feed
# ---------------------------------------------------------------------------

class DealStatusFeed:
    """Source of status changes for one deal."""

    def subscribe(self, deal_id: str) -> AsyncIterator[str]:
        raise NotImplementedError


class PollingStatusFeed(DealStatusFeed):
    """
    Polls the deal record and yields its status whenever it changes.

    A cancelled order is reported as "cancelled" even if the deal row
    itself still carries another status. Read errors are logged and the
    next poll goes ahead.
    """

    def __init__(self, store: DealStore, interval_s: Optional[float] = None) -> None:
        self._store = store
        self.interval_s = interval_s if interval_s is not None else store.config.status_poll_interval_s

    async def subscribe(self, deal_id: str) -> AsyncIterator[str]:
        last: Optional[str] = None
        while True:
            try:
                deal = await self._store.fetch_deal(deal_id)
            except DealStoreError as e:
                logger.warning(f"Status poll failed for deal {deal_id}: {e.message}")
            else:
                status = "cancelled" if deal.is_cancelled else deal.status
                if status != last:
                    last = status
                    yield status
            await asyncio.sleep(self.interval_s)


class QueueStatusFeed(DealStatusFeed):
    """In-process feed, e.g. bridged from a realtime channel."""

    def __init__(self) -> None:
        self._queues: Dict[str, asyncio.Queue] = {}

    def is_subscribed(self, deal_id: str) -> bool:
        return deal_id in self._queues

    def publish(self, deal_id: str, status: str) -> None:
        queue = self._queues.get(deal_id)
        if queue is None:
            logger.debug(f"No subscriber for deal {deal_id}, dropping '{status}'")
            return
        queue.put_nowait(status)

    async def subscribe(self, deal_id: str) -> AsyncIterator[str]:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[deal_id] = queue
        try:
            while True:
                yield await queue.get()
        finally:
            if self._queues.get(deal_id) is queue:
                del self._queues[deal_id]
