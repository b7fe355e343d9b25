import asyncio

import pytest

from cargo_nav.tracking.deal_store import (
    DealStore, PollingStatusFeed, PositionWriter, ProximityNotifier, QueueStatusFeed,
    RestPositionSink,
)
from cargo_nav.tracking.errors import DealStoreError
from cargo_nav.tracking.models import Coord, DealRecord, PositionSample
from cargo_nav.tracking.nav_config import NavConfig

from fakes import FailingSink, FakeResponse, FakeSession, RecordingSink, wait_until

DEAL_ROW = {
    "id": "deal-7",
    "status": "in_progress",
    "carrier_id": "carrier-1",
    "client_id": "client-9",
    "order": {
        "id": "order-3",
        "status": "active",
        "pickup_address": "Тверская улица, 13",
        "delivery_address": "Площадь Курского вокзала, 1",
        "pickup_lat": 55.7616,
        "pickup_lng": 37.6094,
        "delivery_lat": None,
        "delivery_lng": None,
    },
}


def _sample(n: int = 0) -> PositionSample:
    return PositionSample("deal-7", "carrier-1", 55.7 + n / 1000, 37.6, "2026-01-01T00:00:00+00:00")


def _backend_config() -> NavConfig:
    return NavConfig(backend_url="https://db.example", backend_key="anon", http_timeout_s=3)


# ---------------------------------------------------------------------------
# Deal read
# ---------------------------------------------------------------------------

def test_deal_from_row():
    deal = DealRecord.from_row(DEAL_ROW)
    assert deal.pickup_coords == Coord(55.7616, 37.6094)
    assert deal.delivery_coords is None
    assert deal.delivery_address == "Площадь Курского вокзала, 1"
    assert not deal.is_cancelled


def test_deal_from_row_with_order_list_and_cancelled_order():
    row = dict(DEAL_ROW, order=[dict(DEAL_ROW["order"], status="cancelled")])
    assert DealRecord.from_row(row).is_cancelled


@pytest.mark.asyncio
async def test_fetch_deal():
    session = FakeSession(get_responses=[FakeResponse(json_data=[DEAL_ROW])])
    deal = await DealStore(_backend_config(), session=session).fetch_deal("deal-7")

    assert deal.id == "deal-7"
    _, url, kwargs = session.requests[0]
    assert url == "https://db.example/rest/v1/deals"
    assert kwargs["params"]["id"] == "eq.deal-7"
    assert kwargs["headers"]["Authorization"] == "Bearer anon"


@pytest.mark.asyncio
async def test_fetch_missing_deal():
    session = FakeSession(get_responses=[FakeResponse(json_data=[])])
    with pytest.raises(DealStoreError):
        await DealStore(_backend_config(), session=session).fetch_deal("nope")


@pytest.mark.asyncio
async def test_fetch_deal_http_error():
    session = FakeSession(get_responses=[FakeResponse(status=401, text_data="JWT expired")])
    with pytest.raises(DealStoreError) as exc:
        await DealStore(_backend_config(), session=session).fetch_deal("deal-7")
    assert "401" in exc.value.message


# ---------------------------------------------------------------------------
# Position persistence
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_rest_sink_posts_row():
    session = FakeSession(post_responses=[FakeResponse(status=201)])
    await RestPositionSink(_backend_config(), session=session).write(_sample())

    method, url, kwargs = session.requests[0]
    assert (method, url) == ("POST", "https://db.example/rest/v1/gps_locations")
    assert kwargs["json"]["deal_id"] == "deal-7"
    assert kwargs["json"]["latitude"] == 55.7
    assert kwargs["headers"]["Prefer"] == "return=minimal"


@pytest.mark.asyncio
async def test_rest_sink_rejected_insert():
    session = FakeSession(post_responses=[FakeResponse(status=409, text_data="conflict")])
    with pytest.raises(DealStoreError):
        await RestPositionSink(_backend_config(), session=session).write(_sample())


@pytest.mark.asyncio
async def test_writer_submits_without_waiting():
    sink = RecordingSink()
    writer = PositionWriter(sink)

    assert writer.submit(_sample(1))
    assert writer.submit(_sample(2))
    assert sink.samples == []                  # nothing awaited yet

    await writer.drain()
    assert len(sink.samples) == 2
    assert writer.in_flight == 0


@pytest.mark.asyncio
async def test_writer_swallows_failures():
    sink = FailingSink()
    writer = PositionWriter(sink)

    for n in range(3):
        writer.submit(_sample(n))
    await writer.drain()

    assert sink.attempts == 3                  # no retries
    assert writer.failed == 3


@pytest.mark.asyncio
async def test_closed_writer_rejects_samples():
    sink = RecordingSink()
    writer = PositionWriter(sink)
    writer.close()

    assert not writer.submit(_sample())
    await writer.drain()
    assert sink.samples == []

    writer.open()
    assert writer.submit(_sample())


# ---------------------------------------------------------------------------
# Proximity notification
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_proximity_notifier_posts_to_function():
    session = FakeSession(post_responses=[FakeResponse(status=200, json_data={"success": True})])
    notifier = ProximityNotifier(_backend_config(), session=session)

    await notifier.send("deal-7", "client-9", 0.5)

    method, url, kwargs = session.requests[0]
    assert (method, url) == ("POST", "https://db.example/functions/v1/proximity-notification")
    assert kwargs["json"] == {
        "dealId": "deal-7",
        "clientId": "client-9",
        "distanceKm": 0.5,
        "carrierName": "Водитель",
    }
    assert kwargs["headers"]["Authorization"] == "Bearer anon"
    assert notifier.sent == 1


@pytest.mark.asyncio
async def test_proximity_notifier_submit_swallows_failures():
    session = FakeSession(post_responses=[
        FakeResponse(status=500, text_data="boom"),
        FakeResponse(status=200),
    ])
    notifier = ProximityNotifier(_backend_config(), session=session)

    notifier.submit("deal-7", "client-9", 5.0)
    notifier.submit("deal-7", "client-9", 1.0)
    await notifier.drain()

    assert (notifier.sent, notifier.failed) == (1, 1)
    assert [r[2]["json"]["distanceKm"] for r in session.requests] == [5.0, 1.0]


# ---------------------------------------------------------------------------
# Status feeds
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_queue_status_feed():
    feed = QueueStatusFeed()
    received = []

    async def listen():
        async for status in feed.subscribe("deal-7"):
            received.append(status)
            if status == "cancelled":
                return

    task = asyncio.create_task(listen())
    assert await wait_until(lambda: feed.is_subscribed("deal-7"))

    feed.publish("deal-8", "cancelled")        # other deal, ignored
    feed.publish("deal-7", "in_progress")
    feed.publish("deal-7", "cancelled")
    await asyncio.wait_for(task, 1)

    assert received == ["in_progress", "cancelled"]
    assert not feed.is_subscribed("deal-7")


@pytest.mark.asyncio
async def test_polling_feed_yields_changes_only():
    rows = [
        DEAL_ROW,
        DEAL_ROW,
        dict(DEAL_ROW, order=dict(DEAL_ROW["order"], status="cancelled")),
    ]
    session = FakeSession(get_responses=[FakeResponse(json_data=[r]) for r in rows])
    feed = PollingStatusFeed(DealStore(_backend_config(), session=session), interval_s=0)

    received = []
    async for status in feed.subscribe("deal-7"):
        received.append(status)
        if status == "cancelled":
            break

    assert received == ["in_progress", "cancelled"]
