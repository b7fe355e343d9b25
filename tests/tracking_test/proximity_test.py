from cargo_nav.tracking.models import Coord, TrackingSession
from cargo_nav.tracking.proximity import ProximityDetector

from fakes import DESTINATION


def _at_km(km: float) -> Coord:
    # due south of the destination; 1 degree of latitude ~ 111.195 km
    return Coord(DESTINATION.lat - km / 111.195, DESTINATION.lng)


def test_thresholds_fire_in_order(config):
    detector = ProximityDetector(config)
    session = TrackingSession()

    fired = []
    for km in (6.0, 4.8, 3.0, 0.95, 0.45, 0.09):
        event = detector.evaluate(session, _at_km(km), DESTINATION).event
        if event:
            fired.append(event.threshold_km)

    assert fired == [5.0, 1.0, 0.5, 0.1]


def test_jitter_around_threshold_fires_once(config):
    detector = ProximityDetector(config)
    session = TrackingSession()

    events = [
        detector.evaluate(session, _at_km(km), DESTINATION).event
        for km in (0.95, 1.05, 0.97, 1.02, 0.99)
    ]
    one_km = [e for e in events if e is not None and e.threshold_km == 1.0]
    assert len(one_km) == 1


def test_big_jump_fires_one_threshold_per_evaluation(config):
    detector = ProximityDetector(config)
    session = TrackingSession()
    position = _at_km(0.3)

    fired = [detector.evaluate(session, position, DESTINATION).event.threshold_km for _ in range(3)]

    assert fired == [5.0, 1.0, 0.5]
    assert detector.evaluate(session, position, DESTINATION).event is None


def test_arrival_fires_once(config):
    detector = ProximityDetector(config)
    session = TrackingSession()

    results = [detector.evaluate(session, _at_km(km), DESTINATION) for km in (0.03, 0.0, 0.04, 0.2, 0.01)]

    assert [r.arrived_now for r in results] == [True, False, False, False, False]
    assert session.arrived


def test_arrival_reported_with_proximity_event(config):
    detector = ProximityDetector(config)
    session = TrackingSession(notified_thresholds={5.0, 1.0, 0.5})

    result = detector.evaluate(session, _at_km(0.02), DESTINATION)

    assert result.event.threshold_km == 0.1
    assert result.arrived_now


def test_distance_reported(config):
    result = ProximityDetector(config).evaluate(TrackingSession(), _at_km(2.0), DESTINATION)
    assert abs(result.distance_km - 2.0) < 0.01
