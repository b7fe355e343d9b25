from cargo_nav.tracking.models import Coord, TrackingSession
from cargo_nav.tracking.step_tracker import StepTracker, closest_step_index


def _tracker(config, route):
    tracker = StepTracker(config)
    tracker.load_route(route.steps)
    return tracker


def test_closest_step_empty_route():
    assert closest_step_index(Coord(55.7, 37.6), []) == -1


def test_closest_step_tie_goes_to_lowest_index(route):
    steps = (route.steps[0], route.steps[0])
    assert closest_step_index(Coord(55.71, 37.6), steps) == 0


def test_first_position_announces_first_step(config, route):
    session = TrackingSession()
    ann = _tracker(config, route).evaluate(session, Coord(55.700, 37.600))

    assert ann.step_index == 0
    assert ann.text == "Через 2,2 километра, Head north"
    assert session.last_announced_step_index == 0


def test_each_step_announced_once(config, route):
    tracker = _tracker(config, route)
    session = TrackingSession()
    trail = [55.700, 55.702, 55.706, 55.721, 55.725, 55.741, 55.745]

    spoken = []
    for lat in trail:
        ann = tracker.evaluate(session, Coord(lat, 37.6))
        if ann:
            spoken.append(ann.step_index)

    assert spoken == [0, 1, 2]


def test_out_of_order_positions_never_go_back(config, route):
    tracker = _tracker(config, route)
    session = TrackingSession()

    assert tracker.evaluate(session, Coord(55.741, 37.6)).step_index == 2
    assert tracker.evaluate(session, Coord(55.721, 37.6)) is None
    assert tracker.evaluate(session, Coord(55.700, 37.6)) is None

    assert session.last_announced_step_index == 2
    assert session.current_step_index == 0


def test_skipped_steps_are_not_backfilled(config, route):
    tracker = _tracker(config, route)
    session = TrackingSession()

    tracker.evaluate(session, Coord(55.700, 37.6))
    assert tracker.evaluate(session, Coord(55.741, 37.6)).step_index == 2
    assert tracker.evaluate(session, Coord(55.721, 37.6)) is None


def test_no_route_no_announcement(config):
    tracker = StepTracker(config)
    assert tracker.evaluate(TrackingSession(), Coord(55.7, 37.6)) is None
