import numpy as np

from cargo_nav.tracking.map_renderer import CanvasMapRenderer
from cargo_nav.tracking.models import Coord, Distance, Duration, Route


def test_route_drawn_once_marker_moved(config, route):
    renderer = CanvasMapRenderer(config)

    for lat in (55.700, 55.705, 55.710):
        renderer.render(route, Coord(lat, 37.6), follow_mode=False)

    assert renderer.route_draws == 1
    assert renderer.marker_moves == 3


def test_new_route_redraws(config, route):
    renderer = CanvasMapRenderer(config)
    renderer.render(route, None, False)
    other = Route(route.distance, route.duration, route.points[:2], route.steps[:1])
    renderer.render(other, None, False)
    assert renderer.route_draws == 2


def test_frame_has_viewport_size(config, route):
    renderer = CanvasMapRenderer(config)
    renderer.render(route, Coord(55.72, 37.6), False)

    frame = renderer.frame()
    assert frame.shape == (config.map_height_px, config.map_width_px, 3)
    assert frame.dtype == np.uint8


def test_marker_does_not_touch_route_layer(config, route):
    renderer = CanvasMapRenderer(config)
    renderer.draw_route(route)
    base = renderer._base.copy()

    renderer.update_position(Coord(55.72, 37.6))
    renderer.update_position(Coord(55.73, 37.6))
    renderer.frame()

    assert np.array_equal(base, renderer._base)


def test_follow_mode_and_recenter(config, route):
    renderer = CanvasMapRenderer(config)
    renderer.render(route, None, False)
    center = renderer._center

    renderer.render(route, Coord(55.741, 37.6), follow_mode=False)
    assert renderer._center == center

    renderer.recenter()
    assert renderer._center != center

    renderer.render(route, Coord(55.702, 37.6), follow_mode=True)
    assert renderer._center == tuple(float(v) for v in renderer._pixel(Coord(55.702, 37.6)))


def test_empty_route_is_ignored(config):
    empty = Route(Distance("", 0), Duration("", 0), (), ())
    renderer = CanvasMapRenderer(config)
    renderer.draw_route(empty)
    assert renderer.route_draws == 0
    assert renderer.frame().shape[:2] == (config.map_height_px, config.map_width_px)


def test_save_snapshot(config, route, tmp_path):
    renderer = CanvasMapRenderer(config)
    renderer.render(route, Coord(55.72, 37.6), True)
    path = tmp_path / "map.png"
    assert renderer.save(str(path))
    assert path.stat().st_size > 0


def test_trail_keeps_only_recent_points(config, route):
    renderer = CanvasMapRenderer(config)
    renderer.draw_route(route)
    renderer.max_trail_points = 5

    positions = [Coord(55.700 + n * 0.003, 37.6) for n in range(12)]
    for coord in positions:
        renderer.update_position(coord)

    assert len(renderer._trail) == 5
    assert renderer._trail == [renderer._pixel(c) for c in positions[-5:]]
