import pytest

from cargo_nav.tracking.nav_config import NavConfig

from fakes import sample_route


@pytest.fixture
def config(tmp_path):
    return NavConfig(
        log_dir=str(tmp_path),
        carrier_id="carrier-1",
        google_maps_api_key="test-key",
        map_width_px=200,
        map_height_px=150,
        position_timeout_s=5.0,
    )


@pytest.fixture
def route():
    return sample_route()
