import pytest

from cargo_nav.tracking.geocoder import Geocoder
from cargo_nav.tracking.models import Coord
from cargo_nav.tracking.nav_config import NavConfig


@pytest.mark.asyncio
async def test_resolve_and_cache():
    calls = []

    def geocode(address):
        calls.append(address)
        return 55.7616, 37.6094

    geocoder = Geocoder(geocode)
    assert await geocoder.resolve("Тверская 13") == Coord(55.7616, 37.6094)
    assert await geocoder.resolve(" Тверская 13 ") == Coord(55.7616, 37.6094)
    assert calls == ["Тверская 13"]


@pytest.mark.asyncio
async def test_unresolvable_address():
    def geocode(address):
        raise ValueError(f"Nominatim could not geocode query {address!r}")

    assert await Geocoder(geocode).resolve("nowhere") is None


@pytest.mark.asyncio
async def test_empty_address():
    assert await Geocoder(lambda a: (0, 0)).resolve("") is None


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "gkey")
    monkeypatch.setenv("SUPABASE_URL", "https://db.example/")
    monkeypatch.setenv("CARRIER_ID", "c-1")
    monkeypatch.setenv("NAV_LANGUAGE", "en")

    config = NavConfig.from_env(log_dir="logs")

    assert config.google_maps_api_key == "gkey"
    assert config.backend_url == "https://db.example"
    assert config.carrier_id == "c-1"
    assert config.language == "en"
    assert config.track_filepath.startswith("logs")
    assert config.proximity_thresholds_km == (5.0, 1.0, 0.5, 0.1)
    assert config.arrival_radius_km == 0.05
