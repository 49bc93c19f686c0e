import io
import json
from urllib.error import URLError

import pytest

from rootra.core.config import settings
from rootra.services import geocoding
from rootra.services.batch_store import register_batch
from rootra.services.geocoding import GeocodingError, resolve_address, reverse_geocode

LOCATIONIQ_REPLY = {
    "display_name": "Erode, Tamil Nadu, 638001, India",
    "address": {"city": "Erode", "county": "Erode", "state": "Tamil Nadu", "postcode": "638001", "country": "India"},
}


@pytest.fixture
def locationiq(monkeypatch):
    calls = []

    def fake_urlopen(req, timeout):
        calls.append(req.full_url)
        return io.BytesIO(json.dumps(LOCATIONIQ_REPLY).encode("utf-8"))

    monkeypatch.setattr(settings, "locationiq_api_key", "test-key")
    monkeypatch.setattr(geocoding, "urlopen", fake_urlopen)
    return calls


def test_reverse_geocode_parses_reply(locationiq):
    result = reverse_geocode(11.34, 77.72)
    assert result["full_address"] == "Erode, Tamil Nadu, 638001, India"
    assert result["district"] == "Erode"
    assert result["state"] == "Tamil Nadu"
    assert "key=test-key" in locationiq[0]
    assert "lat=11.34" in locationiq[0]


def test_geocoding_disabled_without_key(monkeypatch):
    monkeypatch.setattr(settings, "locationiq_api_key", "")
    with pytest.raises(GeocodingError):
        reverse_geocode(11.34, 77.72)
    assert resolve_address(11.34, 77.72) is None


def test_resolve_address_swallows_network_errors(monkeypatch):
    def failing_urlopen(req, timeout):
        raise URLError("unreachable")

    monkeypatch.setattr(settings, "locationiq_api_key", "test-key")
    monkeypatch.setattr(geocoding, "urlopen", failing_urlopen)
    assert resolve_address(11.34, 77.72) is None


def test_registration_fills_origin_address(db, locationiq):
    batch = register_batch(
        db, farmer_id="F010", herb_name="Turmeric", quantity_kg=20, origin_lat=11.34, origin_lng=77.72
    )
    assert batch.origin_address == "Erode, Tamil Nadu, 638001, India"


def test_explicit_address_skips_lookup(db, locationiq):
    batch = register_batch(
        db,
        farmer_id="F010",
        herb_name="Turmeric",
        quantity_kg=20,
        origin_lat=11.34,
        origin_lng=77.72,
        origin_address="Plot 4, Erode",
    )
    assert batch.origin_address == "Plot 4, Erode"
    assert locationiq == []
