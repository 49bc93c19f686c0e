from __future__ import annotations

import json
import logging
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from rootra.core.config import settings

logger = logging.getLogger(__name__)


class GeocodingError(Exception):
    pass


def geocoding_enabled() -> bool:
    return bool(settings.locationiq_api_key)


def reverse_geocode(lat: float, lng: float) -> dict:
    """Resolve coordinates to an address through LocationIQ."""
    if not geocoding_enabled():
        raise GeocodingError("LOCATIONIQ_API_KEY is not configured")

    query = urlencode(
        {
            "key": settings.locationiq_api_key,
            "lat": lat,
            "lon": lng,
            "format": "json",
            "addressdetails": 1,
        }
    )
    req = Request(f"{settings.locationiq_base_url}?{query}", headers={"Accept": "application/json"})
    try:
        with urlopen(req, timeout=settings.geocoding_timeout_seconds) as resp:
            data = json.loads(resp.read().decode("utf-8"))
    except HTTPError as exc:
        raise GeocodingError(f"LocationIQ API error: {exc.code}") from exc
    except (URLError, TimeoutError, json.JSONDecodeError) as exc:
        raise GeocodingError(f"Failed to get address from coordinates: {exc}") from exc

    address = data.get("address") or {}
    return {
        "full_address": data.get("display_name"),
        "village": address.get("village"),
        "town": address.get("town"),
        "city": address.get("city"),
        "district": address.get("county"),
        "state": address.get("state"),
        "postcode": address.get("postcode"),
        "country": address.get("country"),
    }


def resolve_address(lat: float | None, lng: float | None) -> str | None:
    """Best-effort address for batch registration; None when unavailable."""
    if lat is None or lng is None or not geocoding_enabled():
        return None
    try:
        return reverse_geocode(lat, lng)["full_address"]
    except GeocodingError as exc:
        logger.warning("Reverse geocoding failed for (%s, %s): %s", lat, lng, exc)
        return None
