import logging
import re
import time

import requests
from geopy.geocoders import Nominatim

from config.urls import GEOADMIN_SEARCH_URL

logger = logging.getLogger(__name__)

_HTML_TAG = re.compile(r"<[^>]+>")


class GeocodingError(RuntimeError):
    """Raised when no geocoder could resolve an address."""


def _normalize_address(address: str) -> str:
    normalized = " ".join(address.strip().split())
    lowered = normalized.lower()
    if not any(c in lowered for c in ("switzerland", "schweiz", "suisse", "svizzera")):
        normalized = f"{normalized}, Switzerland"
    return normalized


def _fallback_queries(address: str) -> list[str]:
    if not address:
        return []
    tokens = [token.strip() for token in address.split(",") if token.strip()]
    # Only generate queries that keep the street to avoid vague matches
    if len(tokens) >= 3:
        return [address, f"{tokens[0]}, {tokens[-2]}"]
    return [address]


def _geocode_geoadmin(address: str) -> tuple[float, float] | None:
    logger.info("Using geo.admin.ch search for address: '%s'", address)
    params = {
        "searchText": address,
        "type": "locations",
        "origins": "address",
        "sr": 4326,
        "limit": 1,
    }
    try:
        resp = requests.get(GEOADMIN_SEARCH_URL, params=params, timeout=15)
        resp.raise_for_status()
    except requests.RequestException as exc:
        logger.error("geo.admin.ch search request failed: %s", exc)
        return None

    results = resp.json().get("results") or []
    if not results:
        logger.warning("geo.admin.ch search failed: no results")
        return None
    attrs = results[0].get("attrs") or {}
    lat, lon = attrs.get("lat"), attrs.get("lon")
    if lat is None or lon is None:
        logger.warning("geo.admin.ch search failed: result without coordinates")
        return None
    label = _HTML_TAG.sub("", attrs.get("label") or "")
    logger.info("geo.admin.ch matched '%s'", label)
    return float(lat), float(lon)


def geocode_once(address: str) -> tuple[float, float]:
    """Resolve an address to (lat, lon)."""
    geolocator = Nominatim(
        user_agent="risk-map-prototype",
        timeout=10,
    )
    normalized = _normalize_address(address)
    logger.info("Geocoding address '%s' normalized to '%s'", address, normalized)
    queries = _fallback_queries(normalized)

    for query in queries:
        logger.info("Nominatim query attempt: '%s'", query)
        try:
            start = time.monotonic()
            location = geolocator.geocode(query, timeout=10, country_codes="ch")
            elapsed = time.monotonic() - start
            logger.info("Nominatim query '%s' completed in %.2fs", query, elapsed)
        except Exception as exc:
            logger.error("Nominatim geocode error for '%s': %s", query, exc)
            location = None
        if location:
            logger.info(
                "Nominatim success for '%s': lat=%s lon=%s",
                query,
                location.latitude,
                location.longitude,
            )
            return location.latitude, location.longitude
        logger.warning("Nominatim failed for query: '%s'", query)

    logger.warning("Nominatim failed for all queries. Trying geo.admin.ch search.")
    location = _geocode_geoadmin(address)
    if location:
        return location

    logger.error("Geocoding failed across Nominatim and geo.admin.ch.")
    raise GeocodingError(f"Could not geocode address: {address}")
