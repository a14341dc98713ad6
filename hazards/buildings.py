"""Building-level natural hazard data.

Buildings come from an ArcGIS feature layer that carries, per building, the
federal building id (EGID), the address, a river-flood class (1-6) and a
storm class (25-38, derived from the 50-year gust in km/h / 4).
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Dict, List

import requests
import streamlit as st

from risk.models import BuildingRecord, RiskScores

logger = logging.getLogger(__name__)

BUILDING_OUT_FIELDS = (
    "GWR_EGID,ADRESSE,STURM,STURM_TEXT,"
    "HOCHWASSER_FLIESSGEWAESSER,FLIESSGEWAESSER_TEXT_DE"
)

SAMPLE_BUILDINGS = [
    {
        "attributes": {
            "GWR_EGID": 1370388,
            "ADRESSE": "Spilstrasse 47a, 3020 Bern",
            "STURM": 30.48965073,
            "STURM_TEXT": "<= 144 km/h",
            "HOCHWASSER_FLIESSGEWAESSER": None,
            "FLIESSGEWAESSER_TEXT_DE": "keine Gefährdung",
        },
        "geometry": {"x": 7.3835, "y": 46.9598},
    },
    {
        "attributes": {
            "GWR_EGID": 504030936,
            "ADRESSE": "Mülifeld 50c, 3020 Bern",
            "STURM": 30.48965073,
            "STURM_TEXT": "<= 144 km/h",
            "HOCHWASSER_FLIESSGEWAESSER": None,
            "FLIESSGEWAESSER_TEXT_DE": "keine Gefährdung",
        },
        "geometry": {"x": 7.3781, "y": 46.9622},
    },
    {
        "attributes": {
            "GWR_EGID": 504030922,
            "ADRESSE": "Riedbachmühle 46s, 3020 Bern",
            "STURM": 30.48965073,
            "STURM_TEXT": "<= 144 km/h",
            "HOCHWASSER_FLIESSGEWAESSER": 6,
            "FLIESSGEWAESSER_TEXT_DE": "> 200 cm",
        },
        "geometry": {"x": 7.3726, "y": 46.9567},
    },
    {
        "attributes": {
            "GWR_EGID": 1370381,
            "ADRESSE": "Spilstrasse 46c, 3020 Bern",
            "STURM": 30.48965073,
            "STURM_TEXT": "<= 144 km/h",
            "HOCHWASSER_FLIESSGEWAESSER": 3,
            "FLIESSGEWAESSER_TEXT_DE": "20 - 50 cm",
        },
        "geometry": {"x": 7.3841, "y": 46.9593},
    },
]


def _score(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(score):
        return None
    return score


def building_id(attributes: Dict[str, Any]) -> str | None:
    """EGID as a string key, falling back to the address."""
    egid = attributes.get("GWR_EGID")
    if egid is not None and egid != "":
        if isinstance(egid, float) and egid.is_integer():
            return str(int(egid))
        return str(egid).strip()
    address = (attributes.get("ADRESSE") or "").strip()
    return address or None


def _coordinates(geometry: Dict[str, Any] | None) -> tuple[float, float] | None:
    if not geometry:
        return None
    if "x" in geometry and "y" in geometry:
        return float(geometry["x"]), float(geometry["y"])
    coords = geometry.get("coordinates")
    if geometry.get("type") == "Point" and coords and len(coords) >= 2:
        return float(coords[0]), float(coords[1])
    # Building footprints: use the first ring's vertex mean.
    rings = geometry.get("rings")
    if rings and rings[0]:
        ring = rings[0]
        return (
            sum(p[0] for p in ring) / len(ring),
            sum(p[1] for p in ring) / len(ring),
        )
    return None


def building_from_feature(feature: Dict[str, Any]) -> BuildingRecord | None:
    attributes = feature.get("attributes") or feature.get("properties") or {}
    key = building_id(attributes)
    coords = _coordinates(feature.get("geometry"))
    if key is None or coords is None:
        return None
    return BuildingRecord(
        id=key,
        coordinates=coords,
        address=(attributes.get("ADRESSE") or key).strip(),
        risk_scores=RiskScores(
            water=_score(attributes.get("HOCHWASSER_FLIESSGEWAESSER")),
            wind=_score(attributes.get("STURM")),
        ),
        water_text=attributes.get("FLIESSGEWAESSER_TEXT_DE"),
        wind_text=attributes.get("STURM_TEXT"),
    )


def parse_buildings(features: List[Dict[str, Any]]) -> List[BuildingRecord]:
    records = []
    skipped = 0
    for feature in features:
        record = building_from_feature(feature)
        if record is None:
            skipped += 1
            continue
        records.append(record)
    if skipped:
        logger.warning("Skipped %d hazard feature(s) without id or location", skipped)
    return records


def sample_buildings() -> List[BuildingRecord]:
    return parse_buildings(SAMPLE_BUILDINGS)


def query_building_features(layer_url, bbox, page_size=1000, max_pages=20):
    west, south, east, north = bbox

    all_features = []
    offset = 0

    for _ in range(max_pages):
        params = {
            "where": "1=1",
            "geometry": f"{west},{south},{east},{north}",
            "geometryType": "esriGeometryEnvelope",
            "spatialRel": "esriSpatialRelIntersects",
            "inSR": 4326,
            "outSR": 4326,
            "returnGeometry": "true",
            "outFields": BUILDING_OUT_FIELDS,
            "resultRecordCount": page_size,
            "resultOffset": offset,
            "f": "json",
        }

        r = requests.get(f"{layer_url.rstrip('/')}/query", params=params, timeout=30)
        r.raise_for_status()
        data = r.json()
        if "error" in data:
            raise RuntimeError(f"Hazard layer error: {data['error'].get('message')}")

        features = data.get("features", [])
        if not features:
            break

        all_features.extend(features)

        if not data.get("exceededTransferLimit"):
            break

        offset += page_size
        time.sleep(0.15)

    logger.info("Hazard layer returned %d feature(s)", len(all_features))
    return all_features


@st.cache_data(show_spinner=False, ttl=86400)
def fetch_buildings(bbox, layer_url):
    return parse_buildings(query_building_features(layer_url, bbox))
