from __future__ import annotations

import pyproj
from shapely.geometry import Point
from shapely.ops import transform

_TO_3857 = pyproj.Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True).transform
_TO_4326 = pyproj.Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True).transform


def search_area(lat: float, lon: float, radius_m: float):
    """Circle of ``radius_m`` around the point, as a WGS84 polygon."""
    if radius_m <= 0:
        raise ValueError("radius_m must be positive")
    center_m = transform(_TO_3857, Point(lon, lat))
    return transform(_TO_4326, center_m.buffer(radius_m))


def search_bbox(lat: float, lon: float, radius_m: float) -> tuple[float, float, float, float]:
    """(west, south, east, north) enclosing the search circle."""
    return search_area(lat, lon, radius_m).bounds
