"""Map surface contract and its folium implementation.

The engine only talks to the map through ``MapCameraAdapter``. Marker handles
live inside the adapter, keyed by building id; the engine hands over a full
set of ``MarkerVisual`` values and the adapter applies the minimal
add/update/remove diff.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Protocol, Sequence, Tuple

import folium
from branca.element import MacroElement
from jinja2 import Template
from shapely.geometry import MultiPoint

from .colors import NEUTRAL_GRAY, legend_stops
from .models import CameraPose, Coordinates, MarkerVisual
from .ui_styles import (
    DEFAULT_Z_INDEX,
    MODE_LABELS,
    SELECTED_Z_INDEX,
    SHADOW_ALPHA,
    marker_pin_html,
    marker_size,
)

logger = logging.getLogger(__name__)

DEFAULT_POSE = CameraPose(center=(8.2275, 46.8182), zoom=7, pitch=45, bearing=0)


class MapCameraAdapter(Protocol):
    def fly_to(
        self,
        center: Coordinates,
        zoom: float,
        pitch: float | None = None,
        bearing: float | None = None,
    ) -> None: ...

    def fit_bounds(
        self,
        points: Sequence[Coordinates],
        max_zoom: float,
        pitch: float | None = None,
    ) -> None: ...

    def jump_to(self, pose: CameraPose) -> None: ...

    def get_pose(self) -> CameraPose | None: ...

    def render_markers(self, visuals: Sequence[MarkerVisual]) -> None: ...

    def clear_markers(self) -> None: ...


@dataclass(frozen=True)
class MarkerDiff:
    added: Tuple[str, ...] = ()
    updated: Tuple[str, ...] = ()
    removed: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.removed)


def diff_markers(
    current: Mapping[str, MarkerVisual], visuals: Iterable[MarkerVisual]
) -> MarkerDiff:
    incoming = {visual.id: visual for visual in visuals}
    added = tuple(i for i in incoming if i not in current)
    updated = tuple(
        i for i, visual in incoming.items() if i in current and current[i] != visual
    )
    removed = tuple(i for i in current if i not in incoming)
    return MarkerDiff(added=added, updated=updated, removed=removed)


def bounds_of(points: Sequence[Coordinates]) -> Tuple[float, float, float, float]:
    """(west, south, east, north) of the given lon/lat points."""
    if len(points) == 1:
        lon, lat = points[0]
        return lon, lat, lon, lat
    return MultiPoint(list(points)).bounds


def estimate_fit_zoom(
    bounds: Tuple[float, float, float, float],
    max_zoom: float,
    width_px: int = 900,
    height_px: int = 500,
    padding: int = 0,
) -> float:
    west, south, east, north = bounds
    usable_w = max(width_px - 2 * padding, 1)
    usable_h = max(height_px - 2 * padding, 1)

    lon_span = east - west
    # Mercator y spans, in units of the full world height.
    def merc(lat):
        lat = max(min(lat, 85.0511), -85.0511)
        return math.log(math.tan(math.pi / 4 + math.radians(lat) / 2)) / (2 * math.pi)

    lat_span = merc(north) - merc(south)
    candidates = [max_zoom]
    if lon_span > 0:
        candidates.append(math.log2(usable_w * 360 / (256 * lon_span)))
    if lat_span > 0:
        candidates.append(math.log2(usable_h / (256 * lat_span)))
    return max(0.0, min(candidates))


class RiskLegendControl(MacroElement):
    """Leaflet control with the color ramp of ``mode`` and the gray swatch
    used for markers below ``threshold_label``."""

    _template = Template(
        """
        {% macro header(this, kwargs) %}
        <style>
          .risk-legend-control {
            background: rgba(255, 255, 255, 0.92); padding: 8px 10px;
            border-radius: 6px; font-size: 12px; line-height: 1.4; min-width: 160px;
          }
          .risk-legend-control .title { font-weight: 600; margin-bottom: 4px; }
          .risk-legend-control .ramp { height: 10px; border-radius: 3px; }
          .risk-legend-control .ends { display: flex; justify-content: space-between; }
          .risk-legend-control .swatch {
            display: inline-block; width: 10px; height: 10px;
            border-radius: 2px; margin-right: 4px;
          }
        </style>
        {% endmacro %}

        {% macro script(this, kwargs) %}
        var {{ this.get_name() }} = L.control({position: {{ this.position|tojson }}});
        {{ this.get_name() }}.onAdd = function(map) {
          var div = L.DomUtil.create('div', 'risk-legend-control');
          L.DomUtil.create('div', 'title', div).textContent = {{ this.title|tojson }};
          var ramp = L.DomUtil.create('div', 'ramp', div);
          ramp.style.background =
            'linear-gradient(to right, ' + {{ this.stops|tojson }}.join(', ') + ')';
          var ends = L.DomUtil.create('div', 'ends', div);
          L.DomUtil.create('span', '', ends).textContent = 'low';
          L.DomUtil.create('span', '', ends).textContent = 'high';
          var below = L.DomUtil.create('div', '', div);
          L.DomUtil.create('span', 'swatch', below).style.background = {{ this.gray|tojson }};
          below.appendChild(document.createTextNode({{ this.below|tojson }}));
          L.DomEvent.disableClickPropagation(div);
          L.DomEvent.disableScrollPropagation(div);
          return div;
        };
        {{ this.get_name() }}.addTo({{ this._parent.get_name() }});
        {% endmacro %}
        """
    )

    def __init__(self, mode: str, threshold_label: str, *, position: str = "bottomright"):
        super().__init__()
        self._name = "RiskLegendControl"
        self.mode = mode
        self.position = position
        self.title = f"{MODE_LABELS.get(mode, mode)} risk"
        self.stops = [color.css() for _, color in legend_stops(mode)]
        self.gray = NEUTRAL_GRAY.css()
        self.below = f"below {threshold_label}"


@dataclass
class MarkerHandle:
    visual: MarkerVisual
    element: folium.Marker


def _marker_element(visual: MarkerVisual) -> folium.Marker:
    lon, lat = visual.coordinates
    width, height = marker_size(visual.selected)
    html = marker_pin_html(
        fill=visual.color.css(),
        shadow=visual.color.css(alpha=SHADOW_ALPHA),
        selected=visual.selected,
        marker_id=visual.id,
    )
    return folium.Marker(
        location=[lat, lon],
        tooltip=visual.address or visual.id,
        icon=folium.DivIcon(
            html=html,
            icon_size=(width, height),
            icon_anchor=(width // 2, height),
            class_name="building-marker-icon",
        ),
        z_index_offset=SELECTED_Z_INDEX if visual.selected else DEFAULT_Z_INDEX,
    )


@dataclass
class FoliumMapAdapter:
    """MapCameraAdapter backed by a folium (Leaflet) map.

    folium maps are rebuilt on every Streamlit rerun, so the adapter keeps the
    camera pose and the marker handles and produces a fresh ``folium.Map`` in
    ``build_map``. ``view_version`` changes only when the camera is moved on
    purpose (fly/fit/jump to a different pose) so the hosting widget can
    remount then and keep the user's own pan/zoom otherwise.

    Leaflet has no pitch or bearing; both are tracked but not drawn.
    """

    pose: CameraPose = DEFAULT_POSE
    padding: int = 120
    tiles: str = "OpenStreetMap"
    width_px: int = 900
    height_px: int = 500
    view_version: int = 0
    last_diff: MarkerDiff = field(default_factory=MarkerDiff)
    _handles: Dict[str, MarkerHandle] = field(default_factory=dict)
    _pending_bounds: Tuple[Tuple[float, float, float, float], float] | None = None

    # camera -----------------------------------------------------------------

    def fly_to(self, center, zoom, pitch=None, bearing=None) -> None:
        self.pose = CameraPose(
            center=tuple(center),
            zoom=zoom,
            pitch=self.pose.pitch if pitch is None else pitch,
            bearing=self.pose.bearing if bearing is None else bearing,
        )
        self._pending_bounds = None
        self.view_version += 1
        logger.debug("fly_to center=%s zoom=%s", self.pose.center, zoom)

    def fit_bounds(self, points, max_zoom, pitch=None) -> None:
        if not points:
            return
        bounds = bounds_of(points)
        west, south, east, north = bounds
        self.pose = CameraPose(
            center=((west + east) / 2, (south + north) / 2),
            zoom=estimate_fit_zoom(
                bounds, max_zoom, self.width_px, self.height_px, self.padding
            ),
            pitch=self.pose.pitch if pitch is None else pitch,
            bearing=self.pose.bearing,
        )
        self._pending_bounds = (bounds, max_zoom)
        self.view_version += 1
        logger.debug("fit_bounds bounds=%s max_zoom=%s", bounds, max_zoom)

    def jump_to(self, pose: CameraPose) -> None:
        if pose == self.pose:
            return
        self.pose = pose
        self._pending_bounds = None
        self.view_version += 1

    def get_pose(self) -> CameraPose:
        return self.pose

    def sync_pose(self, center: Coordinates, zoom: float) -> None:
        """Record the pose reported back by the browser after user panning."""
        self.pose = CameraPose(
            center=tuple(center),
            zoom=zoom,
            pitch=self.pose.pitch,
            bearing=self.pose.bearing,
        )
        self._pending_bounds = None

    # markers ----------------------------------------------------------------

    def render_markers(self, visuals) -> MarkerDiff:
        visuals = list(visuals)
        current = {i: handle.visual for i, handle in self._handles.items()}
        diff = diff_markers(current, visuals)

        handles: Dict[str, MarkerHandle] = {}
        for visual in visuals:
            existing = self._handles.get(visual.id)
            if existing is not None and existing.visual == visual:
                handles[visual.id] = existing
            else:
                handles[visual.id] = MarkerHandle(visual, _marker_element(visual))
        self._handles = handles
        self.last_diff = diff

        if not diff.is_empty:
            logger.debug(
                "Markers diff: +%d ~%d -%d",
                len(diff.added),
                len(diff.updated),
                len(diff.removed),
            )
        return diff

    def clear_markers(self) -> None:
        self.last_diff = MarkerDiff(removed=tuple(self._handles))
        self._handles = {}

    @property
    def marker_ids(self) -> List[str]:
        return list(self._handles)

    def handle(self, marker_id: str) -> MarkerHandle | None:
        return self._handles.get(marker_id)

    def marker_id_at(self, lat: float, lon: float, tolerance: float = 1e-6) -> str | None:
        """Resolve a click position reported by the browser to a marker id."""
        best_id = None
        best_dist = None
        for marker_id, handle in self._handles.items():
            m_lon, m_lat = handle.visual.coordinates
            dist = abs(m_lat - lat) + abs(m_lon - lon)
            if dist <= tolerance and (best_dist is None or dist < best_dist):
                best_id, best_dist = marker_id, dist
        return best_id

    # rendering --------------------------------------------------------------

    def build_map(self, legend: RiskLegendControl | None = None) -> folium.Map:
        lon, lat = self.pose.center
        m = folium.Map(
            location=[lat, lon],
            zoom_start=self.pose.zoom,
            tiles=self.tiles,
        )
        for handle in self._handles.values():
            handle.element.add_to(m)

        if self._pending_bounds is not None:
            (west, south, east, north), max_zoom = self._pending_bounds
            m.fit_bounds(
                [[south, west], [north, east]],
                padding=(self.padding, self.padding),
                max_zoom=max_zoom,
            )

        if legend is not None:
            m.add_child(legend)
        return m
