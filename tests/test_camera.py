import folium
import pytest

from risk.camera import (
    FoliumMapAdapter,
    MarkerDiff,
    RiskLegendControl,
    bounds_of,
    diff_markers,
    estimate_fit_zoom,
)
from risk.colors import NEUTRAL_GRAY
from risk.models import CameraPose, HslColor, MarkerVisual


def _visual(id, lon=7.4, lat=46.9, selected=False, color=NEUTRAL_GRAY):
    return MarkerVisual(
        id=id,
        color=color,
        below_threshold=color == NEUTRAL_GRAY,
        selected=selected,
        coordinates=(lon, lat),
        address=f"Address {id}",
    )


def test_diff_reports_added_updated_removed():
    current = {"a": _visual("a"), "b": _visual("b")}
    diff = diff_markers(current, [_visual("a"), _visual("b", selected=True), _visual("c")])

    assert diff == MarkerDiff(added=("c",), updated=("b",), removed=())
    assert not diff.is_empty


def test_render_reuses_unchanged_markers():
    adapter = FoliumMapAdapter()
    adapter.render_markers([_visual("a"), _visual("b")])
    kept = adapter.handle("a").element

    diff = adapter.render_markers([_visual("a"), _visual("b", selected=True)])

    assert diff.updated == ("b",)
    assert adapter.handle("a").element is kept
    assert adapter.handle("b").visual.selected is True


def test_render_removes_missing_markers():
    adapter = FoliumMapAdapter()
    adapter.render_markers([_visual("a"), _visual("b")])
    diff = adapter.render_markers([_visual("b")])

    assert diff.removed == ("a",)
    assert adapter.marker_ids == ["b"]


def test_clear_markers_reports_removals():
    adapter = FoliumMapAdapter()
    adapter.render_markers([_visual("a")])
    adapter.clear_markers()
    assert adapter.marker_ids == []
    assert adapter.last_diff.removed == ("a",)


def test_marker_id_at_resolves_click_position():
    adapter = FoliumMapAdapter()
    adapter.render_markers([_visual("a", 7.4, 46.9), _visual("b", 7.5, 47.0)])

    assert adapter.marker_id_at(47.0, 7.5) == "b"
    assert adapter.marker_id_at(46.5, 7.1) is None


def test_jump_to_same_pose_keeps_view_version():
    adapter = FoliumMapAdapter()
    version = adapter.view_version
    adapter.jump_to(adapter.get_pose())
    assert adapter.view_version == version

    adapter.jump_to(CameraPose(center=(7.0, 46.0), zoom=9))
    assert adapter.view_version == version + 1


def test_fly_to_sets_pose():
    adapter = FoliumMapAdapter()
    adapter.fly_to((7.4, 46.9), 14, pitch=60, bearing=-12)
    assert adapter.get_pose() == CameraPose((7.4, 46.9), 14, 60, -12)


def test_fit_bounds_respects_max_zoom():
    adapter = FoliumMapAdapter()
    adapter.fit_bounds([(7.4, 46.9), (7.40001, 46.90001)], max_zoom=18)
    assert adapter.get_pose().zoom <= 18
    assert adapter.get_pose().center == pytest.approx((7.400005, 46.900005))


def test_bounds_and_zoom_estimate():
    bounds = bounds_of([(7.0, 46.0), (8.0, 47.0), (7.5, 46.2)])
    assert bounds == (7.0, 46.0, 8.0, 47.0)
    assert 0 < estimate_fit_zoom(bounds, 18) < 18
    assert estimate_fit_zoom((7.0, 46.0, 7.0, 46.0), 16) == 16


def test_build_map_contains_markers_and_legend():
    adapter = FoliumMapAdapter()
    adapter.render_markers(
        [_visual("a", color=HslColor(10, 80, 50)), _visual("b", 7.5, 47.0)]
    )
    adapter.fit_bounds([(7.4, 46.9), (7.5, 47.0)], max_zoom=18)

    m = adapter.build_map(legend=RiskLegendControl("water", "~80cm"))
    assert isinstance(m, folium.Map)
    html = m.get_root().render()
    assert "hsl(10, 80%, 50%)" in html
    assert "fitBounds" in html
    assert "risk-legend-control" in html
    assert "Water damage risk" in html
    assert "below ~80cm" in html


def test_legend_ramp_follows_mode():
    legend = RiskLegendControl("wind", "120 km/h")
    assert legend.title == "Storm risk"
    assert legend.stops[0] == "hsl(120, 80%, 50%)"
    assert legend.stops[-1] == "hsl(0, 80%, 50%)"
    assert legend.gray == "hsl(0, 0%, 60%)"


def test_fit_bounds_records_requested_pitch():
    adapter = FoliumMapAdapter()
    adapter.fit_bounds([(7.4, 46.9), (7.5, 47.0)], max_zoom=18, pitch=60)
    assert adapter.get_pose().pitch == 60

    adapter.fit_bounds([(7.4, 46.9), (7.5, 47.0)], max_zoom=18)
    assert adapter.get_pose().pitch == 60
