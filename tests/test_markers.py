import pytest

from risk.colors import NEUTRAL_GRAY
from risk.markers import MarkerStore
from risk.models import ThresholdFilterState


@pytest.fixture
def store(camera):
    return MarkerStore(camera, bearing_source=lambda: 7.5)


def test_load_colors_markers_for_the_active_filter(camera, make_building):
    store = MarkerStore(camera, filter_state=ThresholdFilterState("water", 3, 25))
    result = store.load([make_building("1", water=6), make_building("2", water=1)])

    visuals = {visual.id: visual for visual in result.visuals}
    assert visuals["1"].color.hue == pytest.approx(0)
    assert visuals["1"].below_threshold is False
    assert visuals["2"].color == NEUTRAL_GRAY
    assert visuals["2"].below_threshold is True
    assert set(camera.markers) == {"1", "2"}


def test_load_empty_does_not_move_the_camera(store, camera):
    result = store.load([])

    assert result.visuals == ()
    assert camera.markers == {}
    assert camera.camera_moves() == []
    assert "render_markers" not in camera.names()


def test_single_record_flies_to_it(store, camera, make_building):
    store.load([make_building("1", lon=7.4, lat=46.9)])

    assert camera.camera_moves() == [("fly_to", (7.4, 46.9), 14, 60, 7.5)]


def test_several_records_fit_bounds(store, camera, make_building):
    store.load([make_building("1", lon=7.4, lat=46.9), make_building("2", lon=7.5, lat=47.0)])

    assert camera.camera_moves() == [("fit_bounds", ((7.4, 46.9), (7.5, 47.0)), 18, 60)]


def test_duplicate_ids_keep_last_record_in_first_position(store, make_building):
    result = store.load(
        [
            make_building("a", water=1),
            make_building("b", water=2),
            make_building("a", water=6, address="Later"),
        ]
    )

    assert result.duplicates_dropped == 1
    assert [visual.id for visual in result.visuals] == ["a", "b"]
    assert store.get("a").address == "Later"


def test_recompute_is_idempotent_and_keeps_camera(store, camera, make_building):
    store.load([make_building("1", water=4), make_building("2", wind=30)])
    pose = camera.pose
    camera.calls.clear()

    state = ThresholdFilterState("wind", 1, 28)
    first = store.recompute(state)
    second = store.recompute(state)

    assert first == second
    assert camera.camera_moves() == []
    assert camera.pose == pose
    assert [call for call in camera.calls if call[0] == "jump_to"] == [("jump_to", pose)] * 2


def test_recompute_without_records_does_nothing(store, camera):
    assert store.recompute(ThresholdFilterState("wind")) == ()
    assert camera.calls == []


def test_load_clear_load_round_trip(store, make_building):
    records = [make_building("1", water=6), make_building("2", water=2)]
    first = store.load(records)
    store.set_selected("1")
    store.clear()
    assert len(store) == 0
    again = store.load(records)

    assert again.visuals == first.visuals
    assert store.selected_id is None


def test_set_selected_moves_flag_in_one_render(store, camera, make_building):
    store.load([make_building("1"), make_building("2"), make_building("3")])
    store.set_selected("1")
    camera.calls.clear()

    store.set_selected("2")

    assert camera.names() == ["render_markers"]
    flagged = [visual.id for visual in store.visuals if visual.selected]
    assert flagged == ["2"]


def test_set_selected_unknown_id_raises(store, make_building):
    store.load([make_building("1")])
    with pytest.raises(KeyError):
        store.set_selected("missing")


def test_matching_returns_records_at_or_above_threshold(camera, make_building):
    store = MarkerStore(camera, filter_state=ThresholdFilterState("water", 3, 25))
    store.load([make_building("1", water=3), make_building("2", water=2), make_building("3")])

    assert [record.id for record in store.matching()] == ["1"]


def test_reset_listeners_fire_on_load_and_clear(store, make_building):
    seen = []
    store.add_reset_listener(lambda: seen.append("reset"))
    store.load([make_building("1")])
    store.clear()

    assert seen == ["reset", "reset"]


def test_reset_listeners_see_the_new_marker_set(store, make_building):
    store.load([make_building("old", water=6)])
    seen = []
    store.add_reset_listener(
        lambda: seen.append(([r.id for r in store.matching()], store.visual("old")))
    )

    store.load([make_building("new", water=6)])

    assert seen == [(["new"], None)]
