import random

import pytest

from risk.markers import MarkerStore
from risk.selection import SelectionController, UnknownMarkerError


@pytest.fixture
def store(camera, make_building):
    store = MarkerStore(camera)
    store.load([make_building(str(i)) for i in range(1, 6)])
    return store


@pytest.fixture
def changes():
    return []


@pytest.fixture
def selection(store, changes):
    return SelectionController(store, changes.append)


def test_select_then_same_id_toggles_off(selection, store, changes):
    assert selection.select("1") == "1"
    assert store.visual("1").selected is True

    assert selection.select("1") is None
    assert selection.selected_id is None
    assert store.visual("1").selected is False
    assert changes == ["1", None]


def test_at_most_one_marker_is_selected(selection, store):
    rng = random.Random(42)
    for _ in range(50):
        selection.select(rng.choice(["1", "2", "3", "4", "5"]))
        flagged = [visual.id for visual in store.visuals if visual.selected]
        assert len(flagged) <= 1
        assert flagged == ([selection.selected_id] if selection.selected_id else [])


def test_deselect_when_nothing_selected_is_silent(selection, changes):
    selection.deselect()
    assert changes == []


def test_unknown_id_deselects_in_lenient_mode(selection, changes):
    selection.select("2")
    assert selection.select("nope") is None
    assert selection.selected_id is None
    assert changes == ["2", None]


def test_unknown_id_raises_in_strict_mode(store):
    selection = SelectionController(store, strict=True)
    with pytest.raises(UnknownMarkerError):
        selection.select("nope")


def test_reload_forces_unselected(selection, store, changes, make_building):
    selection.select("3")
    store.load([make_building("3")])

    assert selection.selected_id is None
    assert store.visual("3").selected is False
    assert changes == ["3", None]
