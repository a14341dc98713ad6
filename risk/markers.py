"""Authoritative marker set for one search result.

``MarkerStore`` keeps an arena of building records keyed by id plus the
derived ``MarkerVisual`` for each of them. It is the only writer of visual
state; the threshold and selection controllers drive it.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Tuple

from .camera import MapCameraAdapter
from .colors import color_for
from .models import BuildingRecord, MarkerVisual, ThresholdFilterState

logger = logging.getLogger(__name__)

SINGLE_ZOOM = 14
MAX_FIT_ZOOM = 18
PITCH = 60


def random_bearing() -> float:
    return random.uniform(-20, 20)


@dataclass(frozen=True)
class LoadResult:
    visuals: Tuple[MarkerVisual, ...]
    duplicates_dropped: int = 0


class MarkerStore:
    def __init__(
        self,
        camera: MapCameraAdapter,
        *,
        filter_state: ThresholdFilterState | None = None,
        single_zoom: float = SINGLE_ZOOM,
        max_fit_zoom: float = MAX_FIT_ZOOM,
        pitch: float = PITCH,
        bearing_source: Callable[[], float] = random_bearing,
    ):
        self._camera = camera
        self._filter = filter_state or ThresholdFilterState()
        self._single_zoom = single_zoom
        self._max_fit_zoom = max_fit_zoom
        self._pitch = pitch
        self._bearing_source = bearing_source

        self._records: Dict[str, BuildingRecord] = {}
        self._visuals: Dict[str, MarkerVisual] = {}
        self._selected_id: str | None = None
        self._reset_listeners: List[Callable[[], None]] = []

    # read side --------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, building_id) -> bool:
        return building_id in self._records

    @property
    def records(self) -> Tuple[BuildingRecord, ...]:
        return tuple(self._records.values())

    @property
    def visuals(self) -> Tuple[MarkerVisual, ...]:
        return tuple(self._visuals.values())

    @property
    def filter_state(self) -> ThresholdFilterState:
        return self._filter

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    def get(self, building_id: str) -> BuildingRecord | None:
        return self._records.get(building_id)

    def visual(self, building_id: str) -> MarkerVisual | None:
        return self._visuals.get(building_id)

    def matching(self) -> List[BuildingRecord]:
        """Records at or above the active threshold."""
        return [
            self._records[i]
            for i, visual in self._visuals.items()
            if not visual.below_threshold
        ]

    def add_reset_listener(self, listener: Callable[[], None]) -> None:
        """Called whenever the marker set is replaced or cleared."""
        self._reset_listeners.append(listener)

    # write side -------------------------------------------------------------

    def load(self, records: Iterable[BuildingRecord]) -> LoadResult:
        """Replace the whole marker set and frame it with the camera.

        Duplicate ids are resolved last-wins: the later record's data is kept
        at the position where the id first appeared.
        """
        incoming = list(records)
        deduped: Dict[str, BuildingRecord] = {}
        for record in incoming:
            deduped[record.id] = record
        dropped = len(incoming) - len(deduped)
        if dropped:
            logger.warning("Dropped %d duplicate building id(s) on load", dropped)

        self._records = deduped
        self._selected_id = None
        self._visuals = self._compute_visuals()
        # Listeners may read the store; it must be complete by now.
        self._notify_reset()

        if not self._visuals:
            self._camera.clear_markers()
            logger.info("Loaded 0 buildings")
            return LoadResult((), dropped)

        self._camera.render_markers(self.visuals)
        self._frame()
        logger.info("Loaded %d buildings", len(self._records))
        return LoadResult(self.visuals, dropped)

    def clear(self) -> None:
        self._records = {}
        self._visuals = {}
        self._selected_id = None
        self._notify_reset()
        self._camera.clear_markers()

    def recompute(self, filter_state: ThresholdFilterState) -> Tuple[MarkerVisual, ...]:
        """Recolor every marker for ``filter_state`` without moving the camera."""
        self._filter = filter_state
        if not self._records:
            return ()

        pose = self._camera.get_pose()
        self._visuals = self._compute_visuals()
        self._camera.render_markers(self.visuals)
        if pose is not None:
            self._camera.jump_to(pose)
        return self.visuals

    def set_selected(self, building_id: str | None) -> None:
        """Move the selected flag to ``building_id`` in one render pass."""
        if building_id is not None and building_id not in self._records:
            raise KeyError(building_id)

        previous = self._selected_id
        if previous == building_id:
            return
        self._selected_id = building_id

        for marker_id in (previous, building_id):
            if marker_id is None or marker_id not in self._visuals:
                continue
            self._visuals[marker_id] = replace(
                self._visuals[marker_id], selected=marker_id == building_id
            )
        self._camera.render_markers(self.visuals)

    # internals --------------------------------------------------------------

    def _compute_visuals(self) -> Dict[str, MarkerVisual]:
        mode = self._filter.mode
        threshold = self._filter.active_threshold()
        visuals = {}
        for building_id, record in self._records.items():
            color, below = color_for(record.risk_scores.for_mode(mode), mode, threshold)
            visuals[building_id] = MarkerVisual(
                id=building_id,
                color=color,
                below_threshold=below,
                selected=building_id == self._selected_id,
                coordinates=record.coordinates,
                address=record.address,
            )
        return visuals

    def _frame(self) -> None:
        points = [record.coordinates for record in self._records.values()]
        if len(points) == 1:
            self._camera.fly_to(
                points[0],
                self._single_zoom,
                pitch=self._pitch,
                bearing=self._bearing_source(),
            )
        else:
            self._camera.fit_bounds(points, max_zoom=self._max_fit_zoom, pitch=self._pitch)

    def _notify_reset(self) -> None:
        for listener in self._reset_listeners:
            listener()
