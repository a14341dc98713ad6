"""Composition of the marker engine behind one object the page can hold."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from claims.repository import ClaimsRepository
from notify.senders import Notifier, SendInfoTarget

from .camera import MapCameraAdapter
from .claims import ClaimsLoader, ClaimsState, Scheduler, running_loop_scheduler
from .filters import ThresholdFilterController
from .markers import MAX_FIT_ZOOM, PITCH, SINGLE_ZOOM, LoadResult, MarkerStore, random_bearing
from .models import BuildingRecord, ThresholdFilterState
from .selection import SelectionController

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskDetail:
    """Detail panel content. Always shows the true scores, filtered or not."""

    building_id: str
    address: str
    water_score: float | None
    water_text: str | None
    wind_score: float | None
    wind_text: str | None
    active_mode: str
    below_threshold: bool


class RiskDashboard:
    def __init__(
        self,
        camera: MapCameraAdapter,
        repository: ClaimsRepository,
        *,
        scheduler: Scheduler = running_loop_scheduler,
        initial_filter: ThresholdFilterState | None = None,
        strict: bool = False,
        single_zoom: float = SINGLE_ZOOM,
        max_fit_zoom: float = MAX_FIT_ZOOM,
        pitch: float = PITCH,
        bearing_source: Callable[[], float] = random_bearing,
        on_claims_change: Callable[[ClaimsState], None] | None = None,
    ):
        self.camera = camera
        self.store = MarkerStore(
            camera,
            single_zoom=single_zoom,
            max_fit_zoom=max_fit_zoom,
            pitch=pitch,
            bearing_source=bearing_source,
        )
        self.claims = ClaimsLoader(
            repository, scheduler=scheduler, on_change=on_claims_change
        )
        self.selection = SelectionController(
            self.store, self.claims.on_selection_change, strict=strict
        )
        self.filters = ThresholdFilterController(self.store, initial_filter)

    @classmethod
    def from_settings(cls, settings, camera, repository, **kwargs) -> "RiskDashboard":
        return cls(
            camera,
            repository,
            strict=settings.strict,
            single_zoom=settings.single_zoom,
            max_fit_zoom=settings.max_fit_zoom,
            pitch=settings.pitch,
            **kwargs,
        )

    # operations -------------------------------------------------------------

    def load(self, records: Iterable[BuildingRecord]) -> LoadResult:
        return self.store.load(records)

    def clear(self) -> None:
        self.store.clear()

    def select(self, building_id: str) -> str | None:
        return self.selection.select(building_id)

    def deselect(self) -> None:
        self.selection.deselect()

    # views ------------------------------------------------------------------

    @property
    def filter_state(self) -> ThresholdFilterState:
        return self.filters.state

    def detail(self) -> RiskDetail | None:
        building_id = self.selection.selected_id
        if building_id is None:
            return None
        record = self.store.get(building_id)
        visual = self.store.visual(building_id)
        if record is None or visual is None:
            return None
        return RiskDetail(
            building_id=record.id,
            address=record.address,
            water_score=record.risk_scores.water,
            water_text=record.water_text,
            wind_score=record.risk_scores.wind,
            wind_text=record.wind_text,
            active_mode=self.filters.state.mode,
            below_threshold=visual.below_threshold,
        )

    def matching_count(self) -> int:
        return len(self.store.matching())

    def send_info_target(self) -> SendInfoTarget:
        state = self.filters.state
        threshold = state.active_threshold()
        selected = self.selection.selected_id
        if selected is not None:
            record = self.store.get(selected)
            return SendInfoTarget(
                kind="building",
                count=1,
                mode=state.mode,
                threshold=threshold,
                address=record.address,
                building_ids=(record.id,),
            )
        matching = self.store.matching()
        return SendInfoTarget(
            kind="filtered",
            count=len(matching),
            mode=state.mode,
            threshold=threshold,
            building_ids=tuple(record.id for record in matching),
        )

    def send_info(self, notifier: Notifier) -> str | None:
        target = self.send_info_target()
        logger.info("Send info requested: %s", target.label)
        return notifier.send(target)
