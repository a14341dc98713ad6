"""Risk mode and threshold state driving the marker colors."""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from dataclasses import replace

from .colors import domain_for
from .markers import MarkerStore
from .models import RISK_MODES, RiskMode, ThresholdFilterState

logger = logging.getLogger(__name__)


def clamp_threshold(mode: RiskMode, value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Threshold must be a number, got {value!r}")
    if math.isnan(value):
        raise ValueError("Threshold must not be NaN")
    min_val, max_val = domain_for(mode)
    return max(min_val, min(max_val, value))


def threshold_label(mode: RiskMode, value: float) -> str:
    """Human readable threshold: flood depth for water, gust speed for wind."""
    if mode == "water":
        return f"~{round((value - 1) * 40)}cm"
    return f"{value * 4:g} km/h"


def threshold_range_labels(mode: RiskMode) -> tuple[str, str]:
    if mode == "water":
        return "0cm", "200cm+"
    return "100 km/h", "152+ km/h"


class ThresholdFilterController:
    """Owns ``ThresholdFilterState`` and pushes every change into the store.

    Each setter triggers exactly one ``MarkerStore.recompute``. Inside
    ``batch()`` the recompute is deferred to the end of the block, so a burst
    of slider updates costs a single recompute with the final values.
    """

    def __init__(self, store: MarkerStore, initial: ThresholdFilterState | None = None):
        self._store = store
        self._state = self._clamped(initial or store.filter_state)
        self._batch_depth = 0
        self._dirty = False
        self._store.recompute(self._state)

    @property
    def state(self) -> ThresholdFilterState:
        return self._state

    def set_mode(self, mode: RiskMode) -> None:
        if mode not in RISK_MODES:
            raise ValueError(f"Unknown risk mode: {mode!r}")
        self._update(replace(self._state, mode=mode))

    def set_water_threshold(self, value: float) -> None:
        self._update(replace(self._state, water_threshold=clamp_threshold("water", value)))

    def set_wind_threshold(self, value: float) -> None:
        self._update(replace(self._state, wind_threshold=clamp_threshold("wind", value)))

    def set_active_threshold(self, value: float) -> None:
        if self._state.mode == "water":
            self.set_water_threshold(value)
        else:
            self.set_wind_threshold(value)

    def apply(
        self,
        *,
        mode: RiskMode | None = None,
        water_threshold: float | None = None,
        wind_threshold: float | None = None,
    ) -> None:
        """Set any subset of the fields with a single recompute."""
        with self.batch():
            if mode is not None:
                self.set_mode(mode)
            if water_threshold is not None:
                self.set_water_threshold(water_threshold)
            if wind_threshold is not None:
                self.set_wind_threshold(wind_threshold)

    @contextmanager
    def batch(self):
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._dirty:
                self._dirty = False
                self._recompute()

    def _update(self, state: ThresholdFilterState) -> None:
        self._state = state
        if self._batch_depth:
            self._dirty = True
            return
        self._recompute()

    def _recompute(self) -> None:
        logger.debug(
            "Recomputing markers mode=%s water>=%s wind>=%s",
            self._state.mode,
            self._state.water_threshold,
            self._state.wind_threshold,
        )
        self._store.recompute(self._state)

    @staticmethod
    def _clamped(state: ThresholdFilterState) -> ThresholdFilterState:
        if state.mode not in RISK_MODES:
            raise ValueError(f"Unknown risk mode: {state.mode!r}")
        return replace(
            state,
            water_threshold=clamp_threshold("water", state.water_threshold),
            wind_threshold=clamp_threshold("wind", state.wind_threshold),
        )
