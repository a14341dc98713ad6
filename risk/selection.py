"""Single-selection state machine over the marker store."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .markers import MarkerStore

logger = logging.getLogger(__name__)

SelectionListener = Callable[[Optional[str]], object]


class UnknownMarkerError(LookupError):
    """Raised when a selection names a building that is not loaded."""


class SelectionController:
    """States: Unselected (``selected_id is None``) or Selected(id).

    ``select`` on the already selected id toggles back to Unselected. Every
    transition is reported to ``on_change`` (normally
    ``ClaimsLoader.on_selection_change``) with the new id or ``None``.
    A store load or clear forces Unselected.
    """

    def __init__(
        self,
        store: MarkerStore,
        on_change: SelectionListener | None = None,
        *,
        strict: bool = False,
    ):
        self._store = store
        self._on_change = on_change
        self._strict = strict
        self._selected_id: str | None = None
        store.add_reset_listener(self._on_store_reset)

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def is_selected(self) -> bool:
        return self._selected_id is not None

    def select(self, building_id: str) -> str | None:
        """Select ``building_id`` (or toggle it off). Returns the new state."""
        if building_id not in self._store:
            if self._strict:
                raise UnknownMarkerError(building_id)
            logger.warning("Ignoring selection of unknown building id %r", building_id)
            self.deselect()
            return None

        if building_id == self._selected_id:
            self.deselect()
            return None

        self._store.set_selected(building_id)
        self._selected_id = building_id
        logger.info("Selected building %s", building_id)
        self._notify(building_id)
        return building_id

    def deselect(self) -> None:
        if self._selected_id is None:
            return
        logger.info("Deselected building %s", self._selected_id)
        self._store.set_selected(None)
        self._selected_id = None
        self._notify(None)

    def _on_store_reset(self) -> None:
        if self._selected_id is None:
            return
        self._selected_id = None
        self._notify(None)

    def _notify(self, building_id: str | None) -> None:
        if self._on_change is not None:
            self._on_change(building_id)
