"""Data model shared by the risk marker engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal, Tuple

RiskMode = Literal["water", "wind"]

RISK_MODES: Tuple[RiskMode, ...] = ("water", "wind")

# (lon, lat)
Coordinates = Tuple[float, float]


@dataclass(frozen=True)
class RiskScores:
    water: float | None = None
    wind: float | None = None

    def for_mode(self, mode: RiskMode) -> float | None:
        if mode == "water":
            return self.water
        if mode == "wind":
            return self.wind
        raise ValueError(f"Unknown risk mode: {mode!r}")


@dataclass(frozen=True)
class BuildingRecord:
    """One building as delivered by the hazard source.

    ``id`` is the stable key used to correlate markers with claims; it is
    the building register id (EGID) when the source has one, otherwise the
    address string.
    """

    id: str
    coordinates: Coordinates
    address: str
    risk_scores: RiskScores = field(default_factory=RiskScores)
    water_text: str | None = None
    wind_text: str | None = None

    @property
    def lon(self) -> float:
        return self.coordinates[0]

    @property
    def lat(self) -> float:
        return self.coordinates[1]


@dataclass(frozen=True)
class ThresholdFilterState:
    mode: RiskMode = "water"
    water_threshold: float = 1
    wind_threshold: float = 25

    def active_threshold(self) -> float:
        if self.mode == "water":
            return self.water_threshold
        return self.wind_threshold


@dataclass(frozen=True)
class HslColor:
    hue: float
    saturation: float
    lightness: float

    def css(self, alpha: float | None = None) -> str:
        if alpha is None:
            return f"hsl({self.hue:g}, {self.saturation:g}%, {self.lightness:g}%)"
        return (
            f"hsla({self.hue:g}, {self.saturation:g}%, {self.lightness:g}%, {alpha:g})"
        )

    def __str__(self) -> str:
        return self.css()


@dataclass(frozen=True)
class MarkerVisual:
    """Derived drawing state of one marker. Never persisted."""

    id: str
    color: HslColor
    below_threshold: bool
    selected: bool = False
    coordinates: Coordinates = (0.0, 0.0)
    address: str = ""


@dataclass(frozen=True)
class CameraPose:
    center: Coordinates
    zoom: float
    pitch: float = 0.0
    bearing: float = 0.0


@dataclass(frozen=True)
class ClaimRecord:
    id: str
    building_id: str
    damage_type: str
    description: str | None = None
    claim_date: date | None = None
    created_at: datetime | None = None
    location_name: str | None = None
    images_count: int | None = None
    image_paths: Tuple[str, ...] = ()

    @property
    def display_date(self) -> date | None:
        if self.claim_date is not None:
            return self.claim_date
        if self.created_at is not None:
            return self.created_at.date()
        return None
