import asyncio

import pytest

from claims.repository import ClaimsRepositoryError
from risk.models import BuildingRecord, CameraPose, ClaimRecord, RiskScores


class FakeMapAdapter:
    """Records every camera and marker call."""

    def __init__(self):
        self.calls = []
        self.pose = CameraPose(center=(7.44, 46.95), zoom=12)
        self.markers = {}

    def fly_to(self, center, zoom, pitch=None, bearing=None):
        self.calls.append(("fly_to", tuple(center), zoom, pitch, bearing))
        self.pose = CameraPose(tuple(center), zoom, pitch or 0, bearing or 0)

    def fit_bounds(self, points, max_zoom, pitch=None):
        self.calls.append(("fit_bounds", tuple(points), max_zoom, pitch))

    def jump_to(self, pose):
        self.calls.append(("jump_to", pose))
        self.pose = pose

    def get_pose(self):
        self.calls.append(("get_pose",))
        return self.pose

    def render_markers(self, visuals):
        visuals = tuple(visuals)
        self.calls.append(("render_markers", visuals))
        self.markers = {visual.id: visual for visual in visuals}

    def clear_markers(self):
        self.calls.append(("clear_markers",))
        self.markers = {}

    def names(self):
        return [call[0] for call in self.calls]

    def camera_moves(self):
        return [call for call in self.calls if call[0] in ("fly_to", "fit_bounds")]


class FakeClaimsRepository:
    """Synchronous in-memory repository."""

    def __init__(self, claims=None, fail_paths=(), error=None):
        self.claims = dict(claims or {})
        self.fail_paths = set(fail_paths)
        self.error = error
        self.requests = []
        self.deleted = []

    def get_claims(self, building_id):
        self.requests.append(building_id)
        if self.error is not None:
            raise self.error
        return list(self.claims.get(building_id, []))

    def get_signed_image_url(self, path):
        if path in self.fail_paths:
            raise ClaimsRepositoryError(f"sign failed for {path}")
        return f"https://signed.example/{path}"

    def delete_claim(self, claim_id):
        self.deleted.append(claim_id)


class GatedClaimsRepository:
    """Async repository whose fetches block until ``release`` is called."""

    def __init__(self, claims=None, failures=()):
        self.claims = dict(claims or {})
        self.failures = set(failures)
        self._gates = {}

    def _gate(self, building_id):
        if building_id not in self._gates:
            self._gates[building_id] = asyncio.Event()
        return self._gates[building_id]

    def release(self, building_id):
        self._gate(building_id).set()

    async def get_claims(self, building_id):
        await self._gate(building_id).wait()
        if building_id in self.failures:
            raise ClaimsRepositoryError(f"backend down for {building_id}")
        return list(self.claims.get(building_id, []))

    async def get_signed_image_url(self, path):
        return f"https://signed.example/{path}"

    async def delete_claim(self, claim_id):
        return None


def _building(id, lon=7.38, lat=46.96, water=None, wind=None, address=None):
    return BuildingRecord(
        id=id,
        coordinates=(lon, lat),
        address=address or f"Teststrasse {id}, 3000 Bern",
        risk_scores=RiskScores(water=water, wind=wind),
    )


def _claim(id, building_id, *, image_paths=(), created_at=None, **kwargs):
    return ClaimRecord(
        id=id,
        building_id=building_id,
        damage_type=kwargs.pop("damage_type", "water"),
        image_paths=tuple(image_paths),
        created_at=created_at,
        **kwargs,
    )


@pytest.fixture
def camera():
    return FakeMapAdapter()


@pytest.fixture
def make_building():
    return _building


@pytest.fixture
def make_claim():
    return _claim


@pytest.fixture
def fake_repository():
    return FakeClaimsRepository


@pytest.fixture
def gated_repository():
    return GatedClaimsRepository
