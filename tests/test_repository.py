import json
from datetime import date

import pytest
import requests

from claims import repository as repository_module
from claims.repository import (
    ClaimsRepositoryError,
    LocalClaimsRepository,
    RestClaimsRepository,
    claim_from_row,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    sleeps = []
    monkeypatch.setattr(repository_module.time, "sleep", sleeps.append)
    return sleeps


def _repo(session):
    return RestClaimsRepository("https://db.example.org/", "anon-key", session=session)


ROW = {
    "id": 17,
    "gwr_egid": 1370388,
    "damage_type": "hail",
    "description": "Dented roof",
    "claim_date": "2024-06-01",
    "created_at": "2024-06-02T10:00:00Z",
    "location_name": "Roof",
    "images_count": "2",
    "image_paths": ["1370388/a.jpg", "1370388/b.jpg"],
}


def test_claim_from_row_parses_fields():
    claim = claim_from_row(ROW)
    assert claim.id == "17"
    assert claim.building_id == "1370388"
    assert claim.claim_date == date(2024, 6, 1)
    assert claim.created_at.tzinfo is not None
    assert claim.images_count == 2
    assert claim.image_paths == ("1370388/a.jpg", "1370388/b.jpg")


def test_claim_from_row_tolerates_missing_values():
    claim = claim_from_row({"id": "x", "claim_date": "garbage", "images_count": None})
    assert claim.damage_type == "unknown"
    assert claim.claim_date is None
    assert claim.display_date is None
    assert claim.image_paths == ()


def test_get_claims_queries_by_building_newest_first():
    session = FakeSession(FakeResponse(payload=[ROW]))
    claims = _repo(session).get_claims("1370388")

    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert url == "https://db.example.org/rest/v1/claims"
    assert kwargs["params"]["gwr_egid"] == "eq.1370388"
    assert kwargs["params"]["order"] == "created_at.desc"
    assert kwargs["headers"]["apikey"] == "anon-key"
    assert [claim.id for claim in claims] == ["17"]


def test_transient_errors_are_retried_with_backoff(no_sleep):
    session = FakeSession(
        requests.ConnectionError("reset"),
        FakeResponse(status_code=503),
        FakeResponse(payload=[]),
    )
    assert _repo(session).get_claims("1") == []
    assert no_sleep == [1, 3]
    assert len(session.calls) == 3


def test_gives_up_after_last_backoff(no_sleep):
    session = FakeSession(*[FakeResponse(status_code=502)] * 3)
    with pytest.raises(ClaimsRepositoryError):
        _repo(session).get_claims("1")
    assert no_sleep == [1, 3]


def test_client_errors_are_not_retried(no_sleep):
    session = FakeSession(FakeResponse(status_code=401))
    with pytest.raises(ClaimsRepositoryError):
        _repo(session).get_claims("1")
    assert no_sleep == []


def test_non_list_payload_is_an_error():
    session = FakeSession(FakeResponse(payload={"message": "nope"}))
    with pytest.raises(ClaimsRepositoryError):
        _repo(session).get_claims("1")


def test_signed_url_is_made_absolute():
    session = FakeSession(
        FakeResponse(payload={"signedURL": "/object/sign/claims-uploads/a%20b.jpg?token=t"})
    )
    url = _repo(session).get_signed_image_url("a b.jpg")

    method, called, kwargs = session.calls[0]
    assert method == "POST"
    assert called == "https://db.example.org/storage/v1/object/sign/claims-uploads/a%20b.jpg"
    assert kwargs["json"] == {"expiresIn": 600}
    assert url == "https://db.example.org/storage/v1/object/sign/claims-uploads/a%20b.jpg?token=t"


def test_missing_signed_url_raises():
    session = FakeSession(FakeResponse(payload={}))
    with pytest.raises(ClaimsRepositoryError):
        _repo(session).get_signed_image_url("a.jpg")


def test_delete_claim_filters_by_id():
    session = FakeSession(FakeResponse(status_code=204))
    _repo(session).delete_claim("17")
    method, url, kwargs = session.calls[0]
    assert method == "DELETE"
    assert kwargs["params"] == {"id": "eq.17"}


@pytest.fixture
def local_store(tmp_path):
    rows = [
        {"id": "old", "damage_type": "water", "created_at": "2023-01-01T00:00:00+00:00"},
        {
            "id": "new",
            "damage_type": "storm",
            "created_at": "2024-01-01T00:00:00+00:00",
            "image_paths": ["roof.jpg", "missing.jpg"],
        },
    ]
    (tmp_path / "1370388.json").write_text(json.dumps(rows), encoding="utf-8")
    (tmp_path / "images").mkdir()
    (tmp_path / "images" / "roof.jpg").write_bytes(b"\xff\xd8")
    return LocalClaimsRepository(tmp_path)


def test_local_claims_sorted_newest_first(local_store):
    claims = local_store.get_claims("1370388")
    assert [claim.id for claim in claims] == ["new", "old"]
    assert all(claim.building_id == "1370388" for claim in claims)


def test_local_unknown_building_has_no_claims(local_store):
    assert local_store.get_claims("999") == []


def test_local_image_urls(local_store):
    assert local_store.get_signed_image_url("roof.jpg").startswith("file://")
    with pytest.raises(ClaimsRepositoryError):
        local_store.get_signed_image_url("missing.jpg")
    with pytest.raises(ClaimsRepositoryError):
        local_store.get_signed_image_url("../1370388.json")


def test_local_delete(local_store):
    local_store.delete_claim("old")
    assert [claim.id for claim in local_store.get_claims("1370388")] == ["new"]
    with pytest.raises(ClaimsRepositoryError):
        local_store.delete_claim("old")


def test_local_corrupt_file_raises(tmp_path):
    (tmp_path / "1.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(ClaimsRepositoryError):
        LocalClaimsRepository(tmp_path).get_claims("1")
