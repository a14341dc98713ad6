"""Claims datastore access.

Two implementations of the same small contract:

- ``RestClaimsRepository`` talks to a PostgREST-style ``claims`` table and a
  storage API that issues short-lived signed image URLs.
- ``LocalClaimsRepository`` keeps one JSON list per building on disk, for
  local runs without a backend.
"""

from __future__ import annotations

import json
import logging
import re
import time
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Protocol
from urllib.parse import quote

import requests

from config.urls import CLAIMS_REST_PATH, CLAIMS_SIGN_PATH
from risk.models import ClaimRecord

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "claims-uploads"
DEFAULT_SIGNED_URL_TTL = 60 * 10

_TIMEOUT = 30


class ClaimsRepositoryError(RuntimeError):
    """Raised when the claims datastore cannot be read or written."""


class ClaimsRepository(Protocol):
    def get_claims(self, building_id: str) -> List[ClaimRecord]: ...

    def get_signed_image_url(self, path: str) -> str: ...

    def delete_claim(self, claim_id: str) -> None: ...


def _parse_date(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _safe_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def claim_from_row(row: Dict[str, Any]) -> ClaimRecord:
    paths = row.get("image_paths") or []
    if isinstance(paths, str):
        paths = [paths]
    return ClaimRecord(
        id=str(row["id"]),
        building_id=str(row.get("gwr_egid") or ""),
        damage_type=row.get("damage_type") or "unknown",
        description=row.get("description"),
        claim_date=_parse_date(row.get("claim_date")),
        created_at=_parse_datetime(row.get("created_at")),
        location_name=row.get("location_name"),
        images_count=_safe_int(row.get("images_count")),
        image_paths=tuple(str(p) for p in paths if p),
    )


def _newest_first(claims: List[ClaimRecord]) -> List[ClaimRecord]:
    def key(claim: ClaimRecord) -> float:
        if claim.created_at is None:
            return float("-inf")
        return claim.created_at.timestamp()

    return sorted(claims, key=key, reverse=True)


class RestClaimsRepository:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        bucket: str = DEFAULT_BUCKET,
        signed_url_ttl: int = DEFAULT_SIGNED_URL_TTL,
        session: requests.Session | None = None,
        backoffs: tuple[float, ...] = (1, 3),
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._bucket = bucket
        self._ttl = signed_url_ttl
        self._session = session or requests.Session()
        self._backoffs = backoffs

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
            "User-Agent": "RiskMap/1.0",
        }

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self._base_url}{path}"
        last_exc: Exception | None = None
        for attempt in range(len(self._backoffs) + 1):
            try:
                resp = self._session.request(
                    method, url, headers=self._headers(), timeout=_TIMEOUT, **kwargs
                )
                resp.raise_for_status()
                return resp
            except requests.HTTPError as exc:
                last_exc = exc
                status = exc.response.status_code if exc.response is not None else None
                # Client errors will not improve on retry.
                if status is not None and status < 500:
                    break
            except requests.RequestException as exc:
                last_exc = exc
            if attempt >= len(self._backoffs):
                break
            time.sleep(self._backoffs[attempt])
        raise ClaimsRepositoryError(f"{method} {path} failed: {last_exc}") from last_exc

    def get_claims(self, building_id: str) -> List[ClaimRecord]:
        resp = self._request(
            "GET",
            CLAIMS_REST_PATH,
            params={
                "select": "*",
                "gwr_egid": f"eq.{building_id}",
                "order": "created_at.desc",
            },
        )
        try:
            rows = resp.json()
        except ValueError as exc:
            raise ClaimsRepositoryError("Claims response was not JSON") from exc
        if not isinstance(rows, list):
            raise ClaimsRepositoryError(f"Unexpected claims payload type: {type(rows)}")
        return [claim_from_row(row) for row in rows]

    def get_signed_image_url(self, path: str) -> str:
        resp = self._request(
            "POST",
            f"{CLAIMS_SIGN_PATH}/{self._bucket}/{quote(path)}",
            json={"expiresIn": self._ttl},
        )
        try:
            data = resp.json()
        except ValueError as exc:
            raise ClaimsRepositoryError("Sign response was not JSON") from exc
        signed = data.get("signedURL") or data.get("signedUrl")
        if not signed:
            raise ClaimsRepositoryError(f"No signed URL returned for {path}")
        if signed.startswith("http"):
            return signed
        return f"{self._base_url}/storage/v1{signed}"

    def delete_claim(self, claim_id: str) -> None:
        self._request("DELETE", CLAIMS_REST_PATH, params={"id": f"eq.{claim_id}"})


def _file_slug(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", value.strip()) or "_"


class LocalClaimsRepository:
    """JSON-file claims store: ``<base_dir>/<building_id>.json`` per building,
    images under ``<base_dir>/images``."""

    def __init__(self, base_dir: Path | str):
        self._base_dir = Path(base_dir)

    @property
    def images_dir(self) -> Path:
        return self._base_dir / "images"

    def _claims_path(self, building_id: str) -> Path:
        return self._base_dir / f"{_file_slug(building_id)}.json"

    def _read_rows(self, path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as handle:
                rows = json.load(handle)
        except (OSError, ValueError) as exc:
            raise ClaimsRepositoryError(f"Could not read {path.name}: {exc}") from exc
        if not isinstance(rows, list):
            raise ClaimsRepositoryError(f"{path.name} does not hold a list of claims")
        return rows

    def _write_rows(self, path: Path, rows: List[Dict[str, Any]]) -> None:
        try:
            with path.open("w", encoding="utf-8") as handle:
                json.dump(rows, handle, indent=2)
        except OSError as exc:
            raise ClaimsRepositoryError(f"Could not write {path.name}: {exc}") from exc

    def get_claims(self, building_id: str) -> List[ClaimRecord]:
        rows = self._read_rows(self._claims_path(building_id))
        claims = []
        for row in rows:
            row = {"gwr_egid": building_id, **row}
            claims.append(claim_from_row(row))
        return _newest_first(claims)

    def get_signed_image_url(self, path: str) -> str:
        images_dir = self.images_dir.resolve()
        target = (images_dir / path).resolve()
        if images_dir not in target.parents:
            raise ClaimsRepositoryError(f"Image path escapes the store: {path}")
        if not target.is_file():
            raise ClaimsRepositoryError(f"Image not found: {path}")
        return target.as_uri()

    def delete_claim(self, claim_id: str) -> None:
        if self._base_dir.exists():
            for path in sorted(self._base_dir.glob("*.json")):
                rows = self._read_rows(path)
                kept = [row for row in rows if str(row.get("id")) != str(claim_id)]
                if len(kept) != len(rows):
                    self._write_rows(path, kept)
                    return
        raise ClaimsRepositoryError(f"Claim {claim_id} not found")
