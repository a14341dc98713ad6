"""Runtime settings for the risk map.

Values are read once at start-up from the environment (``.env`` is loaded by
``app.py``), then Streamlit secrets, then defaults. The engine itself never
reads configuration; the page builds ``Settings`` and passes values in.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Mapping

import boto3
import streamlit as st
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

ENV_PREFIX = "RISKMAP_"


class SettingsError(ValueError):
    """Raised for configuration values that cannot be used."""


@dataclass(frozen=True)
class Settings:
    claims_api_url: str | None = None
    claims_api_key: str | None = None
    claims_api_key_secret: str | None = None
    claims_store_dir: str = "data/claims"
    claims_bucket: str = "claims-uploads"
    signed_url_ttl: int = 600
    buildings_layer_url: str | None = None
    search_radius_m: int = 500
    notify_topic_arn: str | None = None
    aws_region: str | None = None
    strict: bool = False
    log_level: str = "INFO"
    single_zoom: float = 14
    max_fit_zoom: float = 18
    fit_padding: int = 120
    pitch: float = 60

    @property
    def uses_rest_claims(self) -> bool:
        return bool(self.claims_api_url)


@lru_cache(maxsize=8)
def _get_secret(secret_name: str, region_name: str | None = None) -> str:
    client = boto3.client("secretsmanager", region_name=region_name)
    try:
        resp = client.get_secret_value(SecretId=secret_name)
    except (ClientError, BotoCoreError) as exc:
        raise SettingsError(f"Unable to load secret '{secret_name}'") from exc
    logger.info("Loaded secret '%s'", secret_name)
    return resp["SecretString"]


def _streamlit_secrets() -> Mapping[str, Any]:
    try:
        return dict(st.secrets)
    except FileNotFoundError:
        return {}


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off", ""}:
        return False
    raise SettingsError(f"{name} must be a boolean, got {value!r}")


def _as_number(cast: Callable[[Any], Any]) -> Callable[[str, Any], Any]:
    def convert(name: str, value: Any):
        try:
            return cast(value)
        except (TypeError, ValueError):
            raise SettingsError(f"{name} must be a number, got {value!r}") from None

    return convert


_CONVERTERS: dict[str, Callable[[str, Any], Any]] = {
    "signed_url_ttl": _as_number(int),
    "search_radius_m": _as_number(int),
    "fit_padding": _as_number(int),
    "single_zoom": _as_number(float),
    "max_fit_zoom": _as_number(float),
    "pitch": _as_number(float),
    "strict": _as_bool,
}


def load_settings(
    environ: Mapping[str, str] | None = None,
    secrets: Mapping[str, Any] | None = None,
) -> Settings:
    environ = os.environ if environ is None else environ
    secrets = _streamlit_secrets() if secrets is None else secrets

    values: dict[str, Any] = {}
    for name in Settings.__dataclass_fields__:
        env_name = f"{ENV_PREFIX}{name.upper()}"
        raw = environ.get(env_name)
        if raw is None or raw == "":
            raw = secrets.get(env_name, secrets.get(name))
        if raw is None or raw == "":
            continue
        convert = _CONVERTERS.get(name)
        values[name] = convert(env_name, raw) if convert else str(raw)

    settings = Settings(**values)
    if settings.signed_url_ttl <= 0:
        raise SettingsError(f"{ENV_PREFIX}SIGNED_URL_TTL must be positive")
    if settings.max_fit_zoom < 0 or settings.single_zoom < 0:
        raise SettingsError("Zoom levels must not be negative")
    return settings


def resolve_claims_api_key(settings: Settings) -> str | None:
    """API key from settings, else from AWS Secrets Manager."""
    if settings.claims_api_key:
        return settings.claims_api_key
    if not settings.claims_api_key_secret:
        return None
    return _get_secret(settings.claims_api_key_secret, settings.aws_region)
