"""Centralized URLs for external integrations."""

from __future__ import annotations

GEOADMIN_SEARCH_URL = "https://api3.geo.admin.ch/rest/services/api/SearchServer"

CLAIMS_REST_PATH = "/rest/v1/claims"
CLAIMS_SIGN_PATH = "/storage/v1/object/sign"
