import streamlit as st

from claims.repository import LocalClaimsRepository, RestClaimsRepository
from config.settings import Settings, SettingsError, resolve_claims_api_key
from notify.senders import LogNotifier, SnsNotifier
from risk.camera import FoliumMapAdapter
from risk.claims import PendingLoads
from risk.dashboard import RiskDashboard


def build_claims_repository(settings: Settings):
    if settings.uses_rest_claims:
        api_key = resolve_claims_api_key(settings)
        if not api_key:
            raise SettingsError(
                "Claims API key missing. Set RISKMAP_CLAIMS_API_KEY or "
                "RISKMAP_CLAIMS_API_KEY_SECRET."
            )
        return RestClaimsRepository(
            settings.claims_api_url,
            api_key,
            bucket=settings.claims_bucket,
            signed_url_ttl=settings.signed_url_ttl,
        )
    return LocalClaimsRepository(settings.claims_store_dir)


def build_notifier(settings: Settings):
    if settings.notify_topic_arn:
        return SnsNotifier(settings.notify_topic_arn, region_name=settings.aws_region)
    return LogNotifier()


def init_state(settings: Settings):
    if "risk_settings" not in st.session_state:
        st.session_state["risk_settings"] = settings

    if "risk_dashboard" not in st.session_state:
        pending = PendingLoads()
        adapter = FoliumMapAdapter(padding=settings.fit_padding)
        dashboard = RiskDashboard.from_settings(
            settings,
            adapter,
            build_claims_repository(settings),
            scheduler=pending,
        )
        st.session_state["risk_pending_loads"] = pending
        st.session_state["risk_dashboard"] = dashboard
        st.session_state["risk_notifier"] = build_notifier(settings)

    if "risk_map_epoch" not in st.session_state:
        st.session_state["risk_map_epoch"] = 0

    if "risk_radius_m" not in st.session_state:
        st.session_state["risk_radius_m"] = settings.search_radius_m

    if "risk_send_armed" not in st.session_state:
        st.session_state["risk_send_armed"] = False

    if "risk_delete_armed" not in st.session_state:
        st.session_state["risk_delete_armed"] = None

    if "risk_search_error" not in st.session_state:
        st.session_state["risk_search_error"] = None
