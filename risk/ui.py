import asyncio
from urllib.parse import urlparse
from urllib.request import url2pathname

import pandas as pd
import requests
import streamlit as st
from streamlit_folium import st_folium

from claims.repository import ClaimsRepositoryError
from hazards.buildings import fetch_buildings, sample_buildings
from hazards.search_area import search_bbox
from locations.providers import GeocodingError, geocode_once
from notify.senders import NotificationError

from .camera import RiskLegendControl
from .claims import ClaimsStatus
from .colors import domain_for
from .filters import threshold_label, threshold_range_labels
from .models import RISK_MODES
from .ui_styles import CLAIMS_STATUS_TEXT, MODE_LABELS


def arm(confirm_key, value=True):
    st.session_state[confirm_key] = value


def _dashboard():
    return st.session_state["risk_dashboard"]


def _finish_turn(rerun=True):
    """Run queued claim fetches, then redraw so the map shows the new state."""
    st.session_state["risk_pending_loads"].run()
    if rerun:
        st.rerun()


def _image_source(url: str) -> str:
    if url.startswith("file://"):
        return url2pathname(urlparse(url).path)
    return url


def _load_buildings(address: str, radius_m: int):
    settings = st.session_state["risk_settings"]
    lat, lon = geocode_once(address)
    bbox = search_bbox(lat, lon, radius_m)
    if settings.buildings_layer_url:
        return fetch_buildings(bbox, settings.buildings_layer_url)
    return sample_buildings()


# ---------------------------------------
# Search
# ---------------------------------------
def render_search():
    dashboard = _dashboard()

    with st.form("risk_search"):
        address = st.text_input("Address", placeholder="Spilstrasse 47a, 3020 Bern")
        radius_m = st.slider(
            "Search radius (m)",
            min_value=100,
            max_value=3000,
            step=100,
            key="risk_radius_m",
        )
        submitted = st.form_submit_button("Search buildings")

    c1, c2 = st.columns(2)
    with c1:
        load_sample = st.button("Load sample buildings", use_container_width=True)
    with c2:
        clear = st.button("Clear map", use_container_width=True)

    if submitted and address.strip():
        try:
            with st.spinner("Looking up hazard data…"):
                records = _load_buildings(address, radius_m)
        except GeocodingError as exc:
            st.session_state["risk_search_error"] = str(exc)
        except (requests.RequestException, RuntimeError) as exc:
            st.session_state["risk_search_error"] = f"Hazard data unavailable: {exc}"
        else:
            st.session_state["risk_search_error"] = None
            result = dashboard.load(records)
            if result.duplicates_dropped:
                st.session_state["risk_search_error"] = (
                    f"{result.duplicates_dropped} duplicate building(s) merged."
                )
            _finish_turn()

    if load_sample:
        st.session_state["risk_search_error"] = None
        dashboard.load(sample_buildings())
        _finish_turn()

    if clear:
        dashboard.clear()
        _finish_turn()

    if st.session_state["risk_search_error"]:
        st.warning(st.session_state["risk_search_error"])


# ---------------------------------------
# Risk filter
# ---------------------------------------
def render_filter():
    dashboard = _dashboard()
    state = dashboard.filter_state

    st.markdown("#### Risk filter")
    mode = st.radio(
        "Risk mode",
        RISK_MODES,
        index=RISK_MODES.index(state.mode),
        format_func=lambda m: MODE_LABELS[m],
        horizontal=True,
    )

    min_val, max_val = domain_for(mode)
    current = state.water_threshold if mode == "water" else state.wind_threshold
    # One slider per mode so each threshold keeps its own value.
    value = st.slider(
        f"{MODE_LABELS[mode]} threshold",
        min_value=int(min_val),
        max_value=int(max_val),
        value=int(current),
        step=1,
        key=f"risk_{mode}_threshold_slider",
    )
    low, high = threshold_range_labels(mode)
    st.caption(f"{low} … **{threshold_label(mode, value)}** … {high}")

    changes = {}
    if mode != state.mode:
        changes["mode"] = mode
    if mode == "water" and value != state.water_threshold:
        changes["water_threshold"] = value
    if mode == "wind" and value != state.wind_threshold:
        changes["wind_threshold"] = value
    if changes:
        dashboard.filters.apply(**changes)


# ---------------------------------------
# Map
# ---------------------------------------
def render_map():
    dashboard = _dashboard()
    adapter = dashboard.camera
    state = dashboard.filter_state

    legend = RiskLegendControl(
        state.mode, threshold_label(state.mode, state.active_threshold())
    )
    m = adapter.build_map(legend=legend)
    out = st_folium(
        m,
        key=f"risk_map_{adapter.view_version}_{st.session_state['risk_map_epoch']}",
        width=adapter.width_px,
        height=adapter.height_px,
        returned_objects=["last_object_clicked", "center", "zoom"],
    )
    if not out:
        return

    center = out.get("center")
    zoom = out.get("zoom")
    if center and zoom is not None:
        adapter.sync_pose((center["lng"], center["lat"]), zoom)

    click = out.get("last_object_clicked")
    if not click:
        return
    marker_id = adapter.marker_id_at(click["lat"], click["lng"])
    if marker_id is None:
        return
    # A fresh widget key lets the same marker be clicked again (toggle off).
    st.session_state["risk_map_epoch"] += 1
    dashboard.select(marker_id)
    _finish_turn()


# ---------------------------------------
# Detail + claims
# ---------------------------------------
def _score_text(score, text):
    if score is None:
        return text or "N/A"
    return f"{text or 'N/A'} (class {score:g})"


def render_detail():
    dashboard = _dashboard()
    detail = dashboard.detail()
    if detail is None:
        st.caption("Click a building marker to inspect its risk and claim history.")
        return

    with st.container(border=True):
        head, close = st.columns([5, 1])
        with head:
            st.markdown("#### Risks")
        with close:
            if st.button("✕", key="risk_deselect", help="Close"):
                dashboard.deselect()
                _finish_turn()

        st.markdown(f"**Address**  \n{detail.address}")
        st.caption(f"EGID: `{detail.building_id}`")

        for mode, score, text in (
            ("water", detail.water_score, detail.water_text),
            ("wind", detail.wind_score, detail.wind_text),
        ):
            label = f"{MODE_LABELS[mode]} risk"
            if mode == detail.active_mode:
                st.markdown(f"**{label}:** {_score_text(score, text)}")
            else:
                st.caption(f"{label}: {_score_text(score, text)}")

        if detail.below_threshold:
            st.caption("Below the active threshold.")


def _render_claim(view):
    claim = view.claim
    with st.container(border=True):
        c1, c2 = st.columns([4, 1])
        with c1:
            when = claim.display_date.isoformat() if claim.display_date else "—"
            st.markdown(f"`{claim.damage_type.upper()}` · {when}")
        with c2:
            confirm_key = "risk_delete_armed"
            if st.session_state[confirm_key] != claim.id:
                st.button(
                    "🗑️",
                    key=f"claim_delete_{claim.id}",
                    help="Delete claim",
                    on_click=arm,
                    args=(confirm_key, claim.id),
                )

        if claim.description:
            st.write(claim.description)

        badges = []
        if claim.images_count is not None:
            badges.append(f"Images: {claim.images_count}")
        if claim.location_name:
            badges.append(f"Location: {claim.location_name}")
        if badges:
            st.caption(" • ".join(badges))

        for image in view.images:
            if image.available:
                st.image(_image_source(image.url), use_container_width=True)
            else:
                st.caption(image.error or CLAIMS_STATUS_TEXT["image_unavailable"])

        if st.session_state["risk_delete_armed"] == claim.id:
            st.warning("Delete this claim permanently? This cannot be undone.")
            y, n = st.columns(2)
            with y:
                if st.button("Yes, delete", key=f"claim_delete_yes_{claim.id}"):
                    st.session_state["risk_delete_armed"] = None
                    try:
                        asyncio.run(_dashboard().claims.delete_claim(claim.id))
                    except ClaimsRepositoryError as exc:
                        st.error(str(exc))
                    else:
                        st.rerun()
            with n:
                st.button(
                    "Cancel",
                    key=f"claim_delete_no_{claim.id}",
                    on_click=arm,
                    args=("risk_delete_armed", None),
                )


def render_claims():
    dashboard = _dashboard()
    if dashboard.selection.selected_id is None:
        return

    state = dashboard.claims.state
    st.markdown(f"#### Claims ({len(state.claims)})")

    if state.status is ClaimsStatus.LOADING:
        st.info(CLAIMS_STATUS_TEXT["loading"])
    elif state.status is ClaimsStatus.ERROR:
        st.error(state.error)
        if st.button("Retry", key="claims_retry"):
            dashboard.claims.retry()
            _finish_turn()
    elif not state.claims:
        st.caption(CLAIMS_STATUS_TEXT["empty"])
    else:
        for view in state.claims:
            _render_claim(view)


# ---------------------------------------
# Send info
# ---------------------------------------
def render_send_info():
    dashboard = _dashboard()
    target = dashboard.send_info_target()

    if not st.session_state["risk_send_armed"]:
        st.button(
            target.label,
            type="primary",
            disabled=not target.enabled,
            use_container_width=True,
            on_click=arm,
            args=("risk_send_armed",),
        )
        return

    st.warning(target.confirm_text)
    y, n = st.columns(2)
    with y:
        if st.button("Yes, send", key="risk_send_yes", use_container_width=True):
            st.session_state["risk_send_armed"] = False
            try:
                dashboard.send_info(st.session_state["risk_notifier"])
            except NotificationError as exc:
                st.error(str(exc))
            else:
                st.success(f"Sent to {target.address or f'{target.count} properties'}.")
                st.balloons()
    with n:
        st.button(
            "Cancel",
            key="risk_send_no",
            use_container_width=True,
            on_click=arm,
            args=("risk_send_armed", False),
        )


def render_matching_table():
    dashboard = _dashboard()
    state = dashboard.filter_state
    matching = dashboard.store.matching()
    st.caption(f"{len(matching)} of {len(dashboard.store)} buildings at or above the threshold")
    if not matching:
        return
    df = pd.DataFrame(
        [
            {
                "EGID": record.id,
                "Address": record.address,
                "Score": record.risk_scores.for_mode(state.mode),
            }
            for record in matching
        ]
    )
    st.dataframe(df.sort_values("Score", ascending=False), hide_index=True)


def render_risk_map():
    st.subheader("Building risk map")

    left, right = st.columns([3, 1])
    with right:
        render_search()
        st.divider()
        render_filter()
        st.divider()
        render_send_info()

    with left:
        render_map()
        d, c = st.columns(2)
        with d:
            render_detail()
        with c:
            render_claims()
        with st.expander("Matching buildings", expanded=False):
            render_matching_table()

    # Fetches queued outside the handlers above still need a redraw.
    if st.session_state["risk_pending_loads"].run():
        st.rerun()
