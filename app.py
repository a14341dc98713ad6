import logging

import streamlit as st
from dotenv import load_dotenv

from config.settings import SettingsError, load_settings
from risk.ui import render_risk_map
from state import init_state

# ---------------------------------------------
# Load environment variables (.env)
# ---------------------------------------------
load_dotenv()

# -----------------------------
# Streamlit UI
# -----------------------------
st.set_page_config(page_title="Building Risk Map (Prototype)", layout="wide")

st.title("Building Risk Map (Prototype)")

try:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level)
    init_state(settings)
except SettingsError as exc:
    st.error(f"Configuration error: {exc}")
    st.stop()

render_risk_map()
