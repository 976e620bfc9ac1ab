"""
Group Quotes - Main Application
Streamlit front end for running group quotes against the quote API
"""

import sys
import logging
from pathlib import Path

from config import AppConfig

_config = AppConfig.from_environment()

# Configure logging BEFORE importing streamlit
logging.basicConfig(
    level=getattr(logging, _config.log_level, logging.INFO),
    format='%(asctime)s %(levelname)s: %(message)s',
    datefmt='%H:%M:%S',
    force=True  # Override any existing config
)
logging.info("APP STARTUP: Logging initialized")

import streamlit as st

# Add current directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from constants import APP_CONFIG
from quotes_client import QuotesApiClient, QuoteApiError


# Page configuration
st.set_page_config(
    page_title=APP_CONFIG['title'],
    page_icon=APP_CONFIG['icon'],
    layout=APP_CONFIG['layout'],
    initial_sidebar_state=APP_CONFIG['initial_sidebar_state']
)


def initialize_session_state():
    """Initialize session state variables"""
    if 'api_client' not in st.session_state:
        st.session_state.api_client = QuotesApiClient(_config.quotes_api_url)

    if 'group_id' not in st.session_state:
        st.session_state.group_id = ''


def main():
    """Main application entry point"""
    initialize_session_state()

    st.sidebar.title("🩺 Group Quotes")
    st.sidebar.markdown("---")
    st.sidebar.caption(f"API: {_config.quotes_api_url}")

    if st.sidebar.button("🔌 Check API"):
        with st.sidebar:
            with st.spinner("Checking API..."):
                try:
                    st.session_state.api_client.health()
                    st.success("API reachable")
                except QuoteApiError as e:
                    st.error(f"API unreachable: {e.message}")

    st.title(APP_CONFIG['title'])
    show_home_page()


def show_home_page():
    """Display home/welcome page"""
    st.markdown("""
    ## Quote health plans for an employer group

    1. Open **Quotes** in the sidebar and enter a group id
    2. Pick the effective date and tobacco default, then run quotes
    3. Members whose ZIP code spans several counties are listed for a county choice;
       single-county ZIPs resolve automatically
    4. Finalize to save a new quote batch with the chosen counties

    Premiums on on-market plans are reduced by the member's estimated premium tax credit.
    Off-market plans always show the full premium.
    """)


if __name__ == "__main__":
    main()
