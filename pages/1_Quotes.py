"""
Quotes Page - run group quotes and resolve multi-county ZIP codes

Runs quotes through the API, polls for the latest batch, auto-resolves
single-county ZIPs and asks for a county where a ZIP spans several.
"""

from datetime import date

import pandas as pd
import streamlit as st

from config import AppConfig
from quote_session import QuoteSession, SessionState, SignatureCache
from quotes_client import QuotesApiClient, QuoteApiError

# Page config
st.set_page_config(page_title="Quotes", page_icon="🩺", layout="wide")

config = AppConfig.from_environment()

# =============================================================================
# SESSION
# =============================================================================

if 'api_client' not in st.session_state:
    st.session_state.api_client = QuotesApiClient(config.quotes_api_url)
if 'signature_cache' not in st.session_state:
    st.session_state.signature_cache = SignatureCache()


def get_session(group_id: str) -> QuoteSession:
    """One QuoteSession per group; switching groups cancels the previous poll."""
    session = st.session_state.get('quote_session')
    if session is not None and session.group_id == group_id:
        return session
    if session is not None:
        session.cancel()
    session = QuoteSession(
        st.session_state.api_client,
        group_id,
        cache=st.session_state.signature_cache,
        poll_interval=config.poll_interval_s,
        poll_timeout=config.poll_timeout_s,
    )
    session.load()
    st.session_state.quote_session = session
    return session


def entries_frame(entries) -> pd.DataFrame:
    """One row per member with status and the cheapest adjusted cost."""
    rows = []
    for entry in entries:
        member = entry.get('member') or {}
        meta = entry.get('meta') or {}
        affordability = entry.get('affordability') or {}
        quotes = entry.get('quotes') or []
        rows.append({
            'Member': f"{member.get('first_name') or ''} {member.get('last_name') or ''}".strip(),
            'ZIP': meta.get('zip_code'),
            'Status': meta.get('status'),
            'County': meta.get('county_id') or ', '.join(meta.get('county_ids') or []),
            'Age': meta.get('age'),
            'Plans': len(quotes),
            'Lowest net cost': min((q['adjusted_cost'] for q in quotes), default=None),
            'Tax credit': affordability.get('premium_tax_credit'),
            'Note': meta.get('reason') or meta.get('affordability_note') or '',
        })
    return pd.DataFrame(rows)


# =============================================================================
# PAGE HEADER
# =============================================================================

st.title("🩺 Quotes")

group_id = st.text_input("Group id", value=st.session_state.get('group_id', '')).strip()
if not group_id:
    st.info("Enter a group id to load its quotes.")
    st.stop()
st.session_state.group_id = group_id

session = get_session(group_id)

col1, col2, col3 = st.columns([2, 2, 1])
with col1:
    effective_date = st.date_input("Effective date", value=session.effective_date or date.today())
with col2:
    tobacco_choice = st.selectbox("Tobacco", ["Member's own flag", "Tobacco", "Non-tobacco"])
tobacco = {"Member's own flag": None, "Tobacco": True, "Non-tobacco": False}[tobacco_choice]
with col3:
    st.write("")
    run_clicked = st.button("▶️ Run quotes", type="primary", disabled=session.state == SessionState.RUNNING)

if run_clicked:
    with st.spinner("Preparing quotes..."):
        session.run(effective_date=effective_date, tobacco=tobacco)

# =============================================================================
# STATUS
# =============================================================================

if session.state == SessionState.ERROR:
    st.error(session.error or "Failed to run quotes")
if session.timed_out:
    st.warning(session.notice)
if session.state == SessionState.IDLE and session.working is None and not session.timed_out:
    st.info("No quotes yet. Click **Run quotes**.")
    st.stop()
if session.working is None:
    st.stop()

# =============================================================================
# COUNTY RESOLUTION
# =============================================================================

if session.state == SessionState.NEEDS_COUNTY_CHOICE:
    try:
        resolved = session.auto_resolve()
        if resolved:
            st.success(f"Resolved {resolved} member(s) with a single-county ZIP")
    except QuoteApiError as e:
        st.error(f"Failed to preview quotes for selected county: {e.message}")

pending = session.pending_choices()
if pending:
    st.subheader("📍 Choose a county")
    st.caption("These members live in ZIP codes that span more than one rating county.")
    for choice in pending:
        with st.container(border=True):
            st.markdown(f"**{choice['name'] or choice['member_id']}** - ZIP {choice['zip_code']}")
            county = st.radio(
                "County", choice['county_ids'], key=f"county_{choice['member_id']}", horizontal=True
            )
            manual = st.text_input("Or enter a county id", key=f"manual_{choice['member_id']}").strip()
            if st.button("Use this county", key=f"choose_{choice['member_id']}"):
                try:
                    session.choose_county(choice['member_id'], manual or county, manual=bool(manual))
                    st.rerun()
                except (ValueError, QuoteApiError) as e:
                    st.error(str(e))
elif session.member_counties:
    if st.button("💾 Finalize quotes with chosen counties", type="primary"):
        with st.spinner("Saving quotes..."):
            session.finalize()
        st.rerun()

# =============================================================================
# RESULTS
# =============================================================================

st.subheader("📋 Members")
batch = session.working
st.caption(f"Batch {batch.get('id')} - created {batch.get('created_at')}")
st.dataframe(entries_frame(session.entries()), hide_index=True, width="stretch")

for entry in session.entries():
    quotes = entry.get('quotes') or []
    if not quotes:
        continue
    member = entry.get('member') or {}
    with st.expander(f"{member.get('first_name', '')} {member.get('last_name', '')} - {len(quotes)} plans"):
        st.dataframe(pd.DataFrame([
            {
                'Plan': (q.get('plan_details') or {}).get('display_name') or q['plan_id'],
                'Carrier': (q.get('plan_details') or {}).get('carrier_name'),
                'Level': (q.get('plan_details') or {}).get('level'),
                'On market': (q.get('plan_details') or {}).get('on_market'),
                'Premium': q['premium'],
                'Net cost': q['adjusted_cost'],
            }
            for q in quotes
        ]), hide_index=True, width="stretch")
