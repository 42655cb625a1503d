"""
Payments Admin Dashboard
========================
Streamlit read-only view for manual reconciliation against Cashfree.

Features:
- Payment counts by status
- Recent payments table with paging
- Webhook audit log, filterable by event type

Run: streamlit run admin/dashboard.py
"""

import asyncio
import json
import os
import sys
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st
from dotenv import load_dotenv

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from config import Settings
from database import Database
from schemas.webhook_events import WebhookEventType
from storage.payment_repository import PostgresPaymentRepository


# =============================================================================
# PAGE CONFIG
# =============================================================================

st.set_page_config(
    page_title="Cashfree Payments - Admin",
    page_icon="💳",
    layout="wide",
    initial_sidebar_state="expanded",
)

load_dotenv()


# =============================================================================
# ASYNC HELPERS
# =============================================================================

def run_async(coro):
    """Run async function in sync context for Streamlit."""
    return asyncio.run(coro)


async def _with_repository(action):
    """Open a short-lived pool, run action(repository), close the pool."""
    settings = Settings.from_env()
    settings.db_min_pool_size = 1
    settings.db_max_pool_size = 2
    db = Database(settings)
    await db.initialize(run_migrations=False)
    try:
        return await action(PostgresPaymentRepository(db))
    finally:
        await db.close()


# =============================================================================
# DATA FETCHING
# =============================================================================

@st.cache_data(ttl=30)
def fetch_status_counts() -> Dict[str, int]:
    """Payment counts by status with 30s cache."""
    return run_async(_with_repository(lambda repo: repo.count_payments_by_status()))


@st.cache_data(ttl=10)
def fetch_payments(limit: int, offset: int) -> List[Dict[str, Any]]:
    async def action(repo):
        payments = await repo.list_payments(limit, offset)
        return [p.model_dump(mode="json") for p in payments]
    return run_async(_with_repository(action))


@st.cache_data(ttl=10)
def fetch_webhook_logs(limit: int, event_type: Optional[str]) -> List[Dict[str, Any]]:
    async def action(repo):
        logs = await repo.list_webhook_logs(limit=limit, event_type=event_type)
        return [log.model_dump(mode="json") for log in logs]
    return run_async(_with_repository(action))


def payments_frame(payments: List[Dict[str, Any]]) -> pd.DataFrame:
    """Table view of payment records."""
    columns = ["order_id", "cf_order_id", "status", "amount", "currency",
               "customer_email", "payment_method", "cf_payment_id", "created_at"]
    df = pd.DataFrame(payments, columns=columns)
    if not df.empty:
        df["created_at"] = pd.to_datetime(df["created_at"]).dt.strftime("%Y-%m-%d %H:%M")
    return df


# =============================================================================
# SIDEBAR
# =============================================================================

def render_sidebar():
    """Render sidebar with navigation."""
    st.sidebar.title("💳 Payments Admin")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigation",
        ["📊 Overview", "📦 Payments", "📜 Webhook Log"],
        label_visibility="collapsed"
    )

    st.sidebar.markdown("---")

    if st.sidebar.button("🔄 Refresh Data"):
        st.cache_data.clear()
        st.rerun()

    return page


# =============================================================================
# OVERVIEW
# =============================================================================

def render_overview():
    st.title("📊 Overview")
    st.markdown("Locally recorded payment status. Compare with the Cashfree dashboard to spot drift.")

    counts = fetch_status_counts()
    if not counts:
        st.info("No payments recorded yet")
        return

    cols = st.columns(len(counts))
    for i, (status, count) in enumerate(sorted(counts.items())):
        with cols[i]:
            st.metric(status.title(), count)

    st.markdown("---")
    df = pd.DataFrame(sorted(counts.items()), columns=["Status", "Count"])
    st.bar_chart(df.set_index("Status"))


# =============================================================================
# PAYMENTS
# =============================================================================

def render_payments():
    st.title("📦 Payments")

    col1, col2 = st.columns(2)
    with col1:
        limit = st.slider("Page size", 10, 100, 25)
    with col2:
        page_number = st.number_input("Page", min_value=1, value=1, step=1)

    payments = fetch_payments(limit, (int(page_number) - 1) * limit)
    if not payments:
        st.info("No payments on this page")
        return

    st.dataframe(payments_frame(payments), use_container_width=True, hide_index=True)


# =============================================================================
# WEBHOOK LOG
# =============================================================================

def render_webhook_log():
    st.title("📜 Webhook Log")
    st.markdown("Authenticated deliveries, newest first")

    col1, col2 = st.columns(2)
    with col1:
        choice = st.selectbox("Event type", ["All"] + [t.value for t in WebhookEventType])
    with col2:
        limit = st.slider("Show last", 10, 200, 50)

    logs = fetch_webhook_logs(limit, None if choice == "All" else choice)
    if not logs:
        st.info("No webhooks found")
        return

    for entry in logs:
        with st.expander(f"{entry['created_at']}  {entry['event_type']}  {entry.get('order_id') or '-'}"):
            try:
                st.json(json.loads(entry["raw_payload"]))
            except ValueError:
                st.code(entry["raw_payload"])


# =============================================================================
# MAIN
# =============================================================================

def main():
    """Main dashboard entry point."""
    if not os.getenv("DATABASE_URL"):
        st.error("DATABASE_URL is not set")
        return

    page = render_sidebar()

    try:
        if page == "📊 Overview":
            render_overview()
        elif page == "📦 Payments":
            render_payments()
        elif page == "📜 Webhook Log":
            render_webhook_log()
    except Exception as e:
        st.error(f"Database query failed: {e}")


if __name__ == "__main__":
    main()
