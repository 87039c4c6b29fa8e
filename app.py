import pandas as pd
import streamlit as st
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from funnel_core.data import IngestionError, Snapshot, filter_options, ingest_leads, ingest_marketing, prepare_context
from funnel_core.filters import normalize_filters
from funnel_core.metrics_breakdowns import PROVINCE_STAGES, compute_breakdowns
from funnel_core.metrics_campaigns import compute_campaigns
from funnel_core.metrics_funnel import compute_funnel
from funnel_core.metrics_trends import compute_trends


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


def is_collapsed(chart_id: str) -> bool:
    return bool(st.session_state.setdefault("collapsed", {}).get(chart_id, False))


@contextmanager
def chart_card(chart_id: str, title: str):
    """Card with a show/hide toggle. Collapse state is presentation-only and keyed by chart id."""
    container = st.container()
    head = container.columns([8, 1])
    head[0].markdown(f"<div class='card-title'>{title}</div>", unsafe_allow_html=True)
    collapsed = is_collapsed(chart_id)
    if head[1].button("Show" if collapsed else "Hide", key=f"toggle_{chart_id}"):
        st.session_state["collapsed"][chart_id] = not collapsed
        st.rerun()
    body = container.container()
    with body:
        yield None if is_collapsed(chart_id) else body


def render_chart(charts: Dict[str, Any], name: str, empty_message: str = "No data for the selected filters."):
    spec = charts.get(name)
    if spec:
        st.vega_lite_chart(spec, use_container_width=True)
    else:
        st.info(empty_message)


def format_filter_summary(filters: Dict[str, Any]) -> str:
    window = "Dates: All"
    if filters["date_from"] or filters["date_to"]:
        window = f"Dates: {filters['date_from'] or '…'} to {filters['date_to'] or '…'}"
    chips = [window, f"Agent: {filters['agent']}", f"Province: {filters['province']}", f"Platform: {filters['platform']}"]
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


def _upload_key(upload) -> str:
    return f"{upload.name}:{upload.size}"


def handle_upload(kind: str, upload) -> None:
    """Swap the session snapshot for a new one; a failed parse keeps the current one."""
    if upload is None or st.session_state.get(f"_ingested_{kind}") == _upload_key(upload):
        return
    ingest = ingest_leads if kind == "leads" else ingest_marketing
    try:
        st.session_state["snapshot"] = ingest(st.session_state["snapshot"], upload.getvalue())
    except IngestionError as exc:
        st.sidebar.error(f"Could not load {upload.name}: {exc}")
        return
    st.session_state[f"_ingested_{kind}"] = _upload_key(upload)


# ---------- UI setup ----------
st.set_page_config(page_title="Lead Funnel Dashboard", layout="wide")
inject_base_styles()
st.title("Lead Funnel Dashboard")
st.caption("Sales funnel, channel breakdowns and campaign spend from uploaded exports.")

if "snapshot" not in st.session_state:
    st.session_state["snapshot"] = Snapshot()

with st.sidebar:
    st.markdown("### Data")
    handle_upload("leads", st.file_uploader("Leads export (CSV / TSV)", type=["csv", "tsv", "txt"], key="leads_file"))
    handle_upload("marketing", st.file_uploader("Marketing report (CSV / TSV)", type=["csv", "tsv", "txt"], key="marketing_file"))

snapshot: Snapshot = st.session_state["snapshot"]
if snapshot.leads.empty:
    st.info("Upload a leads export to get started.")
    st.stop()

options = filter_options(snapshot)

with st.sidebar:
    for kind, report in snapshot.reports.items():
        st.caption(
            f"{kind}: {report.rows_kept} of {report.rows_read} rows"
            + (f" · {report.schema}" if report.schema else "")
            + (f" · {report.unresolved_dates} unresolved dates" if report.unresolved_dates else "")
            + (f" · {report.malformed_rows} rows with extra fields" if report.malformed_rows else "")
        )

    st.markdown("---")
    st.markdown("### Filters")
    date_from = st.text_input("From (YYYY-MM-DD)", options["date_min"])
    date_to = st.text_input("To (YYYY-MM-DD)", options["date_max"])
    agent = st.selectbox("Agent", options["agents"])
    province = st.selectbox("Province", options["provinces"])
    platform = st.selectbox("Platform", options["platforms"])

    st.markdown("---")
    with st.expander("Advanced settings", expanded=False):
        geo_min_count = st.slider("Geography: minimum leads per province", 1, 50, 10)
        quality_display_cap = st.slider("Quality ranking: display cap (%)", 5.0, 100.0, 30.0, 5.0)

filters = normalize_filters(
    {
        "date_from": date_from,
        "date_to": date_to,
        "agent": agent,
        "province": province,
        "platform": platform,
        "thresholds": {"geo_min_count": geo_min_count, "quality_display_cap": quality_display_cap},
    }
)
ctx = prepare_context(filters, snapshot)
filtered_leads: pd.DataFrame = ctx["filtered_leads"]

summary = {"date_from": filters.date_from, "date_to": filters.date_to, "agent": filters.agent, "province": filters.province, "platform": filters.platform}
st.markdown(f"<div class='chip-row'>{format_filter_summary(summary)}</div>", unsafe_allow_html=True)


# ----- Page renderers -----
def render_kpis(payload: Dict[str, Any]):
    k = payload["kpis"]
    cols = st.columns(5)
    cols[0].metric("Total Leads", f"{k['leads']:,}")
    cols[1].metric("Quotes", f"{k['quotes']:,}", delta=f"{k['lead_to_quote']}% of leads", delta_color="off")
    cols[2].metric("Commercial Offers", f"{k['offers']:,}", delta=f"{k['quote_to_offer']}% of quotes", delta_color="off")
    cols[3].metric("Sales", f"{k['sales']:,}", delta=f"{k['offer_to_sale']}% of offers", delta_color="off")
    cols[4].metric("Total Visits", f"{k['visits']:,}", help=f"Top province: {k['top_province']}")


def render_table(rows: List[Dict[str, Any]], empty_message: Optional[str] = None):
    if rows:
        st.dataframe(pd.DataFrame(rows), hide_index=True, use_container_width=True)
    elif empty_message:
        st.info(empty_message)


def render_funnel_page():
    payload = compute_funnel(filters, ctx)
    render_kpis(payload)
    with chart_card("funnel", "Sales Funnel") as body:
        if body is not None:
            render_chart(payload["charts"], "funnel")


def render_breakdowns_page():
    stage = st.radio("Province analysis stage", list(PROVINCE_STAGES), horizontal=True)
    payload = compute_breakdowns(filters, ctx, province_stage=stage)
    cols = st.columns(2)
    with cols[0]:
        with chart_card("agents", "Performance by Agent") as body:
            if body is not None:
                render_chart(payload["charts"], "agents")
                render_table(payload["agents"])
        with chart_card("province_stage", f"Provinces reaching {stage}") as body:
            if body is not None:
                render_chart(payload["charts"], "province_stage")
        with chart_card("visits_by_agent", "Visits by Agent") as body:
            if body is not None:
                render_chart(payload["charts"], "visits_by_agent", "No visits recorded.")
    with cols[1]:
        with chart_card("geo", "Geographic Distribution") as body:
            if body is not None:
                render_chart(payload["charts"], "geo")
                render_table(payload["regions"])
        with chart_card("visit_types", "Visit Types") as body:
            if body is not None:
                render_chart(payload["charts"], "visit_types", "No visits recorded.")
        with chart_card("quality", "Channel Quality Ranking") as body:
            if body is not None:
                render_chart(payload["charts"], "quality")
                render_table(payload["quality"])


def render_trends_page():
    payload = compute_trends(filters, ctx)
    with chart_card("daily", "Leads per Day") as body:
        if body is not None:
            render_chart(payload["charts"], "daily")
    cols = st.columns(2)
    with cols[0]:
        with chart_card("monthly", "Monthly Trend") as body:
            if body is not None:
                render_chart(payload["charts"], "monthly")
        with chart_card("weekday", "Weekly Rhythm") as body:
            if body is not None:
                render_chart(payload["charts"], "weekday")
    with cols[1]:
        with chart_card("channels", "Channels by Month") as body:
            if body is not None:
                render_chart(payload["charts"], "channels")
                render_table(payload["channel_by_month"])


def render_campaigns_page():
    campaign = st.selectbox("Campaign", options["campaigns"], index=0)
    payload = compute_campaigns(filters, ctx, campaign=campaign)
    k = payload["kpis"]
    cols = st.columns(3)
    cols[0].metric("Total Investment", f"€{k['total_investment']:,.2f}")
    cols[1].metric("Leads", f"{k['leads']:,}")
    cols[2].metric("Cost per Lead", f"€{k['cost_per_lead']:,.2f}")
    if not payload["events"]:
        st.info("Upload a marketing report to reconcile spend." if snapshot.marketing.events.empty else "No campaigns in the selected window.")
        return
    with chart_card("daily_spend", "Daily Spend") as body:
        if body is not None:
            render_chart(payload["charts"], "daily_spend", "Daily spend needs a per-day ad report.")
    with chart_card("daily_reach", "Daily Reach") as body:
        if body is not None:
            render_chart(payload["charts"], "daily_reach", "Daily reach needs a per-day ad report.")
    with chart_card("reach_by_region", "Reach by Region") as body:
        if body is not None:
            render_chart(payload["charts"], "reach_by_region", "Reach by region needs a per-day ad report.")
    render_table(payload["events"])


with st.sidebar:
    st.markdown("---")
    page = st.radio("Navigate", ["Funnel", "Breakdowns", "Trends", "Campaigns"], index=0)
    if not filtered_leads.empty:
        st.download_button(
            "Export filtered leads",
            data=filtered_leads.to_csv(index=False).encode("utf-8"),
            file_name="leads.csv",
            mime="text/csv",
        )

if page == "Funnel":
    render_funnel_page()
elif page == "Breakdowns":
    render_breakdowns_page()
elif page == "Trends":
    render_trends_page()
else:
    render_campaigns_page()
