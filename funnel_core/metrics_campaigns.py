from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import pandas as pd

from funnel_core.charts import bar_spec, line_spec
from funnel_core.data import SCHEMA_PER_DAY_ADS
from funnel_core.dates import display_label
from funnel_core.filters import ALL, DashboardFilters, as_choice
from funnel_core.normalize import REGIONS, region_bucket


def _select(df: pd.DataFrame, campaign: str) -> pd.DataFrame:
    if df.empty or campaign == ALL:
        return df
    return df[df["name"] == campaign]


def _per_day(df: pd.DataFrame, value: str, campaign: str) -> List[Dict[str, Any]]:
    """Sum ``value`` per date for the selected campaign (every campaign for ``All``)."""
    df = _select(df, campaign)
    if df.empty:
        return []
    daily = df.groupby("date_iso", sort=True)[value].sum().reset_index()
    cast = float if value == "spend" else int
    return [
        {"date_iso": str(r["date_iso"]), "label": display_label(r["date_iso"]), value: cast(r[value])}
        for _, r in daily.iterrows()
    ]


def reach_by_region(df: pd.DataFrame, campaign: str) -> List[Dict[str, Any]]:
    """Daily reach split into region buckets, one column per bucket."""
    df = _select(df, campaign)
    if df.empty:
        return []
    df = df.assign(bucket=df["region"].map(region_bucket))
    table = (
        df.pivot_table(index="date_iso", columns="bucket", values="reach", aggfunc="sum", fill_value=0)
        .reindex(columns=REGIONS, fill_value=0)
        .sort_index()
    )
    return [
        {"date_iso": str(date_iso), "label": display_label(date_iso), **{b: int(r[b]) for b in REGIONS}}
        for date_iso, r in table.iterrows()
    ]


def total_investment(df: pd.DataFrame, campaign: str, column: str = "investment") -> float:
    df = _select(df, campaign)
    if df.empty:
        return 0.0
    return float(df[column].sum())


def cost_per_lead(total: float, leads_count: int) -> float:
    if leads_count <= 0:
        return 0.0
    return float(total) / leads_count


def compute_campaigns(filters: DashboardFilters, ctx: Dict[str, Any], *, campaign: str = ALL) -> Dict[str, Any]:
    campaign = as_choice(campaign)
    events: pd.DataFrame = ctx.get("filtered_events", pd.DataFrame())
    leads: pd.DataFrame = ctx.get("filtered_leads", pd.DataFrame())

    spend: pd.DataFrame = ctx.get("filtered_daily_spend", pd.DataFrame())

    daily_spend = _per_day(spend, "spend", campaign)
    daily_reach = _per_day(ctx.get("filtered_daily_reach", pd.DataFrame()), "reach", campaign)
    region_reach = reach_by_region(ctx.get("filtered_daily_reach_region", pd.DataFrame()), campaign)

    # Per-day ad reports invest over every reporting day, not only the day an ad started.
    if ctx.get("schema") == SCHEMA_PER_DAY_ADS:
        total = total_investment(spend, campaign, column="spend")
        active = _select(spend, campaign)
    else:
        total = total_investment(events, campaign)
        active = _select(events, campaign)
    leads_count = int(len(leads))

    selected = _select(events, campaign)
    event_rows = selected.to_dict(orient="records") if not selected.empty else []

    charts: Dict[str, Any] = {}
    if daily_spend:
        charts["daily_spend"] = bar_spec(daily_spend, "label", "spend", y_title="Spend")
    if daily_reach:
        charts["daily_reach"] = line_spec(daily_reach, "label", "reach", y_title="Reach")
    if region_reach:
        long_df = pd.DataFrame(region_reach).melt(id_vars=["date_iso", "label"], value_vars=REGIONS, var_name="region", value_name="reach")
        charts["reach_by_region"] = line_spec(long_df.to_dict(orient="records"), "label", "reach", color="region")

    return {
        "filters": asdict(filters),
        "campaign": campaign,
        "schema": ctx.get("schema", ""),
        "kpis": {
            "total_investment": total,
            "leads": leads_count,
            "cost_per_lead": cost_per_lead(total, leads_count),
            "campaigns": int(active["name"].nunique()) if not active.empty else 0,
        },
        "events": event_rows,
        "daily_spend": daily_spend,
        "daily_reach": daily_reach,
        "reach_by_region": region_reach,
        "charts": charts,
    }
