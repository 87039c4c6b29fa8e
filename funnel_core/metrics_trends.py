from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import pandas as pd

from funnel_core.charts import bar_spec, line_spec
from funnel_core.dates import display_label, week_start
from funnel_core.filters import DashboardFilters
from funnel_core.normalize import PLATFORMS

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
TOTAL_ROW = "TOTAL"


def _dated(leads: pd.DataFrame) -> pd.DataFrame:
    if leads.empty:
        return leads
    return leads[leads["iso_date"].astype(str) != ""]


def _series(keys: pd.Series, label: str) -> List[Dict[str, Any]]:
    counts = keys.value_counts().sort_index()
    return [{label: str(k), "leads": int(v)} for k, v in counts.items()]


def daily_series(leads: pd.DataFrame) -> List[Dict[str, Any]]:
    dated = _dated(leads)
    if dated.empty:
        return []
    rows = _series(dated["iso_date"], "date_iso")
    for row in rows:
        row["label"] = display_label(row["date_iso"])
    return rows


def weekly_series(leads: pd.DataFrame) -> List[Dict[str, Any]]:
    dated = _dated(leads)
    if dated.empty:
        return []
    return _series(dated["iso_date"].map(week_start), "week_start")


def monthly_series(leads: pd.DataFrame) -> List[Dict[str, Any]]:
    dated = _dated(leads)
    if dated.empty:
        return []
    return _series(dated["iso_date"].str.slice(0, 7), "month")


def channel_by_month(leads: pd.DataFrame) -> List[Dict[str, Any]]:
    """Per-month lead counts for every platform, followed by a ``TOTAL`` row."""
    dated = _dated(leads)
    if dated.empty:
        return []
    months = dated["iso_date"].str.slice(0, 7)
    table = pd.crosstab(months, dated["platform"]).reindex(columns=PLATFORMS, fill_value=0).sort_index()
    rows: List[Dict[str, Any]] = [
        {"month": str(month), **{p: int(r[p]) for p in PLATFORMS}} for month, r in table.iterrows()
    ]
    rows.append({"month": TOTAL_ROW, **{p: int(table[p].sum()) for p in PLATFORMS}})
    return rows


def weekday_rhythm(leads: pd.DataFrame) -> List[Dict[str, Any]]:
    """Lead counts per weekday, always seven rows starting on Monday."""
    dated = _dated(leads)
    counts = pd.Series(0, index=range(7))
    if not dated.empty:
        days = pd.to_datetime(dated["iso_date"], format="%Y-%m-%d", errors="coerce").dropna().dt.weekday
        counts = counts.add(days.value_counts(), fill_value=0)
    return [{"weekday": WEEKDAYS[i], "leads": int(counts[i])} for i in range(7)]


def compute_trends(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    leads: pd.DataFrame = ctx.get("filtered_leads", pd.DataFrame())

    daily = daily_series(leads)
    weekly = weekly_series(leads)
    monthly = monthly_series(leads)
    channels = channel_by_month(leads)
    rhythm = weekday_rhythm(leads)

    charts: Dict[str, Any] = {}
    if daily:
        charts["daily"] = line_spec(daily, "label", "leads", x_title="Day", y_title="Leads")
    if monthly:
        charts["monthly"] = line_spec(monthly, "month", "leads", x_title="Month", y_title="Leads")
    if channels:
        long_df = pd.DataFrame(channels[:-1]).melt(id_vars="month", value_vars=PLATFORMS, var_name="platform", value_name="leads")
        charts["channels"] = line_spec(long_df.to_dict(orient="records"), "month", "leads", color="platform", x_title="Month")
    if any(r["leads"] for r in rhythm):
        charts["weekday"] = bar_spec(rhythm, "weekday", "leads", y_title="Leads", color="#6366f1")

    return {
        "filters": asdict(filters),
        "daily": daily,
        "weekly": weekly,
        "monthly": monthly,
        "channel_by_month": channels,
        "weekday": rhythm,
        "charts": charts,
    }
