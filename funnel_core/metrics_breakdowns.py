from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import pandas as pd

from funnel_core.charts import bar_spec, donut_spec
from funnel_core.data import percent, round_half_up
from funnel_core.filters import DashboardFilters
from funnel_core.normalize import (
    PLATFORMS,
    REGIONS,
    STAGE_OFFER,
    STAGE_QUOTE,
    STAGE_SALE,
    VISIT_TYPES,
    fold_text,
    reached,
)

GEO_OTHER = "Other"
PROVINCE_STAGES = (STAGE_QUOTE, STAGE_OFFER, STAGE_SALE)


def _value_rows(counts: pd.Series, label: str = "name", value: str = "value") -> List[Dict[str, Any]]:
    return [{label: str(k), value: int(v)} for k, v in counts.items()]


def _by_count(counts: pd.Series) -> pd.Series:
    """Descending by count, ties by name."""
    frame = counts.rename("value").reset_index()
    frame.columns = ["name", "value"]
    frame = frame.sort_values(["value", "name"], ascending=[False, True], kind="mergesort")
    return pd.Series(frame["value"].values, index=frame["name"].values)


def funnel_by(leads: pd.DataFrame, column: str) -> List[Dict[str, Any]]:
    """Cumulative stage counts per value of ``column``, ordered by lead volume."""
    if leads.empty:
        return []
    frame = pd.DataFrame(
        {
            "key": leads[column].astype(str),
            "leads": 1,
            "quotes": reached(leads["stage"], STAGE_QUOTE).astype(int),
            "offers": reached(leads["stage"], STAGE_OFFER).astype(int),
            "sales": reached(leads["stage"], STAGE_SALE).astype(int),
        }
    )
    grouped = frame.groupby("key", sort=True)[["leads", "quotes", "offers", "sales"]].sum().reset_index()
    grouped = grouped.sort_values(["leads", "key"], ascending=[False, True], kind="mergesort")
    grouped = grouped.rename(columns={"key": column})
    return [
        {column: str(r[column]), "leads": int(r["leads"]), "quotes": int(r["quotes"]), "offers": int(r["offers"]), "sales": int(r["sales"])}
        for _, r in grouped.iterrows()
    ]


def by_region(leads: pd.DataFrame) -> List[Dict[str, Any]]:
    counts = leads["region"].value_counts() if not leads.empty else pd.Series(dtype=int)
    return [{"region": region, "value": int(counts.get(region, 0))} for region in REGIONS]


def by_platform(leads: pd.DataFrame) -> List[Dict[str, Any]]:
    counts = leads["platform"].value_counts() if not leads.empty else pd.Series(dtype=int)
    return [{"platform": platform, "value": int(counts.get(platform, 0))} for platform in PLATFORMS]


def geo_distribution(leads: pd.DataFrame, min_count: int = 10) -> List[Dict[str, Any]]:
    """Province counts for the geography chart.

    Provinces under ``min_count`` records, or already labelled "Other"/"Otro",
    are folded into a single ``Other`` bucket.
    """
    if leads.empty:
        return []
    counts = leads["province"].value_counts()
    folded = pd.Series(
        [fold_text(p) in {"other", "otro"} or n < min_count for p, n in counts.items()],
        index=counts.index,
        dtype=bool,
    )
    keep = counts[~folded]
    other = int(counts[folded].sum())
    rows = _value_rows(_by_count(keep))
    if other > 0:
        rows.append({"name": GEO_OTHER, "value": other})
        rows.sort(key=lambda r: -r["value"])
    return rows


def province_by_stage(leads: pd.DataFrame, stage: str = STAGE_QUOTE) -> List[Dict[str, Any]]:
    """Provinces of records that reached ``stage``; provinces with no such record are absent."""
    if stage not in PROVINCE_STAGES:
        raise ValueError(f"stage must be one of {PROVINCE_STAGES}, got {stage!r}")
    if leads.empty:
        return []
    hit = leads[reached(leads["stage"], stage)]
    if hit.empty:
        return []
    return _value_rows(_by_count(hit["province"].value_counts()))


def visit_types(leads: pd.DataFrame) -> List[Dict[str, Any]]:
    if leads.empty:
        return []
    counts = leads["visit_type"].value_counts()
    return [{"name": v, "value": int(counts.get(v, 0))} for v in VISIT_TYPES if int(counts.get(v, 0)) > 0]


def visits_by_agent(leads: pd.DataFrame) -> List[Dict[str, Any]]:
    if leads.empty:
        return []
    visited = leads[leads["visit_type"].isin(VISIT_TYPES)]
    if visited.empty:
        return []
    return _value_rows(_by_count(visited["agent"].value_counts()), value="visits")


def quality_ranking(leads: pd.DataFrame, display_cap: float = 30.0) -> List[Dict[str, Any]]:
    """Lead-to-quote conversion per platform, best first.

    ``conversion_display`` is capped so one outlier channel does not flatten the chart.
    """
    rows: List[Dict[str, Any]] = []
    if leads.empty:
        return rows
    for platform, group in leads.groupby("platform", sort=False):
        n_leads = int(len(group))
        n_quotes = int(reached(group["stage"], STAGE_QUOTE).sum())
        conversion = percent(n_quotes, n_leads)
        rows.append(
            {
                "platform": str(platform),
                "leads": n_leads,
                "quotes": n_quotes,
                "conversion": conversion,
                "conversion_display": round_half_up(min(conversion, display_cap), 1),
            }
        )
    order = {p: i for i, p in enumerate(PLATFORMS)}
    rows.sort(key=lambda r: (-r["conversion"], order.get(r["platform"], len(order))))
    return rows


def compute_breakdowns(filters: DashboardFilters, ctx: Dict[str, Any], *, province_stage: Optional[str] = None) -> Dict[str, Any]:
    leads: pd.DataFrame = ctx.get("filtered_leads", pd.DataFrame())
    stage = province_stage or STAGE_QUOTE

    agents = funnel_by(leads, "agent")
    provinces = funnel_by(leads, "province")
    regions = by_region(leads)
    platforms = by_platform(leads)
    geo = geo_distribution(leads, filters.thresholds.geo_min_count)
    provinces_at_stage = province_by_stage(leads, stage)
    visits = visit_types(leads)
    agent_visits = visits_by_agent(leads)
    quality = quality_ranking(leads, filters.thresholds.quality_display_cap)

    charts: Dict[str, Any] = {}
    if agents:
        charts["agents"] = bar_spec(agents, "agent", "leads", y_title="Leads")
    if geo:
        charts["geo"] = donut_spec(geo, "name", "value")
    if provinces_at_stage:
        charts["province_stage"] = bar_spec(provinces_at_stage, "name", "value", color="#10b981")
    if visits:
        charts["visit_types"] = donut_spec(visits, "name", "value")
    if agent_visits:
        charts["visits_by_agent"] = bar_spec(agent_visits, "name", "visits", color="#f59e0b")
    if quality:
        charts["quality"] = bar_spec(quality, "platform", "conversion_display", y_title="Conversion %", color="#8b5cf6")

    return {
        "filters": asdict(filters),
        "province_stage": stage,
        "agents": agents,
        "provinces": provinces,
        "regions": regions,
        "platforms": platforms,
        "geo": geo,
        "provinces_at_stage": provinces_at_stage,
        "visit_types": visits,
        "visits_by_agent": agent_visits,
        "quality": quality,
        "charts": charts,
    }
