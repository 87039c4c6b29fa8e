from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import altair as alt
import pandas as pd

from funnel_core.charts import STAGE_COLORS, to_vega_spec
from funnel_core.data import percent
from funnel_core.filters import DashboardFilters
from funnel_core.normalize import STAGE_OFFER, STAGE_QUOTE, STAGE_SALE, STAGES, VISIT_TYPES

FUNNEL_LABELS = {"lead": "Leads", "quote": "Quotes", "offer": "Commercial Offers", "sale": "Sales"}


def stage_counts(leads: pd.DataFrame) -> Dict[str, int]:
    """Records whose highest stage is exactly each stage."""
    if leads.empty:
        return {stage: 0 for stage in STAGES}
    counts = leads["stage"].value_counts()
    return {stage: int(counts.get(stage, 0)) for stage in STAGES}


def funnel_counts(leads: pd.DataFrame) -> Dict[str, int]:
    """Cumulative funnel: a sale has also been an offer, a quote and a lead."""
    exclusive = stage_counts(leads)
    sales = exclusive[STAGE_SALE]
    offers = sales + exclusive[STAGE_OFFER]
    quotes = offers + exclusive[STAGE_QUOTE]
    return {"leads": int(len(leads)), "quotes": quotes, "offers": offers, "sales": sales}


def conversion_rates(counts: Dict[str, int]) -> Dict[str, float]:
    return {
        "lead_to_quote": percent(counts["quotes"], counts["leads"]),
        "quote_to_offer": percent(counts["offers"], counts["quotes"]),
        "offer_to_sale": percent(counts["sales"], counts["offers"]),
    }


def total_visits(leads: pd.DataFrame) -> int:
    if leads.empty:
        return 0
    return int(leads["visit_type"].isin(VISIT_TYPES).sum())


def top_province(leads: pd.DataFrame) -> str:
    if leads.empty:
        return "N/A"
    counts = leads["province"].value_counts()
    best = counts.max()
    # Ties resolve to the province seen first.
    for province in leads["province"]:
        if counts[province] == best:
            return str(province)
    return "N/A"


def compute_funnel(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    leads: pd.DataFrame = ctx.get("filtered_leads", pd.DataFrame())
    counts = funnel_counts(leads)
    rates = conversion_rates(counts)

    funnel = [
        {"stage": stage, "name": FUNNEL_LABELS[stage], "value": counts[key]}
        for stage, key in zip(STAGES, ["leads", "quotes", "offers", "sales"])
    ]

    charts: Dict[str, Any] = {}
    if counts["leads"]:
        bar = (
            alt.Chart(pd.DataFrame(funnel))
            .mark_bar(cornerRadiusTopLeft=8, cornerRadiusTopRight=8)
            .encode(
                x=alt.X("name:N", title=None, sort=None, axis=alt.Axis(grid=False, labelAngle=0)),
                y=alt.Y("value:Q", title=None, axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
                color=alt.Color("name:N", sort=None, legend=None, scale=alt.Scale(range=STAGE_COLORS)),
                tooltip=[alt.Tooltip("name:N", title="Stage"), alt.Tooltip("value:Q", title="Records")],
            )
        )
        charts["funnel"] = to_vega_spec(bar)

    return {
        "filters": asdict(filters),
        "kpis": {
            **counts,
            **rates,
            "visits": total_visits(leads),
            "top_province": top_province(leads),
        },
        "stage_counts": stage_counts(leads),
        "funnel": funnel,
        "charts": charts,
    }
