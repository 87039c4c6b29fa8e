import pandas as pd
import pytest

from funnel_core.data import empty_leads
from funnel_core.filters import DashboardFilters
from funnel_core.metrics_breakdowns import (
    compute_breakdowns,
    funnel_by,
    geo_distribution,
    province_by_stage,
    quality_ranking,
)


def test_funnel_by_agent_is_cumulative(make_ctx):
    _, ctx = make_ctx()
    rows = funnel_by(ctx["filtered_leads"], "agent")

    assert [r["agent"] for r in rows] == ["Irina", "Paola", "Juan", "unknown"]
    paola = next(r for r in rows if r["agent"] == "Paola")
    assert paola == {"agent": "Paola", "leads": 2, "quotes": 2, "offers": 2, "sales": 1}


def test_geo_distribution_folds_small_provinces():
    provinces = ["Madrid"] * 12 + ["Toledo"] * 10 + ["Cuenca"] * 3 + ["Otro"] * 11 + ["Segovia"]
    rows = geo_distribution(pd.DataFrame({"province": provinces}), min_count=10)

    assert rows == [
        {"name": "Other", "value": 15},
        {"name": "Madrid", "value": 12},
        {"name": "Toledo", "value": 10},
    ]
    assert sum(r["value"] for r in rows) == len(provinces)


def test_geo_distribution_threshold_is_configurable(make_ctx):
    _, ctx = make_ctx()
    leads = ctx["filtered_leads"]

    assert geo_distribution(leads, min_count=10) == [{"name": "Other", "value": 6}]
    assert geo_distribution(leads, min_count=2) == [
        {"name": "Madrid", "value": 2},
        {"name": "Toledo", "value": 2},
        {"name": "Other", "value": 2},
    ]


def test_province_by_stage_uses_cumulative_membership(make_ctx):
    _, ctx = make_ctx()
    leads = ctx["filtered_leads"]

    assert province_by_stage(leads, "quote") == [{"name": "Madrid", "value": 2}, {"name": "Toledo", "value": 1}]
    assert province_by_stage(leads, "offer") == [{"name": "Madrid", "value": 2}]
    assert province_by_stage(leads, "sale") == [{"name": "Madrid", "value": 1}]
    with pytest.raises(ValueError):
        province_by_stage(leads, "lead")


def test_quality_ranking(make_ctx):
    _, ctx = make_ctx()
    rows = quality_ranking(ctx["filtered_leads"], display_cap=30.0)

    assert [r["platform"] for r in rows] == ["Facebook", "WhatsApp", "Instagram", "Other"]
    assert rows[0] == {"platform": "Facebook", "leads": 1, "quotes": 1, "conversion": 100.0, "conversion_display": 30.0}
    assert rows[1]["conversion"] == 50.0
    assert rows[-1]["conversion"] == 0.0
    assert all(r["conversion_display"] <= 30.0 for r in rows)


def test_compute_breakdowns(make_ctx):
    filters, ctx = make_ctx()
    payload = compute_breakdowns(filters, ctx, province_stage="offer")

    assert payload["province_stage"] == "offer"
    assert payload["provinces_at_stage"] == [{"name": "Madrid", "value": 2}]
    assert payload["regions"] == [
        {"region": "Target Region", "value": 2},
        {"region": "Nearby Regions", "value": 2},
        {"region": "Rest of Country", "value": 2},
    ]
    assert payload["platforms"] == [
        {"platform": "WhatsApp", "value": 2},
        {"platform": "Instagram", "value": 2},
        {"platform": "Facebook", "value": 1},
        {"platform": "Other", "value": 1},
    ]
    assert payload["visit_types"] == [
        {"name": "showroom", "value": 1},
        {"name": "factory", "value": 1},
        {"name": "both", "value": 1},
    ]
    assert payload["visits_by_agent"] == [
        {"name": "Irina", "visits": 1},
        {"name": "Juan", "visits": 1},
        {"name": "Paola", "visits": 1},
    ]
    assert {"agents", "geo", "quality"} <= set(payload["charts"])


def test_compute_breakdowns_empty():
    payload = compute_breakdowns(DashboardFilters(), {"filtered_leads": empty_leads()})
    assert payload["agents"] == []
    assert payload["geo"] == []
    assert payload["quality"] == []
    assert [r["value"] for r in payload["regions"]] == [0, 0, 0]
    assert payload["charts"] == {}
