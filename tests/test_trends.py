from funnel_core.data import empty_leads
from funnel_core.filters import DashboardFilters
from funnel_core.metrics_trends import WEEKDAYS, compute_trends


def test_compute_trends(make_ctx):
    filters, ctx = make_ctx()
    payload = compute_trends(filters, ctx)

    assert [r["date_iso"] for r in payload["daily"]] == ["2024-03-05", "2024-03-06", "2024-03-07", "2024-03-11", "2024-04-12"]
    assert payload["daily"][0]["label"] == "05/03"
    assert payload["weekly"] == [
        {"week_start": "2024-03-04", "leads": 3},
        {"week_start": "2024-03-11", "leads": 1},
        {"week_start": "2024-04-08", "leads": 1},
    ]
    assert payload["monthly"] == [{"month": "2024-03", "leads": 4}, {"month": "2024-04", "leads": 1}]
    assert {"daily", "monthly", "channels", "weekday"} <= set(payload["charts"])


def test_channel_by_month_has_total_row(make_ctx):
    filters, ctx = make_ctx()
    rows = compute_trends(filters, ctx)["channel_by_month"]

    assert rows == [
        {"month": "2024-03", "WhatsApp": 2, "Instagram": 1, "Facebook": 1, "Other": 0},
        {"month": "2024-04", "WhatsApp": 0, "Instagram": 1, "Facebook": 0, "Other": 0},
        {"month": "TOTAL", "WhatsApp": 2, "Instagram": 2, "Facebook": 1, "Other": 0},
    ]


def test_weekday_rhythm_always_has_seven_days(make_ctx):
    filters, ctx = make_ctx()
    rhythm = compute_trends(filters, ctx)["weekday"]

    assert [r["weekday"] for r in rhythm] == WEEKDAYS
    assert [r["leads"] for r in rhythm] == [1, 1, 1, 1, 1, 0, 0]

    empty = compute_trends(DashboardFilters(), {"filtered_leads": empty_leads()})
    assert [r["leads"] for r in empty["weekday"]] == [0] * 7
    assert empty["daily"] == [] and empty["channel_by_month"] == []
    assert empty["charts"] == {}
