from itertools import permutations

import pandas as pd
import pytest

from funnel_core.data import Snapshot, ingest_leads
from funnel_core.filters import ALL, DashboardFilters, date_mask, filter_by_date, filter_leads, normalize_filters

from tests.conftest import LEADS_CSV


@pytest.fixture()
def leads():
    return ingest_leads(Snapshot(), LEADS_CSV).leads


def test_normalize_filters_defaults():
    f = normalize_filters({})
    assert f == DashboardFilters()
    assert f.agent == ALL
    assert f.thresholds.geo_min_count == 10
    assert f.thresholds.quality_display_cap == 30.0


def test_normalize_filters_coerces_values():
    f = normalize_filters(
        {
            "date_from": "31/03/2024",
            "date_to": "2024-03-01",
            "agent": " Todos ",
            "province": "Madrid",
            "platform": None,
            "thresholds": {"geo_min_count": "abc", "quality_display_cap": "50"},
        }
    )
    # reversed windows are swapped
    assert (f.date_from, f.date_to) == ("2024-03-01", "2024-03-31")
    assert f.agent == ALL
    assert f.province == "Madrid"
    assert f.platform == ALL
    assert f.thresholds.geo_min_count == 10
    assert f.thresholds.quality_display_cap == 50.0


def test_date_mask_without_window_keeps_undated_rows():
    dates = pd.Series(["2024-03-05", ""])
    assert date_mask(dates, DashboardFilters()).tolist() == [True, True]
    assert date_mask(dates, DashboardFilters(date_from="2024-01-01")).tolist() == [True, False]


def test_filter_leads_by_each_predicate(leads):
    assert len(filter_leads(leads, normalize_filters({"agent": "Paola"}))) == 2
    assert len(filter_leads(leads, normalize_filters({"province": "Toledo"}))) == 2
    assert len(filter_leads(leads, normalize_filters({"platform": "Instagram"}))) == 2
    window = normalize_filters({"date_from": "2024-03-06", "date_to": "2024-03-11"})
    assert filter_leads(leads, window)["iso_date"].tolist() == ["2024-03-06", "2024-03-07", "2024-03-11"]


def test_filters_compose_in_any_order(leads):
    predicates = [
        {"agent": "Irina"},
        {"platform": "WhatsApp"},
        {"date_from": "2024-03-01", "date_to": "2024-03-31"},
    ]
    combined = filter_leads(leads, normalize_filters({k: v for p in predicates for k, v in p.items()}))
    assert combined["iso_date"].tolist() == ["2024-03-11"]

    for order in permutations(predicates):
        frame = leads
        for p in order:
            frame = filter_leads(frame, normalize_filters(p))
        pd.testing.assert_frame_equal(frame, combined)

    # applying the same filter twice changes nothing
    again = filter_leads(combined, normalize_filters({k: v for p in predicates for k, v in p.items()}))
    pd.testing.assert_frame_equal(again, combined)


def test_filter_by_date_handles_missing_column():
    df = pd.DataFrame({"other": [1, 2]})
    out = filter_by_date(df, normalize_filters({"date_from": "2024-01-01"}))
    assert len(out) == 2
