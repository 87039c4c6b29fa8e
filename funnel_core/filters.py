from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import pandas as pd

from funnel_core.dates import resolve_date

ALL = "All"


@dataclass(frozen=True)
class Thresholds:
    geo_min_count: int = 10
    quality_display_cap: float = 30.0


@dataclass(frozen=True)
class DashboardFilters:
    date_from: str = ""
    date_to: str = ""
    agent: str = ALL
    province: str = ALL
    platform: str = ALL
    thresholds: Thresholds = field(default_factory=Thresholds)


def as_choice(value: Optional[object]) -> str:
    if value is None:
        return ALL
    text = str(value).strip()
    if not text or text.lower() in {"all", "todos", "todas"}:
        return ALL
    return text


def _as_iso(value: Optional[object]) -> str:
    if value is None:
        return ""
    return resolve_date(value)


def normalize_filters(raw: dict) -> DashboardFilters:
    raw = raw or {}
    date_from = _as_iso(raw.get("date_from"))
    date_to = _as_iso(raw.get("date_to"))
    if date_from and date_to and date_from > date_to:
        date_from, date_to = date_to, date_from

    t = raw.get("thresholds") or {}
    try:
        geo_min_count = max(0, int(t.get("geo_min_count", 10)))
    except (TypeError, ValueError):
        geo_min_count = 10
    try:
        quality_display_cap = float(t.get("quality_display_cap", 30.0))
    except (TypeError, ValueError):
        quality_display_cap = 30.0

    return DashboardFilters(
        date_from=date_from,
        date_to=date_to,
        agent=as_choice(raw.get("agent")),
        province=as_choice(raw.get("province")),
        platform=as_choice(raw.get("platform")),
        thresholds=Thresholds(geo_min_count=geo_min_count, quality_display_cap=quality_display_cap),
    )


def date_mask(dates: pd.Series, filters: DashboardFilters) -> pd.Series:
    """Rows inside the filter window. Canonical dates compare correctly as strings.

    Without a window every row passes, including rows whose date never resolved.
    """
    mask = pd.Series(True, index=dates.index)
    if not filters.date_from and not filters.date_to:
        return mask
    dates = dates.fillna("").astype(str)
    mask &= dates != ""
    if filters.date_from:
        mask &= dates >= filters.date_from
    if filters.date_to:
        mask &= dates <= filters.date_to
    return mask


def filter_leads(leads: pd.DataFrame, filters: DashboardFilters) -> pd.DataFrame:
    if leads.empty:
        return leads.copy()
    mask = date_mask(leads["iso_date"], filters)
    if filters.agent != ALL:
        mask &= leads["agent"] == filters.agent
    if filters.province != ALL:
        mask &= leads["province"] == filters.province
    if filters.platform != ALL:
        mask &= leads["platform"] == filters.platform
    return leads[mask].copy()


def filter_by_date(df: pd.DataFrame, filters: DashboardFilters, date_col: str = "date_iso") -> pd.DataFrame:
    if df.empty or date_col not in df.columns:
        return df.copy()
    return df[date_mask(df[date_col], filters)].copy()
