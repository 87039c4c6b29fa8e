"""Date resolution for the loosely formatted date strings found in lead logs and ad reports.

Everything resolves to a canonical ``YYYY-MM-DD`` string (sortable and comparable as
text) or to ``""`` when the value cannot be interpreted. Nothing here raises.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple

import pandas as pd


@dataclass(frozen=True)
class YearRule:
    """Year used for dates written without one (``"05/03"``, ``"31 AL 05/04"``).

    Exports cover a season that starts in December, so December dates belong to
    ``rollover_year`` and every other month to ``default_year``. A rule with
    ``default_year=None`` refuses to guess: yearless dates stay unresolved.
    """

    rollover_month: int = 12
    rollover_year: Optional[int] = 2025
    default_year: Optional[int] = 2026

    @classmethod
    def disabled(cls) -> "YearRule":
        return cls(rollover_year=None, default_year=None)

    def year_for(self, month: int) -> Optional[int]:
        if month == self.rollover_month and self.rollover_year is not None:
            return self.rollover_year
        return self.default_year


DEFAULT_YEAR_RULE = YearRule()

_ISO_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_RANGE_RE = re.compile(
    r"^(\d{1,2})\s*AL\s*(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?$",
    re.IGNORECASE,
)
_TIME_SUFFIX_RE = re.compile(r"[ T]\d{1,2}:\d{2}(?::\d{2})?(?:\.\d+)?\s*$")
_SPLIT_RE = re.compile(r"[/-]")


def _clean(value: object) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, pd.Timestamp):
        return value.strftime("%Y-%m-%d")
    return _TIME_SUFFIX_RE.sub("", str(value).strip()).strip()


def _full_year(token: str) -> int:
    year = int(token)
    return 2000 + year if len(token) <= 2 else year


def _iso(year: Optional[int], month: int, day: int) -> str:
    if year is None:
        return ""
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return ""


def resolve_date_detail(value: object, rule: YearRule = DEFAULT_YEAR_RULE) -> Tuple[str, bool]:
    """Resolve ``value`` and report whether its year came from ``rule``."""
    text = _clean(value)
    if not text:
        return "", False

    m = _ISO_RE.match(text)
    if m:
        return _iso(int(m.group(1)), int(m.group(2)), int(m.group(3))), False

    m = _RANGE_RE.match(text)
    if m:
        day, month, year_token = int(m.group(1)), int(m.group(3)), m.group(4)
        inferred = not year_token
        year = rule.year_for(month) if inferred else _full_year(year_token)
        # "31 AL 05/04" has no valid start date in the end month and stays unresolved.
        return _iso(year, month, day), inferred

    tokens = [t.strip() for t in _SPLIT_RE.split(text)]
    if not all(t.isdigit() for t in tokens):
        return "", False
    if len(tokens) == 3:
        if len(tokens[0]) == 4:
            year, month, day = int(tokens[0]), int(tokens[1]), int(tokens[2])
        else:
            day, month, year = int(tokens[0]), int(tokens[1]), _full_year(tokens[2])
        return _iso(year, month, day), False
    if len(tokens) == 2:
        day, month = int(tokens[0]), int(tokens[1])
        return _iso(rule.year_for(month), month, day), True
    return "", False


def resolve_date(value: object, rule: YearRule = DEFAULT_YEAR_RULE) -> str:
    return resolve_date_detail(value, rule)[0]


def display_label(iso_value: object) -> str:
    """``2024-03-05`` -> ``05/03`` for chart axes."""
    m = _ISO_RE.match(str(iso_value or ""))
    if not m:
        return ""
    return f"{m.group(3)}/{m.group(2)}"


def week_start(iso_value: str) -> str:
    """Monday of the ISO week containing ``iso_value``."""
    if not _ISO_RE.match(iso_value or ""):
        return ""
    ts = pd.Timestamp(iso_value)
    return (ts - pd.Timedelta(days=ts.weekday())).strftime("%Y-%m-%d")
