from __future__ import annotations

import math
import re

import pandas as pd

_NOT_NUMERIC_RE = re.compile(r"[^\d.,-]")
_FLOAT_ZERO_RE = re.compile(r"^\d+[.,]0+$")
_GROUPED_RE = re.compile(r"^\d{1,3}(?:[.,]\d{3})+$")
_DOT_GROUPED_RE = re.compile(r"^-?\d{1,3}(?:\.\d{3})+$")


def parse_amount(value: object) -> float:
    """Parse money such as ``"$ 1.234,56"`` or ``"1,234.56"`` into a non-negative float.

    When both ``,`` and ``.`` appear the one written last is the decimal separator.
    Exports are Spanish-locale: a lone ``,`` is a decimal separator and ``.``
    followed by three-digit groups (``1.500``) is grouping, the same reading
    :func:`parse_count` gives. A separator repeated on its own (``1.234.567``)
    can only be grouping. Anything unparseable is 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        out = float(value)
        return out if math.isfinite(out) and out > 0 else 0.0
    try:
        if pd.isna(value):
            return 0.0
    except (TypeError, ValueError):
        pass

    s = _NOT_NUMERIC_RE.sub("", str(value))
    if not s:
        return 0.0

    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        s = s.replace(",", "") if s.count(",") > 1 else s.replace(",", ".")
    elif s.count(".") > 1 or _DOT_GROUPED_RE.match(s):
        s = s.replace(".", "")

    try:
        out = float(s)
    except ValueError:
        return 0.0
    return out if math.isfinite(out) and out > 0 else 0.0


def parse_count(value: object) -> int:
    """Parse audience counts (reach, impressions), which never carry decimals.

    ``"12.345"`` and ``"12,345"`` are both grouping; ``"1234.0"`` is a float
    written out by a spreadsheet.
    """
    if isinstance(value, str):
        s = _NOT_NUMERIC_RE.sub("", value)
        if _GROUPED_RE.match(s):
            s = s.replace(".", "").replace(",", "")
        elif _FLOAT_ZERO_RE.match(s):
            s = re.split(r"[.,]", s)[0]
        value = s
    return int(round(parse_amount(value)))
