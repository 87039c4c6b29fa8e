from __future__ import annotations

from typing import Any, Dict, List

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

STAGE_COLORS = ["#3b82f6", "#10b981", "#f59e0b", "#ef4444"]


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def bar_spec(rows: List[Dict[str, Any]], x: str, y: str, *, x_title: str = "", y_title: str = "", color: str = "#3b82f6") -> Dict[str, Any]:
    df = pd.DataFrame(rows)
    chart = (
        alt.Chart(df)
        .mark_bar(cornerRadiusTopLeft=6, cornerRadiusTopRight=6, color=color)
        .encode(
            x=alt.X(f"{x}:N", title=x_title or None, sort=None, axis=alt.Axis(grid=False, labelAngle=-40)),
            y=alt.Y(f"{y}:Q", title=y_title or None, axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=[alt.Tooltip(f"{x}:N"), alt.Tooltip(f"{y}:Q")],
        )
    )
    return to_vega_spec(chart)


def line_spec(rows: List[Dict[str, Any]], x: str, y: str, *, color: str = "", x_title: str = "", y_title: str = "") -> Dict[str, Any]:
    df = pd.DataFrame(rows)
    hover = alt.selection_point(fields=[color] if color else [x], on="mouseover", empty="all")
    encoding: Dict[str, Any] = {
        "x": alt.X(f"{x}:O", title=x_title or None, sort=None, axis=alt.Axis(grid=False)),
        "y": alt.Y(f"{y}:Q", title=y_title or None, axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
        "tooltip": [alt.Tooltip(f"{x}:O")] + ([alt.Tooltip(f"{color}:N")] if color else []) + [alt.Tooltip(f"{y}:Q")],
    }
    if color:
        encoding["color"] = alt.Color(f"{color}:N")
        encoding["opacity"] = alt.condition(hover, alt.value(1), alt.value(0.2))
    chart = alt.Chart(df).mark_line(point={"filled": True}).encode(**encoding).add_params(hover)
    return to_vega_spec(chart)


def donut_spec(rows: List[Dict[str, Any]], label: str, value: str) -> Dict[str, Any]:
    df = pd.DataFrame(rows)
    chart = (
        alt.Chart(df)
        .mark_arc(innerRadius=60)
        .encode(
            theta=alt.Theta(f"{value}:Q"),
            color=alt.Color(f"{label}:N", sort=None),
            tooltip=[alt.Tooltip(f"{label}:N"), alt.Tooltip(f"{value}:Q")],
        )
    )
    return to_vega_spec(chart)
