from __future__ import annotations

from dataclasses import asdict
import logging
import math
from typing import Literal

import numpy as np
import pandas as pd
from fastapi import FastAPI, File, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response
from fastapi.encoders import jsonable_encoder

from funnel_api.schemas import DashboardFiltersModel, IngestionResponse, MetaOptionsResponse
from funnel_core.data import (
    IngestionError,
    IngestionReport,
    Snapshot,
    filter_options,
    ingest_leads,
    ingest_marketing,
    prepare_context,
)
from funnel_core.dates import DEFAULT_YEAR_RULE, YearRule
from funnel_core.filters import ALL, DashboardFilters, normalize_filters
from funnel_core.metrics_breakdowns import compute_breakdowns
from funnel_core.metrics_campaigns import compute_campaigns
from funnel_core.metrics_funnel import compute_funnel
from funnel_core.metrics_trends import compute_trends


app = FastAPI(title="Lead Funnel API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# One in-memory dataset per process; uploads swap it wholesale.
_STATE = {"snapshot": Snapshot()}


def get_snapshot() -> Snapshot:
    return _STATE["snapshot"]


def reset_snapshot() -> None:
    _STATE["snapshot"] = Snapshot()


def _filters_from_model(model: DashboardFiltersModel) -> DashboardFilters:
    return normalize_filters(model.model_dump())


def _year_rule(infer_year: bool) -> YearRule:
    return DEFAULT_YEAR_RULE if infer_year else YearRule.disabled()


def _report_model(report: IngestionReport) -> IngestionResponse:
    raw = asdict(report)
    raw["schema_name"] = raw.pop("schema")
    return IngestionResponse(**raw)


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


@app.post("/upload/leads")
def upload_leads(file: UploadFile = File(...), infer_year: bool = Query(default=True)):
    try:
        snapshot = ingest_leads(get_snapshot(), file.file.read(), rule=_year_rule(infer_year))
    except IngestionError as exc:
        logger.warning("Leads upload %s rejected: %s", file.filename, exc)
        return _error(exc, status_code=400)
    except Exception as exc:
        logger.exception("upload_leads failed")
        return _error(exc)
    _STATE["snapshot"] = snapshot
    return _json(_report_model(snapshot.reports["leads"]).model_dump())


@app.post("/upload/marketing")
def upload_marketing(file: UploadFile = File(...), infer_year: bool = Query(default=True)):
    try:
        snapshot = ingest_marketing(get_snapshot(), file.file.read(), rule=_year_rule(infer_year))
    except IngestionError as exc:
        logger.warning("Marketing upload %s rejected: %s", file.filename, exc)
        return _error(exc, status_code=400)
    except Exception as exc:
        logger.exception("upload_marketing failed")
        return _error(exc)
    _STATE["snapshot"] = snapshot
    return _json(_report_model(snapshot.reports["marketing"]).model_dump())


@app.get("/meta/options")
def meta_options():
    try:
        snapshot = get_snapshot()
        options = MetaOptionsResponse(
            **filter_options(snapshot),
            reports={kind: _report_model(r) for kind, r in snapshot.reports.items()},
        )
        return _json(options.model_dump())
    except Exception as exc:
        logger.exception("meta_options failed")
        return _error(exc)


@app.post("/funnel")
def funnel(filters: DashboardFiltersModel):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, get_snapshot())
        return _json(compute_funnel(f, ctx))
    except Exception as exc:
        logger.exception("funnel failed")
        return _error(exc)


@app.post("/breakdowns")
def breakdowns(
    filters: DashboardFiltersModel,
    province_stage: Literal["quote", "offer", "sale"] = Query(default="quote"),
):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, get_snapshot())
        return _json(compute_breakdowns(f, ctx, province_stage=province_stage))
    except Exception as exc:
        logger.exception("breakdowns failed")
        return _error(exc)


@app.post("/trends")
def trends(filters: DashboardFiltersModel):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, get_snapshot())
        return _json(compute_trends(f, ctx))
    except Exception as exc:
        logger.exception("trends failed")
        return _error(exc)


@app.post("/campaigns")
def campaigns(filters: DashboardFiltersModel, campaign: str = Query(default=ALL)):
    try:
        f = _filters_from_model(filters)
        ctx = prepare_context(f, get_snapshot())
        return _json(compute_campaigns(f, ctx, campaign=campaign))
    except Exception as exc:
        logger.exception("campaigns failed")
        return _error(exc)


@app.post("/export/{page}")
def export_page(page: str, filters: DashboardFiltersModel):
    f = _filters_from_model(filters)
    ctx = prepare_context(f, get_snapshot())

    export_df = None
    filename = f"{page}.csv"
    if page == "leads":
        export_df = ctx.get("filtered_leads")
    elif page in {"campaigns", "events"}:
        export_df = ctx.get("filtered_events")
        filename = "campaigns.csv"
    elif page == "daily-spend":
        export_df = ctx.get("filtered_daily_spend")
    elif page == "daily-reach":
        export_df = ctx.get("filtered_daily_reach")
    elif page == "reach-by-region":
        export_df = ctx.get("filtered_daily_reach_region")
    else:
        export_df = pd.DataFrame()

    if export_df is None or not hasattr(export_df, "to_csv"):
        export_df = pd.DataFrame()
    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})
