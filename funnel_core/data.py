from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from funnel_core.currency import parse_amount, parse_count
from funnel_core.dates import DEFAULT_YEAR_RULE, YearRule, resolve_date, resolve_date_detail
from funnel_core.filters import ALL, DashboardFilters, filter_by_date, filter_leads, normalize_filters
from funnel_core.normalize import (
    AGENT_UNKNOWN,
    PLATFORMS,
    PROVINCE_NO_DATA,
    classify_stage,
    fold_text,
    normalize_agent,
    normalize_platform,
    normalize_province,
    normalize_visit,
    region_bucket,
)

logger = logging.getLogger(__name__)

Source = Union[bytes, bytearray, str, Path, io.IOBase, Any]

# Leads export headers, matched exactly (after trimming surrounding whitespace).
LEAD_COLUMNS = {
    "AGENTE": "agent",
    "platform": "platform",
    "Provincia Detectada": "province",
    "Tipo de Evento": "event_type",
    "fecha": "raw_date",
    "VISITAS": "visit_type",
}
LEAD_FRAME_COLUMNS = [
    "agent",
    "platform",
    "province",
    "region",
    "event_type",
    "stage",
    "visit_type",
    "raw_date",
    "iso_date",
]

EVENT_COLUMNS = ["date_iso", "name", "type", "platform", "investment"]
DAILY_SPEND_COLUMNS = ["date_iso", "name", "spend"]
DAILY_REACH_COLUMNS = ["date_iso", "name", "reach"]
DAILY_REACH_REGION_COLUMNS = ["date_iso", "name", "region", "reach"]

SCHEMA_PER_DAY_ADS = "per_day_ads"
SCHEMA_ACTIVE_CAMPAIGNS = "active_campaigns"
SCHEMA_GENERIC_EVENTS = "generic_events"

META_PLATFORM = "Meta Ads"

# Marketing headers are matched on folded text (no case, accents or extra spaces).
MARKETING_SYNONYMS: Dict[str, Sequence[str]] = {
    "report_start": ("inicio del informe", "reporting starts"),
    "ad_name": ("nombre del anuncio", "ad name"),
    "spend": ("importe gastado", "amount spent", "gasto", "spend"),
    "reach": ("alcance", "reach"),
    "region": ("region", "provincia", "province"),
    "circulation_date": ("fecha de circulacion",),
    "campaign": ("campana", "campaign", "comentarios", "comments"),
    "label": ("tipo", "objetivo", "type", "objective"),
    "budget": ("inversion", "presupuesto", "importe", "investment", "budget", "spend"),
    "date": ("fecha", "date", "dia", "day"),
    "name": ("nombre", "name", "evento", "event", "campana", "campaign", "actividad"),
    "type": ("tipo", "type", "categoria", "category"),
    "platform": ("plataforma", "platform", "canal", "channel"),
    "investment": ("inversion", "investment", "gasto", "spend", "coste", "cost", "importe", "amount"),
}

EVENT_TYPES = [
    "paid-media",
    "organic",
    "event",
    "offline",
    "email",
    "leads-focused",
    "branding",
    "visits-focused",
    "followers-focused",
    "default",
]
AD_TYPE_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("visits-focused", ("visita", "visit")),
    ("followers-focused", ("seguidor", "follower")),
    ("branding", ("marca", "brand")),
    ("leads-focused", ("lead",)),
]
EVENT_TYPE_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("leads-focused", ("lead",)),
    ("branding", ("marca", "brand")),
    ("visits-focused", ("visita", "visit")),
    ("organic", ("organic",)),
    ("paid-media", ("pago", "pagad", "paid", "pauta", "publicidad", "ads")),
    ("event", ("evento", "event", "feria")),
    ("offline", ("offline", "prensa", "radio", "impreso")),
    ("email", ("email", "mail", "newsletter")),
]


class IngestionError(ValueError):
    """Raised when an uploaded file cannot be turned into a record collection."""


@dataclass(frozen=True)
class IngestionReport:
    kind: str
    schema: str = ""
    rows_read: int = 0
    rows_kept: int = 0
    rows_dropped: int = 0
    unresolved_dates: int = 0
    inferred_years: int = 0
    malformed_rows: int = 0
    missing_columns: List[str] = field(default_factory=list)


def _empty(columns: Sequence[str]) -> pd.DataFrame:
    return pd.DataFrame({c: pd.Series(dtype=object) for c in columns})


def empty_leads() -> pd.DataFrame:
    return _empty(LEAD_FRAME_COLUMNS)


@dataclass(frozen=True)
class MarketingDataset:
    schema: str = ""
    events: pd.DataFrame = field(default_factory=lambda: _empty(EVENT_COLUMNS))
    daily_spend: pd.DataFrame = field(default_factory=lambda: _empty(DAILY_SPEND_COLUMNS))
    daily_reach: pd.DataFrame = field(default_factory=lambda: _empty(DAILY_REACH_COLUMNS))
    daily_reach_region: pd.DataFrame = field(default_factory=lambda: _empty(DAILY_REACH_REGION_COLUMNS))


@dataclass(frozen=True)
class Snapshot:
    """The two record collections of a session. Replaced wholesale, never edited."""

    leads: pd.DataFrame = field(default_factory=empty_leads)
    marketing: MarketingDataset = field(default_factory=MarketingDataset)
    reports: Dict[str, IngestionReport] = field(default_factory=dict)


def round_half_up(value: object, ndigits: int = 0) -> float:
    if value is None or pd.isna(value):
        return 0.0
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def percent(part: float, whole: float) -> float:
    """``part / whole * 100`` to one decimal; 0 when ``whole`` is 0."""
    if not whole:
        return 0.0
    return round_half_up(part / whole * 100, 1)


# ---------------- Reading ----------------
def _decode(raw: bytes) -> str:
    for encoding in ("utf-8-sig", "cp1252", "latin-1"):
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise IngestionError("File is not readable text")


def _source_text(source: Source) -> str:
    if isinstance(source, (bytes, bytearray)):
        return _decode(bytes(source))
    if isinstance(source, Path):
        try:
            return _decode(source.read_bytes())
        except OSError as exc:
            raise IngestionError(f"Could not read '{source}': {exc}") from exc
    if isinstance(source, str):
        return source
    read = getattr(source, "read", None)
    if callable(read):
        content = read()
        return _decode(content) if isinstance(content, (bytes, bytearray)) else str(content)
    raise IngestionError(f"Unsupported source type: {type(source).__name__}")


def sniff_delimiter(header_line: str) -> str:
    counts = {sep: header_line.count(sep) for sep in ("\t", ";", ",")}
    sep, hits = max(counts.items(), key=lambda kv: kv[1])
    return sep if hits else ","


def _header_names(cells: Sequence[str]) -> List[str]:
    """Name blank header cells and suffix repeats (``a``, ``a.1``) as ``read_csv`` does."""
    names: List[str] = []
    seen: Dict[str, int] = {}
    for i, cell in enumerate(cells):
        name = cell or f"Unnamed: {i}"
        if name in seen:
            seen[name] += 1
            name = f"{name}.{seen[name]}"
        else:
            seen[name] = 0
        names.append(name)
    return names


def read_table(source: Source) -> pd.DataFrame:
    """Parse delimited text (CSV, TSV or semicolon separated) with a header row.

    Every cell is kept as a stripped string; blank rows are dropped. A row with
    more fields than the header (an unquoted separator inside a label) keeps its
    leading fields and loses the surplus. Rows whose surplus holds any value are
    counted in ``df.attrs["malformed_rows"]``.
    """
    text = _source_text(source).lstrip("\ufeff")
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        raise IngestionError("File is empty")

    sep = sniff_delimiter(lines[0])
    # Read the header as a data row into a grid wide enough for every line, so a
    # long first row can never be taken as an index column.
    width = max(line.count(sep) for line in lines) + 1
    try:
        grid = pd.read_csv(
            io.StringIO(text),
            sep=sep,
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as exc:
        raise IngestionError(f"File is not valid delimited text: {exc}") from exc

    grid = grid.fillna("").apply(lambda s: s.astype(str).str.strip())
    grid = grid[(grid != "").any(axis=1)]
    if grid.empty:
        raise IngestionError("File is empty")

    header = grid.iloc[0].tolist()
    named = [i for i, cell in enumerate(header) if cell]
    n_cols = named[-1] + 1
    body = grid.iloc[1:]
    if body.empty:
        raise IngestionError("File has a header but no data rows")

    malformed = int((body.iloc[:, n_cols:] != "").any(axis=1).sum())
    if malformed:
        logger.warning("%s rows carry more fields than the %s header columns; surplus fields ignored", malformed, n_cols)

    df = body.iloc[:, :n_cols].reset_index(drop=True)
    df.columns = _header_names(header[:n_cols])
    df.attrs["malformed_rows"] = malformed
    return df


# ---------------- Leads ----------------
def load_leads_frame(raw: pd.DataFrame, rule: YearRule = DEFAULT_YEAR_RULE) -> Tuple[pd.DataFrame, IngestionReport]:
    present = [c for c in LEAD_COLUMNS if c in raw.columns]
    if not present:
        raise IngestionError(f"No lead columns found; expected some of {sorted(LEAD_COLUMNS)}")
    missing = [c for c in LEAD_COLUMNS if c not in raw.columns]
    if missing:
        logger.warning("Leads file is missing columns %s; defaults will be used", missing)

    def col(name: str) -> pd.Series:
        if name in raw.columns:
            return raw[name]
        return pd.Series("", index=raw.index, dtype=object)

    agent = col("AGENTE").map(normalize_agent)
    province = col("Provincia Detectada").map(normalize_province)
    event_label = col("Tipo de Evento").map(lambda v: str(v).strip())
    raw_date = col("fecha").map(lambda v: str(v).strip())
    resolved = raw_date.map(lambda v: resolve_date_detail(v, rule))

    leads = pd.DataFrame(
        {
            "agent": agent.where(agent != "", AGENT_UNKNOWN),
            "platform": col("platform").map(normalize_platform),
            "province": province,
            "region": province.map(region_bucket),
            "event_type": event_label,
            "stage": event_label.map(classify_stage),
            "visit_type": col("VISITAS").map(normalize_visit),
            "raw_date": raw_date,
            "iso_date": resolved.map(lambda r: r[0]),
        },
        columns=LEAD_FRAME_COLUMNS,
    ).reset_index(drop=True)

    unresolved = int(((leads["iso_date"] == "") & (leads["raw_date"] != "")).sum())
    inferred = int(resolved.map(lambda r: bool(r[0]) and r[1]).sum())
    report = IngestionReport(
        kind="leads",
        rows_read=int(len(raw)),
        rows_kept=int(len(leads)),
        rows_dropped=int(len(raw) - len(leads)),
        unresolved_dates=unresolved,
        inferred_years=inferred,
        malformed_rows=int(raw.attrs.get("malformed_rows", 0)),
        missing_columns=missing,
    )
    logger.info("Loaded %s lead rows (%s unresolved dates, %s inferred years)", len(leads), unresolved, inferred)
    return leads, report


# ---------------- Marketing ----------------
def _header_key(column: object) -> str:
    return re.sub(r"\s+", " ", fold_text(column)).strip()


def find_column(columns: Iterable[object], synonyms: Sequence[str]) -> Optional[str]:
    """First column whose folded header equals a synonym or starts with one (``"Importe gastado (EUR)"``)."""
    keyed = [(str(c), _header_key(c)) for c in columns]
    for synonym in synonyms:
        for column, key in keyed:
            if key == synonym:
                return column
    for synonym in synonyms:
        for column, key in keyed:
            if key.startswith(f"{synonym} ") or key.startswith(f"{synonym}("):
                return column
    return None


def detect_schema(columns: Iterable[object]) -> str:
    columns = list(columns)
    if find_column(columns, MARKETING_SYNONYMS["report_start"]) and find_column(columns, MARKETING_SYNONYMS["ad_name"]):
        return SCHEMA_PER_DAY_ADS
    if find_column(columns, MARKETING_SYNONYMS["circulation_date"]):
        return SCHEMA_ACTIVE_CAMPAIGNS
    return SCHEMA_GENERIC_EVENTS


def _keyword_type(text: object, table: Sequence[Tuple[str, Sequence[str]]]) -> str:
    folded = fold_text(text)
    for label, keywords in table:
        if any(k in folded for k in keywords):
            return label
    return "default"


def ad_type(ad_name: object) -> str:
    return _keyword_type(ad_name, AD_TYPE_KEYWORDS)


def event_type(label: object) -> str:
    folded = fold_text(label)
    if folded in EVENT_TYPES:
        return folded
    return _keyword_type(folded, EVENT_TYPE_KEYWORDS)


def _column_values(raw: pd.DataFrame, key: str, default: object = "") -> pd.Series:
    column = find_column(raw.columns, MARKETING_SYNONYMS[key])
    if column is None:
        return pd.Series(default, index=raw.index, dtype=object)
    return raw[column]


def _sorted(df: pd.DataFrame, by: List[str]) -> pd.DataFrame:
    return df.sort_values(by, kind="mergesort").reset_index(drop=True)


def _map_per_day_ads(raw: pd.DataFrame, rule: YearRule) -> MarketingDataset:
    platform_col = find_column(raw.columns, MARKETING_SYNONYMS["platform"])
    region_col = find_column(raw.columns, MARKETING_SYNONYMS["region"])
    rows = pd.DataFrame(
        {
            "date_iso": _column_values(raw, "report_start").map(lambda v: resolve_date(v, rule)),
            "name": _column_values(raw, "ad_name").map(lambda v: str(v).strip()),
            "spend": _column_values(raw, "spend", 0).map(parse_amount),
            "reach": _column_values(raw, "reach", 0).map(parse_count),
            "region": raw[region_col].map(normalize_province) if region_col else PROVINCE_NO_DATA,
            "platform": raw[platform_col].map(lambda v: str(v).strip()) if platform_col else META_PLATFORM,
        }
    )
    rows = rows[(rows["date_iso"] != "") & (rows["name"] != "")]
    if rows.empty:
        return MarketingDataset(schema=SCHEMA_PER_DAY_ADS)

    events = (
        rows.groupby("name", sort=True)
        .agg(
            date_iso=("date_iso", "min"),
            investment=("spend", "sum"),
            platform=("platform", lambda s: next((p for p in s if p), META_PLATFORM)),
        )
        .reset_index()
    )
    events["type"] = events["name"].map(ad_type)
    events["investment"] = events["investment"].astype(float)

    daily_spend = rows.groupby(["date_iso", "name"], sort=True)["spend"].sum().reset_index()
    daily_reach = rows.groupby(["date_iso", "name"], sort=True)["reach"].sum().reset_index()
    daily_reach_region = rows[DAILY_REACH_REGION_COLUMNS].copy()

    return MarketingDataset(
        schema=SCHEMA_PER_DAY_ADS,
        events=_sorted(events[EVENT_COLUMNS], ["date_iso", "name"]),
        daily_spend=_sorted(daily_spend[DAILY_SPEND_COLUMNS], ["date_iso", "name"]),
        daily_reach=_sorted(daily_reach[DAILY_REACH_COLUMNS], ["date_iso", "name"]),
        daily_reach_region=_sorted(daily_reach_region, ["date_iso", "name", "region"]),
    )


def _map_active_campaigns(raw: pd.DataFrame, rule: YearRule) -> MarketingDataset:
    labels = _column_values(raw, "label").map(lambda v: str(v).strip())
    events = pd.DataFrame(
        {
            "date_iso": _column_values(raw, "circulation_date").map(lambda v: resolve_date(v, rule)),
            "name": _column_values(raw, "campaign").map(lambda v: str(v).strip()),
            "type": labels.where(labels != "", "default"),
            "platform": META_PLATFORM,
            "investment": _column_values(raw, "budget", 0).map(parse_amount).astype(float),
        },
        columns=EVENT_COLUMNS,
    )
    events = events[(events["date_iso"] != "") & (events["name"] != "")]
    return MarketingDataset(schema=SCHEMA_ACTIVE_CAMPAIGNS, events=_sorted(events, ["date_iso", "name"]))


def _map_generic_events(raw: pd.DataFrame, rule: YearRule) -> MarketingDataset:
    platforms = _column_values(raw, "platform").map(lambda v: str(v).strip())
    events = pd.DataFrame(
        {
            "date_iso": _column_values(raw, "date").map(lambda v: resolve_date(v, rule)),
            "name": _column_values(raw, "name").map(lambda v: str(v).strip()),
            "type": _column_values(raw, "type").map(event_type),
            "platform": platforms.where(platforms != "", "Other"),
            "investment": _column_values(raw, "investment", 0).map(parse_amount).astype(float),
        },
        columns=EVENT_COLUMNS,
    )
    events = events[(events["date_iso"] != "") & (events["name"] != "")]
    return MarketingDataset(schema=SCHEMA_GENERIC_EVENTS, events=_sorted(events, ["date_iso", "name"]))


SCHEMA_MAPPERS = {
    SCHEMA_PER_DAY_ADS: _map_per_day_ads,
    SCHEMA_ACTIVE_CAMPAIGNS: _map_active_campaigns,
    SCHEMA_GENERIC_EVENTS: _map_generic_events,
}


def load_marketing_frame(raw: pd.DataFrame, rule: YearRule = DEFAULT_YEAR_RULE) -> Tuple[MarketingDataset, IngestionReport]:
    schema = detect_schema(raw.columns)
    dataset = SCHEMA_MAPPERS[schema](raw, rule)
    kept = int(len(dataset.daily_reach_region)) if schema == SCHEMA_PER_DAY_ADS else int(len(dataset.events))
    report = IngestionReport(
        kind="marketing",
        schema=schema,
        rows_read=int(len(raw)),
        rows_kept=kept,
        rows_dropped=int(len(raw)) - kept,
        malformed_rows=int(raw.attrs.get("malformed_rows", 0)),
    )
    logger.info(
        "Marketing file detected as %s: %s events from %s rows (%s dropped)",
        schema,
        len(dataset.events),
        len(raw),
        report.rows_dropped,
    )
    return dataset, report


# ---------------- Snapshot (replace-on-ingest) ----------------
def ingest_leads(snapshot: Snapshot, source: Source, *, rule: YearRule = DEFAULT_YEAR_RULE) -> Snapshot:
    """Return a new snapshot with the leads collection replaced.

    Raises :class:`IngestionError` before anything is replaced, so callers keep the
    previous snapshot on failure.
    """
    leads, report = load_leads_frame(read_table(source), rule)
    return replace(snapshot, leads=leads, reports={**snapshot.reports, "leads": report})


def ingest_marketing(snapshot: Snapshot, source: Source, *, rule: YearRule = DEFAULT_YEAR_RULE) -> Snapshot:
    dataset, report = load_marketing_frame(read_table(source), rule)
    return replace(snapshot, marketing=dataset, reports={**snapshot.reports, "marketing": report})


def prepare_context(filters: dict | DashboardFilters, snapshot: Snapshot) -> Dict[str, object]:
    filt = filters if isinstance(filters, DashboardFilters) else normalize_filters(filters)
    marketing = snapshot.marketing
    return {
        "filters": filt,
        "leads": snapshot.leads,
        "filtered_leads": filter_leads(snapshot.leads, filt),
        "schema": marketing.schema,
        "events": marketing.events,
        "filtered_events": filter_by_date(marketing.events, filt),
        "filtered_daily_spend": filter_by_date(marketing.daily_spend, filt),
        "filtered_daily_reach": filter_by_date(marketing.daily_reach, filt),
        "filtered_daily_reach_region": filter_by_date(marketing.daily_reach_region, filt),
    }


def filter_options(snapshot: Snapshot) -> Dict[str, object]:
    leads = snapshot.leads
    events = snapshot.marketing.events

    def distinct(series: pd.Series) -> List[str]:
        return sorted({str(v) for v in series if str(v)})

    dates = sorted(
        [d for d in leads.get("iso_date", pd.Series(dtype=object)) if d]
        + [d for d in events.get("date_iso", pd.Series(dtype=object)) if d]
    )
    return {
        "agents": [ALL] + distinct(leads.get("agent", pd.Series(dtype=object))),
        "provinces": [ALL] + distinct(leads.get("province", pd.Series(dtype=object))),
        "platforms": [ALL] + list(PLATFORMS),
        "campaigns": [ALL] + distinct(events.get("name", pd.Series(dtype=object))),
        "date_min": dates[0] if dates else "",
        "date_max": dates[-1] if dates else "",
    }
