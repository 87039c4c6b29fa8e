from __future__ import annotations

import unicodedata
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

AGENT_UNKNOWN = "unknown"
PROVINCE_NO_DATA = "No Data"
PLATFORM_OTHER = "Other"
PLATFORMS = ["WhatsApp", "Instagram", "Facebook", PLATFORM_OTHER]

AGENT_ALIASES: Dict[str, str] = {
    "PM": "Paola",
    "IC": "Irina",
}

PLATFORM_ALIASES: Dict[str, str] = {
    "wp": "WhatsApp",
    "whatsapp": "WhatsApp",
    "ig": "Instagram",
    "instagram": "Instagram",
    "fb": "Facebook",
    "facebook": "Facebook",
}

VISIT_NONE = "none"
VISIT_ALIASES: Dict[str, str] = {
    "showroom": "showroom",
    "fabrica": "factory",
    "factory": "factory",
    "ambas": "both",
    "both": "both",
}
VISIT_TYPES = ["showroom", "factory", "both"]

# Funnel stages, lowest first. The classifier walks them highest first.
STAGE_LEAD = "lead"
STAGE_QUOTE = "quote"
STAGE_OFFER = "offer"
STAGE_SALE = "sale"
STAGES = [STAGE_LEAD, STAGE_QUOTE, STAGE_OFFER, STAGE_SALE]
STAGE_RANK = {stage: idx for idx, stage in enumerate(STAGES)}

STAGE_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    (STAGE_SALE, ("venta", "sale")),
    (STAGE_OFFER, ("oferta", "offer")),
    (STAGE_QUOTE, ("cotizacion", "quote")),
]

REGION_TARGET = "Target Region"
REGION_NEARBY = "Nearby Regions"
REGION_REST = "Rest of Country"
REGION_GROUPS: List[Tuple[str, Tuple[str, ...]]] = [
    (REGION_TARGET, ("madrid",)),
    (REGION_NEARBY, ("toledo", "guadalajara", "segovia", "avila", "cuenca", "castilla")),
]
REGIONS = [REGION_TARGET, REGION_NEARBY, REGION_REST]


def _clean(value: object) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def fold_text(value: object) -> str:
    """Lower-case and strip accents so keyword tests see ``cotización`` as ``cotizacion``."""
    text = _clean(value).lower()
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_agent(value: object) -> str:
    text = _clean(value)
    if not text:
        return ""
    alias = AGENT_ALIASES.get(text.upper())
    if alias:
        return alias
    return text[0].upper() + text[1:].lower()


def normalize_platform(value: object) -> str:
    return PLATFORM_ALIASES.get(_clean(value).lower(), PLATFORM_OTHER)


def normalize_province(value: object) -> str:
    return _clean(value) or PROVINCE_NO_DATA


def normalize_visit(value: object) -> str:
    return VISIT_ALIASES.get(fold_text(value), VISIT_NONE)


def classify_stage(event_type: object) -> str:
    """Return the highest funnel stage an event type reaches."""
    text = fold_text(event_type)
    if text:
        for stage, keywords in STAGE_KEYWORDS:
            if any(k in text for k in keywords):
                return stage
    return STAGE_LEAD


def reached(stages: pd.Series, stage: str) -> pd.Series:
    """Boolean mask of rows whose stage is ``stage`` or any stage downstream of it."""
    floor = STAGE_RANK[stage]
    return stages.map(lambda s: STAGE_RANK.get(s, 0) >= floor).astype(bool)


def region_bucket(
    province: object,
    groups: Optional[Sequence[Tuple[str, Sequence[str]]]] = None,
) -> str:
    text = fold_text(province)
    if not text:
        return REGION_REST
    hits = [label for label, keywords in (groups or REGION_GROUPS) if any(k in text for k in keywords)]
    if len(hits) != 1:
        return REGION_REST
    return hits[0]

