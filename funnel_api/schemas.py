from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field


class ThresholdsModel(BaseModel):
    geo_min_count: int = 10
    quality_display_cap: float = 30.0


class DashboardFiltersModel(BaseModel):
    date_from: str = ""
    date_to: str = ""
    agent: str = "All"
    province: str = "All"
    platform: str = "All"
    thresholds: ThresholdsModel = Field(default_factory=ThresholdsModel)


class IngestionResponse(BaseModel):
    kind: str
    schema_name: str = ""
    rows_read: int = 0
    rows_kept: int = 0
    rows_dropped: int = 0
    unresolved_dates: int = 0
    inferred_years: int = 0
    malformed_rows: int = 0
    missing_columns: List[str] = Field(default_factory=list)


class MetaOptionsResponse(BaseModel):
    agents: List[str]
    provinces: List[str]
    platforms: List[str]
    campaigns: List[str]
    date_min: str = ""
    date_max: str = ""
    reports: Dict[str, IngestionResponse] = Field(default_factory=dict)
