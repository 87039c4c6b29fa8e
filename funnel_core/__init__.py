"""Core (UI-agnostic) lead funnel and campaign logic.

This package contains:
- field normalization, date and currency resolution
- ingestion of lead logs and marketing reports (delimited text -> pandas)
- filter normalization
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
