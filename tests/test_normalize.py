import pandas as pd
import pytest

from funnel_core.normalize import (
    PROVINCE_NO_DATA,
    REGION_NEARBY,
    REGION_REST,
    REGION_TARGET,
    classify_stage,
    normalize_agent,
    normalize_platform,
    normalize_province,
    normalize_visit,
    reached,
    region_bucket,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("PM", "Paola"),
        (" ic ", "Irina"),
        ("jUAN", "Juan"),
        ("", ""),
        (None, ""),
        (float("nan"), ""),
    ],
)
def test_normalize_agent(raw, expected):
    assert normalize_agent(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("wp", "WhatsApp"),
        ("WhatsApp", "WhatsApp"),
        ("IG", "Instagram"),
        ("facebook", "Facebook"),
        ("tiktok", "Other"),
        ("", "Other"),
        (None, "Other"),
    ],
)
def test_normalize_platform(raw, expected):
    assert normalize_platform(raw) == expected


def test_normalize_province_defaults_to_sentinel():
    assert normalize_province("  Madrid ") == "Madrid"
    assert normalize_province("   ") == PROVINCE_NO_DATA
    assert normalize_province(None) == PROVINCE_NO_DATA


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("showroom", "showroom"),
        ("Fábrica", "factory"),
        ("fabrica", "factory"),
        ("AMBAS", "both"),
        ("no", "none"),
        ("", "none"),
    ],
)
def test_normalize_visit(raw, expected):
    assert normalize_visit(raw) == expected


@pytest.mark.parametrize(
    "event_type, expected",
    [
        ("Venta cerrada", "sale"),
        ("Oferta comercial", "offer"),
        ("Cotización", "quote"),
        ("cotizacion enviada", "quote"),
        ("Lead", "lead"),
        ("", "lead"),
        (None, "lead"),
        # the highest stage mentioned wins
        ("Oferta tras venta", "sale"),
        ("Cotización y oferta", "offer"),
    ],
)
def test_classify_stage_returns_highest_stage(event_type, expected):
    assert classify_stage(event_type) == expected


def test_reached_is_cumulative():
    stages = pd.Series(["lead", "quote", "offer", "sale"])
    assert reached(stages, "lead").tolist() == [True, True, True, True]
    assert reached(stages, "quote").tolist() == [False, True, True, True]
    assert reached(stages, "offer").tolist() == [False, False, True, True]
    assert reached(stages, "sale").tolist() == [False, False, False, True]


@pytest.mark.parametrize(
    "province, expected",
    [
        ("Madrid", REGION_TARGET),
        ("Comunidad de MADRID", REGION_TARGET),
        ("Ávila", REGION_NEARBY),
        ("toledo", REGION_NEARBY),
        ("Sevilla", REGION_REST),
        ("", REGION_REST),
        (PROVINCE_NO_DATA, REGION_REST),
        # matches two groups, so it is not attributed to either
        ("Madrid / Toledo", REGION_REST),
    ],
)
def test_region_bucket(province, expected):
    assert region_bucket(province) == expected


def test_region_bucket_custom_groups():
    groups = [("North", ("bilbao",)), ("South", ("sevilla", "malaga"))]
    assert region_bucket("Málaga", groups) == "South"
    assert region_bucket("Madrid", groups) == REGION_REST
