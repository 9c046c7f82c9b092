from __future__ import annotations

from decimal import Decimal

import pytest

from py_household.domain.errors import ValidationError
from py_household.domain.money import ensure_amount, format_major, normalize_currency, to_major, to_minor


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2000", 200_000),
        ("1,250.50", 125_050),
        ("10.005", 1001),
        ("10.004", 1000),
        (Decimal("-0.005"), -1),
        (7, 700),
    ],
)
def test_to_minor_rounds_half_up(value, expected):
    assert to_minor(value) == expected


def test_to_minor_respects_scale():
    assert to_minor("15000", scale=0) == 15000
    assert to_minor("1.2345", scale=3) == 1235


@pytest.mark.parametrize("bad", [1.5, True, "abc", "NaN", "Infinity", ""])
def test_to_minor_rejects_floats_and_garbage(bad):
    with pytest.raises(ValidationError):
        to_minor(bad)


def test_major_helpers():
    assert to_major(12345) == Decimal("123.45")
    assert format_major(200_000) == "2000.00"
    assert format_major(-5) == "-0.05"
    assert format_major(15000, scale=0) == "15000"


def test_ensure_amount_bounds():
    assert ensure_amount(1) == 1
    with pytest.raises(ValidationError):
        ensure_amount(0)
    with pytest.raises(ValidationError):
        ensure_amount(-10)
    with pytest.raises(ValidationError):
        ensure_amount(101, maximum=100)
    with pytest.raises(ValidationError):
        ensure_amount(1.0)  # type: ignore[arg-type]


def test_normalize_currency():
    assert normalize_currency(" idr ") == "IDR"
    for bad in (None, "", "RUPIAH", "U5D"):
        with pytest.raises(ValidationError):
            normalize_currency(bad)
