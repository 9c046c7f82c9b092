from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from py_household.application.dto.models import DispatchReportDTO, SplitDTO
from py_household.domain.accounts import AccountType
from py_household.domain.errors import (
    ConflictError,
    DomainRuleError,
    LedgerDivergence,
    NotFoundError,
    ValidationError,
)
from py_household.sdk.errors import Conflict, DomainViolation, NotFound, UnexpectedError, UserInputError, map_exception
from py_household.sdk.json import to_dict, to_json
from py_household.sdk.use_cases import parse_amount


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ValidationError("bad"), UserInputError),
        (NotFoundError("missing"), NotFound),
        (ConflictError("dup"), Conflict),
        (DomainRuleError("rule"), DomainViolation),
        (LedgerDivergence("account", "a", 1, 2), DomainViolation),
        (ValueError("parse"), UserInputError),
        (RuntimeError("boom"), UnexpectedError),
    ],
)
def test_map_exception(exc, expected):
    mapped = map_exception(exc)
    assert isinstance(mapped, expected)
    assert str(mapped) == str(exc)


def test_parse_amount_maps_errors():
    assert parse_amount("1,250.50") == 125_050
    assert parse_amount("15000", scale=0) == 15000
    with pytest.raises(UserInputError):
        parse_amount("twelve")


@dataclass
class _Row:
    when: datetime
    day: date
    kind: AccountType
    amount: Decimal
    splits: list[SplitDTO]


def test_to_dict_normalizes_nested_values():
    row = _Row(
        when=datetime(2026, 1, 2, 10, 4, 5, 123, tzinfo=timezone(timedelta(hours=7))),
        day=date(2026, 1, 2),
        kind=AccountType.E_WALLET,
        amount=Decimal("1.50"),
        splits=[SplitDTO("food", 100)],
    )
    assert to_dict(row) == {
        "when": "2026-01-02T03:04:05Z",
        "day": "2026-01-02",
        "kind": "e-wallet",
        "amount": "1.50",
        "splits": [{"category_id": "food", "amount": 100}],
    }


def test_to_json_is_deterministic():
    payload = {"b": 1, "a": datetime(2026, 1, 1, tzinfo=UTC), "c": DispatchReportDTO(processed=1, applied=1)}
    assert to_json(payload) == (
        '{"a":"2026-01-01T00:00:00Z","b":1,"c":{"applied":1,"deferred":0,"failed":0,"processed":1}}'
    )
