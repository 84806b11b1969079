from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from bountymarket.core.config import Settings
from bountymarket.domain import InvalidAmount, Odds, Side
from bountymarket.schemas import Odds as OddsSchema
from bountymarket.schemas import StakeCreate
from bountymarket.units import format_amount, parse_amount


def test_odds_schema_coerces_decimal_fields():
    """Verify that Decimal odds are serialized as floats."""
    odds = OddsSchema.model_validate(Odds(yes=Decimal("33.3"), no=Decimal("66.7")))
    assert isinstance(odds.yes, float)
    assert odds.yes == 33.3
    assert odds.no == 66.7


def test_stake_create_parses_side_and_timestamp():
    payload = StakeCreate.model_validate(
        {"side": "no", "amount": 1_000_000, "timestamp_guess": "2026-01-02T12:00:00Z"}
    )
    assert payload.side is Side.NO
    assert payload.timestamp_guess == datetime(2026, 1, 2, 12, tzinfo=timezone.utc)


def test_stake_create_rejects_unknown_side():
    with pytest.raises(ValidationError):
        StakeCreate.model_validate(
            {"side": "maybe", "amount": 1, "timestamp_guess": "2026-01-02T12:00:00Z"}
        )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1.5", 1_500_000), ("2.7", 2_700_000), ("0.000001", 1), ("3", 3_000_000), (" 0.1 ", 100_000)],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw, decimals=6) == expected


@pytest.mark.parametrize("raw", ["0.0000001", "abc", "", "NaN"])
def test_parse_amount_rejects_bad_input(raw):
    with pytest.raises(InvalidAmount):
        parse_amount(raw, decimals=6)


def test_format_amount():
    assert format_amount(1_500_000, decimals=6) == "1.500000"
    assert format_amount(1, decimals=6) == "0.000001"
    assert format_amount(0, decimals=6) == "0.000000"
    assert format_amount(42, decimals=0) == "42"
    assert format_amount(1, decimals=18) == "0.000000000000000001"


def test_settings_normalize_postgres_url():
    settings = Settings(database_url="postgres://user:pw@db/ledger")
    assert settings.resolved_database_url.startswith("postgresql+psycopg://")
    assert "target_session_attrs=read-write" in settings.resolved_database_url


def test_settings_reject_out_of_range_fee():
    with pytest.raises(ValidationError):
        Settings(bounty_fee_bps=10_000)
