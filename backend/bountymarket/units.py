"""Conversions between display amounts and integer smallest units."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from .domain import InvalidAmount


def parse_amount(value: str | int | Decimal, *, decimals: int = 6) -> int:
    """Turn ``"1.5"`` into ``1500000`` for a 6-decimal token.

    Inputs carrying more precision than the token supports are rejected rather
    than rounded.
    """

    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise InvalidAmount(f"{value!r} is not a number") from exc
    if not amount.is_finite():
        raise InvalidAmount(f"{value!r} is not a finite amount")

    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidAmount(f"{value!r} has more than {decimals} decimal places")
    return int(scaled)


def format_amount(units: int, *, decimals: int = 6) -> str:
    if decimals == 0:
        return str(units)
    quantum = Decimal(1).scaleb(-decimals)
    return format(Decimal(units).scaleb(-decimals).quantize(quantum), "f")
