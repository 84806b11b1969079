"""Pure odds and payout arithmetic over market snapshots.

All amounts are integers in the token's smallest unit. The stake split and the
proportional payout use floor division exactly as the ledger and settlement
engine do, so previews and final payouts reconcile to the unit.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from bountymarket.domain import MarketSnapshot, Odds, Side

BPS_DENOMINATOR = 10_000
DEFAULT_BOUNTY_FEE_BPS = 1_000

_ODDS_QUANTUM = Decimal("0.1")
_HUNDRED = Decimal(100)
_EVEN = Decimal("50.0")


def split_stake(amount: int, fee_bps: int = DEFAULT_BOUNTY_FEE_BPS) -> tuple[int, int]:
    """Return ``(pool_share, bounty_share)`` for a gross stake amount."""

    bounty_share = amount * fee_bps // BPS_DENOMINATOR
    return amount - bounty_share, bounty_share


def proportional_payout(total_pool: int, contribution: int, side_pool: int) -> int:
    """Share of ``total_pool`` owed to ``contribution`` out of ``side_pool``, rounded down."""

    if side_pool <= 0 or contribution <= 0:
        return 0
    return total_pool * contribution // side_pool


def calculate_odds(market: MarketSnapshot) -> Odds:
    betting_pool = market.yes_pool + market.no_pool
    if betting_pool == 0:
        return Odds(yes=_EVEN, no=_EVEN)

    yes_odds = (Decimal(market.yes_pool) * _HUNDRED / Decimal(betting_pool)).quantize(
        _ODDS_QUANTUM, rounding=ROUND_HALF_UP
    )
    return Odds(yes=yes_odds, no=_HUNDRED - yes_odds)


def calculate_total_pool(market: MarketSnapshot) -> int:
    return market.yes_pool + market.no_pool + market.bounty_pool


def calculate_potential_payout(
    market: MarketSnapshot,
    side: Side,
    stake_amount: int,
    *,
    fee_bps: int = DEFAULT_BOUNTY_FEE_BPS,
) -> int:
    """Preview what ``stake_amount`` on ``side`` would return if placed now and it won.

    Later stakes from other bettors dilute the real payout; this preview does not
    try to model them.
    """

    if stake_amount <= 0:
        return 0

    contribution, _ = split_stake(stake_amount, fee_bps)
    new_side_pool = market.pool_for(side) + contribution
    combined_pool = market.yes_pool + market.no_pool + contribution
    return proportional_payout(combined_pool, contribution, new_side_pool)
