from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from loguru import logger

from bountymarket.domain import (
    EventKind,
    LedgerInvariantError,
    MarketSnapshot,
    MarketStatus,
    Side,
    StakeSnapshot,
    TransferFailed,
)
from bountymarket.services.settlement import plan_settlement

from conftest import USDC

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _stake(service, market_id, deadline, staker, side, amount):
    return service.place_stake(
        market_id,
        side=side,
        amount=amount,
        timestamp_guess=deadline + timedelta(hours=3),
        staker=staker,
    )


def _resolve(service, market_id, deadline, answer=Side.YES):
    return service.resolve_market(
        market_id, correct_answer=answer, actual_timestamp=deadline + timedelta(hours=6), caller="admin"
    )


def test_sole_winner_takes_combined_pool(service, market_id, deadline, vault):
    _stake(service, market_id, deadline, "alice", Side.YES, USDC)
    _stake(service, market_id, deadline, "bob", Side.NO, 2 * USDC)

    report = _resolve(service, market_id, deadline)

    assert report.total_paid == 2_700_000
    assert [(payout.recipient, payout.amount) for payout in report.payouts] == [("alice", 2_700_000)]
    assert report.bounty_paid == 0
    assert report.unclaimed == 300_000
    assert vault.balance_of("alice") == 99 * USDC + 2_700_000
    assert vault.balance_of("bob") == 98 * USDC
    assert vault.balance_of("escrow") == 300_000

    market = service.get_market(market_id).market
    assert market.status is MarketStatus.RESOLVED
    assert (market.yes_pool, market.no_pool, market.bounty_pool) == (0, 0, 0)
    assert market.correct_answer is Side.YES
    assert market.unclaimed_amount == 300_000


def test_verified_claimant_receives_bounty(service, market_id, deadline, vault):
    _stake(service, market_id, deadline, "alice", Side.YES, USDC)
    _stake(service, market_id, deadline, "bob", Side.NO, 2 * USDC)
    service.verify_bounty_claim(
        market_id, claimant="carol", actual_timestamp=deadline + timedelta(hours=6), caller="admin"
    )

    report = _resolve(service, market_id, deadline)

    assert report.bounty_paid == 300_000
    assert report.unclaimed == 0
    assert vault.balance_of("carol") == 100 * USDC + 300_000
    assert vault.balance_of("escrow") == 0
    assert report.total_paid + report.bounty_paid + report.unclaimed == 3 * USDC


def test_winners_share_in_proportion_to_contribution(service, market_id, deadline):
    _stake(service, market_id, deadline, "alice", Side.YES, USDC)
    _stake(service, market_id, deadline, "carol", Side.YES, 3 * USDC)
    _stake(service, market_id, deadline, "bob", Side.NO, 4 * USDC)

    report = _resolve(service, market_id, deadline)

    paid = {payout.recipient: payout.amount for payout in report.payouts}
    assert paid == {"alice": 1_800_000, "carol": 5_400_000}
    assert report.unclaimed == 800_000


def test_rounding_dust_stays_below_winner_count(service, market_id, deadline):
    for staker in ("alice", "bob", "carol"):
        _stake(service, market_id, deadline, staker, Side.YES, 1)
    _stake(service, market_id, deadline, "dave", Side.NO, 1)

    report = _resolve(service, market_id, deadline)

    assert [payout.amount for payout in report.payouts] == [1, 1, 1]
    assert report.unclaimed == 1


def test_one_sided_market_leaves_everything_unclaimed(service, market_id, deadline, vault):
    _stake(service, market_id, deadline, "bob", Side.NO, 2 * USDC)

    report = _resolve(service, market_id, deadline, answer=Side.YES)

    assert report.payouts == ()
    assert report.unclaimed == 2 * USDC
    assert vault.balance_of("escrow") == 2 * USDC
    market = service.get_market(market_id).market
    assert (market.yes_pool, market.no_pool, market.bounty_pool) == (0, 0, 0)


def test_rejected_batch_rolls_back_resolution(service, market_id, deadline, vault, monkeypatch):
    _stake(service, market_id, deadline, "alice", Side.YES, USDC)
    _stake(service, market_id, deadline, "bob", Side.NO, 2 * USDC)
    monkeypatch.setattr(vault, "credit_batch", MagicMock(side_effect=TransferFailed("rpc down")))

    with pytest.raises(TransferFailed):
        _resolve(service, market_id, deadline)

    market = service.get_market(market_id).market
    assert market.status is MarketStatus.ACTIVE
    assert (market.yes_pool, market.no_pool, market.bounty_pool) == (900_000, 1_800_000, 300_000)
    assert market.correct_answer is None
    assert vault.balance_of("alice") == 99 * USDC
    kinds = {event.kind for event in service.list_events(market_id=market_id)}
    assert EventKind.PAYOUT not in kinds
    assert EventKind.MARKET_RESOLVED not in kinds


def test_commit_failure_after_batch_reverses_payouts(service, market_id, deadline, vault, monkeypatch):
    _stake(service, market_id, deadline, "alice", Side.YES, USDC)
    _stake(service, market_id, deadline, "bob", Side.NO, 2 * USDC)

    audit_cls = MagicMock()
    audit_cls.return_value.get_setting.return_value = None
    audit_cls.return_value.record_event.side_effect = RuntimeError("database went away")
    monkeypatch.setattr("bountymarket.services.lifecycle.AuditRepository", audit_cls)

    with pytest.raises(RuntimeError):
        _resolve(service, market_id, deadline)

    assert vault.balance_of("alice") == 99 * USDC
    assert vault.balance_of("escrow") == 3 * USDC
    assert service.get_market(market_id).market.status is MarketStatus.ACTIVE


def test_retry_after_failed_reversal_does_not_pay_twice(service, market_id, deadline, vault, monkeypatch):
    _stake(service, market_id, deadline, "alice", Side.YES, USDC)
    _stake(service, market_id, deadline, "bob", Side.NO, 2 * USDC)
    vault.deposit("escrow", 10 * USDC)

    audit_cls = MagicMock()
    audit_cls.return_value.get_setting.return_value = None
    audit_cls.return_value.record_event.side_effect = RuntimeError("database went away")
    monkeypatch.setattr("bountymarket.services.lifecycle.AuditRepository", audit_cls)
    monkeypatch.setattr(vault, "reverse_batch", MagicMock(side_effect=TransferFailed("rpc down")))
    critical: list[str] = []
    handler_id = logger.add(lambda message: critical.append(str(message)), level="CRITICAL")

    try:
        with pytest.raises(RuntimeError, match="database went away"):
            _resolve(service, market_id, deadline)
    finally:
        logger.remove(handler_id)

    assert len(critical) == 1
    assert "could not be reversed" in critical[0]
    assert vault.balance_of("alice") == 99 * USDC + 2_700_000
    assert service.get_market(market_id).market.status is MarketStatus.ACTIVE

    monkeypatch.undo()
    report = _resolve(service, market_id, deadline)

    assert report.total_paid == 2_700_000
    assert vault.balance_of("alice") == 101_700_000
    assert vault.balance_of("escrow") == 10 * USDC + 300_000
    assert service.get_market(market_id).market.status is MarketStatus.RESOLVED


def test_resolution_releases_market_lock(service, market_id, deadline):
    locks = service.lifecycle._locks
    _stake(service, market_id, deadline, "alice", Side.YES, USDC)
    assert len(locks) == 1

    _resolve(service, market_id, deadline)

    assert len(locks) == 0


def test_plan_settlement_rejects_pools_that_do_not_match_stakes():
    market = MarketSnapshot(
        id=7,
        question="q",
        description="",
        creator="creator",
        deadline=NOW,
        resolution_date=NOW,
        yes_pool=900,
        no_pool=0,
        bounty_pool=100,
        status=MarketStatus.ACTIVE,
        created_at=NOW,
    )
    stakes = [
        StakeSnapshot(
            id=1,
            market_id=7,
            staker="alice",
            side=Side.YES,
            amount=500,
            pool_share=450,
            bounty_share=50,
            timestamp_guess=NOW,
            created_at=NOW,
        )
    ]

    with pytest.raises(LedgerInvariantError):
        plan_settlement(market, stakes, Side.YES, NOW)
