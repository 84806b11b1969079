"""Conversions from ORM rows to the immutable snapshots callers receive."""

from __future__ import annotations

from bountymarket.domain import (
    EventKind,
    LedgerEvent,
    MarketSnapshot,
    MarketStatus,
    ProofSnapshot,
    ProofStatus,
    Side,
    StakeSnapshot,
    ensure_utc,
)
from bountymarket.models import LedgerEventRecord, Market, ProofSubmission, Stake


def market_snapshot(record: Market) -> MarketSnapshot:
    return MarketSnapshot(
        id=record.id,
        question=record.question,
        description=record.description,
        creator=record.creator,
        deadline=ensure_utc(record.deadline),
        resolution_date=ensure_utc(record.resolution_date),
        yes_pool=record.yes_pool,
        no_pool=record.no_pool,
        bounty_pool=record.bounty_pool,
        status=MarketStatus(record.status),
        created_at=ensure_utc(record.created_at),
        correct_answer=Side(record.correct_answer) if record.correct_answer else None,
        actual_timestamp=ensure_utc(record.actual_timestamp) if record.actual_timestamp else None,
        bounty_claimant=record.bounty_claimant,
        resolved_at=ensure_utc(record.resolved_at) if record.resolved_at else None,
        unclaimed_amount=record.unclaimed_amount,
    )


def stake_snapshot(record: Stake) -> StakeSnapshot:
    return StakeSnapshot(
        id=record.id,
        market_id=record.market_id,
        staker=record.staker,
        side=Side(record.side),
        amount=record.amount,
        pool_share=record.pool_share,
        bounty_share=record.bounty_share,
        timestamp_guess=ensure_utc(record.timestamp_guess),
        created_at=ensure_utc(record.created_at),
    )


def proof_snapshot(record: ProofSubmission) -> ProofSnapshot:
    return ProofSnapshot(
        id=record.id,
        market_id=record.market_id,
        submitter=record.submitter,
        image_url=record.image_url,
        claimed_timestamp=ensure_utc(record.claimed_timestamp),
        submitted_at=ensure_utc(record.submitted_at),
        status=ProofStatus(record.status),
        reviewed_by=record.reviewed_by,
        reviewed_at=ensure_utc(record.reviewed_at) if record.reviewed_at else None,
    )


def event_snapshot(record: LedgerEventRecord) -> LedgerEvent:
    return LedgerEvent(
        id=record.id,
        kind=EventKind(record.kind),
        created_at=ensure_utc(record.created_at),
        market_id=record.market_id,
        payload=dict(record.payload or {}),
    )


__all__ = ["event_snapshot", "market_snapshot", "proof_snapshot", "stake_snapshot"]
