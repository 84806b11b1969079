"""One-shot distribution of a market's pools at resolution.

Winning stakes share the combined YES+NO pool in proportion to the net
contribution each one added to the winning pool. Payouts round down; the
remainder (always fewer units than there are winning stakes) stays in escrow
together with any pool nobody can claim: a side with no winning stakes, or a
bounty without a verified claimant.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from sqlalchemy.orm import Session

from bountymarket.domain import (
    EventKind,
    LedgerInvariantError,
    MarketSnapshot,
    Payout,
    SettlementReport,
    Side,
    StakeSnapshot,
)
from bountymarket.models import Market
from bountymarket.repositories import AuditRepository, MarketRepository, market_snapshot, stake_snapshot
from bountymarket.transfers import Credit, TransferService

from .calculator import proportional_payout


@dataclass(frozen=True, slots=True)
class SettlementResult:
    report: SettlementReport
    batch_id: str | None


def plan_settlement(
    market: MarketSnapshot,
    stakes: Sequence[StakeSnapshot],
    correct_answer: Side,
    actual_timestamp: datetime,
) -> SettlementReport:
    """Compute every credit owed by a resolution without touching any state."""

    if market.yes_pool + market.no_pool + market.bounty_pool != sum(stake.amount for stake in stakes):
        raise LedgerInvariantError(f"Market {market.id} pools do not match its recorded stakes")

    winning_pool = market.pool_for(correct_answer)
    losing_pool = market.pool_for(correct_answer.opposite)
    combined_pool = winning_pool + losing_pool
    winners = [stake for stake in stakes if stake.side is correct_answer]

    if sum(stake.pool_share for stake in winners) != winning_pool:
        raise LedgerInvariantError(
            f"Market {market.id} {correct_answer.value} pool does not match its stakes"
        )

    payouts = [
        Payout(
            recipient=stake.staker,
            amount=proportional_payout(combined_pool, stake.pool_share, winning_pool),
            kind=EventKind.PAYOUT,
            stake_id=stake.id,
        )
        for stake in winners
    ]
    paid = sum(payout.amount for payout in payouts)
    residue = combined_pool - paid
    if winners and not 0 <= residue < len(winners):
        raise LedgerInvariantError(
            f"Market {market.id} settlement residue {residue} exceeds {len(winners)} winning stakes"
        )

    bounty_paid = 0
    if market.bounty_claimant and market.bounty_pool > 0:
        bounty_paid = market.bounty_pool
        payouts.append(
            Payout(recipient=market.bounty_claimant, amount=bounty_paid, kind=EventKind.BOUNTY_PAID)
        )

    return SettlementReport(
        market_id=market.id,
        correct_answer=correct_answer,
        actual_timestamp=actual_timestamp,
        winning_pool=winning_pool,
        losing_pool=losing_pool,
        bounty_pool=market.bounty_pool,
        payouts=tuple(payouts),
        bounty_paid=bounty_paid,
        unclaimed=residue + market.bounty_pool - bounty_paid,
    )


class SettlementEngine:
    def __init__(self, transfers: TransferService) -> None:
        self._transfers = transfers

    def settle(
        self,
        session: Session,
        market: Market,
        correct_answer: Side,
        actual_timestamp: datetime,
        *,
        now: datetime,
    ) -> SettlementResult:
        """Drain the market's pools and pay every credit as one transfer batch.

        The caller holds the market lock and owns the transaction; the transfer batch
        is the last step so a rejected batch leaves nothing to undo but the
        uncommitted session.
        """

        stakes = [stake_snapshot(record) for record in MarketRepository(session).list_stakes(market.id)]
        report = plan_settlement(market_snapshot(market), stakes, correct_answer, actual_timestamp)

        market.yes_pool = 0
        market.no_pool = 0
        market.bounty_pool = 0
        market.unclaimed_amount = report.unclaimed

        audit = AuditRepository(session)
        for payout in report.payouts:
            audit.record_event(
                payout.kind,
                market_id=market.id,
                payload={
                    "recipient": payout.recipient,
                    "amount": payout.amount,
                    "stake_id": payout.stake_id,
                },
                created_at=now,
            )
        session.flush()

        batch_id: str | None = None
        credits = [Credit(payout.recipient, payout.amount) for payout in report.payouts]
        if credits:
            batch_id = self._transfers.credit_batch(credits, reference=f"settle:{market.id}")

        logger.info(
            "Market {} settled {}: paid {} to {} winners, bounty {}, unclaimed {}",
            market.id,
            correct_answer.value,
            report.total_paid,
            sum(1 for payout in report.payouts if payout.kind is EventKind.PAYOUT),
            report.bounty_paid,
            report.unclaimed,
        )
        return SettlementResult(report=report, batch_id=batch_id)

    def reverse(self, result: SettlementResult) -> None:
        if result.batch_id is None:
            return
        self._transfers.reverse_batch(result.batch_id)
