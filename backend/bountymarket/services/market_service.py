"""Facade used by the API and CLI over the ledger, lifecycle and proof desk."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from bountymarket.domain import (
    EventKind,
    LedgerEvent,
    MarketSnapshot,
    MarketStatus,
    Odds,
    ProofSnapshot,
    ProofStatus,
    SettlementReport,
    Side,
    StakeSnapshot,
)

from .cache import ReadThroughCache
from .calculator import calculate_odds, calculate_potential_payout, calculate_total_pool
from .ledger import StakeLedger
from .lifecycle import AdminRegistry, MarketLifecycle
from .proofs import ProofDesk


@dataclass(slots=True)
class MarketQuery:
    status: MarketStatus | None = None
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True, slots=True)
class MarketView:
    market: MarketSnapshot
    odds: Odds
    total_pool: int
    status: MarketStatus


@dataclass(slots=True)
class MarketQueryResult:
    total: int
    markets: Sequence[MarketView]


class MarketService:
    """Single entry point for reads and writes; display reads go through a short-lived cache."""

    def __init__(
        self,
        ledger: StakeLedger,
        lifecycle: MarketLifecycle,
        proofs: ProofDesk,
        admins: AdminRegistry,
        *,
        cache: ReadThroughCache | None = None,
    ) -> None:
        self.ledger = ledger
        self.lifecycle = lifecycle
        self.proofs = proofs
        self.admins = admins
        self._cache = cache or ReadThroughCache(ttl_seconds=0)

    # ------------------------------------------------------------------
    # Reads

    def get_market(self, market_id: int) -> MarketView:
        market = self._cache.get(("market", market_id), lambda: self.ledger.get_market(market_id))
        return self._build_view(market)

    def list_markets(self, query: MarketQuery) -> MarketQueryResult:
        markets, total = self.ledger.list_markets(
            status=query.status, limit=query.limit, offset=query.offset
        )
        return MarketQueryResult(total=total, markets=[self._build_view(market) for market in markets])

    def get_odds(self, market_id: int) -> Odds:
        return self.get_market(market_id).odds

    def list_stakes(self, market_id: int) -> tuple[StakeSnapshot, ...]:
        return self._cache.get(("stakes", market_id), lambda: self.ledger.list_stakes(market_id))

    def list_stakes_by_staker(self, staker: str, *, market_id: int | None = None) -> tuple[StakeSnapshot, ...]:
        return self.ledger.list_stakes_by_staker(staker, market_id=market_id)

    def preview_payout(self, market_id: int, side: Side | str, amount: int) -> int:
        market = self.get_market(market_id).market
        return calculate_potential_payout(market, Side(side), amount, fee_bps=self.ledger.fee_bps)

    def list_events(
        self, *, market_id: int | None = None, kind: EventKind | None = None
    ) -> list[LedgerEvent]:
        return self.ledger.list_events(market_id=market_id, kind=kind)

    def list_proofs(
        self, *, market_id: int | None = None, status: ProofStatus | None = None
    ) -> list[ProofSnapshot]:
        if market_id is not None:
            self.get_market(market_id)
        return self.proofs.list_proofs(market_id=market_id, status=status)

    def get_admin(self) -> str:
        return self.admins.get_admin()

    # ------------------------------------------------------------------
    # Writes

    def create_market(
        self,
        *,
        question: str,
        description: str,
        deadline: datetime,
        resolution_date: datetime,
        creator: str,
    ) -> MarketView:
        market_id = self.ledger.create_market(question, description, deadline, resolution_date, creator)
        return self.get_market(market_id)

    def place_stake(
        self,
        market_id: int,
        *,
        side: Side | str,
        amount: int,
        timestamp_guess: datetime,
        staker: str,
    ) -> StakeSnapshot:
        try:
            stake_id = self.ledger.record_stake(market_id, side, amount, timestamp_guess, staker)
        finally:
            self._invalidate(market_id)
        return self.ledger.get_stake(stake_id)

    def verify_bounty_claim(
        self, market_id: int, *, claimant: str, actual_timestamp: datetime, caller: str
    ) -> MarketView:
        try:
            market = self.lifecycle.verify_bounty_claim(
                market_id, claimant, actual_timestamp, caller=caller
            )
        finally:
            self._invalidate(market_id)
        return self._build_view(market)

    def resolve_market(
        self, market_id: int, *, correct_answer: Side | str, actual_timestamp: datetime, caller: str
    ) -> SettlementReport:
        try:
            return self.lifecycle.resolve_market(
                market_id, correct_answer, actual_timestamp, caller=caller
            )
        finally:
            self._invalidate(market_id)

    def submit_proof(
        self, market_id: int, *, submitter: str, image_url: str, claimed_timestamp: datetime
    ) -> ProofSnapshot:
        return self.proofs.submit_proof(market_id, submitter, image_url, claimed_timestamp)

    def approve_proof(self, proof_id: int, *, caller: str) -> ProofSnapshot:
        proof = self.proofs.approve_proof(proof_id, caller=caller)
        self._invalidate(proof.market_id)
        return proof

    def reject_proof(self, proof_id: int, *, caller: str) -> ProofSnapshot:
        return self.proofs.reject_proof(proof_id, caller=caller)

    def set_admin(self, new_admin: str, *, caller: str) -> str:
        return self.admins.set_admin(new_admin, caller=caller)

    # ------------------------------------------------------------------

    def _build_view(self, market: MarketSnapshot) -> MarketView:
        return MarketView(
            market=market,
            odds=calculate_odds(market),
            total_pool=calculate_total_pool(market),
            status=self.lifecycle.status_of(market),
        )

    def _invalidate(self, market_id: int) -> None:
        self._cache.invalidate(lambda key: key[1] == market_id)
