"""Authoritative store of markets and stakes.

Every accepted stake is split between its side's pool and the bounty pool in the
same transaction that records it, and the staker is debited before that
transaction commits. Writes to one market are serialized by a per-market lock.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from uuid import uuid4

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from bountymarket.db import session_scope
from bountymarket.domain import (
    DeadlinePassed,
    EventKind,
    InvalidAmount,
    InvalidIdentity,
    InvalidTimestampGuess,
    InvalidTiming,
    LedgerError,
    LedgerEvent,
    MarketNotActive,
    MarketNotFound,
    MarketSnapshot,
    MarketStatus,
    Side,
    StakeSnapshot,
    TransferFailed,
    ensure_utc,
    normalize_identity,
    utcnow,
)
from bountymarket.repositories import (
    AuditRepository,
    MarketRepository,
    event_snapshot,
    market_snapshot,
    stake_snapshot,
)
from bountymarket.transfers import Credit, TransferService

from .calculator import DEFAULT_BOUNTY_FEE_BPS, split_stake
from .locks import MarketLocks


class StakeLedger:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        transfers: TransferService,
        *,
        locks: MarketLocks | None = None,
        clock: Callable[[], datetime] = utcnow,
        fee_bps: int = DEFAULT_BOUNTY_FEE_BPS,
    ) -> None:
        self._session_factory = session_factory
        self._transfers = transfers
        self._locks = locks or MarketLocks()
        self._clock = clock
        self.fee_bps = fee_bps

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    # ------------------------------------------------------------------
    # Mutations

    def create_market(
        self,
        question: str,
        description: str,
        deadline: datetime,
        resolution_date: datetime,
        creator: str,
    ) -> int:
        deadline = ensure_utc(deadline)
        resolution_date = ensure_utc(resolution_date)
        now = self.now()
        if deadline <= now:
            raise InvalidTiming("Deadline must be in the future")
        if resolution_date <= deadline:
            raise InvalidTiming("Resolution date must be after the deadline")

        creator = normalize_identity(creator)
        if not creator:
            raise InvalidIdentity("A market must name its creator")
        with session_scope(self._session_factory) as session:
            record = MarketRepository(session).create_market(
                question=question,
                description=description,
                creator=creator,
                deadline=deadline,
                resolution_date=resolution_date,
                created_at=now,
            )
            AuditRepository(session).record_event(
                EventKind.MARKET_CREATED,
                market_id=record.id,
                payload={
                    "creator": creator,
                    "question": question,
                    "deadline": deadline.isoformat(),
                    "resolution_date": resolution_date.isoformat(),
                },
                created_at=now,
            )
            market_id = record.id

        logger.info("Market {} created by {} (deadline {})", market_id, creator, deadline.isoformat())
        return market_id

    def record_stake(
        self,
        market_id: int,
        side: Side | str,
        amount: int,
        timestamp_guess: datetime,
        staker: str,
    ) -> int:
        side = Side(side)
        staker = normalize_identity(staker)
        if not staker:
            raise InvalidIdentity("A stake must name its staker")
        timestamp_guess = ensure_utc(timestamp_guess)
        reference = f"stake:{market_id}:{uuid4().hex}"
        debited = False

        try:
            with self._locks.hold(market_id):
                with session_scope(self._session_factory) as session:
                    repo = MarketRepository(session)
                    record = repo.get_market(market_id, for_update=True)
                    if record is None:
                        raise MarketNotFound(market_id)
                    self._validate_stake(market_snapshot(record), amount, timestamp_guess)

                    pool_share, bounty_share = split_stake(amount, self.fee_bps)
                    self._transfers.debit(staker, amount, reference=reference)
                    debited = True

                    now = self.now()
                    stake = repo.add_stake(
                        record,
                        staker=staker,
                        side=side,
                        amount=amount,
                        pool_share=pool_share,
                        bounty_share=bounty_share,
                        timestamp_guess=timestamp_guess,
                        created_at=now,
                    )
                    AuditRepository(session).record_event(
                        EventKind.STAKE_RECORDED,
                        market_id=market_id,
                        payload={
                            "stake_id": stake.id,
                            "staker": staker,
                            "side": side.value,
                            "amount": amount,
                            "pool_share": pool_share,
                            "bounty_share": bounty_share,
                            "timestamp_guess": timestamp_guess.isoformat(),
                        },
                        created_at=now,
                    )
                    stake_id = stake.id
        except LedgerError as exc:
            if debited:
                self._refund(staker, amount, reference)
            logger.warning("Stake on market {} by {} rejected: {}", market_id, staker, exc.code)
            raise
        except Exception:
            if debited:
                self._refund(staker, amount, reference)
            raise

        logger.info(
            "Stake {} recorded on market {}: {} {} by {}", stake_id, market_id, amount, side.value, staker
        )
        return stake_id

    def _validate_stake(
        self, market: MarketSnapshot, amount: int, timestamp_guess: datetime
    ) -> None:
        if market.status is not MarketStatus.ACTIVE:
            raise MarketNotActive(f"Market {market.id} is {market.status.value}")
        if market.is_closed(self.now()):
            raise DeadlinePassed(f"Betting on market {market.id} closed at {market.deadline.isoformat()}")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount("Stake amount must be a positive integer of smallest units")
        if timestamp_guess <= market.deadline:
            raise InvalidTimestampGuess("Timestamp guess must be after the betting deadline")

    def _refund(self, staker: str, amount: int, reference: str) -> None:
        try:
            self._transfers.credit_batch([Credit(staker, amount)], reference=f"refund:{reference}")
        except TransferFailed:
            logger.exception("Refund of {} to {} failed for {}", amount, staker, reference)

    # ------------------------------------------------------------------
    # Queries

    def get_market(self, market_id: int) -> MarketSnapshot:
        with session_scope(self._session_factory) as session:
            record = MarketRepository(session).get_market(market_id)
            if record is None:
                raise MarketNotFound(market_id)
            return market_snapshot(record)

    def list_markets(
        self,
        *,
        status: MarketStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[MarketSnapshot], int]:
        with session_scope(self._session_factory) as session:
            records, total = MarketRepository(session).list_markets(
                status=status, now=self.now(), limit=limit, offset=offset
            )
            return [market_snapshot(record) for record in records], total

    def get_stake(self, stake_id: int) -> StakeSnapshot:
        with session_scope(self._session_factory) as session:
            record = MarketRepository(session).get_stake(stake_id)
            if record is None:
                raise LookupError(f"Stake {stake_id} not found")
            return stake_snapshot(record)

    def list_stakes(self, market_id: int) -> tuple[StakeSnapshot, ...]:
        with session_scope(self._session_factory) as session:
            repo = MarketRepository(session)
            if repo.get_market(market_id) is None:
                raise MarketNotFound(market_id)
            return tuple(stake_snapshot(record) for record in repo.list_stakes(market_id))

    def list_stakes_by_staker(
        self, staker: str, *, market_id: int | None = None
    ) -> tuple[StakeSnapshot, ...]:
        with session_scope(self._session_factory) as session:
            records = MarketRepository(session).list_stakes_by_staker(
                normalize_identity(staker), market_id=market_id
            )
            return tuple(stake_snapshot(record) for record in records)

    def list_events(
        self, *, market_id: int | None = None, kind: EventKind | None = None
    ) -> list[LedgerEvent]:
        with session_scope(self._session_factory) as session:
            records = AuditRepository(session).list_events(market_id=market_id, kind=kind)
            return [event_snapshot(record) for record in records]
