"""Admin-driven transitions: bounty verification, resolution and the admin role.

Markets are Active until resolved. Closed is never stored; it is derived from
the clock (see ``MarketSnapshot.effective_status``). Resolution is terminal and
is allowed at any time after creation, including before the deadline.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from bountymarket.db import session_scope
from bountymarket.domain import (
    AlreadyResolved,
    EventKind,
    InvalidIdentity,
    LedgerError,
    MarketNotFound,
    MarketSnapshot,
    MarketStatus,
    SettlementReport,
    Side,
    TransferFailed,
    Unauthorized,
    ensure_utc,
    normalize_identity,
    utcnow,
)
from bountymarket.models import Market
from bountymarket.repositories import AuditRepository, MarketRepository, market_snapshot

from .locks import MarketLocks
from .settlement import SettlementEngine, SettlementResult

_ADMIN_KEY = "admin"
_ADMIN_LOCK = ("ledger", "admin")


class AdminRegistry:
    """Single stored admin identity, replaceable only by the current admin."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        default_admin: str = "",
        locks: MarketLocks | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._default_admin = normalize_identity(default_admin)
        self._locks = locks or MarketLocks()
        self._clock = clock

    def current(self, session: Session) -> str:
        stored = AuditRepository(session).get_setting(_ADMIN_KEY)
        return stored if stored is not None else self._default_admin

    def require_admin(self, session: Session, caller: str) -> str:
        admin = self.current(session)
        caller = normalize_identity(caller)
        if not admin or caller != admin:
            logger.warning("Rejected admin action from {}", caller or "<anonymous>")
            raise Unauthorized("Only the admin may perform this action")
        return admin

    def get_admin(self) -> str:
        with session_scope(self._session_factory) as session:
            return self.current(session)

    def set_admin(self, new_admin: str, *, caller: str) -> str:
        new_admin = normalize_identity(new_admin)

        with self._locks.hold(_ADMIN_LOCK):
            with session_scope(self._session_factory) as session:
                previous = self.require_admin(session, caller)
                if not new_admin:
                    raise InvalidIdentity("The admin identity cannot be empty")
                now = ensure_utc(self._clock())
                audit = AuditRepository(session)
                audit.set_setting(_ADMIN_KEY, new_admin, updated_at=now)
                audit.record_event(
                    EventKind.ADMIN_CHANGED,
                    market_id=None,
                    payload={"previous": previous, "admin": new_admin},
                    created_at=now,
                )

        logger.info("Admin changed from {} to {}", previous, new_admin)
        return new_admin


class MarketLifecycle:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settlement: SettlementEngine,
        admins: AdminRegistry,
        *,
        locks: MarketLocks | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._settlement = settlement
        self._admins = admins
        self._locks = locks or MarketLocks()
        self._clock = clock

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    def status_of(self, market: MarketSnapshot) -> MarketStatus:
        return market.effective_status(self.now())

    def verify_bounty_claim(
        self,
        market_id: int,
        claimant: str,
        actual_timestamp: datetime,
        *,
        caller: str,
    ) -> MarketSnapshot:
        with self._locks.hold(market_id):
            with session_scope(self._session_factory) as session:
                self._admins.require_admin(session, caller)
                record = self.record_bounty_claim(session, market_id, claimant, actual_timestamp)
                return market_snapshot(record)

    def record_bounty_claim(
        self,
        session: Session,
        market_id: int,
        claimant: str,
        actual_timestamp: datetime,
    ) -> Market:
        """Apply a verified claim inside the caller's transaction.

        The caller must already hold the market lock and have checked the admin role.
        Calling it again replaces the previous claimant and timestamp.
        """

        record = MarketRepository(session).get_market(market_id, for_update=True)
        if record is None:
            raise MarketNotFound(market_id)
        if record.status == MarketStatus.RESOLVED.value:
            raise AlreadyResolved(market_id)

        claimant = normalize_identity(claimant)
        if not claimant:
            raise InvalidIdentity(f"Bounty claim on market {market_id} names no claimant")
        actual_timestamp = ensure_utc(actual_timestamp)
        record.bounty_claimant = claimant
        record.actual_timestamp = actual_timestamp
        AuditRepository(session).record_event(
            EventKind.BOUNTY_CLAIM_VERIFIED,
            market_id=market_id,
            payload={"claimant": claimant, "actual_timestamp": actual_timestamp.isoformat()},
            created_at=self.now(),
        )
        logger.info("Bounty claim on market {} verified for {}", market_id, claimant)
        return record

    def resolve_market(
        self,
        market_id: int,
        correct_answer: Side | str,
        actual_timestamp: datetime,
        *,
        caller: str,
    ) -> SettlementReport:
        correct_answer = Side(correct_answer)
        actual_timestamp = ensure_utc(actual_timestamp)
        result: SettlementResult | None = None

        try:
            with self._locks.hold(market_id):
                with session_scope(self._session_factory) as session:
                    self._admins.require_admin(session, caller)
                    record = MarketRepository(session).get_market(market_id, for_update=True)
                    if record is None:
                        raise MarketNotFound(market_id)
                    if record.status == MarketStatus.RESOLVED.value:
                        raise AlreadyResolved(market_id)

                    now = self.now()
                    result = self._settlement.settle(
                        session, record, correct_answer, actual_timestamp, now=now
                    )
                    record.status = MarketStatus.RESOLVED.value
                    record.correct_answer = correct_answer.value
                    record.actual_timestamp = actual_timestamp
                    record.resolved_at = now
                    AuditRepository(session).record_event(
                        EventKind.MARKET_RESOLVED,
                        market_id=market_id,
                        payload={
                            "correct_answer": correct_answer.value,
                            "actual_timestamp": actual_timestamp.isoformat(),
                            "total_paid": result.report.total_paid,
                            "bounty_paid": result.report.bounty_paid,
                            "unclaimed": result.report.unclaimed,
                        },
                        created_at=now,
                    )
        except LedgerError as exc:
            logger.warning("Resolution of market {} rejected: {}", market_id, exc.code)
            raise
        except Exception:
            if result is not None:
                logger.error("Resolution of market {} failed after payout; reversing batch", market_id)
                try:
                    self._settlement.reverse(result)
                except TransferFailed as reversal:
                    logger.critical(
                        "Payout batch {} for market {} could not be reversed: {}",
                        result.batch_id,
                        market_id,
                        reversal.message,
                    )
            raise

        self._locks.discard(market_id)

        logger.info(
            "Market {} resolved {} at {}", market_id, correct_answer.value, actual_timestamp.isoformat()
        )
        return result.report
