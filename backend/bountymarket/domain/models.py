"""Immutable snapshots handed out by the ledger to every caller."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


class Side(str, Enum):
    YES = "yes"
    NO = "no"

    @property
    def opposite(self) -> "Side":
        return Side.NO if self is Side.YES else Side.YES

    @classmethod
    def from_bool(cls, value: bool) -> "Side":
        return cls.YES if value else cls.NO


class MarketStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    RESOLVED = "resolved"


class ProofStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EventKind(str, Enum):
    MARKET_CREATED = "market_created"
    STAKE_RECORDED = "stake_recorded"
    BOUNTY_CLAIM_VERIFIED = "bounty_claim_verified"
    PAYOUT = "payout"
    BOUNTY_PAID = "bounty_paid"
    MARKET_RESOLVED = "market_resolved"
    ADMIN_CHANGED = "admin_changed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_identity(value: str) -> str:
    """Wallet identities compare case-insensitively."""

    return value.strip().lower()


@dataclass(frozen=True, slots=True)
class MarketSnapshot:
    """Point-in-time copy of a market; mutating it never touches the ledger."""

    id: int
    question: str
    description: str
    creator: str
    deadline: datetime
    resolution_date: datetime
    yes_pool: int
    no_pool: int
    bounty_pool: int
    status: MarketStatus
    created_at: datetime
    correct_answer: Side | None = None
    actual_timestamp: datetime | None = None
    bounty_claimant: str | None = None
    resolved_at: datetime | None = None
    unclaimed_amount: int = 0

    def pool_for(self, side: Side) -> int:
        return self.yes_pool if side is Side.YES else self.no_pool

    def is_closed(self, now: datetime) -> bool:
        return ensure_utc(now) >= self.deadline

    def effective_status(self, now: datetime) -> MarketStatus:
        """Closed is derived from the clock; only Active and Resolved are stored."""

        if self.status is MarketStatus.ACTIVE and self.is_closed(now):
            return MarketStatus.CLOSED
        return self.status


@dataclass(frozen=True, slots=True)
class StakeSnapshot:
    id: int
    market_id: int
    staker: str
    side: Side
    amount: int
    pool_share: int
    bounty_share: int
    timestamp_guess: datetime
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Odds:
    """Display odds in percent; ``no`` is derived from ``yes`` so both sum to 100."""

    yes: Decimal
    no: Decimal


@dataclass(frozen=True, slots=True)
class Payout:
    recipient: str
    amount: int
    kind: EventKind
    stake_id: int | None = None


@dataclass(frozen=True, slots=True)
class SettlementReport:
    market_id: int
    correct_answer: Side
    actual_timestamp: datetime
    winning_pool: int
    losing_pool: int
    bounty_pool: int
    payouts: tuple[Payout, ...] = ()
    bounty_paid: int = 0
    unclaimed: int = 0

    @property
    def total_paid(self) -> int:
        return sum(payout.amount for payout in self.payouts if payout.kind is EventKind.PAYOUT)

    def to_dict(self) -> dict[str, Any]:
        return {
            "market_id": self.market_id,
            "correct_answer": self.correct_answer.value,
            "actual_timestamp": self.actual_timestamp.isoformat(),
            "winning_pool": self.winning_pool,
            "losing_pool": self.losing_pool,
            "bounty_pool": self.bounty_pool,
            "payouts": [
                {
                    "recipient": payout.recipient,
                    "amount": payout.amount,
                    "kind": payout.kind.value,
                    "stake_id": payout.stake_id,
                }
                for payout in self.payouts
            ],
            "total_paid": self.total_paid,
            "bounty_paid": self.bounty_paid,
            "unclaimed": self.unclaimed,
        }


@dataclass(frozen=True, slots=True)
class ProofSnapshot:
    id: int
    market_id: int
    submitter: str
    image_url: str
    claimed_timestamp: datetime
    submitted_at: datetime
    status: ProofStatus
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class LedgerEvent:
    id: int
    kind: EventKind
    created_at: datetime
    market_id: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)
