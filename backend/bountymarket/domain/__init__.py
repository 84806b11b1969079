"""Domain types shared by the ledger, calculator, settlement and API layers."""

from .errors import (
    AlreadyResolved,
    DeadlinePassed,
    InvalidAmount,
    InvalidIdentity,
    InvalidTimestampGuess,
    InvalidTiming,
    LedgerError,
    LedgerInvariantError,
    MarketNotActive,
    MarketNotFound,
    ProofNotFound,
    ProofNotPending,
    TransferFailed,
    Unauthorized,
)
from .models import (
    EventKind,
    LedgerEvent,
    MarketSnapshot,
    MarketStatus,
    Odds,
    Payout,
    ProofSnapshot,
    ProofStatus,
    SettlementReport,
    Side,
    StakeSnapshot,
    ensure_utc,
    normalize_identity,
    utcnow,
)

__all__ = [
    "AlreadyResolved",
    "DeadlinePassed",
    "EventKind",
    "InvalidAmount",
    "InvalidIdentity",
    "InvalidTimestampGuess",
    "InvalidTiming",
    "LedgerError",
    "LedgerEvent",
    "LedgerInvariantError",
    "MarketNotActive",
    "MarketNotFound",
    "MarketSnapshot",
    "MarketStatus",
    "Odds",
    "Payout",
    "ProofNotFound",
    "ProofNotPending",
    "ProofSnapshot",
    "ProofStatus",
    "SettlementReport",
    "Side",
    "StakeSnapshot",
    "TransferFailed",
    "Unauthorized",
    "ensure_utc",
    "normalize_identity",
    "utcnow",
]
