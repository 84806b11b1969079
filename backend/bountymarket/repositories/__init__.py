"""Repository abstractions for database interactions."""

from .audit_repository import AuditRepository
from .market_repository import MarketRepository
from .proof_repository import ProofRepository
from .types import event_snapshot, market_snapshot, proof_snapshot, stake_snapshot

__all__ = [
    "AuditRepository",
    "MarketRepository",
    "ProofRepository",
    "event_snapshot",
    "market_snapshot",
    "proof_snapshot",
    "stake_snapshot",
]
