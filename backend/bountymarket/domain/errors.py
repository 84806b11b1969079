"""Error taxonomy surfaced by ledger operations."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every rejection a ledger operation can raise."""

    code = "ledger_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code.replace("_", " "))
        self.message = message or self.code.replace("_", " ")


class InvalidTiming(LedgerError):
    code = "invalid_timing"


class MarketNotFound(LedgerError):
    code = "market_not_found"

    def __init__(self, market_id: int) -> None:
        super().__init__(f"Market {market_id} not found")
        self.market_id = market_id


class MarketNotActive(LedgerError):
    code = "market_not_active"


class DeadlinePassed(LedgerError):
    code = "deadline_passed"


class InvalidAmount(LedgerError):
    code = "invalid_amount"


class InvalidTimestampGuess(LedgerError):
    code = "invalid_timestamp_guess"


class InvalidIdentity(LedgerError):
    code = "invalid_identity"


class Unauthorized(LedgerError):
    code = "unauthorized"


class AlreadyResolved(LedgerError):
    code = "already_resolved"

    def __init__(self, market_id: int) -> None:
        super().__init__(f"Market {market_id} is already resolved")
        self.market_id = market_id


class TransferFailed(LedgerError):
    code = "transfer_failed"


class ProofNotFound(LedgerError):
    code = "proof_not_found"

    def __init__(self, proof_id: int) -> None:
        super().__init__(f"Proof submission {proof_id} not found")
        self.proof_id = proof_id


class ProofNotPending(LedgerError):
    code = "proof_not_pending"


class LedgerInvariantError(RuntimeError):
    """Raised when internal accounting no longer reconciles; never a user error."""


__all__ = [
    "AlreadyResolved",
    "DeadlinePassed",
    "InvalidAmount",
    "InvalidIdentity",
    "InvalidTimestampGuess",
    "InvalidTiming",
    "LedgerError",
    "LedgerInvariantError",
    "MarketNotActive",
    "MarketNotFound",
    "ProofNotFound",
    "ProofNotPending",
    "TransferFailed",
    "Unauthorized",
]
