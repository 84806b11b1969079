"""Contract between the ledger and the stablecoin transfer service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence


@dataclass(frozen=True, slots=True)
class Credit:
    account: str
    amount: int


class TransferService(Protocol):
    """Moves stablecoin between bettors and the escrow that backs the pools.

    Implementations raise ``TransferFailed`` for every failure and never apply
    part of a batch.
    """

    def debit(self, account: str, amount: int, *, reference: str) -> None:
        """Pull ``amount`` from ``account`` into escrow."""

    def credit_batch(self, credits: Sequence[Credit], *, reference: str) -> str:
        """Pay every credit out of escrow, all or nothing; returns a batch id."""

    def reverse_batch(self, batch_id: str) -> None:
        """Undo a previously applied batch, returning the funds to escrow."""
