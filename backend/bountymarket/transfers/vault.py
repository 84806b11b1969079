"""In-process stablecoin balances used for development, the CLI and tests."""

from __future__ import annotations

import threading
from collections import OrderedDict, defaultdict
from typing import Sequence
from uuid import uuid4

from loguru import logger

from bountymarket.domain import TransferFailed

from .base import Credit


class InMemoryVault:
    """Balance book with a single escrow account and all-or-nothing credit batches.

    A credit batch is applied at most once per reference: repeating a reference
    returns the id of the batch already paid. Only the most recent
    ``max_batches`` batches are retained; older ones can no longer be reversed
    or matched by reference.
    """

    def __init__(self, *, escrow_account: str = "escrow", max_batches: int = 10_000) -> None:
        if max_batches <= 0:
            raise ValueError("max_batches must be positive")
        self.escrow_account = escrow_account
        self.max_batches = max_batches
        self._balances: defaultdict[str, int] = defaultdict(int)
        self._batches: OrderedDict[str, tuple[str, tuple[Credit, ...]]] = OrderedDict()
        self._references: dict[str, str] = {}
        self._lock = threading.Lock()

    def deposit(self, account: str, amount: int) -> None:
        """Mint test funds into ``account``."""

        if amount <= 0:
            raise ValueError("deposit amount must be positive")
        with self._lock:
            self._balances[account] += amount

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self._balances.get(account, 0)

    def retained_batches(self) -> int:
        with self._lock:
            return len(self._batches)

    def debit(self, account: str, amount: int, *, reference: str) -> None:
        if amount <= 0:
            raise TransferFailed(f"Debit amount must be positive ({reference})")
        with self._lock:
            available = self._balances.get(account, 0)
            if available < amount:
                raise TransferFailed(
                    f"Insufficient balance for {account}: {available} < {amount} ({reference})"
                )
            self._balances[account] = available - amount
            self._balances[self.escrow_account] += amount
        logger.debug("Vault debit {} from {} ({})", amount, account, reference)

    def credit_batch(self, credits: Sequence[Credit], *, reference: str) -> str:
        batch = tuple(credits)
        if any(credit.amount < 0 for credit in batch):
            raise TransferFailed(f"Negative credit in batch {reference}")
        total = sum(credit.amount for credit in batch)
        with self._lock:
            applied = self._references.get(reference)
            if applied is not None:
                logger.warning("Vault batch {} already applied as {}; not paying again", reference, applied)
                return applied
            escrow = self._balances.get(self.escrow_account, 0)
            if escrow < total:
                raise TransferFailed(
                    f"Escrow holds {escrow}, batch {reference} needs {total}"
                )
            self._balances[self.escrow_account] = escrow - total
            for credit in batch:
                self._balances[credit.account] += credit.amount
            batch_id = uuid4().hex
            self._batches[batch_id] = (reference, batch)
            self._references[reference] = batch_id
            while len(self._batches) > self.max_batches:
                _, (evicted, _) = self._batches.popitem(last=False)
                self._references.pop(evicted, None)
        logger.debug("Vault credited {} across {} transfers ({})", total, len(batch), reference)
        return batch_id

    def reverse_batch(self, batch_id: str) -> None:
        with self._lock:
            entry = self._batches.get(batch_id)
            if entry is None:
                raise TransferFailed(f"Unknown batch {batch_id}")
            reference, batch = entry
            owed: defaultdict[str, int] = defaultdict(int)
            for credit in batch:
                owed[credit.account] += credit.amount
            short = [account for account, amount in owed.items() if self._balances.get(account, 0) < amount]
            if short:
                raise TransferFailed(f"Cannot reverse batch {batch_id}; funds already moved by {short}")
            for account, amount in owed.items():
                self._balances[account] -= amount
                self._balances[self.escrow_account] += amount
            del self._batches[batch_id]
            self._references.pop(reference, None)
        logger.warning("Vault reversed batch {}", batch_id)
