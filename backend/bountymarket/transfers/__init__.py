"""Stablecoin transfer adapters."""

from .base import Credit, TransferService
from .client import HttpTransferClient
from .vault import InMemoryVault

__all__ = ["Credit", "HttpTransferClient", "InMemoryVault", "TransferService"]
