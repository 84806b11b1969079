"""Wiring of the database, transfer adapter and services for one process."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .core.config import Settings
from .db import create_db_engine, create_session_factory, init_db
from .domain import utcnow
from .services.cache import ReadThroughCache
from .services.ledger import StakeLedger
from .services.lifecycle import AdminRegistry, MarketLifecycle
from .services.locks import MarketLocks
from .services.market_service import MarketService
from .services.proofs import ProofDesk
from .services.settlement import SettlementEngine
from .transfers import HttpTransferClient, InMemoryVault, TransferService


@dataclass(slots=True)
class Runtime:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]
    transfers: TransferService
    service: MarketService

    def close(self) -> None:
        close = getattr(self.transfers, "close", None)
        if callable(close):
            close()
        self.engine.dispose()


def build_transfers(settings: Settings) -> TransferService:
    if settings.transfer_backend == "http":
        if not settings.transfer_service_url:
            raise ValueError("transfer_service_url is required when transfer_backend=http")
        return HttpTransferClient(
            base_url=str(settings.transfer_service_url),
            timeout=settings.transfer_timeout_seconds,
        )
    return InMemoryVault(escrow_account=settings.escrow_account)


def build_runtime(
    settings: Settings,
    *,
    transfers: TransferService | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Runtime:
    engine = create_db_engine(settings.resolved_database_url, echo=settings.debug)
    init_db(engine)
    session_factory = create_session_factory(engine)
    transfers = transfers or build_transfers(settings)

    locks = MarketLocks()
    admins = AdminRegistry(session_factory, default_admin=settings.admin_address, locks=locks, clock=clock)
    ledger = StakeLedger(
        session_factory, transfers, locks=locks, clock=clock, fee_bps=settings.bounty_fee_bps
    )
    lifecycle = MarketLifecycle(
        session_factory, SettlementEngine(transfers), admins, locks=locks, clock=clock
    )
    proofs = ProofDesk(session_factory, lifecycle, admins, locks=locks, clock=clock)
    service = MarketService(
        ledger,
        lifecycle,
        proofs,
        admins,
        cache=ReadThroughCache(ttl_seconds=settings.market_cache_ttl_seconds),
    )

    logger.info(
        "Ledger ready on {} with {} transfers (fee {} bps)",
        engine.url.render_as_string(hide_password=True),
        type(transfers).__name__,
        settings.bounty_fee_bps,
    )
    return Runtime(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        transfers=transfers,
        service=service,
    )
