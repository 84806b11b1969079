from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from bountymarket.core.config import Settings
from bountymarket.runtime import build_runtime
from bountymarket.transfers import InMemoryVault

USDC = 1_000_000
START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'ledger.db'}",
        admin_address="Admin",
        market_cache_ttl_seconds=0,
    )


@pytest.fixture
def vault() -> InMemoryVault:
    vault = InMemoryVault(escrow_account="escrow")
    for account in ("alice", "bob", "carol", "dave"):
        vault.deposit(account, 100 * USDC)
    return vault


@pytest.fixture
def runtime(test_settings, vault, clock):
    runtime = build_runtime(test_settings, transfers=vault, clock=clock)
    yield runtime
    runtime.close()


@pytest.fixture
def service(runtime):
    return runtime.service


@pytest.fixture
def deadline(clock) -> datetime:
    return clock.now + timedelta(days=1)


@pytest.fixture
def resolution_date(clock) -> datetime:
    return clock.now + timedelta(days=2)


@pytest.fixture
def market_id(service, deadline, resolution_date) -> int:
    view = service.create_market(
        question="Will the launch happen before the resolution date?",
        description="Resolves YES if the launch is confirmed.",
        deadline=deadline,
        resolution_date=resolution_date,
        creator="creator",
    )
    return view.market.id
