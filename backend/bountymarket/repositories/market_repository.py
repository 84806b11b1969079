"""Market and stake persistence helpers."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from bountymarket.domain import MarketStatus, Side
from bountymarket.models import Market, Stake


class MarketRepository:
    """Encapsulate all market and stake persistence concerns."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def create_market(
        self,
        *,
        question: str,
        description: str,
        creator: str,
        deadline: datetime,
        resolution_date: datetime,
        created_at: datetime,
    ) -> Market:
        record = Market(
            question=question,
            description=description,
            creator=creator,
            deadline=deadline,
            resolution_date=resolution_date,
            yes_pool=0,
            no_pool=0,
            bounty_pool=0,
            status=MarketStatus.ACTIVE.value,
            unclaimed_amount=0,
            created_at=created_at,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def add_stake(
        self,
        market: Market,
        *,
        staker: str,
        side: Side,
        amount: int,
        pool_share: int,
        bounty_share: int,
        timestamp_guess: datetime,
        created_at: datetime,
    ) -> Stake:
        record = Stake(
            market_id=market.id,
            staker=staker,
            side=side.value,
            amount=amount,
            pool_share=pool_share,
            bounty_share=bounty_share,
            timestamp_guess=timestamp_guess,
            created_at=created_at,
        )
        if side is Side.YES:
            market.yes_pool += pool_share
        else:
            market.no_pool += pool_share
        market.bounty_pool += bounty_share
        self._session.add(record)
        self._session.flush()
        return record

    # ------------------------------------------------------------------
    # Queries

    def get_market(self, market_id: int, *, for_update: bool = False) -> Market | None:
        query = select(Market).where(Market.id == market_id)
        if for_update:
            query = query.with_for_update()
        return self._session.execute(query).scalar_one_or_none()

    def list_markets(
        self,
        *,
        status: MarketStatus | None = None,
        now: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Market], int]:
        filters: list[Any] = []
        if status is MarketStatus.RESOLVED:
            filters.append(Market.status == MarketStatus.RESOLVED.value)
        elif status is MarketStatus.ACTIVE:
            filters.append(Market.status == MarketStatus.ACTIVE.value)
            if now is not None:
                filters.append(Market.deadline > now)
        elif status is MarketStatus.CLOSED:
            filters.append(Market.status == MarketStatus.ACTIVE.value)
            if now is not None:
                filters.append(Market.deadline <= now)

        base_query = select(Market)
        count_query = select(func.count()).select_from(Market)
        if filters:
            condition = and_(*filters)
            base_query = base_query.where(condition)
            count_query = count_query.where(condition)

        total = self._session.execute(count_query).scalar_one()
        records = (
            self._session.execute(base_query.order_by(Market.id).limit(limit).offset(offset))
            .scalars()
            .all()
        )
        return list(records), int(total)

    def get_stake(self, stake_id: int) -> Stake | None:
        return self._session.get(Stake, stake_id)

    def list_stakes(self, market_id: int) -> list[Stake]:
        query = select(Stake).where(Stake.market_id == market_id).order_by(Stake.id)
        return list(self._session.execute(query).scalars().all())

    def list_stakes_by_staker(self, staker: str, *, market_id: int | None = None) -> list[Stake]:
        query = select(Stake).where(Stake.staker == staker)
        if market_id is not None:
            query = query.where(Stake.market_id == market_id)
        return list(self._session.execute(query.order_by(Stake.id)).scalars().all())
