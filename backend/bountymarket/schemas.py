from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .domain import EventKind, MarketStatus, ProofStatus, Side


class MarketCreate(BaseModel):
    question: str = Field(min_length=1)
    description: str = ""
    deadline: datetime
    resolution_date: datetime


class StakeCreate(BaseModel):
    side: Side
    amount: int = Field(description="Stake in the token's smallest unit")
    timestamp_guess: datetime


class BountyClaim(BaseModel):
    claimant: str = Field(min_length=1)
    actual_timestamp: datetime


class Resolution(BaseModel):
    correct_answer: Side
    actual_timestamp: datetime


class ProofCreate(BaseModel):
    image_url: str = Field(min_length=1)
    claimed_timestamp: datetime


class AdminUpdate(BaseModel):
    admin: str = Field(min_length=1)


class Odds(BaseModel):
    yes: float
    no: float

    @field_validator("yes", "no", mode="before")
    @classmethod
    def _coerce_decimal(cls, value: Any) -> float:
        if isinstance(value, Decimal):
            return float(value)
        return value

    model_config = {"from_attributes": True}


class Market(BaseModel):
    id: int
    question: str
    description: str
    creator: str
    deadline: datetime
    resolution_date: datetime
    yes_pool: int
    no_pool: int
    bounty_pool: int
    total_pool: int
    status: MarketStatus
    odds: Odds
    created_at: datetime
    correct_answer: Side | None = None
    actual_timestamp: datetime | None = None
    bounty_claimant: str | None = None
    resolved_at: datetime | None = None
    unclaimed_amount: int = 0

    @classmethod
    def from_view(cls, view: Any) -> "Market":
        market = view.market
        return cls(
            id=market.id,
            question=market.question,
            description=market.description,
            creator=market.creator,
            deadline=market.deadline,
            resolution_date=market.resolution_date,
            yes_pool=market.yes_pool,
            no_pool=market.no_pool,
            bounty_pool=market.bounty_pool,
            total_pool=view.total_pool,
            status=view.status,
            odds=Odds.model_validate(view.odds),
            created_at=market.created_at,
            correct_answer=market.correct_answer,
            actual_timestamp=market.actual_timestamp,
            bounty_claimant=market.bounty_claimant,
            resolved_at=market.resolved_at,
            unclaimed_amount=market.unclaimed_amount,
        )


class MarketList(BaseModel):
    total: int
    items: list[Market]


class Stake(BaseModel):
    id: int
    market_id: int
    staker: str
    side: Side
    amount: int
    pool_share: int
    bounty_share: int
    timestamp_guess: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class PayoutPreview(BaseModel):
    market_id: int
    side: Side
    amount: int
    potential_payout: int


class Proof(BaseModel):
    id: int
    market_id: int
    submitter: str
    image_url: str
    claimed_timestamp: datetime
    submitted_at: datetime
    status: ProofStatus
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None

    model_config = {"from_attributes": True}


class LedgerEvent(BaseModel):
    id: int
    kind: EventKind
    market_id: int | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    model_config = {"from_attributes": True}


class Payout(BaseModel):
    recipient: str
    amount: int
    kind: EventKind
    stake_id: int | None = None

    model_config = {"from_attributes": True}


class SettlementReport(BaseModel):
    market_id: int
    correct_answer: Side
    actual_timestamp: datetime
    winning_pool: int
    losing_pool: int
    bounty_pool: int
    payouts: list[Payout]
    total_paid: int
    bounty_paid: int
    unclaimed: int

    model_config = {"from_attributes": True}


class Admin(BaseModel):
    admin: str
