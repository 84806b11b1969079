from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .domain.models import MarketStatus, ProofStatus, utcnow


class Market(Base):
    __tablename__ = "markets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    creator: Mapped[str] = mapped_column(String(128), nullable=False)
    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolution_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    yes_pool: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    no_pool: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    bounty_pool: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=MarketStatus.ACTIVE.value
    )
    correct_answer: Mapped[str | None] = mapped_column(String(8), nullable=True)
    actual_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    bounty_claimant: Mapped[str | None] = mapped_column(String(128), nullable=True)
    unclaimed_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    stakes: Mapped[list["Stake"]] = relationship(
        "Stake", back_populates="market", cascade="all, delete-orphan", order_by="Stake.id"
    )
    proofs: Mapped[list["ProofSubmission"]] = relationship(
        "ProofSubmission", back_populates="market", cascade="all, delete-orphan"
    )


class Stake(Base):
    __tablename__ = "stakes"
    __table_args__ = (Index("ix_stakes_staker_market", "staker", "market_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    market_id: Mapped[int] = mapped_column(Integer, ForeignKey("markets.id"), nullable=False, index=True)
    staker: Mapped[str] = mapped_column(String(128), nullable=False)
    side: Mapped[str] = mapped_column(String(8), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pool_share: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bounty_share: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timestamp_guess: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    market: Mapped[Market] = relationship("Market", back_populates="stakes")


class ProofSubmission(Base):
    __tablename__ = "proof_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    market_id: Mapped[int] = mapped_column(Integer, ForeignKey("markets.id"), nullable=False, index=True)
    submitter: Mapped[str] = mapped_column(String(128), nullable=False)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    claimed_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ProofStatus.PENDING.value
    )
    reviewed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    market: Mapped[Market] = relationship("Market", back_populates="proofs")


class LedgerEventRecord(Base):
    __tablename__ = "ledger_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    market_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("markets.id"), nullable=True, index=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class LedgerSetting(Base):
    __tablename__ = "ledger_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
