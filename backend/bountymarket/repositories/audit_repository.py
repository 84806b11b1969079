"""Audit trail and ledger-wide settings persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from bountymarket.domain import EventKind
from bountymarket.models import LedgerEventRecord, LedgerSetting


class AuditRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Events

    def record_event(
        self,
        kind: EventKind,
        *,
        market_id: int | None,
        payload: Mapping[str, Any],
        created_at: datetime,
    ) -> LedgerEventRecord:
        record = LedgerEventRecord(
            market_id=market_id,
            kind=kind.value,
            payload=dict(payload),
            created_at=created_at,
        )
        self._session.add(record)
        return record

    def list_events(
        self,
        *,
        market_id: int | None = None,
        kind: EventKind | None = None,
        limit: int | None = None,
    ) -> list[LedgerEventRecord]:
        query = select(LedgerEventRecord)
        if market_id is not None:
            query = query.where(LedgerEventRecord.market_id == market_id)
        if kind is not None:
            query = query.where(LedgerEventRecord.kind == kind.value)
        query = query.order_by(LedgerEventRecord.id)
        if limit is not None:
            query = query.limit(limit)
        return list(self._session.execute(query).scalars().all())

    # ------------------------------------------------------------------
    # Settings

    def get_setting(self, key: str, *, for_update: bool = False) -> str | None:
        query = select(LedgerSetting).where(LedgerSetting.key == key)
        if for_update:
            query = query.with_for_update()
        record = self._session.execute(query).scalar_one_or_none()
        return record.value if record else None

    def set_setting(self, key: str, value: str, *, updated_at: datetime) -> None:
        record = self._session.get(LedgerSetting, key)
        if record is None:
            record = LedgerSetting(key=key, value=value, updated_at=updated_at)
            self._session.add(record)
            return
        record.value = value
        record.updated_at = updated_at
