"""Bounty proof submission persistence."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from bountymarket.domain import ProofStatus
from bountymarket.models import ProofSubmission


class ProofRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_submission(
        self,
        *,
        market_id: int,
        submitter: str,
        image_url: str,
        claimed_timestamp: datetime,
        submitted_at: datetime,
    ) -> ProofSubmission:
        record = ProofSubmission(
            market_id=market_id,
            submitter=submitter,
            image_url=image_url,
            claimed_timestamp=claimed_timestamp,
            submitted_at=submitted_at,
            status=ProofStatus.PENDING.value,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def get_submission(self, proof_id: int, *, for_update: bool = False) -> ProofSubmission | None:
        query = select(ProofSubmission).where(ProofSubmission.id == proof_id)
        if for_update:
            query = query.with_for_update()
        return self._session.execute(query).scalar_one_or_none()

    def mark_reviewed(
        self,
        record: ProofSubmission,
        *,
        status: ProofStatus,
        reviewer: str,
        reviewed_at: datetime,
    ) -> ProofSubmission:
        record.status = status.value
        record.reviewed_by = reviewer
        record.reviewed_at = reviewed_at
        return record

    def list_submissions(
        self,
        *,
        market_id: int | None = None,
        status: ProofStatus | None = None,
    ) -> list[ProofSubmission]:
        query = select(ProofSubmission)
        if market_id is not None:
            query = query.where(ProofSubmission.market_id == market_id)
        if status is not None:
            query = query.where(ProofSubmission.status == status.value)
        return list(self._session.execute(query.order_by(ProofSubmission.id)).scalars().all())
