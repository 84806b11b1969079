"""Queue of bounty proofs awaiting admin review.

The image itself lives elsewhere; a submission records who sent it, where it
is stored and the event timestamp it claims. Approving a submission verifies
the bounty claim in the same transaction.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from bountymarket.db import session_scope
from bountymarket.domain import (
    AlreadyResolved,
    InvalidIdentity,
    InvalidTiming,
    MarketNotFound,
    MarketStatus,
    ProofNotFound,
    ProofNotPending,
    ProofSnapshot,
    ProofStatus,
    ensure_utc,
    normalize_identity,
    utcnow,
)
from bountymarket.repositories import MarketRepository, ProofRepository, proof_snapshot

from .lifecycle import AdminRegistry, MarketLifecycle
from .locks import MarketLocks


class ProofDesk:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        lifecycle: MarketLifecycle,
        admins: AdminRegistry,
        *,
        locks: MarketLocks | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._lifecycle = lifecycle
        self._admins = admins
        self._locks = locks or MarketLocks()
        self._clock = clock

    def submit_proof(
        self,
        market_id: int,
        submitter: str,
        image_url: str,
        claimed_timestamp: datetime,
    ) -> ProofSnapshot:
        submitter = normalize_identity(submitter)
        if not submitter:
            raise InvalidIdentity("A proof must name its submitter")
        claimed_timestamp = ensure_utc(claimed_timestamp)

        with session_scope(self._session_factory) as session:
            market = MarketRepository(session).get_market(market_id)
            if market is None:
                raise MarketNotFound(market_id)
            if market.status == MarketStatus.RESOLVED.value:
                raise AlreadyResolved(market_id)
            deadline = ensure_utc(market.deadline)
            resolution_date = ensure_utc(market.resolution_date)
            if not deadline < claimed_timestamp <= resolution_date:
                raise InvalidTiming(
                    "Claimed timestamp must fall after the deadline and no later than the resolution date"
                )

            record = ProofRepository(session).create_submission(
                market_id=market_id,
                submitter=submitter,
                image_url=image_url.strip(),
                claimed_timestamp=claimed_timestamp,
                submitted_at=ensure_utc(self._clock()),
            )
            proof = proof_snapshot(record)

        logger.info("Proof {} submitted for market {} by {}", proof.id, market_id, submitter)
        return proof

    def approve_proof(self, proof_id: int, *, caller: str) -> ProofSnapshot:
        market_id = self._market_of(proof_id, caller)

        with self._locks.hold(market_id):
            with session_scope(self._session_factory) as session:
                reviewer = self._admins.require_admin(session, caller)
                repo = ProofRepository(session)
                record = self._pending(repo, proof_id)
                self._lifecycle.record_bounty_claim(
                    session, record.market_id, record.submitter, record.claimed_timestamp
                )
                repo.mark_reviewed(
                    record,
                    status=ProofStatus.APPROVED,
                    reviewer=reviewer,
                    reviewed_at=ensure_utc(self._clock()),
                )
                proof = proof_snapshot(record)

        logger.info("Proof {} approved; bounty of market {} goes to {}", proof_id, market_id, proof.submitter)
        return proof

    def reject_proof(self, proof_id: int, *, caller: str) -> ProofSnapshot:
        market_id = self._market_of(proof_id, caller)

        with self._locks.hold(market_id):
            with session_scope(self._session_factory) as session:
                reviewer = self._admins.require_admin(session, caller)
                repo = ProofRepository(session)
                record = self._pending(repo, proof_id)
                repo.mark_reviewed(
                    record,
                    status=ProofStatus.REJECTED,
                    reviewer=reviewer,
                    reviewed_at=ensure_utc(self._clock()),
                )
                proof = proof_snapshot(record)

        logger.info("Proof {} for market {} rejected", proof_id, market_id)
        return proof

    def list_proofs(
        self,
        *,
        market_id: int | None = None,
        status: ProofStatus | None = None,
    ) -> list[ProofSnapshot]:
        with session_scope(self._session_factory) as session:
            records = ProofRepository(session).list_submissions(market_id=market_id, status=status)
            return [proof_snapshot(record) for record in records]

    def _market_of(self, proof_id: int, caller: str) -> int:
        with session_scope(self._session_factory) as session:
            self._admins.require_admin(session, caller)
            record = ProofRepository(session).get_submission(proof_id)
            if record is None:
                raise ProofNotFound(proof_id)
            return record.market_id

    @staticmethod
    def _pending(repo: ProofRepository, proof_id: int):
        record = repo.get_submission(proof_id, for_update=True)
        if record is None:
            raise ProofNotFound(proof_id)
        if record.status != ProofStatus.PENDING.value:
            raise ProofNotPending(f"Proof {proof_id} is already {record.status}")
        return record
