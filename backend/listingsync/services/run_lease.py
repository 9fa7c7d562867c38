"""
Run exclusivity: at most one in-flight run per (source, worker kind).

The lease is a row guarded by a unique constraint, so it also holds across
processes (API trigger vs. Celery worker). Expired leases are taken over,
which is how a crashed run stops blocking the source.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from listingsync.errors import RunAlreadyInProgressError
from listingsync.models.run_lease import RunLease, WorkerKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaseToken:
    """Plain copy of a held lease; stays valid after the session expires the row."""
    id: int
    source_id: int
    worker_kind: str
    holder: str


class RunLeaseService:

    def __init__(self, db: Session, ttl_seconds: int = 3600):
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds)

    def acquire(self, source_id: int, kind: WorkerKind) -> LeaseToken:
        now = datetime.now(timezone.utc)
        expired = self.db.query(RunLease).filter(
            RunLease.source_id == source_id,
            RunLease.worker_kind == kind.value,
            RunLease.expires_at <= now,
        ).delete(synchronize_session="fetch")
        if expired:
            logger.warning(f"Took over expired {kind.value} lease for source {source_id}")

        holder = str(uuid.uuid4())
        lease = RunLease(
            source_id=source_id,
            worker_kind=kind.value,
            holder=holder,
            acquired_at=now,
            expires_at=now + self.ttl,
        )
        self.db.add(lease)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise RunAlreadyInProgressError(source_id, kind.value)
        return LeaseToken(id=lease.id, source_id=source_id, worker_kind=kind.value, holder=holder)

    def renew(self, token: LeaseToken) -> bool:
        """Push the expiry out again; called between pages/batches of a long run."""
        renewed = self.db.query(RunLease).filter(
            RunLease.id == token.id,
            RunLease.holder == token.holder,
        ).update({"expires_at": datetime.now(timezone.utc) + self.ttl}, synchronize_session=False)
        self.db.commit()
        if not renewed:
            logger.warning(
                f"{token.worker_kind} lease for source {token.source_id} was taken over by another run"
            )
        return bool(renewed)

    def release(self, token: LeaseToken) -> None:
        # Drop whatever a failed step left pending so the delete can commit
        self.db.rollback()
        self.db.query(RunLease).filter(
            RunLease.id == token.id,
            RunLease.holder == token.holder,
        ).delete(synchronize_session=False)
        self.db.commit()

    @asynccontextmanager
    async def hold(self, source_id: int, kind: WorkerKind):
        token = self.acquire(source_id, kind)
        try:
            yield token
        finally:
            self.release(token)
