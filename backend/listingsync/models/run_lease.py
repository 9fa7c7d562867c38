import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from listingsync.database import Base


class WorkerKind(str, enum.Enum):
    INGESTION = "ingestion"
    RECONCILIATION = "reconciliation"


class RunLease(Base):
    """
    At most one in-flight run per (source, worker kind).

    The unique constraint is the lock; `expires_at` lets a crashed holder's
    lease be taken over.
    """
    __tablename__ = "run_leases"

    id = Column(Integer, primary_key=True, index=True)
    source_id = Column(
        Integer,
        ForeignKey("source_configs.id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_kind = Column(String(20), nullable=False)
    holder = Column(String(36), nullable=False)

    acquired_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("source_id", "worker_kind", name="uix_lease_source_kind"),
    )
