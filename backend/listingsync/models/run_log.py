"""Run log models: one audit row per worker invocation (per page for ingestion)."""
import enum
import uuid

from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.sql import func
from listingsync.database import Base


class RunStatus(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    IN_PROGRESS = "in_progress"


def _new_run_id() -> str:
    return str(uuid.uuid4())


class IngestionRun(Base):
    """One row per fetched page, written whether the page succeeded or not."""
    __tablename__ = "ingestion_runs"

    id = Column(String(36), primary_key=True, default=_new_run_id)
    source_id = Column(
        Integer,
        ForeignKey("source_configs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    page = Column(Integer, nullable=False)
    items_fetched = Column(Integer, default=0, nullable=False)

    status = Column(String(20), default=RunStatus.SUCCESS.value, nullable=False)
    error_message = Column(Text, nullable=True)
    duration_ms = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("ix_ingestion_runs_source_time", "source_id", "started_at"),
    )


class ReconciliationRun(Base):
    """
    One row per reconciliation invocation, updated in place.

    Created as in_progress, patched with cumulative counts and the keyset
    cursor after every batch, then finalized to success or error.
    """
    __tablename__ = "reconciliation_runs"

    id = Column(String(36), primary_key=True, default=_new_run_id)
    source_id = Column(
        Integer,
        ForeignKey("source_configs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    items_checked = Column(Integer, default=0, nullable=False)
    items_archived = Column(Integer, default=0, nullable=False)

    # Keyset position: where the run began and the last item_id it completed
    start_cursor = Column(BigInteger, default=0, nullable=False)
    last_cursor = Column(BigInteger, default=0, nullable=False)

    status = Column(String(20), default=RunStatus.IN_PROGRESS.value, nullable=False)
    error_message = Column(Text, nullable=True)
    duration_ms = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("ix_reconciliation_runs_source_time", "source_id", "started_at"),
    )
