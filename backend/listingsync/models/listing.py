from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Boolean, Float, JSON, ForeignKey, Index
from sqlalchemy.orm import relationship
from listingsync.database import Base

# Columns an ingestion upsert may overwrite on conflict. Everything else
# (first_seen_at and the hide/archive fields) is only written at insert time
# or through an explicit bulk update.
FRESHNESS_FIELDS = (
    "url",
    "title",
    "price",
    "currency",
    "extension_data",
    "score",
    "raw_payload",
    "last_seen_at",
)

# Columns a bulk update (user action or reconciliation) may touch.
MUTABLE_STATE_FIELDS = (
    "is_hidden",
    "is_archived",
    "archived_reason",
    "archived_at",
)


class Listing(Base):
    __tablename__ = "listings"

    source_id = Column(
        Integer,
        ForeignKey("source_configs.id", ondelete="CASCADE"),
        primary_key=True,
    )
    item_id = Column(BigInteger, primary_key=True, autoincrement=False)

    url = Column(String(2048), nullable=True)
    title = Column(String(512), nullable=True)
    price = Column(Float, nullable=True)
    currency = Column(String(10), nullable=True)

    # Source-specific attributes, keyed by ColumnSpec.id
    extension_data = Column(JSON, default=dict)
    score = Column(Integer, nullable=True)  # 1-100, None when scoring is off or failed

    is_hidden = Column(Boolean, default=False, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)
    archived_reason = Column(String(255), nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    first_seen_at = Column(DateTime(timezone=True), nullable=False)
    last_seen_at = Column(DateTime(timezone=True), nullable=False)

    raw_payload = Column(JSON, nullable=True)

    source = relationship("SourceConfig", back_populates="listings")

    __table_args__ = (
        Index("ix_listings_source_state", "source_id", "is_hidden", "is_archived"),
    )

    @property
    def view(self) -> str:
        if self.is_archived:
            return "archived"
        if self.is_hidden:
            return "hidden"
        return "active"

    def __repr__(self) -> str:
        return f"<Listing {self.source_id}/{self.item_id} ({self.view})>"
