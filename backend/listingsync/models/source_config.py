from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from listingsync.database import Base


class SourceConfig(Base):
    """
    One monitored marketplace category.

    `columns`, `filters` and `sorts` hold the per-source schema as JSON lists
    (see listingsync.schemas.source for their shape). They are validated on
    save, so readers can rebuild the typed specs without re-checking.
    """
    __tablename__ = "source_configs"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(100), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    category = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    # Upstream addressing
    api_base_url = Column(String(255), nullable=False)
    list_path = Column(String(255), nullable=False, default="/")
    check_path_template = Column(String(255), nullable=False, default="/item/{id}")
    default_filters = Column(JSON, default=dict)

    columns = Column(JSON, default=list)
    filters = Column(JSON, default=list)
    sorts = Column(JSON, default=list)

    fetch_worker_enabled = Column(Boolean, default=True, nullable=False)
    check_worker_enabled = Column(Boolean, default=True, nullable=False)
    fetch_interval_minutes = Column(Integer, default=60)  # informational, triggering is external
    fetch_page_limit = Column(Integer, default=10, nullable=True)  # None = follow upstream to the end

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    listings = relationship(
        "Listing",
        back_populates="source",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    ingestion_runs = relationship(
        "IngestionRun",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    reconciliation_runs = relationship(
        "ReconciliationRun",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def check_url(self, item_id: int) -> str:
        return f"{self.api_base_url}{self.check_path_template.replace('{id}', str(item_id))}"

    def listing_url(self, item_id: int) -> str:
        return f"{self.api_base_url.rstrip('/')}/{item_id}/"

    def __repr__(self) -> str:
        return f"<SourceConfig {self.slug!r}>"
