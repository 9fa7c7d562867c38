"""
Persistence boundary for listings.

The upsert is the one place ingestion writes listings, and it must never
overwrite a user's hide/archive decision or the first-seen timestamp. It is
a single native INSERT ... ON CONFLICT DO UPDATE whose SET list is limited to
FRESHNESS_FIELDS.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import and_, case, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from listingsync.models.listing import FRESHNESS_FIELDS, MUTABLE_STATE_FIELDS, Listing
from listingsync.services.query_translator import StorePredicate, StoreSort

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


class ListingView(str, Enum):
    ACTIVE = "active"
    HIDDEN = "hidden"
    ARCHIVED = "archived"


@dataclass
class ListingCandidate:
    """A listing as observed upstream, before it is merged into the store."""
    source_id: int
    item_id: int
    url: Optional[str] = None
    title: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    extension_data: dict = field(default_factory=dict)
    score: Optional[int] = None
    raw_payload: Optional[dict] = None
    seen_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_row(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "item_id": self.item_id,
            "url": self.url,
            "title": self.title,
            "price": self.price,
            "currency": self.currency,
            "extension_data": self.extension_data,
            "score": self.score,
            "raw_payload": self.raw_payload,
            # Only used when the row is new; the conflict branch skips them.
            "is_hidden": False,
            "is_archived": False,
            "archived_reason": None,
            "archived_at": None,
            "first_seen_at": self.seen_at,
            "last_seen_at": self.seen_at,
        }


def view_clauses(view: ListingView | str) -> list:
    match ListingView(view):
        case ListingView.ACTIVE:
            return [Listing.is_hidden == False, Listing.is_archived == False]
        case ListingView.HIDDEN:
            return [Listing.is_hidden == True, Listing.is_archived == False]
        case ListingView.ARCHIVED:
            return [Listing.is_archived == True]


class ListingStore:

    def __init__(self, db: Session):
        self.db = db

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _DIALECT_INSERTS[dialect]
        except KeyError:
            raise NotImplementedError(f"Listing upsert is not supported on {dialect}")

    def upsert(self, candidates: list[ListingCandidate]) -> int:
        """Insert new listings and refresh existing ones. Returns rows written."""
        if not candidates:
            return 0

        # ON CONFLICT cannot touch the same row twice in one statement
        rows: dict[tuple[int, int], dict] = {}
        for candidate in candidates:
            rows[(candidate.source_id, candidate.item_id)] = candidate.to_row()

        insert = self._insert()
        stmt = insert(Listing).values(list(rows.values()))
        stmt = stmt.on_conflict_do_update(
            index_elements=["source_id", "item_id"],
            set_={name: stmt.excluded[name] for name in FRESHNESS_FIELDS},
        )
        self.db.execute(stmt)
        self.db.commit()
        return len(rows)

    def query(
        self,
        source_id: int,
        view: ListingView | str = ListingView.ACTIVE,
        predicate: Optional[StorePredicate] = None,
        sort: Optional[StoreSort] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Listing], int]:
        query = self.db.query(Listing).filter(
            Listing.source_id == source_id,
            *view_clauses(view),
        )
        if predicate is not None and predicate.clauses:
            query = query.filter(*predicate.clauses)

        total = query.count()

        order_by = sort.order_by if sort else [Listing.last_seen_at.desc(), Listing.item_id.asc()]
        page = max(page, 1)
        items = (
            query.order_by(*order_by)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return items, total

    def find_by_ids(self, source_id: int, item_ids: list[int]) -> list[Listing]:
        if not item_ids:
            return []
        return (
            self.db.query(Listing)
            .filter(Listing.source_id == source_id, Listing.item_id.in_(item_ids))
            .order_by(Listing.item_id.asc())
            .all()
        )

    def scan_active_after(self, source_id: int, cursor_item_id: int, limit: int) -> list[Listing]:
        """
        Keyset page of non-archived listings with item_id > cursor, ascending.

        Archiving rows inside a batch cannot shift the next batch, unlike
        OFFSET paging.
        """
        return (
            self.db.query(Listing)
            .filter(
                Listing.source_id == source_id,
                Listing.is_archived == False,
                Listing.item_id > cursor_item_id,
            )
            .order_by(Listing.item_id.asc())
            .limit(limit)
            .all()
        )

    def bulk_update(self, source_id: int, item_ids: list[int], fields: dict[str, Any]) -> int:
        """
        Apply a hide/unhide/archive/unarchive change to many listings.

        Only the user-governed state fields are accepted here.
        """
        unknown = set(fields) - set(MUTABLE_STATE_FIELDS)
        if unknown:
            raise ValueError(f"Fields cannot be bulk-updated: {', '.join(sorted(unknown))}")
        if not item_ids or not fields:
            return 0

        values = dict(fields)
        if values.get("is_archived") is True:
            values.setdefault("archived_at", datetime.now(timezone.utc))
        elif values.get("is_archived") is False:
            values.setdefault("archived_reason", None)
            values.setdefault("archived_at", None)

        updated = (
            self.db.query(Listing)
            .filter(Listing.source_id == source_id, Listing.item_id.in_(item_ids))
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        logger.debug(f"Bulk-updated {updated} listing(s) for source {source_id}: {sorted(values)}")
        return updated

    def counts(self, source_id: int) -> dict[str, int]:
        def _count(*clauses):
            return func.coalesce(func.sum(case((and_(*clauses), 1), else_=0)), 0)

        row = (
            self.db.query(
                _count(*view_clauses(ListingView.ACTIVE)),
                _count(*view_clauses(ListingView.HIDDEN)),
                _count(*view_clauses(ListingView.ARCHIVED)),
            )
            .filter(Listing.source_id == source_id)
            .one()
        )
        return {"active": int(row[0]), "hidden": int(row[1]), "archived": int(row[2])}
