from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
import json

from listingsync.database import get_db
from listingsync.schemas import (
    BulkUpdateRequest,
    BulkUpdateResponse,
    ListingByIdsRequest,
    ListingCounts,
    ListingPageResponse,
    ListingResponse,
)
from listingsync.services.listing_store import ListingStore, ListingView
from listingsync.services.query_translator import resolve_sort, translate
from listingsync.api.sources import get_source_or_404

router = APIRouter()


def parse_filter_state(filters: Optional[str]) -> dict:
    """Decode the `filters` query parameter (a JSON object of filter id -> value)."""
    if not filters:
        return {}
    try:
        state = json.loads(filters)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=422, detail=f"filters is not valid JSON: {e.msg}")
    if not isinstance(state, dict):
        raise HTTPException(status_code=422, detail="filters must be a JSON object")
    return state


@router.get("/{source_id}/listings", response_model=ListingPageResponse)
async def list_listings(
    source_id: int,
    view: ListingView = ListingView.ACTIVE,
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    filters: Optional[str] = Query(None, description="JSON object, e.g. {\"price_min\": 10}"),
    db: Session = Depends(get_db),
):
    source = get_source_or_404(db, source_id)
    predicate = translate(source, parse_filter_state(filters))
    store_sort = resolve_sort(source, sort)

    items, total = ListingStore(db).query(
        source.id,
        view=view,
        predicate=predicate,
        sort=store_sort,
        page=page,
        page_size=page_size,
    )
    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
        "sort": store_sort.sort_id,
        "applied_filters": predicate.applied,
    }


@router.post("/{source_id}/listings/by-ids", response_model=List[ListingResponse])
async def listings_by_ids(
    source_id: int,
    request: ListingByIdsRequest,
    db: Session = Depends(get_db),
):
    source = get_source_or_404(db, source_id)
    return ListingStore(db).find_by_ids(source.id, request.ids)


@router.patch("/{source_id}/listings/bulk-update", response_model=BulkUpdateResponse)
async def bulk_update_listings(
    source_id: int,
    request: BulkUpdateRequest,
    db: Session = Depends(get_db),
):
    source = get_source_or_404(db, source_id)
    updated = ListingStore(db).bulk_update(source.id, request.ids, request.to_fields())
    return {"updated": updated, "action": request.action}


@router.get("/{source_id}/counts", response_model=ListingCounts)
async def listing_counts(source_id: int, db: Session = Depends(get_db)):
    source = get_source_or_404(db, source_id)
    return ListingStore(db).counts(source.id)
