from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List
import logging

from listingsync.database import get_db
from listingsync.errors import SourceConfigConflictError
from listingsync.models import SourceConfig
from listingsync.schemas import SourceConfigCreate, SourceConfigResponse, SourceConfigUpdate

router = APIRouter()
logger = logging.getLogger(__name__)


def get_source_or_404(db: Session, source_id: int) -> SourceConfig:
    source = db.query(SourceConfig).filter(SourceConfig.id == source_id).first()
    if not source:
        raise HTTPException(status_code=404, detail="Source not found")
    return source


def _slug_taken(db: Session, slug: str, exclude_id: int | None = None) -> bool:
    query = db.query(SourceConfig.id).filter(SourceConfig.slug == slug)
    if exclude_id is not None:
        query = query.filter(SourceConfig.id != exclude_id)
    return query.first() is not None


def _commit_or_conflict(db: Session, slug: str):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(SourceConfigConflictError(slug)))


@router.get("", response_model=List[SourceConfigResponse])
async def list_sources(db: Session = Depends(get_db)):
    return db.query(SourceConfig).order_by(SourceConfig.name).all()


@router.post("", response_model=SourceConfigResponse, status_code=201)
async def create_source(
    source: SourceConfigCreate,
    db: Session = Depends(get_db)
):
    if _slug_taken(db, source.slug):
        raise HTTPException(status_code=409, detail=str(SourceConfigConflictError(source.slug)))

    db_source = SourceConfig(**source.to_row_fields())
    db.add(db_source)
    _commit_or_conflict(db, source.slug)
    db.refresh(db_source)
    logger.info(f"Created source {db_source.slug} (id={db_source.id})")
    return db_source


@router.get("/{source_id}", response_model=SourceConfigResponse)
async def get_source(source_id: int, db: Session = Depends(get_db)):
    return get_source_or_404(db, source_id)


@router.put("/{source_id}", response_model=SourceConfigResponse)
async def update_source(
    source_id: int,
    source_update: SourceConfigUpdate,
    db: Session = Depends(get_db)
):
    source = get_source_or_404(db, source_id)
    if _slug_taken(db, source_update.slug, exclude_id=source_id):
        raise HTTPException(status_code=409, detail=str(SourceConfigConflictError(source_update.slug)))

    for field, value in source_update.to_row_fields().items():
        setattr(source, field, value)

    _commit_or_conflict(db, source_update.slug)
    db.refresh(source)
    return source


@router.delete("/{source_id}")
async def delete_source(source_id: int, db: Session = Depends(get_db)):
    source = get_source_or_404(db, source_id)
    db.delete(source)
    db.commit()
    logger.info(f"Deleted source {source_id} with its listings and run log")
    return {"status": "deleted", "id": source_id}
