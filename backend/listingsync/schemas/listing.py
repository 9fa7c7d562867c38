from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ListingResponse(BaseModel):
    source_id: int
    item_id: int
    url: Optional[str] = None
    title: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    extension_data: dict[str, Any] = Field(default_factory=dict)
    score: Optional[int] = None
    is_hidden: bool
    is_archived: bool
    archived_reason: Optional[str] = None
    archived_at: Optional[datetime] = None
    first_seen_at: datetime
    last_seen_at: datetime

    class Config:
        from_attributes = True


class ListingPageResponse(BaseModel):
    items: list[ListingResponse]
    total: int
    page: int
    page_size: int
    sort: Optional[str] = None
    applied_filters: list[str] = Field(default_factory=list)


class ListingByIdsRequest(BaseModel):
    ids: list[int] = Field(min_length=1, max_length=1000)


class BulkAction(str, Enum):
    HIDE = "hide"
    UNHIDE = "unhide"
    ARCHIVE = "archive"
    UNARCHIVE = "unarchive"


class BulkUpdateRequest(BaseModel):
    ids: list[int] = Field(min_length=1, max_length=1000)
    action: BulkAction
    reason: Optional[str] = None

    def to_fields(self) -> dict[str, Any]:
        """Store fields for this action (see ListingStore.bulk_update)."""
        match self.action:
            case BulkAction.HIDE:
                return {"is_hidden": True}
            case BulkAction.UNHIDE:
                return {"is_hidden": False}
            case BulkAction.ARCHIVE:
                return {"is_archived": True, "archived_reason": self.reason or "Archived manually."}
            case BulkAction.UNARCHIVE:
                return {"is_archived": False}


class BulkUpdateResponse(BaseModel):
    updated: int
    action: BulkAction


class ListingCounts(BaseModel):
    active: int
    hidden: int
    archived: int
