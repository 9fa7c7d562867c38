from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class IngestionRunResponse(BaseModel):
    id: str
    source_id: int
    started_at: datetime
    page: int
    items_fetched: int
    status: str
    error_message: Optional[str] = None
    duration_ms: int

    class Config:
        from_attributes = True


class ReconciliationRunResponse(BaseModel):
    id: str
    source_id: int
    started_at: datetime
    finished_at: Optional[datetime] = None
    items_checked: int
    items_archived: int
    start_cursor: int
    last_cursor: int
    status: str
    error_message: Optional[str] = None
    duration_ms: int

    class Config:
        from_attributes = True


class RunLogResponse(BaseModel):
    ingestion: list[IngestionRunResponse]
    reconciliation: list[ReconciliationRunResponse]


class RunSummaryResponse(BaseModel):
    source_id: int
    kind: str
    status: str
    pages: int = 0
    items_fetched: int = 0
    items_checked: int = 0
    items_archived: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    run_id: Optional[str] = None
