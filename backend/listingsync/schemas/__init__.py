from listingsync.schemas.source import (
    ColumnKind,
    ColumnSpec,
    FilterKind,
    FilterSpec,
    SortSpec,
    SourceSchema,
    SourceConfigCreate,
    SourceConfigUpdate,
    SourceConfigResponse,
)
from listingsync.schemas.listing import (
    BulkAction,
    BulkUpdateRequest,
    BulkUpdateResponse,
    ListingByIdsRequest,
    ListingCounts,
    ListingPageResponse,
    ListingResponse,
)
from listingsync.schemas.run import (
    IngestionRunResponse,
    ReconciliationRunResponse,
    RunLogResponse,
    RunSummaryResponse,
)

__all__ = [
    "ColumnKind", "ColumnSpec", "FilterKind", "FilterSpec", "SortSpec", "SourceSchema",
    "SourceConfigCreate", "SourceConfigUpdate", "SourceConfigResponse",
    "BulkAction", "BulkUpdateRequest", "BulkUpdateResponse", "ListingByIdsRequest",
    "ListingCounts", "ListingPageResponse", "ListingResponse",
    "IngestionRunResponse", "ReconciliationRunResponse", "RunLogResponse", "RunSummaryResponse",
]
