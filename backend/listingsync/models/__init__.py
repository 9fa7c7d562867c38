# SQLAlchemy models
from listingsync.models.source_config import SourceConfig
from listingsync.models.listing import Listing
from listingsync.models.run_log import IngestionRun, ReconciliationRun, RunStatus
from listingsync.models.run_lease import RunLease, WorkerKind
from listingsync.models.app_setting import AppSetting

__all__ = [
    "SourceConfig",
    "Listing",
    "IngestionRun",
    "ReconciliationRun",
    "RunLease",
    "AppSetting",
    # Enums
    "RunStatus",
    "WorkerKind",
]
