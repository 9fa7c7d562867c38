"""Exception types shared by the workers, the store and the API routers."""
from typing import Optional


class ListingSyncError(Exception):
    pass


class UpstreamError(ListingSyncError):
    """The upstream marketplace API failed or answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(UpstreamError):
    """HTTP 429 persisted after every backoff attempt."""


class UpstreamConfigError(ListingSyncError):
    """The upstream API cannot be called (e.g. no token configured)."""


class SourceConfigConflictError(ListingSyncError):
    def __init__(self, slug: str):
        super().__init__(
            f"A source with the slug '{slug}' already exists. Please choose a unique slug."
        )
        self.slug = slug


class RunAlreadyInProgressError(ListingSyncError):
    def __init__(self, source_id: int, worker_kind: str):
        super().__init__(f"A {worker_kind} run is already in progress for source {source_id}")
        self.source_id = source_id
        self.worker_kind = worker_kind


class WorkerDisabledError(ListingSyncError):
    def __init__(self, source_id: int, worker_kind: str):
        super().__init__(f"The {worker_kind} worker is disabled for source {source_id}")
        self.source_id = source_id
        self.worker_kind = worker_kind


class RunTimedOutError(ListingSyncError):
    """A run went past the configured run_timeout_seconds deadline."""


class RunLeaseLostError(ListingSyncError):
    """Another run took over this run's expired lease; the run must stop writing."""

    def __init__(self, source_id: int, worker_kind: str):
        super().__init__(f"The {worker_kind} lease for source {source_id} was taken over by another run")
        self.source_id = source_id
        self.worker_kind = worker_kind
