from __future__ import annotations


class EntityResolutionError(Exception):
    """Base class for every error raised by the resolution core."""


class ConfigurationError(EntityResolutionError, ValueError):
    """Raised when a resolution config has out-of-range thresholds or weights."""


class RecordValidationError(EntityResolutionError, ValueError):
    """A source record (or upload) cannot take part in a resolution run."""

    def __init__(self, message: str, record_id: str | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class ClusterNotFound(EntityResolutionError, LookupError):
    def __init__(self, cluster_id: str) -> None:
        super().__init__(f"cluster not found: {cluster_id}")
        self.cluster_id = cluster_id


class RecordNotFound(EntityResolutionError, LookupError):
    def __init__(self, record_id: str) -> None:
        super().__init__(f"record not found: {record_id}")
        self.record_id = record_id


class BatchNotFound(EntityResolutionError, LookupError):
    def __init__(self, batch_id: str) -> None:
        super().__init__(f"batch not found: {batch_id}")
        self.batch_id = batch_id


class InvalidTransition(EntityResolutionError):
    """A cluster cannot move from its current status to the requested one."""

    def __init__(self, message: str, cluster_id: str | None = None) -> None:
        super().__init__(message)
        self.cluster_id = cluster_id
