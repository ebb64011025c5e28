"""Batch entity resolution: normalization, blocking, scoring, clustering and golden records."""

from entity_resolution.config import ResolutionConfig
from entity_resolution.errors import (
    BatchNotFound,
    ClusterNotFound,
    ConfigurationError,
    EntityResolutionError,
    InvalidTransition,
    RecordNotFound,
    RecordValidationError,
)
from entity_resolution.models import (
    Cluster,
    ClusterStatus,
    GoldenRecord,
    MatchPair,
    ResolutionResult,
    SourceRecord,
)
from entity_resolution.review import ReviewWorkflow
from entity_resolution.runners import LocalResolutionPipeline, resolve_batch, resolve_batches
from entity_resolution.schema import FieldTag, RecordSchema

__all__ = [
    "ResolutionConfig",
    "BatchNotFound",
    "ClusterNotFound",
    "ConfigurationError",
    "EntityResolutionError",
    "InvalidTransition",
    "RecordNotFound",
    "RecordValidationError",
    "Cluster",
    "ClusterStatus",
    "GoldenRecord",
    "MatchPair",
    "ResolutionResult",
    "SourceRecord",
    "ReviewWorkflow",
    "LocalResolutionPipeline",
    "resolve_batch",
    "resolve_batches",
    "FieldTag",
    "RecordSchema",
]
