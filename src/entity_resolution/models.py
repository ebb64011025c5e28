from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from entity_resolution.errors import RecordValidationError
from entity_resolution.schema import FIELD_ORDER, FieldTag


@dataclass(frozen=True, slots=True)
class SourceRecord:
    """Immutable ingested record, owned by its batch."""

    record_id: str
    batch_id: str
    ingested_at: datetime
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    organization_name: str | None = None
    organization_id: str | None = None
    source: str | None = None

    def field_value(self, tag: FieldTag) -> str | None:
        return getattr(self, tag.value)

    def has_identifying_field(self) -> bool:
        for tag in FIELD_ORDER:
            value = self.field_value(tag)
            if value is not None and str(value).strip():
                return True
        return False


@dataclass(frozen=True, slots=True)
class NormalizedRecord:
    """Comparison-only view of a SourceRecord; always safe to regenerate."""

    record_id: str
    batch_id: str
    ingested_at: datetime
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    organization_name: str | None = None
    organization_id: str | None = None

    def value(self, tag: FieldTag) -> str | None:
        return getattr(self, tag.value)


@dataclass(slots=True)
class EntitySimilarity:
    """Per-field and weighted similarity between two normalized records."""

    field_similarities: dict[FieldTag, float]
    overall_similarity: float
    matched_fields: list[FieldTag]
    reason: str


class MatchRule(StrEnum):
    EXACT_EMAIL = "exact_email"
    EXACT_ORGANIZATION_ID = "exact_organization_id"
    FUZZY = "fuzzy"


@dataclass(slots=True)
class MatchPair:
    """Accepted edge between two records, ids stored in sorted order."""

    left_id: str
    right_id: str
    confidence: float
    rule: MatchRule
    reason: str
    field_similarities: dict[FieldTag, float] = field(default_factory=dict)
    matched_fields: list[FieldTag] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        return (self.left_id, self.right_id)


class ClusterStatus(StrEnum):
    CANDIDATE = "CANDIDATE"
    AUTO_MERGED = "AUTO_MERGED"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    MERGED = "MERGED"
    SPLIT = "SPLIT"


@dataclass(slots=True)
class GoldenRecord:
    """Canonical field set synthesized from a merged cluster."""

    golden_id: str
    cluster_id: str
    provenance: list[str]
    batch_ids: list[str]
    confidence: float
    natural_key: str
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    organization_name: str | None = None
    organization_id: str | None = None
    emails: list[str] = field(default_factory=list)
    phones: list[str] = field(default_factory=list)
    addresses: list[str] = field(default_factory=list)

    def value(self, tag: FieldTag) -> str | None:
        return getattr(self, tag.value)


@dataclass(slots=True)
class Cluster:
    """Records connected transitively by accepted match pairs."""

    cluster_id: str
    batch_id: str
    record_ids: list[str]
    confidence: float
    status: ClusterStatus = ClusterStatus.CANDIDATE
    edges: list[MatchPair] = field(default_factory=list)
    review_reasons: list[str] = field(default_factory=list)
    accepted_by_review: bool = False
    batch_revision: int = 0
    golden_record: GoldenRecord | None = None

    @property
    def size(self) -> int:
        return len(self.record_ids)


@dataclass(slots=True)
class RunStats:
    record_count: int = 0
    excluded_count: int = 0
    candidate_pairs: int = 0
    accepted_pairs: int = 0
    clusters_created: int = 0
    auto_merged: int = 0
    needs_review: int = 0
    golden_records_created: int = 0
    processing_time_ms: int = 0
    input_hash: str = ""


@dataclass(slots=True)
class ResolutionResult:
    """Everything one resolution run produced for a batch."""

    batch_id: str
    clusters: list[Cluster]
    singletons: list[str]
    excluded: list[RecordValidationError] = field(default_factory=list)
    suggestions: list[MatchPair] = field(default_factory=list)
    stats: RunStats = field(default_factory=RunStats)

    @property
    def golden_records(self) -> list[GoldenRecord]:
        return [cluster.golden_record for cluster in self.clusters if cluster.golden_record is not None]
