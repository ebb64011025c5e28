from __future__ import annotations

from typing import Protocol, Sequence

from entity_resolution.config import ResolutionConfig
from entity_resolution.models import (
    Cluster,
    GoldenRecord,
    MatchPair,
    NormalizedRecord,
    ResolutionResult,
    SourceRecord,
)


class Normalizer(Protocol):
    """Stage 1: canonicalize raw field values into comparable strings."""

    def normalize(self, records: Sequence[SourceRecord]) -> list[NormalizedRecord]:
        ...


class CandidateGenerator(Protocol):
    """Stage 3: restrict scoring to records that share a blocking bucket."""

    def candidate_pairs(self, records: Sequence[NormalizedRecord]) -> list[tuple[int, int]]:
        ...


class PairDecider(Protocol):
    """Stages 2 + 5: score one candidate pair and keep it only if accepted."""

    def decide(self, left: NormalizedRecord, right: NormalizedRecord, config: ResolutionConfig) -> MatchPair | None:
        ...


class GoldenRecordBuilder(Protocol):
    """Stage 6: one canonical record per merged cluster."""

    def synthesize(
        self,
        cluster: Cluster,
        records: Sequence[SourceRecord],
        preferred_record_id: str | None = None,
    ) -> GoldenRecord:
        ...


class ResolutionPipeline(Protocol):
    """Unified pipeline interface for a single batch, as driven by the review workflow."""

    def run(
        self,
        records: Sequence[SourceRecord],
        batch_revision: int = 0,
        batch_id: str | None = None,
    ) -> ResolutionResult:
        ...

    def build_clusters(
        self,
        batch_id: str,
        records: Sequence[SourceRecord],
        edges: Sequence[MatchPair],
        batch_revision: int = 0,
        normalized: Sequence[NormalizedRecord] | None = None,
    ) -> tuple[list[Cluster], list[str]]:
        ...

    def merge(
        self,
        cluster: Cluster,
        members: Sequence[SourceRecord],
        preferred_record_id: str | None = None,
    ) -> Cluster:
        ...
