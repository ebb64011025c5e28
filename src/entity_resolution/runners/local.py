from __future__ import annotations

import hashlib
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor

from entity_resolution.config import DEFAULT_CONFIG, ResolutionConfig
from entity_resolution.errors import RecordValidationError
from entity_resolution.interfaces import CandidateGenerator, GoldenRecordBuilder, Normalizer, PairDecider
from entity_resolution.logging import get_logger
from entity_resolution.models import (
    Cluster,
    ClusterStatus,
    MatchPair,
    NormalizedRecord,
    ResolutionResult,
    RunStats,
    SourceRecord,
)
from entity_resolution.schema import FIELD_ORDER
from entity_resolution.steps.blocking import BucketCandidateGenerator
from entity_resolution.steps.clustering import ClusterBuilder, transition
from entity_resolution.steps.decision import RuleBasedPairDecider, classify_cluster
from entity_resolution.steps.golden import GoldenRecordSynthesizer
from entity_resolution.steps.normalize import RecordNormalizer

logger = get_logger(__name__)


class LocalResolutionPipeline:
    """Single-machine runner for one batch.

    Normalization and pair scoring fan out over a thread pool; clustering and
    golden-record synthesis run on the calling thread once every pair is back.
    """

    def __init__(
        self,
        config: ResolutionConfig | None = None,
        normalizer: Normalizer | None = None,
        candidate_generator: CandidateGenerator | None = None,
        decider: PairDecider | None = None,
        cluster_builder: ClusterBuilder | None = None,
        synthesizer: GoldenRecordBuilder | None = None,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self._normalizer = normalizer or RecordNormalizer()
        self._candidate_generator = candidate_generator or BucketCandidateGenerator(self.config)
        self._decider = decider or RuleBasedPairDecider()
        self._cluster_builder = cluster_builder or ClusterBuilder()
        self._synthesizer = synthesizer or GoldenRecordSynthesizer()

    def run(
        self,
        records: Sequence[SourceRecord],
        batch_revision: int = 0,
        batch_id: str | None = None,
    ) -> ResolutionResult:
        started = time.perf_counter()
        batch_id = _single_batch_id(records, batch_id)
        valid, excluded = validate_records(records)

        normalized = self._normalize(valid)
        candidates = self._candidate_generator.candidate_pairs(normalized)
        edges = self._score(normalized, candidates)

        clusters, singletons = self.build_clusters(batch_id, valid, edges, batch_revision, normalized)

        merged = sum(1 for cluster in clusters if cluster.status == ClusterStatus.MERGED)
        stats = RunStats(
            record_count=len(records),
            excluded_count=len(excluded),
            candidate_pairs=len(candidates),
            accepted_pairs=len(edges),
            clusters_created=len(clusters),
            auto_merged=merged,
            needs_review=sum(1 for cluster in clusters if cluster.status == ClusterStatus.NEEDS_REVIEW),
            golden_records_created=merged,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            input_hash=input_hash(valid),
        )
        logger.info(
            "batch_resolved",
            batch_id=batch_id,
            records=stats.record_count,
            excluded=stats.excluded_count,
            candidate_pairs=stats.candidate_pairs,
            accepted_pairs=stats.accepted_pairs,
            clusters=stats.clusters_created,
            needs_review=stats.needs_review,
            elapsed_ms=stats.processing_time_ms,
        )
        return ResolutionResult(
            batch_id=batch_id,
            clusters=clusters,
            singletons=singletons,
            excluded=excluded,
            suggestions=sorted(edges, key=lambda edge: (-edge.confidence, edge.left_id, edge.right_id)),
            stats=stats,
        )

    def build_clusters(
        self,
        batch_id: str,
        records: Sequence[SourceRecord],
        edges: Sequence[MatchPair],
        batch_revision: int = 0,
        normalized: Sequence[NormalizedRecord] | None = None,
    ) -> tuple[list[Cluster], list[str]]:
        """Union accepted edges, classify each cluster and synthesize golden records."""
        if normalized is None:
            normalized = self._normalize(records)
        normalized_by_id = {record.record_id: record for record in normalized}
        records_by_id = {record.record_id: record for record in records}

        clusters, singletons = self._cluster_builder.build(
            batch_id,
            [record.record_id for record in records],
            edges,
            batch_revision=batch_revision,
        )
        for cluster in clusters:
            classify_cluster(cluster, normalized_by_id, self.config)
            if cluster.status == ClusterStatus.AUTO_MERGED:
                self.merge(cluster, [records_by_id[record_id] for record_id in cluster.record_ids])
            else:
                logger.info(
                    "cluster_needs_review",
                    batch_id=batch_id,
                    cluster_id=cluster.cluster_id,
                    size=cluster.size,
                    reasons=cluster.review_reasons,
                )
        return clusters, singletons

    def merge(
        self,
        cluster: Cluster,
        members: Sequence[SourceRecord],
        preferred_record_id: str | None = None,
    ) -> Cluster:
        golden = self._synthesizer.synthesize(cluster, members, preferred_record_id)
        if cluster.status != ClusterStatus.MERGED:
            transition(cluster, ClusterStatus.MERGED)
        cluster.golden_record = golden
        return cluster

    def _normalize(self, records: Sequence[SourceRecord]) -> list[NormalizedRecord]:
        if len(records) <= self.config.scoring_chunk_size or self.config.scoring_workers == 1:
            return self._normalizer.normalize(records)
        chunks = _chunks(list(records), self.config.scoring_chunk_size)
        with ThreadPoolExecutor(max_workers=self.config.scoring_workers) as executor:
            normalized_chunks = list(executor.map(self._normalizer.normalize, chunks))
        return [record for chunk in normalized_chunks for record in chunk]

    def _score(self, normalized: Sequence[NormalizedRecord], candidates: Sequence[tuple[int, int]]) -> list[MatchPair]:
        def score_chunk(chunk: Sequence[tuple[int, int]]) -> list[MatchPair]:
            accepted: list[MatchPair] = []
            for left, right in chunk:
                pair = self._decider.decide(normalized[left], normalized[right], self.config)
                if pair is not None:
                    accepted.append(pair)
            return accepted

        if len(candidates) <= self.config.scoring_chunk_size or self.config.scoring_workers == 1:
            return score_chunk(candidates)

        chunks = _chunks(list(candidates), self.config.scoring_chunk_size)
        with ThreadPoolExecutor(max_workers=self.config.scoring_workers) as executor:
            scored = list(executor.map(score_chunk, chunks))
        return [pair for chunk in scored for pair in chunk]


def validate_records(records: Sequence[SourceRecord]) -> tuple[list[SourceRecord], list[RecordValidationError]]:
    """Split records into usable ones and exclusions; never aborts the batch."""
    valid: list[SourceRecord] = []
    excluded: list[RecordValidationError] = []
    seen: set[str] = set()
    for record in records:
        error: RecordValidationError | None = None
        if not record.has_identifying_field():
            error = RecordValidationError(
                f"record {record.record_id} has no identifying field", record_id=record.record_id
            )
        elif record.record_id in seen:
            error = RecordValidationError(
                f"duplicate record id {record.record_id} in batch {record.batch_id}", record_id=record.record_id
            )
        if error is not None:
            logger.warning("record_excluded", record_id=record.record_id, batch_id=record.batch_id, reason=str(error))
            excluded.append(error)
            continue
        seen.add(record.record_id)
        valid.append(record)
    return valid, excluded


def input_hash(records: Sequence[SourceRecord]) -> str:
    digest = hashlib.sha256()
    for record in sorted(records, key=lambda item: item.record_id):
        values = [record.record_id, *(record.field_value(tag) or "" for tag in FIELD_ORDER)]
        digest.update("\x1f".join(values).encode("utf-8"))
        digest.update(b"\x1e")
    return digest.hexdigest()


def resolve_batch(records: Sequence[SourceRecord], config: ResolutionConfig | None = None) -> list[Cluster]:
    """Pipeline entry point: resolve one batch and return its non-trivial clusters."""
    return LocalResolutionPipeline(config=config).run(records).clusters


def resolve_batches(
    batches: Mapping[str, Sequence[SourceRecord]],
    config: ResolutionConfig | None = None,
    max_workers: int = 4,
) -> dict[str, ResolutionResult]:
    """Resolve independent batches concurrently; each run owns its own state."""
    if not batches:
        return {}

    def run_one(records: Sequence[SourceRecord]) -> ResolutionResult:
        return LocalResolutionPipeline(config=config).run(records)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {batch_id: executor.submit(run_one, records) for batch_id, records in batches.items()}
        return {batch_id: future.result() for batch_id, future in futures.items()}


def _single_batch_id(records: Sequence[SourceRecord], expected: str | None = None) -> str:
    batch_ids = {record.batch_id for record in records}
    if expected is not None:
        batch_ids.add(expected)
    if len(batch_ids) > 1:
        raise RecordValidationError(f"a resolution run covers one batch, got {sorted(batch_ids)}")
    return next(iter(batch_ids), "")


def _chunks(items: list, size: int) -> list[list]:
    return [items[start : start + size] for start in range(0, len(items), size)]
