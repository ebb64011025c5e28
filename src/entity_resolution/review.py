"""Review workflow over resolved clusters.

Mutating operations are dispatched through a ``ClusterCommandQueue``: accept
and split are keyed by cluster id, load and reindex by batch id. Each batch
also has a ``SharedExclusiveGate``: cluster commands hold it shared, load and
reindex hold it exclusively, so a review command arriving mid-reindex waits
for the rebuilt clusters instead of racing the rebuild. Registry reads and
writes are short critical sections under one lock; the pipeline run of a
reindex happens outside it, and its result replaces the batch's clusters in a
single step.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from threading import RLock

from entity_resolution.commands import ClusterCommandQueue, SharedExclusiveGate
from entity_resolution.config import ResolutionConfig
from entity_resolution.errors import (
    BatchNotFound,
    ClusterNotFound,
    InvalidTransition,
    RecordNotFound,
    RecordValidationError,
)
from entity_resolution.logging import get_logger
from entity_resolution.models import (
    Cluster,
    ClusterStatus,
    GoldenRecord,
    MatchPair,
    ResolutionResult,
    SourceRecord,
)
from entity_resolution.interfaces import ResolutionPipeline
from entity_resolution.runners.local import LocalResolutionPipeline
from entity_resolution.steps.clustering import transition

logger = get_logger(__name__)


@dataclass(slots=True)
class BatchState:
    batch_id: str
    records: dict[str, SourceRecord] = field(default_factory=dict)
    revision: int = 0
    detached: set[str] = field(default_factory=set)
    edges: list[MatchPair] = field(default_factory=list)


@dataclass(slots=True)
class SplitOutcome:
    record_id: str
    split_cluster: Cluster | None
    clusters: list[Cluster] = field(default_factory=list)
    singletons: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ResolutionRegistry:
    """In-memory view of batches, clusters and record membership."""

    batches: dict[str, BatchState] = field(default_factory=dict)
    clusters: dict[str, Cluster] = field(default_factory=dict)
    record_batch: dict[str, str] = field(default_factory=dict)
    record_cluster: dict[str, str] = field(default_factory=dict)

    def batch_clusters(self, batch_id: str) -> list[Cluster]:
        return [cluster for cluster in self.clusters.values() if cluster.batch_id == batch_id]

    def install(self, clusters: Sequence[Cluster]) -> None:
        for cluster in clusters:
            self.clusters[cluster.cluster_id] = cluster
            for record_id in cluster.record_ids:
                self.record_cluster[record_id] = cluster.cluster_id

    def discard(self, cluster: Cluster) -> None:
        self.clusters.pop(cluster.cluster_id, None)
        self.release(cluster)

    def release(self, cluster: Cluster) -> None:
        for record_id in cluster.record_ids:
            if self.record_cluster.get(record_id) == cluster.cluster_id:
                del self.record_cluster[record_id]


class ReviewWorkflow:
    def __init__(
        self,
        config: ResolutionConfig | None = None,
        pipeline: ResolutionPipeline | None = None,
        max_workers: int = 4,
    ) -> None:
        self._pipeline: ResolutionPipeline = pipeline or LocalResolutionPipeline(config=config)
        self._commands = ClusterCommandQueue(max_workers=max_workers)
        self._lock = RLock()
        self._gates: dict[str, SharedExclusiveGate] = {}
        self.registry = ResolutionRegistry()

    def __enter__(self) -> "ReviewWorkflow":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._commands.shutdown(wait=True)

    # -- ingestion -----------------------------------------------------------------

    def load_batch(self, records: Sequence[SourceRecord]) -> ResolutionResult:
        """Register records with their batch and resolve the batch."""
        batch_ids = {record.batch_id for record in records}
        if len(batch_ids) != 1:
            raise RecordValidationError(f"load_batch expects exactly one batch, got {sorted(batch_ids)}")
        batch_id = batch_ids.pop()
        return self._commands.submit(_batch_key(batch_id), self._load, batch_id, list(records)).result()

    # -- review operations ---------------------------------------------------------

    def accept_merge(self, cluster_id: str, chosen_record_id: str | None = None) -> Cluster:
        with self._lock:
            cluster = self.registry.clusters.get(cluster_id)
            if cluster is None:
                raise ClusterNotFound(cluster_id)
            batch_id = cluster.batch_id
        return self._commands.submit(cluster_id, self._accept, cluster_id, chosen_record_id, batch_id).result()

    def split_record(self, record_id: str) -> SplitOutcome:
        while True:
            with self._lock:
                batch_id = self.registry.record_batch.get(record_id)
                if batch_id is None:
                    raise RecordNotFound(record_id)
                cluster_id = self.registry.record_cluster.get(record_id)
            if cluster_id is None:
                return SplitOutcome(record_id=record_id, split_cluster=None)
            outcome = self._commands.submit(cluster_id, self._split, record_id, cluster_id, batch_id).result()
            if outcome is not None:
                return outcome
            # A reindex rebuilt the record's cluster under a new id; retry against it.

    def reindex_batch(self, batch_id: str) -> ResolutionResult:
        return self._commands.submit(_batch_key(batch_id), self._reindex, batch_id).result()

    # -- reads ---------------------------------------------------------------------

    def get_cluster(self, cluster_id: str) -> Cluster:
        with self._lock:
            cluster = self.registry.clusters.get(cluster_id)
        if cluster is None:
            raise ClusterNotFound(cluster_id)
        return cluster

    def cluster_for_record(self, record_id: str) -> Cluster | None:
        with self._lock:
            if record_id not in self.registry.record_batch:
                raise RecordNotFound(record_id)
            cluster_id = self.registry.record_cluster.get(record_id)
            return self.registry.clusters.get(cluster_id) if cluster_id else None

    def list_clusters(
        self,
        batch_id: str | None = None,
        status: ClusterStatus | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Cluster]:
        with self._lock:
            clusters = [
                cluster
                for cluster in self.registry.clusters.values()
                if (batch_id is None or cluster.batch_id == batch_id)
                and (status is None or cluster.status == status)
            ]
        clusters.sort(key=lambda cluster: cluster.cluster_id)
        return clusters[offset : offset + limit]

    def list_golden_records(self, search: str | None = None, offset: int = 0, limit: int = 50) -> list[GoldenRecord]:
        needle = search.strip().lower() if search else ""
        with self._lock:
            goldens = [
                cluster.golden_record
                for cluster in self.registry.clusters.values()
                if cluster.status == ClusterStatus.MERGED and cluster.golden_record is not None
            ]
        if needle:
            goldens = [golden for golden in goldens if needle in _searchable(golden)]
        goldens.sort(key=lambda golden: golden.golden_id)
        return goldens[offset : offset + limit]

    def _gate(self, batch_id: str) -> SharedExclusiveGate:
        with self._lock:
            return self._gates.setdefault(batch_id, SharedExclusiveGate())

    # -- commands (run on the cluster/batch mailbox) --------------------------------

    def _load(self, batch_id: str, records: list[SourceRecord]) -> ResolutionResult:
        with self._gate(batch_id).exclusive():
            with self._lock:
                for record in records:
                    owner = self.registry.record_batch.get(record.record_id)
                    if owner is not None and owner != batch_id:
                        raise RecordValidationError(
                            f"record {record.record_id} already belongs to batch {owner}", record_id=record.record_id
                        )
                state = self.registry.batches.setdefault(batch_id, BatchState(batch_id=batch_id))
                changed = False
                for record in records:
                    if state.records.get(record.record_id) != record:
                        state.records[record.record_id] = record
                        self.registry.record_batch[record.record_id] = batch_id
                        changed = True
                if changed:
                    state.revision += 1
            return self._rebuild(batch_id)

    def _accept(self, cluster_id: str, chosen_record_id: str | None, batch_id: str) -> Cluster:
        with self._gate(batch_id).shared(), self._lock:
            cluster = self.registry.clusters.get(cluster_id)
            if cluster is None:
                raise ClusterNotFound(cluster_id)
            if cluster.status in (ClusterStatus.SPLIT, ClusterStatus.CANDIDATE):
                raise InvalidTransition(
                    f"cannot accept cluster {cluster_id} in status {cluster.status}", cluster_id=cluster_id
                )
            if chosen_record_id is not None and chosen_record_id not in cluster.record_ids:
                raise InvalidTransition(
                    f"record {chosen_record_id} is not a member of cluster {cluster_id}", cluster_id=cluster_id
                )
            if cluster.accepted_by_review and chosen_record_id is None:
                return cluster

            state = self.registry.batches[cluster.batch_id]
            members = [state.records[record_id] for record_id in cluster.record_ids]
            self._pipeline.merge(cluster, members, preferred_record_id=chosen_record_id)
            cluster.accepted_by_review = True
            cluster.batch_revision = state.revision

        logger.info(
            "cluster_accepted",
            cluster_id=cluster_id,
            batch_id=cluster.batch_id,
            size=cluster.size,
            chosen_record_id=chosen_record_id,
        )
        return cluster

    def _split(self, record_id: str, cluster_id: str, batch_id: str) -> SplitOutcome | None:
        with self._gate(batch_id).shared(), self._lock:
            if self.registry.record_cluster.get(record_id) != cluster_id:
                return None
            cluster = self.registry.clusters[cluster_id]
            if cluster.status not in (ClusterStatus.MERGED, ClusterStatus.NEEDS_REVIEW):
                raise InvalidTransition(
                    f"cannot split cluster {cluster_id} in status {cluster.status}", cluster_id=cluster_id
                )
            state = self.registry.batches[cluster.batch_id]

            transition(cluster, ClusterStatus.SPLIT)
            cluster.golden_record = None
            self.registry.release(cluster)
            state.detached.add(record_id)

            remaining = [state.records[member] for member in cluster.record_ids if member != record_id]
            surviving = [edge for edge in cluster.edges if record_id not in edge.key]
            clusters, singletons = self._pipeline.build_clusters(
                cluster.batch_id, remaining, surviving, batch_revision=state.revision
            )
            self.registry.install(clusters)

        logger.info(
            "record_split",
            record_id=record_id,
            cluster_id=cluster_id,
            batch_id=cluster.batch_id,
            reclustered=[new.cluster_id for new in clusters],
        )
        return SplitOutcome(record_id=record_id, split_cluster=cluster, clusters=clusters, singletons=singletons)

    def _reindex(self, batch_id: str) -> ResolutionResult:
        with self._gate(batch_id).exclusive():
            return self._rebuild(batch_id)

    def _rebuild(self, batch_id: str) -> ResolutionResult:
        with self._lock:
            state = self.registry.batches.get(batch_id)
            if state is None:
                raise BatchNotFound(batch_id)

            preserved = [cluster for cluster in self.registry.batch_clusters(batch_id) if _is_locked(cluster, state)]
            preserved_ids = {cluster.cluster_id for cluster in preserved}

            locked = {record_id for cluster in preserved for record_id in cluster.record_ids}
            pool = [record for record_id, record in state.records.items() if record_id not in locked]
            revision = state.revision

        result = self._pipeline.run(pool, batch_revision=revision, batch_id=batch_id)

        with self._lock:
            for cluster in self.registry.batch_clusters(batch_id):
                if cluster.cluster_id not in preserved_ids:
                    self.registry.discard(cluster)
            state.detached.clear()
            self.registry.install(result.clusters)
            state.edges = list(result.suggestions)

        result.clusters = sorted(preserved + result.clusters, key=lambda cluster: cluster.record_ids[0])
        logger.info(
            "batch_reindexed",
            batch_id=batch_id,
            revision=revision,
            preserved=len(preserved),
            clusters=len(result.clusters),
        )
        return result


def _batch_key(batch_id: str) -> str:
    return f"batch:{batch_id}"


def _is_locked(cluster: Cluster, state: BatchState) -> bool:
    return (
        cluster.status == ClusterStatus.MERGED
        and cluster.accepted_by_review
        and cluster.batch_revision == state.revision
        and all(record_id in state.records for record_id in cluster.record_ids)
    )


def _searchable(golden: GoldenRecord) -> str:
    parts = [golden.name, golden.organization_name, golden.organization_id, *golden.emails, *golden.phones]
    return " ".join(part for part in parts if part).lower()
