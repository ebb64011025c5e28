from __future__ import annotations

import hashlib
from collections import defaultdict
from collections.abc import Iterable, Sequence

from entity_resolution.errors import InvalidTransition
from entity_resolution.models import Cluster, ClusterStatus, MatchPair

_TRANSITIONS: dict[ClusterStatus, frozenset[ClusterStatus]] = {
    ClusterStatus.CANDIDATE: frozenset({ClusterStatus.AUTO_MERGED, ClusterStatus.NEEDS_REVIEW}),
    ClusterStatus.AUTO_MERGED: frozenset({ClusterStatus.MERGED}),
    ClusterStatus.NEEDS_REVIEW: frozenset({ClusterStatus.MERGED, ClusterStatus.SPLIT}),
    ClusterStatus.MERGED: frozenset({ClusterStatus.SPLIT}),
    ClusterStatus.SPLIT: frozenset(),
}


def can_transition(current: ClusterStatus, target: ClusterStatus) -> bool:
    return target in _TRANSITIONS[current]


def transition(cluster: Cluster, target: ClusterStatus) -> Cluster:
    if not can_transition(cluster.status, target):
        raise InvalidTransition(
            f"cannot move cluster {cluster.cluster_id} from {cluster.status} to {target}",
            cluster_id=cluster.cluster_id,
        )
    cluster.status = target
    return cluster


def cluster_id_for(batch_id: str, record_ids: Iterable[str]) -> str:
    digest = hashlib.sha1("|".join([batch_id, *sorted(record_ids)]).encode("utf-8")).hexdigest()
    return f"cluster_{digest[:16]}"


class IdIndex:
    """Run-scoped bidirectional mapping between external record ids and dense ints."""

    def __init__(self, record_ids: Sequence[str]) -> None:
        self._external = list(record_ids)
        self._dense = {record_id: index for index, record_id in enumerate(self._external)}

    def __len__(self) -> int:
        return len(self._external)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._dense

    def dense(self, record_id: str) -> int:
        return self._dense[record_id]

    def external(self, index: int) -> str:
        return self._external[index]


class UnionFind:
    """Disjoint sets over ``0..n-1`` with path compression and union by size."""

    def __init__(self, size: int) -> None:
        self._parent = list(range(size))
        self._size = [1] * size

    def find(self, item: int) -> int:
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, left: int, right: int) -> bool:
        """Join two sets; False when they were already one."""
        root_left = self.find(left)
        root_right = self.find(right)
        if root_left == root_right:
            return False
        if self._size[root_left] < self._size[root_right]:
            root_left, root_right = root_right, root_left
        self._parent[root_right] = root_left
        self._size[root_left] += self._size[root_right]
        return True

    def groups(self) -> dict[int, list[int]]:
        grouped: dict[int, list[int]] = defaultdict(list)
        for item in range(len(self._parent)):
            grouped[self.find(item)].append(item)
        return grouped


class ClusterBuilder:
    """Connected components over accepted edges, applied in descending-confidence order."""

    def build(
        self,
        batch_id: str,
        record_ids: Sequence[str],
        edges: Sequence[MatchPair],
        batch_revision: int = 0,
    ) -> tuple[list[Cluster], list[str]]:
        index = IdIndex(record_ids)
        uf = UnionFind(len(index))
        ordered = sorted(edges, key=lambda edge: (-edge.confidence, edge.left_id, edge.right_id))

        spanning: list[tuple[int, MatchPair]] = []
        kept: list[MatchPair] = []
        for edge in ordered:
            if edge.left_id not in index or edge.right_id not in index:
                continue
            kept.append(edge)
            left = index.dense(edge.left_id)
            if uf.union(left, index.dense(edge.right_id)):
                spanning.append((left, edge))

        weakest: dict[int, float] = {}
        for left, edge in spanning:
            root = uf.find(left)
            weakest[root] = min(weakest.get(root, 1.0), edge.confidence)

        edges_by_root: dict[int, list[MatchPair]] = defaultdict(list)
        for edge in kept:
            edges_by_root[uf.find(index.dense(edge.left_id))].append(edge)

        clusters: list[Cluster] = []
        singletons: list[str] = []
        for root, members in uf.groups().items():
            member_ids = sorted(index.external(member) for member in members)
            if len(member_ids) < 2:
                singletons.extend(member_ids)
                continue
            clusters.append(
                Cluster(
                    cluster_id=cluster_id_for(batch_id, member_ids),
                    batch_id=batch_id,
                    record_ids=member_ids,
                    confidence=weakest.get(root, 0.0),
                    edges=edges_by_root[root],
                    batch_revision=batch_revision,
                )
            )

        clusters.sort(key=lambda cluster: cluster.record_ids[0])
        return clusters, sorted(singletons)
