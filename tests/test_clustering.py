import pytest

from entity_resolution.config import ResolutionConfig
from entity_resolution.errors import InvalidTransition
from entity_resolution.models import Cluster, ClusterStatus, MatchPair, MatchRule
from entity_resolution.steps.clustering import ClusterBuilder, UnionFind, cluster_id_for, transition
from entity_resolution.steps.decision import classify_cluster
from entity_resolution.steps.normalize import RecordNormalizer

from conftest import make_record


def _edge(left: str, right: str, confidence: float) -> MatchPair:
    return MatchPair(left_id=left, right_id=right, confidence=confidence, rule=MatchRule.FUZZY, reason="test")


def test_union_find_groups_and_reports_redundant_unions() -> None:
    uf = UnionFind(5)

    assert uf.union(0, 1)
    assert uf.union(1, 2)
    assert not uf.union(0, 2)
    assert uf.find(2) == uf.find(0)

    groups = sorted(sorted(members) for members in uf.groups().values())
    assert groups == [[0, 1, 2], [3], [4]]


def test_union_find_handles_long_chains_iteratively() -> None:
    size = 50_000
    uf = UnionFind(size)
    for item in range(size - 1):
        uf.union(item, item + 1)

    assert len(uf.groups()) == 1


def test_clusters_are_transitive() -> None:
    edges = [_edge("a", "b", 0.9), _edge("b", "c", 0.88)]

    clusters, singletons = ClusterBuilder().build("batch_1", ["a", "b", "c", "d"], edges)

    assert len(clusters) == 1
    assert clusters[0].record_ids == ["a", "b", "c"]
    assert clusters[0].confidence == pytest.approx(0.88)
    assert clusters[0].status == ClusterStatus.CANDIDATE
    assert singletons == ["d"]


def test_cluster_ids_are_deterministic() -> None:
    edges = [_edge("a", "b", 1.0)]
    first, _ = ClusterBuilder().build("batch_1", ["b", "a"], edges)
    second, _ = ClusterBuilder().build("batch_1", ["a", "b"], list(reversed(edges)))

    assert first[0].cluster_id == second[0].cluster_id == cluster_id_for("batch_1", ["b", "a"])
    assert cluster_id_for("batch_2", ["a", "b"]) != first[0].cluster_id


def test_edges_to_unknown_records_are_ignored() -> None:
    clusters, singletons = ClusterBuilder().build("batch_1", ["a", "b"], [_edge("a", "zzz", 1.0)])

    assert clusters == []
    assert singletons == ["a", "b"]


def test_transition_table() -> None:
    cluster = Cluster(cluster_id="c1", batch_id="b", record_ids=["a", "b"], confidence=1.0)

    transition(cluster, ClusterStatus.NEEDS_REVIEW)
    transition(cluster, ClusterStatus.SPLIT)

    with pytest.raises(InvalidTransition):
        transition(cluster, ClusterStatus.MERGED)
    assert cluster.status == ClusterStatus.SPLIT


def _classify(records, edges, config):
    clusters, _ = ClusterBuilder().build("batch_1", [record.record_id for record in records], edges)
    normalized = {record.record_id: record for record in RecordNormalizer().normalize(records)}
    return classify_cluster(clusters[0], normalized, config)


def test_oversized_cluster_needs_review() -> None:
    records = [make_record(f"r{i}", i, email="same@example.com") for i in range(3)]
    edges = [_edge("r0", "r1", 1.0), _edge("r1", "r2", 1.0)]

    cluster = _classify(records, edges, ResolutionConfig(max_auto_merge_cluster_size=2))

    assert cluster.status == ClusterStatus.NEEDS_REVIEW
    assert any("exceeds auto-merge cap" in reason for reason in cluster.review_reasons)


def test_conflicting_organization_ids_need_review() -> None:
    records = [
        make_record("r0", 0, email="same@example.com", organization_id="ORG-1"),
        make_record("r1", 1, email="same@example.com", organization_id="ORG-2"),
    ]

    cluster = _classify(records, [_edge("r0", "r1", 1.0)], ResolutionConfig())

    assert cluster.status == ClusterStatus.NEEDS_REVIEW
    assert cluster.review_reasons == ["conflicting organization ids: org-1, org-2"]


def test_weak_bridging_edge_needs_review() -> None:
    records = [make_record("r0", 0, name="Jane Smith"), make_record("r1", 1, name="Jane Smyth")]

    cluster = _classify(records, [_edge("r0", "r1", 0.86)], ResolutionConfig(min_auto_merge_confidence=0.9))

    assert cluster.status == ClusterStatus.NEEDS_REVIEW


def test_clean_cluster_auto_merges() -> None:
    records = [make_record("r0", 0, email="same@example.com"), make_record("r1", 1, email="same@example.com")]

    cluster = _classify(records, [_edge("r0", "r1", 1.0)], ResolutionConfig())

    assert cluster.status == ClusterStatus.AUTO_MERGED
    assert cluster.review_reasons == []
