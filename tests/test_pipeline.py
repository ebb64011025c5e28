from dataclasses import asdict

import pytest
from structlog.testing import capture_logs

from entity_resolution.config import ResolutionConfig
from entity_resolution.datasets import ReferenceDatasetGenerator
from entity_resolution.errors import RecordValidationError
from entity_resolution.models import ClusterStatus, MatchRule
from entity_resolution.runners import LocalResolutionPipeline, resolve_batch, resolve_batches

from conftest import make_record


def test_five_record_scenario(five_records) -> None:
    result = LocalResolutionPipeline().run(five_records)

    memberships = [cluster.record_ids for cluster in result.clusters]
    assert memberships == [["r1", "r2"], ["r3", "r4"]]
    assert result.singletons == ["r5"]

    email_cluster, name_cluster = result.clusters
    assert email_cluster.confidence == 1.0
    assert email_cluster.edges[0].rule == MatchRule.EXACT_EMAIL
    assert name_cluster.edges[0].rule == MatchRule.FUZZY
    assert name_cluster.confidence > 0.85

    for golden in result.golden_records:
        assert "r5" not in golden.provenance
    assert len(result.golden_records) == 2


def test_resolve_batch_returns_clusters(five_records) -> None:
    clusters = resolve_batch(five_records)

    assert [cluster.record_ids for cluster in clusters] == [["r1", "r2"], ["r3", "r4"]]
    assert all(cluster.status == ClusterStatus.MERGED for cluster in clusters)


def test_rerunning_an_unchanged_batch_is_idempotent(five_records) -> None:
    pipeline = LocalResolutionPipeline()

    first = pipeline.run(five_records)
    second = pipeline.run(list(reversed(five_records)))

    assert [asdict(cluster) for cluster in first.clusters] == [asdict(cluster) for cluster in second.clusters]
    assert first.stats.input_hash == second.stats.input_hash


def test_parallel_scoring_matches_serial_scoring() -> None:
    records = ReferenceDatasetGenerator(seed=3).generate(size=120, duplicate_rate=0.3, batch_id="batch_gen")

    serial = LocalResolutionPipeline(config=ResolutionConfig(scoring_workers=1)).run(records)
    parallel = LocalResolutionPipeline(config=ResolutionConfig(scoring_workers=4, scoring_chunk_size=16)).run(records)

    assert [cluster.record_ids for cluster in serial.clusters] == [cluster.record_ids for cluster in parallel.clusters]
    assert [pair.key for pair in serial.suggestions] == [pair.key for pair in parallel.suggestions]


def test_invalid_records_are_excluded_with_a_warning() -> None:
    records = [
        make_record("ok1", 0, email="a@example.com"),
        make_record("ok2", 1, email="A@example.com"),
        make_record("blank", 2, name="   "),
        make_record("ok1", 3, email="dup@example.com"),
    ]

    with capture_logs() as logs:
        result = LocalResolutionPipeline().run(records)

    assert [error.record_id for error in result.excluded] == ["blank", "ok1"]
    assert result.stats.record_count == 4
    assert result.stats.excluded_count == 2
    assert [cluster.record_ids for cluster in result.clusters] == [["ok1", "ok2"]]
    warnings = [entry for entry in logs if entry["event"] == "record_excluded"]
    assert len(warnings) == 2
    assert all(entry["log_level"] == "warning" for entry in warnings)


def test_mixed_batches_are_rejected() -> None:
    records = [make_record("a", batch_id="b1", email="x@example.com"), make_record("b", batch_id="b2", name="Y")]

    with pytest.raises(RecordValidationError):
        LocalResolutionPipeline().run(records)


def test_empty_batch_produces_empty_result() -> None:
    result = LocalResolutionPipeline().run([], batch_id="empty")

    assert result.batch_id == "empty"
    assert result.clusters == []
    assert result.singletons == []


def test_suggestions_and_stats() -> None:
    records = [
        make_record("s1", 0, name="Jonathan Smith", phone="555 0100"),
        make_record("s2", 1, name="Jonathon Smith", phone="555-0100"),
        make_record("s3", 2, name="Other Person", email="o@example.com"),
        make_record("s4", 3, name="Another Name", email="O@example.com"),
    ]

    result = LocalResolutionPipeline().run(records)

    confidences = [pair.confidence for pair in result.suggestions]
    assert confidences == sorted(confidences, reverse=True)
    assert result.stats.accepted_pairs == 2
    assert result.stats.clusters_created == 2
    assert result.stats.auto_merged == 2
    assert result.stats.golden_records_created == 2
    assert result.stats.needs_review == 0


def test_batches_resolve_concurrently_and_independently(five_records) -> None:
    other = [
        make_record("o1", 0, batch_id="batch_2", email="same@example.com"),
        make_record("o2", 1, batch_id="batch_2", email="same@example.com"),
    ]

    results = resolve_batches({"batch_1": five_records, "batch_2": other}, max_workers=2)

    assert set(results) == {"batch_1", "batch_2"}
    assert len(results["batch_1"].clusters) == 2
    assert [cluster.record_ids for cluster in results["batch_2"].clusters] == [["o1", "o2"]]
    assert results["batch_2"].clusters[0].batch_id == "batch_2"
