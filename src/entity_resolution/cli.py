from __future__ import annotations

import argparse
import csv
import json
from collections.abc import Sequence
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from entity_resolution.config import ResolutionConfig
from entity_resolution.datasets import CONTACT_COLUMNS, RECORD_ID_COLUMN, ReferenceDatasetGenerator
from entity_resolution.errors import EntityResolutionError, RecordValidationError
from entity_resolution.logging import configure_logging, get_logger
from entity_resolution.models import Cluster, ResolutionResult, SourceRecord
from entity_resolution.runners import LocalResolutionPipeline
from entity_resolution.schema import DEFAULT_SCHEMA, FieldTag, RecordSchema

logger = get_logger(__name__)

_CSV_FIELD_COLUMNS = {
    FieldTag.NAME: "name",
    FieldTag.EMAIL: "email",
    FieldTag.PHONE: "phone",
    FieldTag.ADDRESS: "address",
    FieldTag.ORGANIZATION_NAME: "organizationName",
    FieldTag.ORGANIZATION_ID: "organizationId",
}


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        if args.command == "run":
            run(
                input_csv=args.input_csv,
                output_dir=args.output_dir,
                batch_id=args.batch_id,
                config_path=args.config,
                size=args.size,
                duplicate_rate=args.duplicate_rate,
                seed=args.seed,
                show_clusters=args.show_clusters,
            )
            return 0
        if args.command == "generate":
            generate(
                output=args.output,
                size=args.size,
                duplicate_rate=args.duplicate_rate,
                seed=args.seed,
                batch_id=args.batch_id,
            )
            return 0
    except EntityResolutionError as exc:
        logger.error("command_failed", command=args.command, error=str(exc))
        print(f"error: {exc}")
        return 1

    parser.print_help()
    return 2


def run(
    *,
    input_csv: Path | None,
    output_dir: Path,
    batch_id: str,
    config_path: Path | None,
    size: int,
    duplicate_rate: float,
    seed: int,
    show_clusters: int,
) -> ResolutionResult:
    config = ResolutionConfig.from_file(config_path) if config_path else ResolutionConfig()
    output_dir.mkdir(parents=True, exist_ok=True)

    if input_csv is None:
        records = ReferenceDatasetGenerator(seed=seed).generate(
            size=size,
            duplicate_rate=duplicate_rate,
            batch_id=batch_id,
        )
        dataset_path = output_dir / "test_dataset.csv"
        write_records_csv(dataset_path, records)
    else:
        records = read_records_csv(input_csv, batch_id=batch_id)
        dataset_path = input_csv

    result = LocalResolutionPipeline(config=config).run(records)

    clusters_path = output_dir / "clusters.json"
    golden_path = output_dir / "golden_records.json"
    summary_path = output_dir / "summary.json"

    _write_json(clusters_path, [asdict(cluster) for cluster in result.clusters])
    _write_json(golden_path, [asdict(golden) for golden in result.golden_records])
    summary = _build_summary(result, dataset_path=dataset_path, clusters_path=clusters_path)
    _write_json(summary_path, summary)

    print(f"Dataset: {dataset_path}")
    print(f"Clusters: {clusters_path}")
    print(f"Golden records: {golden_path}")
    print(f"Summary: {summary_path}")
    print("---")
    print(f"records={summary['record_count']}")
    print(f"excluded={summary['excluded_count']}")
    print(f"candidate_pairs={summary['candidate_pairs']}")
    print(f"accepted_pairs={summary['accepted_pairs']}")
    print(f"clusters={summary['clusters_created']}")
    print(f"needs_review={summary['needs_review']}")
    print(f"golden_records={summary['golden_records_created']}")
    if show_clusters > 0:
        print("---")
        print("sample_clusters=")
        print(json.dumps(_cluster_sample_payload(result.clusters, records, limit=show_clusters), indent=2))
    return result


def generate(*, output: Path, size: int, duplicate_rate: float, seed: int, batch_id: str) -> Path:
    records = ReferenceDatasetGenerator(seed=seed).generate(size=size, duplicate_rate=duplicate_rate, batch_id=batch_id)
    output.parent.mkdir(parents=True, exist_ok=True)
    write_records_csv(output, records)
    print(f"Dataset: {output} ({len(records)} records)")
    return output


def read_records_csv(path: Path, batch_id: str, schema: RecordSchema = DEFAULT_SCHEMA) -> list[SourceRecord]:
    """Load contacts from CSV; header matching is case-insensitive.

    Rows with an unparseable ``ingested_at`` are skipped with a warning.
    """
    records: list[SourceRecord] = []
    with path.open("r", newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        missing = schema.missing_tags(reader.fieldnames or [])
        if missing:
            raise RecordValidationError(
                f"{path} is missing required columns: {', '.join(tag.value for tag in missing)}"
            )
        for line_no, row in enumerate(reader, start=2):
            lowered = {str(key).strip().lower(): value for key, value in row.items() if key is not None}
            record_id = (lowered.get(RECORD_ID_COLUMN) or "").strip() or f"row_{line_no:07d}"
            try:
                ingested_at = _parse_ingested_at(lowered.get("ingested_at"), record_id)
            except RecordValidationError as exc:
                logger.warning("record_excluded", record_id=record_id, batch_id=batch_id, line=line_no, reason=str(exc))
                continue
            records.append(
                SourceRecord(
                    record_id=record_id,
                    batch_id=batch_id,
                    ingested_at=ingested_at,
                    source=(lowered.get("source") or "").strip() or None,
                    **{tag.value: schema.joined_value(row, tag) or None for tag in _CSV_FIELD_COLUMNS},
                )
            )
    return records


def write_records_csv(path: Path, records: Sequence[SourceRecord]) -> None:
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=[RECORD_ID_COLUMN, *CONTACT_COLUMNS])
        writer.writeheader()
        for record in records:
            row: dict[str, Any] = {RECORD_ID_COLUMN: record.record_id}
            for tag, column in _CSV_FIELD_COLUMNS.items():
                row[column] = record.field_value(tag) or ""
            row["source"] = record.source or ""
            row["ingested_at"] = record.ingested_at.isoformat()
            writer.writerow(row)


def _parse_ingested_at(raw: str | None, record_id: str) -> datetime:
    if raw is None or not raw.strip():
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(raw.strip())
    except ValueError as exc:
        raise RecordValidationError(f"invalid ingested_at {raw!r}", record_id=record_id) from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _build_summary(result: ResolutionResult, *, dataset_path: Path, clusters_path: Path) -> dict[str, object]:
    cluster_sizes = [cluster.size for cluster in result.clusters]
    return {
        "batch_id": result.batch_id,
        **asdict(result.stats),
        "singleton_count": len(result.singletons),
        "avg_cluster_size": round(sum(cluster_sizes) / len(cluster_sizes), 3) if cluster_sizes else 0.0,
        "max_cluster_size": max(cluster_sizes) if cluster_sizes else 0,
        "excluded": [{"record_id": error.record_id, "reason": str(error)} for error in result.excluded],
        "dataset_path": str(dataset_path),
        "clusters_path": str(clusters_path),
    }


def _cluster_sample_payload(
    clusters: Sequence[Cluster],
    records: Sequence[SourceRecord],
    limit: int = 10,
) -> list[dict[str, Any]]:
    by_id = {record.record_id: record for record in records}
    ranked = sorted(clusters, key=lambda cluster: (-cluster.size, cluster.cluster_id))
    payload: list[dict[str, Any]] = []

    for cluster in ranked[:limit]:
        members = [by_id[record_id] for record_id in cluster.record_ids if record_id in by_id]
        differing = _differing_fields(members)
        payload.append(
            {
                "cluster_id": cluster.cluster_id,
                "status": cluster.status.value,
                "size": cluster.size,
                "confidence": round(cluster.confidence, 4),
                "review_reasons": cluster.review_reasons,
                "differing_fields": [tag.value for tag in differing],
                "projected_records": [
                    {
                        "record_id": record.record_id,
                        "projected_values": [record.field_value(tag) or "" for tag in differing],
                    }
                    for record in members
                ],
            }
        )
    return payload


def _differing_fields(records: Sequence[SourceRecord]) -> list[FieldTag]:
    if len(records) <= 1:
        return []
    return [
        tag
        for tag in _CSV_FIELD_COLUMNS
        if len({(record.field_value(tag) or "").strip() for record in records}) > 1
    ]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="entity-resolution", description="Entity resolution CLI")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], default="INFO")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser(
        "run",
        help="Resolve a CSV (or a generated dataset) and output clusters, golden records and a summary",
    )
    run_parser.add_argument("--input-csv", type=Path, default=None)
    run_parser.add_argument("--output-dir", type=Path, default=Path("data/cli_output"))
    run_parser.add_argument("--batch-id", type=str, default="batch_cli")
    run_parser.add_argument("--config", type=Path, default=None, help="JSON resolution config")
    run_parser.add_argument("--size", type=int, default=2000)
    run_parser.add_argument("--duplicate-rate", type=float, default=0.15)
    run_parser.add_argument("--seed", type=int, default=42)
    run_parser.add_argument("--show-clusters", type=int, default=10)

    generate_parser = subparsers.add_parser("generate", help="Write a synthetic contact dataset as CSV")
    generate_parser.add_argument("--size", type=int, default=10000)
    generate_parser.add_argument("--seed", type=int, default=42)
    generate_parser.add_argument("--duplicate-rate", type=float, default=0.15)
    generate_parser.add_argument("--batch-id", type=str, default="batch_reference")
    generate_parser.add_argument("--output", type=Path, default=Path("data/reference_contacts.csv"))

    return parser


def _write_json(path: Path, payload: object) -> None:
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, default=str)


if __name__ == "__main__":
    raise SystemExit(main())
