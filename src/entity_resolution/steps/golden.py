from __future__ import annotations

from collections.abc import Sequence

from entity_resolution.models import Cluster, GoldenRecord, SourceRecord
from entity_resolution.schema import FIELD_ORDER, FieldTag
from entity_resolution.steps.normalize import display_value, natural_key, normalize_value

_MULTI_VALUED = (FieldTag.EMAIL, FieldTag.PHONE, FieldTag.ADDRESS)


class GoldenRecordSynthesizer:
    """Deterministic field selection over a cluster's contributing records.

    Per field: if every contributing value agrees after normalization the shared
    value is used; otherwise the most recently ingested record wins, unless a
    reviewer-preferred record carries a value for that field. The record is
    always rebuilt from scratch for the current membership.
    """

    def synthesize(
        self,
        cluster: Cluster,
        records: Sequence[SourceRecord],
        preferred_record_id: str | None = None,
    ) -> GoldenRecord:
        member_ids = set(cluster.record_ids)
        # Most recent first; record id breaks ingestion-time ties.
        ordered = sorted(
            (record for record in records if record.record_id in member_ids),
            key=lambda record: (record.ingested_at, record.record_id),
            reverse=True,
        )

        chosen: dict[FieldTag, str | None] = {}
        for tag in FIELD_ORDER:
            contributions = [
                (record.record_id, record.field_value(tag))
                for record in ordered
                if normalize_value(record.field_value(tag), tag)
            ]
            chosen[tag] = self._select(tag, contributions, preferred_record_id)

        distinct = {tag: _distinct_display_values(ordered, tag) for tag in _MULTI_VALUED}

        return GoldenRecord(
            golden_id=cluster.cluster_id.replace("cluster_", "golden_", 1),
            cluster_id=cluster.cluster_id,
            provenance=sorted(cluster.record_ids),
            batch_ids=sorted({record.batch_id for record in ordered} or {cluster.batch_id}),
            confidence=cluster.confidence,
            natural_key=natural_key(
                chosen[FieldTag.NAME],
                chosen[FieldTag.EMAIL],
                chosen[FieldTag.PHONE],
                chosen[FieldTag.ORGANIZATION_ID],
            ),
            emails=distinct[FieldTag.EMAIL],
            phones=distinct[FieldTag.PHONE],
            addresses=distinct[FieldTag.ADDRESS],
            **{tag.value: value for tag, value in chosen.items()},
        )

    def _select(
        self,
        tag: FieldTag,
        contributions: list[tuple[str, str | None]],
        preferred_record_id: str | None,
    ) -> str | None:
        if not contributions:
            return None
        winner = contributions[0][1]
        canonical = {normalize_value(value, tag) for _, value in contributions}
        if len(canonical) > 1 and preferred_record_id is not None:
            for record_id, value in contributions:
                if record_id == preferred_record_id:
                    winner = value
                    break
        return display_value(winner, tag)


def _distinct_display_values(records: Sequence[SourceRecord], tag: FieldTag) -> list[str]:
    seen: set[str] = set()
    values: list[str] = []
    for record in records:
        raw = record.field_value(tag)
        key = normalize_value(raw, tag)
        if not key or key in seen:
            continue
        seen.add(key)
        shown = display_value(raw, tag)
        if shown:
            values.append(shown)
    return values
