from __future__ import annotations

from rapidfuzz.distance import JaroWinkler

from entity_resolution.config import DEFAULT_CONFIG, ResolutionConfig
from entity_resolution.models import EntitySimilarity, NormalizedRecord
from entity_resolution.schema import FIELD_ORDER, FieldTag

MAX_PREFIX_WEIGHT = 0.25


def jaro_winkler(left: str, right: str, scaling_factor: float = 0.1) -> float:
    """Jaro-Winkler similarity in [0, 1], boosted for shared prefixes.

    Inputs are put in a canonical order so ``jaro_winkler(a, b) == jaro_winkler(b, a)``
    holds bit-for-bit.
    """
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    first, second = sorted((left, right))
    prefix_weight = min(max(scaling_factor, 0.0), MAX_PREFIX_WEIGHT)
    return JaroWinkler.similarity(first, second, prefix_weight=prefix_weight)


def compared_fields(config: ResolutionConfig) -> tuple[FieldTag, ...]:
    fields = []
    for tag in FIELD_ORDER:
        if tag == FieldTag.NAME and not config.rules.fuzzy_name_match:
            continue
        if tag == FieldTag.PHONE and not config.rules.fuzzy_phone_match:
            continue
        fields.append(tag)
    return tuple(fields)


def score(
    left: NormalizedRecord,
    right: NormalizedRecord,
    config: ResolutionConfig = DEFAULT_CONFIG,
) -> EntitySimilarity:
    """Weighted multi-field similarity between two normalized records.

    Fields absent on either side are skipped entirely: they contribute neither
    a similarity nor a weight, so a missing value is never read as a mismatch.
    """
    field_similarities: dict[FieldTag, float] = {}
    matched: list[FieldTag] = []
    weighted_sum = 0.0
    total_weight = 0.0

    for tag in compared_fields(config):
        left_value = left.value(tag)
        right_value = right.value(tag)
        if not left_value or not right_value:
            continue
        similarity = jaro_winkler(left_value, right_value, config.jaro_winkler_scaling_factor)
        field_similarities[tag] = similarity
        if similarity >= config.thresholds.for_field(tag):
            matched.append(tag)
        weight = config.weights.for_field(tag)
        weighted_sum += similarity * weight
        total_weight += weight

    overall = weighted_sum / total_weight if total_weight > 0 else 0.0
    return EntitySimilarity(
        field_similarities=field_similarities,
        overall_similarity=overall,
        matched_fields=matched,
        reason=_reason(matched, overall, config),
    )


def _reason(matched: list[FieldTag], overall: float, config: ResolutionConfig) -> str:
    parts: list[str] = []
    if matched:
        parts.append(f"Matched on: {', '.join(tag.value for tag in matched)}")
    if overall >= config.min_auto_merge_confidence:
        parts.append(f"High confidence ({overall * 100:.1f}%)")
    return "; ".join(parts) or "Low similarity"
