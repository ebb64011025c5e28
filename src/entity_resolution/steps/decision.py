from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from entity_resolution.config import DEFAULT_CONFIG, ResolutionConfig
from entity_resolution.models import (
    Cluster,
    ClusterStatus,
    EntitySimilarity,
    MatchPair,
    MatchRule,
    NormalizedRecord,
)
from entity_resolution.steps.clustering import transition
from entity_resolution.steps.similarity import score


@dataclass(slots=True)
class MergeDecision:
    should_merge: bool
    confidence: float
    reason: str
    rule: MatchRule
    similarity: EntitySimilarity | None = None


def should_merge(
    left: NormalizedRecord,
    right: NormalizedRecord,
    config: ResolutionConfig = DEFAULT_CONFIG,
) -> MergeDecision:
    """Apply the merge rules in fixed order: exact email, exact org id, fuzzy score."""
    if config.rules.exact_email_match and left.email and left.email == right.email:
        return MergeDecision(True, 1.0, "Exact email match", MatchRule.EXACT_EMAIL)

    if (
        config.rules.exact_org_id_match
        and left.organization_id
        and left.organization_id == right.organization_id
    ):
        return MergeDecision(True, 1.0, "Exact organization ID match", MatchRule.EXACT_ORGANIZATION_ID)

    similarity = score(left, right, config)
    accepted = (
        similarity.overall_similarity >= config.min_auto_merge_confidence
        and len(similarity.matched_fields) > 0
    )
    return MergeDecision(
        should_merge=accepted,
        confidence=similarity.overall_similarity,
        reason=similarity.reason,
        rule=MatchRule.FUZZY,
        similarity=similarity,
    )


class RuleBasedPairDecider:
    """Turns accepted merge decisions into MatchPair edges; rejected pairs are dropped."""

    def decide(
        self,
        left: NormalizedRecord,
        right: NormalizedRecord,
        config: ResolutionConfig = DEFAULT_CONFIG,
    ) -> MatchPair | None:
        decision = should_merge(left, right, config)
        if not decision.should_merge:
            return None
        if left.record_id > right.record_id:
            left, right = right, left
        similarity = decision.similarity
        return MatchPair(
            left_id=left.record_id,
            right_id=right.record_id,
            confidence=decision.confidence,
            rule=decision.rule,
            reason=decision.reason,
            field_similarities=dict(similarity.field_similarities) if similarity else {},
            matched_fields=list(similarity.matched_fields) if similarity else [],
        )


def classify_cluster(
    cluster: Cluster,
    normalized_by_id: Mapping[str, NormalizedRecord],
    config: ResolutionConfig = DEFAULT_CONFIG,
) -> Cluster:
    """Move a CANDIDATE cluster to AUTO_MERGED or NEEDS_REVIEW."""
    reasons: list[str] = []
    if cluster.size > config.max_auto_merge_cluster_size:
        reasons.append(
            f"cluster size {cluster.size} exceeds auto-merge cap {config.max_auto_merge_cluster_size}"
        )
    if cluster.confidence < config.min_auto_merge_confidence:
        reasons.append(
            f"weakest bridging edge {cluster.confidence:.3f} is below {config.min_auto_merge_confidence:.3f}"
        )
    if config.rules.exact_org_id_match:
        org_ids = {
            normalized_by_id[record_id].organization_id
            for record_id in cluster.record_ids
            if record_id in normalized_by_id and normalized_by_id[record_id].organization_id
        }
        if len(org_ids) > 1:
            reasons.append(f"conflicting organization ids: {', '.join(sorted(org_ids))}")

    cluster.review_reasons = reasons
    target = ClusterStatus.NEEDS_REVIEW if reasons else ClusterStatus.AUTO_MERGED
    return transition(cluster, target)
