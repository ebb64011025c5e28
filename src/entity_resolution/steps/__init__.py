from entity_resolution.steps.blocking import (
    BlockingArena,
    BucketCandidateGenerator,
    ExhaustiveCandidateGenerator,
    blocking_keys,
)
from entity_resolution.steps.clustering import ClusterBuilder, IdIndex, UnionFind, transition
from entity_resolution.steps.decision import MergeDecision, RuleBasedPairDecider, classify_cluster, should_merge
from entity_resolution.steps.golden import GoldenRecordSynthesizer
from entity_resolution.steps.normalize import RecordNormalizer, display_value, natural_key, normalize_value
from entity_resolution.steps.similarity import jaro_winkler, score

__all__ = [
    "BlockingArena",
    "BucketCandidateGenerator",
    "ExhaustiveCandidateGenerator",
    "blocking_keys",
    "ClusterBuilder",
    "IdIndex",
    "UnionFind",
    "transition",
    "MergeDecision",
    "RuleBasedPairDecider",
    "classify_cluster",
    "should_merge",
    "GoldenRecordSynthesizer",
    "RecordNormalizer",
    "display_value",
    "natural_key",
    "normalize_value",
    "jaro_winkler",
    "score",
]
