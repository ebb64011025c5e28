import pytest

from entity_resolution.config import MatchRules, ResolutionConfig
from entity_resolution.models import MatchRule
from entity_resolution.schema import FieldTag
from entity_resolution.steps.decision import RuleBasedPairDecider, should_merge
from entity_resolution.steps.normalize import RecordNormalizer
from entity_resolution.steps.similarity import jaro_winkler, score

from conftest import make_record

_normalizer = RecordNormalizer()


def _norm(record_id: str, **fields: str):
    return _normalizer.normalize_record(make_record(record_id, **fields))


def test_jaro_winkler_edges_and_known_value() -> None:
    assert jaro_winkler("", "martha") == 0.0
    assert jaro_winkler("martha", "martha") == 1.0
    assert jaro_winkler("martha", "marhta") == pytest.approx(0.961, abs=1e-3)
    assert jaro_winkler("martha", "marhta", scaling_factor=0.0) == pytest.approx(0.944, abs=1e-3)


def test_jaro_winkler_is_symmetric() -> None:
    pairs = [("dwayne", "duane"), ("dixon", "dicksonx"), ("jonathan smith", "jon smyth")]
    for left, right in pairs:
        assert jaro_winkler(left, right) == jaro_winkler(right, left)


def test_score_is_symmetric() -> None:
    left = _norm("a", name="Jonathan Smith", email="jon@example.com", phone="555 0100", address="1 Elm Street")
    right = _norm("b", name="Jon Smyth", email="jsmyth@example.com", phone="555 0101", address="1 Elm St")

    assert score(left, right).overall_similarity == score(right, left).overall_similarity
    assert score(left, right).field_similarities == score(right, left).field_similarities


def test_absent_fields_are_not_penalized() -> None:
    left = _norm("a", name="Jane Smith", email="jane@example.com", phone="555-0100")
    right = _norm("b", name="Jane Smith")

    similarity = score(left, right)

    assert similarity.overall_similarity == 1.0
    assert set(similarity.field_similarities) == {FieldTag.NAME}
    assert similarity.matched_fields == [FieldTag.NAME]


def test_score_without_comparable_fields_is_zero() -> None:
    similarity = score(_norm("a", name="Jane Smith"), _norm("b", email="jane@example.com"))

    assert similarity.overall_similarity == 0.0
    assert similarity.reason == "Low similarity"


def test_fuzzy_toggles_remove_fields_from_comparison() -> None:
    config = ResolutionConfig(rules=MatchRules(fuzzy_name_match=False))
    similarity = score(_norm("a", name="Jane Smith", phone="5550100"), _norm("b", name="Jane Smith", phone="5550100"), config)

    assert FieldTag.NAME not in similarity.field_similarities
    assert similarity.matched_fields == [FieldTag.PHONE]


def test_exact_email_wins_over_divergent_fields() -> None:
    left = _norm("a", name="Alice Walker", email="shared@example.com", phone="555-0100")
    right = _norm("b", name="Bob Stone", email="SHARED@example.com", phone="777-9999")

    decision = should_merge(left, right)

    assert decision.should_merge
    assert decision.confidence == 1.0
    assert decision.rule == MatchRule.EXACT_EMAIL
    assert decision.reason == "Exact email match"


def test_exact_email_rule_can_be_disabled() -> None:
    config = ResolutionConfig(rules=MatchRules(exact_email_match=False))
    left = _norm("a", name="Alice Walker", email="shared@example.com")
    right = _norm("b", name="Bob Stone", email="shared@example.com")

    decision = should_merge(left, right, config)

    assert decision.rule == MatchRule.FUZZY
    assert not decision.should_merge


def test_exact_organization_id_is_checked_after_email() -> None:
    left = _norm("a", name="Acme Buyer", email="buyer@acme.com", organization_id="ORG-1")
    right = _norm("b", name="Someone Else", email="other@acme.com", organization_id="org-1")

    decision = should_merge(left, right)

    assert decision.rule == MatchRule.EXACT_ORGANIZATION_ID
    assert decision.confidence == 1.0
    assert decision.reason == "Exact organization ID match"


def test_fuzzy_match_reports_matched_fields() -> None:
    decision = should_merge(_norm("a", name="Jonathan Smith"), _norm("b", name="Jonathon Smith"))

    assert decision.should_merge
    assert decision.rule == MatchRule.FUZZY
    assert decision.confidence > 0.85
    assert decision.reason.startswith("Matched on: name")
    assert "High confidence" in decision.reason


def test_decider_orders_pair_ids_and_drops_rejections() -> None:
    decider = RuleBasedPairDecider()
    config = ResolutionConfig()

    pair = decider.decide(_norm("z9", email="x@example.com"), _norm("a1", email="X@example.com"), config)
    rejected = decider.decide(_norm("a", name="Alice Walker"), _norm("b", name="Zebulon Quartermaine"), config)

    assert pair is not None
    assert pair.key == ("a1", "z9")
    assert rejected is None
