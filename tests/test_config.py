import json

import pytest

from entity_resolution.config import DEFAULT_CONFIG, ResolutionConfig
from entity_resolution.errors import ConfigurationError
from entity_resolution.schema import FieldTag


def test_defaults() -> None:
    assert DEFAULT_CONFIG.thresholds.for_field(FieldTag.NAME) == 0.85
    assert DEFAULT_CONFIG.thresholds.for_field(FieldTag.EMAIL) == 0.95
    assert DEFAULT_CONFIG.weights.for_field(FieldTag.NAME) == 0.4
    assert DEFAULT_CONFIG.min_auto_merge_confidence == 0.85
    assert DEFAULT_CONFIG.max_auto_merge_cluster_size == 10
    assert DEFAULT_CONFIG.rules.exact_email_match
    assert DEFAULT_CONFIG.lowest_threshold == 0.75


@pytest.mark.parametrize(
    "payload",
    [
        {"min_auto_merge_confidence": 1.5},
        {"thresholds": {"name": -0.1}},
        {"weights": {"email": 2}},
        {"max_auto_merge_cluster_size": 1},
        {"jaro_winkler_scaling_factor": 0.3},
        {"scoring_workers": 0},
        {"unknown_option": True},
    ],
)
def test_out_of_range_config_is_rejected(payload) -> None:
    with pytest.raises(ConfigurationError):
        ResolutionConfig.from_mapping(payload)


def test_config_is_frozen() -> None:
    config = ResolutionConfig()

    with pytest.raises(Exception):
        config.min_auto_merge_confidence = 0.5  # type: ignore[misc]


def test_config_from_file(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"thresholds": {"name": 0.9}, "rules": {"fuzzy_phone_match": False}}), encoding="utf-8")

    config = ResolutionConfig.from_file(path)

    assert config.thresholds.name == 0.9
    assert config.thresholds.email == 0.95
    assert not config.rules.fuzzy_phone_match


def test_unreadable_config_file(tmp_path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    listed = tmp_path / "listed.json"
    listed.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        ResolutionConfig.from_file(broken)
    with pytest.raises(ConfigurationError):
        ResolutionConfig.from_file(listed)
    with pytest.raises(ConfigurationError):
        ResolutionConfig.from_file(tmp_path / "missing.json")
