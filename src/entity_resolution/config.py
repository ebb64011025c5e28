"""Resolution run configuration.

A ``ResolutionConfig`` is validated once, when it is built, and is frozen
afterwards. Any out-of-range value surfaces as ``ConfigurationError`` so a run
never starts on a partially applied config.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from entity_resolution.errors import ConfigurationError
from entity_resolution.schema import FieldTag


class _FrozenConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"invalid {type(self).__name__}: {exc}") from exc


class FieldThresholds(_FrozenConfig):
    """Similarity at or above which a field counts as matched."""

    name: float = Field(default=0.85, ge=0.0, le=1.0)
    email: float = Field(default=0.95, ge=0.0, le=1.0)
    phone: float = Field(default=0.90, ge=0.0, le=1.0)
    address: float = Field(default=0.75, ge=0.0, le=1.0)
    organization_name: float = Field(default=0.80, ge=0.0, le=1.0)
    organization_id: float = Field(default=0.95, ge=0.0, le=1.0)

    def for_field(self, tag: FieldTag) -> float:
        return getattr(self, tag.value)


class FieldWeights(_FrozenConfig):
    """Independent per-field contributions; they need not sum to 1."""

    name: float = Field(default=0.4, ge=0.0, le=1.0)
    email: float = Field(default=0.3, ge=0.0, le=1.0)
    phone: float = Field(default=0.2, ge=0.0, le=1.0)
    address: float = Field(default=0.1, ge=0.0, le=1.0)
    organization_name: float = Field(default=0.05, ge=0.0, le=1.0)
    organization_id: float = Field(default=0.05, ge=0.0, le=1.0)

    def for_field(self, tag: FieldTag) -> float:
        return getattr(self, tag.value)


class MatchRules(_FrozenConfig):
    exact_email_match: bool = True
    exact_org_id_match: bool = True
    fuzzy_name_match: bool = True
    fuzzy_phone_match: bool = True


class ResolutionConfig(_FrozenConfig):
    thresholds: FieldThresholds = Field(default_factory=FieldThresholds)
    weights: FieldWeights = Field(default_factory=FieldWeights)
    min_auto_merge_confidence: float = Field(default=0.85, ge=0.0, le=1.0)
    max_auto_merge_cluster_size: int = Field(default=10, ge=2)
    rules: MatchRules = Field(default_factory=MatchRules)
    jaro_winkler_scaling_factor: float = Field(default=0.1, ge=0.0, le=0.25)

    # Pair scoring fan-out.
    scoring_workers: int = Field(default=4, ge=1)
    scoring_chunk_size: int = Field(default=2048, ge=1)

    @property
    def lowest_threshold(self) -> float:
        return min(self.thresholds.for_field(tag) for tag in FieldTag)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ResolutionConfig":
        return cls(**dict(data))

    @classmethod
    def from_file(cls, path: Path) -> "ResolutionConfig":
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"cannot read config {path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ConfigurationError(f"config {path} must contain a JSON object")
        return cls.from_mapping(payload)


DEFAULT_CONFIG = ResolutionConfig()
