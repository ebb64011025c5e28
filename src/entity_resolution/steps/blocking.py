"""Candidate generation by blocking.

Each record gets a set of bucket keys and only records sharing a key are
scored. Keys are deletion neighbourhoods: a string plus every string obtained
by deleting one of its characters. Two strings one substitution, insertion,
deletion or adjacent transposition apart always have a neighbour in common, so
a single edit never separates a value from its original.

Neighbourhoods are taken over the whole compacted value and, for names,
addresses and organization names, over each significant token as well. Values
that differ by at most one edit per token therefore keep a shared bucket no
matter how many of their tokens were edited.
"""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import jellyfish

from entity_resolution.config import DEFAULT_CONFIG, ResolutionConfig
from entity_resolution.logging import get_logger
from entity_resolution.models import NormalizedRecord
from entity_resolution.schema import FieldTag
from entity_resolution.steps.normalize import ADDRESS_DESIGNATORS

logger = get_logger(__name__)

MIN_TOKEN_LENGTH = 3
# Below this Jaro-Winkler gets no prefix boost, and unrelated short strings
# clear the threshold without sharing any edit-neighbourhood.
MIN_BLOCKING_THRESHOLD = 0.7


def deletion_neighbourhood(value: str) -> set[str]:
    """``value`` plus every string one deleted character away from it."""
    neighbours = {value}
    if len(value) > 1:
        neighbours.update(value[:i] + value[i + 1 :] for i in range(len(value)))
    return neighbours


def _value_keys(tag: FieldTag, value: str) -> set[str]:
    compact = value.replace(" ", "")
    return {f"{tag.value}:v:{neighbour}" for neighbour in deletion_neighbourhood(compact)}


def _token_keys(tag: FieldTag, value: str, skip: Iterable[str] = ()) -> set[str]:
    skipped = set(skip)
    keys: set[str] = set()
    for token in value.split():
        if len(token) < MIN_TOKEN_LENGTH or token in skipped:
            continue
        keys |= {f"{tag.value}:t:{neighbour}" for neighbour in deletion_neighbourhood(token)}
    return keys


def blocking_keys(record: NormalizedRecord) -> set[str]:
    keys: set[str] = set()

    if record.name:
        keys |= _value_keys(FieldTag.NAME, record.name)
        keys |= _token_keys(FieldTag.NAME, record.name)
        for token in record.name.split():
            if token.isalpha():
                keys.add(f"name:sx:{jellyfish.soundex(token)}")

    if record.email:
        keys.add(f"email:eq:{record.email}")
        local = record.email.split("@", 1)[0]
        if local:
            keys |= _value_keys(FieldTag.EMAIL, local)

    if record.phone:
        keys |= _value_keys(FieldTag.PHONE, record.phone)

    if record.address:
        keys |= _value_keys(FieldTag.ADDRESS, record.address)
        keys |= _token_keys(FieldTag.ADDRESS, record.address, skip=ADDRESS_DESIGNATORS)

    if record.organization_name:
        keys |= _value_keys(FieldTag.ORGANIZATION_NAME, record.organization_name)
        keys |= _token_keys(FieldTag.ORGANIZATION_NAME, record.organization_name)

    if record.organization_id:
        keys.add(f"organization_id:eq:{record.organization_id}")
        keys |= _value_keys(FieldTag.ORGANIZATION_ID, record.organization_id)

    return keys


@dataclass(slots=True)
class BlockingArena:
    """Bucket key -> dense record indexes, owned by one resolution run."""

    buckets: dict[str, list[int]] = field(default_factory=dict)

    @classmethod
    def build(cls, records: Sequence[NormalizedRecord]) -> "BlockingArena":
        buckets: dict[str, list[int]] = defaultdict(list)
        for index, record in enumerate(records):
            for key in sorted(blocking_keys(record)):
                buckets[key].append(index)
        return cls(buckets=dict(buckets))

    def candidate_pairs(self) -> list[tuple[int, int]]:
        """Unordered index pairs sharing at least one bucket, each listed once."""
        pairs: set[tuple[int, int]] = set()
        for members in self.buckets.values():
            for position, left in enumerate(members):
                for right in members[position + 1 :]:
                    pairs.add((left, right) if left < right else (right, left))
        return sorted(pairs)


class ExhaustiveCandidateGenerator:
    """Every pair; the reference blocking is checked against."""

    def candidate_pairs(self, records: Sequence[NormalizedRecord]) -> list[tuple[int, int]]:
        return [(i, j) for i in range(len(records)) for j in range(i + 1, len(records))]


class BucketCandidateGenerator:
    """Pairs sharing a blocking bucket.

    The edit-neighbourhood keys only track what Jaro-Winkler accepts while
    every field threshold is at least ``MIN_BLOCKING_THRESHOLD``. A looser
    configuration compares every pair instead.
    """

    def __init__(self, config: ResolutionConfig | None = None) -> None:
        self.config = config or DEFAULT_CONFIG

    @property
    def exhaustive(self) -> bool:
        return self.config.lowest_threshold < MIN_BLOCKING_THRESHOLD

    def candidate_pairs(self, records: Sequence[NormalizedRecord]) -> list[tuple[int, int]]:
        if self.exhaustive:
            logger.warning(
                "blocking_bypassed",
                lowest_threshold=self.config.lowest_threshold,
                min_blocking_threshold=MIN_BLOCKING_THRESHOLD,
                record_count=len(records),
            )
            return ExhaustiveCandidateGenerator().candidate_pairs(records)
        return BlockingArena.build(records).candidate_pairs()
