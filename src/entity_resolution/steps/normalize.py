"""Field canonicalization.

Two forms are produced per field: a comparison form (folded, punctuation-free,
used for scoring and blocking) and a display form (used for golden records).
Both are pure and never raise; unparseable input degrades to a best-effort
string, and blank input becomes ``None``.
"""
from __future__ import annotations

import re
import unicodedata
from collections.abc import Callable, Sequence

from entity_resolution.models import NormalizedRecord, SourceRecord
from entity_resolution.schema import FIELD_ORDER, FieldTag

_NON_WORD = re.compile(r"[\W_]+", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")
_NON_DIGIT = re.compile(r"[^0-9]")
_PHONE_EXTENSION = re.compile(r"\s*(?:ext\.?|x|#)\s*\d+\s*$", re.IGNORECASE)

_ADDRESS_ABBREVIATIONS = {
    "street": "st",
    "avenue": "ave",
    "road": "rd",
    "boulevard": "blvd",
    "drive": "dr",
    "lane": "ln",
    "court": "ct",
    "place": "pl",
    "apartment": "apt",
    "suite": "ste",
    "floor": "fl",
    "room": "rm",
    "north": "n",
    "south": "s",
    "east": "e",
    "west": "w",
}
# Street designators shared by most addresses; too common to block on.
ADDRESS_DESIGNATORS = frozenset(_ADDRESS_ABBREVIATIONS.values())

_ORGANIZATION_SUFFIXES = {
    "inc",
    "incorporated",
    "llc",
    "ltd",
    "limited",
    "corp",
    "corporation",
    "co",
    "plc",
    "gmbh",
    "ag",
    "sa",
    "bv",
}

# Display-form casing rules.
_NAME_PARTICLES = {"de", "da", "do", "dos", "das", "del", "von", "der", "den"}
_ADDRESS_UPPER = {
    "st", "rd", "th", "ave", "blvd", "dr", "ln", "ct", "pl", "apt", "ste", "fl", "rm",
    "n", "s", "e", "w", "ne", "nw", "se", "sw", "north", "south", "east", "west",
}


def _text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _words(text: str) -> list[str]:
    return _collapse(_NON_WORD.sub(" ", _fold(text))).split()


def normalize_name(value: object) -> str | None:
    text = _text(value)
    if text is None:
        return None
    return " ".join(_words(text)) or None


def normalize_address(value: object) -> str | None:
    text = _text(value)
    if text is None:
        return None
    words = [_ADDRESS_ABBREVIATIONS.get(word, word) for word in _words(text)]
    return " ".join(words) or None


def normalize_organization_name(value: object) -> str | None:
    text = _text(value)
    if text is None:
        return None
    words = _words(text)
    while len(words) > 1 and words[-1] in _ORGANIZATION_SUFFIXES:
        words.pop()
    return " ".join(words) or None


def normalize_email(value: object) -> str | None:
    text = _text(value)
    if text is None:
        return None
    return text.lower()


def normalize_phone(value: object) -> str | None:
    text = _text(value)
    if text is None:
        return None
    digits = _NON_DIGIT.sub("", _PHONE_EXTENSION.sub("", text))
    if not digits:
        # Nothing dialable; keep the folded text rather than dropping the field.
        return " ".join(_words(text)) or None
    if digits.startswith("00") and len(digits) > 2:
        digits = digits[2:]
    elif len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    return digits


def normalize_organization_id(value: object) -> str | None:
    text = _text(value)
    if text is None:
        return None
    return _WHITESPACE.sub("", text).lower() or None


_COMPARISON_FORMS: dict[FieldTag, Callable[[object], str | None]] = {
    FieldTag.NAME: normalize_name,
    FieldTag.EMAIL: normalize_email,
    FieldTag.PHONE: normalize_phone,
    FieldTag.ADDRESS: normalize_address,
    FieldTag.ORGANIZATION_NAME: normalize_organization_name,
    FieldTag.ORGANIZATION_ID: normalize_organization_id,
}


def normalize_value(value: object, tag: FieldTag) -> str | None:
    """Comparison-canonical form of one raw field value."""
    return _COMPARISON_FORMS[tag](value)


def _display_name(text: str) -> str:
    words = _collapse(text).split(" ")
    out: list[str] = []
    for index, word in enumerate(words):
        lowered = word.lower()
        if index > 0 and lowered in _NAME_PARTICLES:
            out.append(lowered)
        elif lowered == "van":
            out.append("Van")
        else:
            out.append(word[:1].upper() + word[1:].lower())
    return " ".join(out)


def _display_address(text: str) -> str:
    out: list[str] = []
    for word in _collapse(text).split(" "):
        bare = word.strip(".,").lower()
        if bare in _ADDRESS_UPPER:
            out.append(word.upper())
        else:
            out.append(word[:1].upper() + word[1:].lower())
    return " ".join(out)


def display_value(value: object, tag: FieldTag) -> str | None:
    """Human-facing canonical form used when synthesizing golden records."""
    text = _text(value)
    if text is None:
        return None
    if tag == FieldTag.NAME:
        return _display_name(text)
    if tag == FieldTag.ADDRESS:
        return _display_address(text)
    if tag == FieldTag.EMAIL:
        return normalize_email(text)
    if tag == FieldTag.PHONE:
        return normalize_phone(text)
    if tag == FieldTag.ORGANIZATION_ID:
        return _WHITESPACE.sub("", text)
    return _collapse(text)


def natural_key(
    name: object,
    email: object = None,
    phone: object = None,
    organization_id: object = None,
) -> str:
    """Deterministic identifier for a golden record.

    An organization id is the most stable key when present; otherwise the
    normalized name is combined with whatever email and phone exist.
    """
    org = normalize_organization_id(organization_id)
    if org:
        return f"org:{org}"
    parts = [normalize_name(name) or ""]
    normalized_email = normalize_email(email)
    if normalized_email:
        parts.append(f"email:{normalized_email}")
    normalized_phone = normalize_phone(phone)
    if normalized_phone:
        parts.append(f"phone:{normalized_phone}")
    return "|".join(parts)


class RecordNormalizer:
    """Builds NormalizedRecords, with optional per-tag overrides of the default rules."""

    def __init__(self, tag_transforms: dict[FieldTag, Callable[[object], str | None]] | None = None) -> None:
        self._transforms = dict(_COMPARISON_FORMS)
        self._transforms.update(tag_transforms or {})

    def normalize_record(self, record: SourceRecord) -> NormalizedRecord:
        values = {tag.value: self._transforms[tag](record.field_value(tag)) for tag in FIELD_ORDER}
        return NormalizedRecord(
            record_id=record.record_id,
            batch_id=record.batch_id,
            ingested_at=record.ingested_at,
            **values,
        )

    def normalize(self, records: Sequence[SourceRecord]) -> list[NormalizedRecord]:
        return [self.normalize_record(record) for record in records]
