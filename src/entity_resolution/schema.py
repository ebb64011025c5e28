from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Iterable, Mapping, Sequence


class FieldTag(StrEnum):
    """Comparable record fields. Values double as ``SourceRecord`` attribute names."""

    NAME = "name"
    EMAIL = "email"
    PHONE = "phone"
    ADDRESS = "address"
    ORGANIZATION_NAME = "organization_name"
    ORGANIZATION_ID = "organization_id"


# Stable iteration order for scoring, blocking and golden-record synthesis.
FIELD_ORDER: tuple[FieldTag, ...] = tuple(FieldTag)

REQUIRED_UPLOAD_TAGS: tuple[FieldTag, ...] = (FieldTag.NAME, FieldTag.EMAIL)


@dataclass(frozen=True)
class RecordSchema:
    """Maps source-system columns to stable semantic tags."""

    tag_to_columns: Mapping[FieldTag, tuple[str, ...]]

    @classmethod
    def from_mapping(cls, mapping: Mapping[FieldTag, Sequence[str]]) -> "RecordSchema":
        frozen = {tag: tuple(columns) for tag, columns in mapping.items()}
        return cls(tag_to_columns=frozen)

    def columns_for(self, tag: FieldTag) -> tuple[str, ...]:
        return self.tag_to_columns.get(tag, ())

    def values_for(self, attributes: Mapping[str, object], tag: FieldTag) -> list[str]:
        lowered = {str(key).strip().lower(): value for key, value in attributes.items()}
        values: list[str] = []
        for column in self.columns_for(tag):
            value = lowered.get(column.lower())
            if value is None:
                continue
            text = str(value).strip()
            if text:
                values.append(text)
        return values

    def joined_value(self, attributes: Mapping[str, object], tag: FieldTag, sep: str = " ") -> str:
        return sep.join(self.values_for(attributes, tag)).strip()

    def missing_tags(self, header: Iterable[str], required: Sequence[FieldTag] = REQUIRED_UPLOAD_TAGS) -> list[FieldTag]:
        """Return required tags with no matching column in ``header`` (case-insensitive)."""
        present = {column.strip().lower() for column in header if column}
        missing: list[FieldTag] = []
        for tag in required:
            if not any(column.lower() in present for column in self.columns_for(tag)):
                missing.append(tag)
        return missing


DEFAULT_SCHEMA = RecordSchema.from_mapping(
    {
        FieldTag.NAME: ["name", "full_name", "fullname"],
        FieldTag.EMAIL: ["email", "email_address"],
        FieldTag.PHONE: ["phone", "phone_number", "telephone"],
        FieldTag.ADDRESS: ["address", "street_address"],
        FieldTag.ORGANIZATION_NAME: ["organizationname", "organization_name", "company"],
        FieldTag.ORGANIZATION_ID: ["organizationid", "organization_id", "company_id"],
    }
)
