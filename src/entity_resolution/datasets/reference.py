from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from entity_resolution.models import SourceRecord

_FIRST_NAMES = [
    "Dominique",
    "Luke",
    "Alexander",
    "Sofia",
    "Maya",
    "Daniel",
    "Emma",
    "Christopher",
    "Olivia",
    "Noah",
]
_LAST_NAMES = [
    "Smith",
    "Johnson",
    "Brown",
    "Taylor",
    "Wilson",
    "Davies",
    "Martin",
    "Thomas",
]
_STREETS = [
    "Luke Street",
    "Maple Road",
    "King Avenue",
    "River Lane",
    "Elm Street",
    "Station Road",
]
_TOWNS = ["London", "Manchester", "Leeds", "Bristol", "Birmingham", "Dublin"]
_DOMAINS = ["gmail.com", "outlook.com", "yahoo.com", "example.com"]
_ORGANIZATIONS = ["Acme", "Globex", "Initech", "Umbrella", "Hooli", "Stark Industries"]
_ORGANIZATION_SUFFIXES = ["Inc", "LLC", "Ltd", "Corp"]
_SOURCES = ["crm", "web_form", "import"]
_AREA_CODES = ["212", "312", "415", "617", "702", "808", "917", "503"]

_SHORT_FORMS = {"alexander": "Alex", "christopher": "Chris", "daniel": "Dan", "dominique": "Dom"}
_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


@dataclass(slots=True)
class ReferenceDataset:
    records: list[SourceRecord]
    # duplicate record id -> record id it was derived from
    duplicate_of: dict[str, str] = field(default_factory=dict)


class ReferenceDatasetGenerator:
    """Generate synthetic contact records (with intentional dupes) for tests and benchmarks.

    Every duplicate keeps either its source's email (up to case) or its name, so
    the pair stays discoverable by blocking.
    """

    def __init__(self, seed: int = 7) -> None:
        self._rng = random.Random(seed)

    def generate(self, size: int, duplicate_rate: float = 0.15, batch_id: str = "batch_reference") -> list[SourceRecord]:
        return self.generate_dataset(size, duplicate_rate, batch_id).records

    def generate_dataset(
        self,
        size: int,
        duplicate_rate: float = 0.15,
        batch_id: str = "batch_reference",
    ) -> ReferenceDataset:
        if size <= 0:
            return ReferenceDataset(records=[])

        unique_count = int(size * (1.0 - duplicate_rate))
        unique_count = max(1, min(unique_count, size))

        records: list[SourceRecord] = []
        for i in range(unique_count):
            records.append(self._record(i, batch_id, self._profile(i)))

        duplicate_of: dict[str, str] = {}
        while len(records) < size:
            origin = self._rng.choice(records[:unique_count])
            record_id = f"rec_{len(records):07d}"
            records.append(self._perturb(origin, record_id, len(records)))
            duplicate_of[record_id] = origin.record_id

        self._rng.shuffle(records)
        return ReferenceDataset(records=records, duplicate_of=duplicate_of)

    def _profile(self, idx: int) -> dict[str, str | None]:
        first_name = self._rng.choice(_FIRST_NAMES)
        last_name = self._rng.choice(_LAST_NAMES)
        street = self._rng.choice(_STREETS)
        house_no = str(1 + (idx % 180))
        town = self._rng.choice(_TOWNS)

        organization_name = organization_id = None
        if self._rng.random() < 0.3:
            organization_name = f"{self._rng.choice(_ORGANIZATIONS)} {self._rng.choice(_ORGANIZATION_SUFFIXES)}"
            organization_id = f"ORG-{idx:05d}"

        return {
            "name": f"{first_name} {last_name}",
            "email": f"{first_name}.{last_name}{idx}@{self._rng.choice(_DOMAINS)}".lower(),
            "phone": f"+1 {self._rng.choice(_AREA_CODES)} {self._rng.randrange(10_000_000):07d}",
            "address": f"{house_no} {street}, {town}",
            "organization_name": organization_name,
            "organization_id": organization_id,
        }

    def _record(self, idx: int, batch_id: str, profile: dict[str, str | None]) -> SourceRecord:
        return SourceRecord(
            record_id=f"rec_{idx:07d}",
            batch_id=batch_id,
            ingested_at=_EPOCH + timedelta(minutes=idx),
            source=self._rng.choice(_SOURCES),
            **profile,
        )

    def _perturb(self, origin: SourceRecord, record_id: str, idx: int) -> SourceRecord:
        values: dict[str, str | None] = {
            "name": origin.name,
            "email": origin.email,
            "phone": origin.phone,
            "address": origin.address,
            "organization_name": origin.organization_name,
            "organization_id": origin.organization_id,
        }
        mutation = self._rng.choice(["email", "name", "address", "phone", "mixed", "drop_email"])

        if mutation in {"email", "mixed"} and values["email"]:
            values["email"] = self._email_variant(values["email"])
        if mutation in {"name", "mixed"} and values["name"]:
            values["name"] = self._name_variant(values["name"])
        if mutation in {"address", "mixed"} and values["address"]:
            values["address"] = self._address_variant(values["address"])
        if mutation == "phone" and values["phone"]:
            values["phone"] = self._phone_variant(values["phone"])
        if mutation == "drop_email":
            values["email"] = None

        return SourceRecord(
            record_id=record_id,
            batch_id=origin.batch_id,
            ingested_at=_EPOCH + timedelta(minutes=idx),
            source=self._rng.choice(_SOURCES),
            **values,
        )

    def _email_variant(self, email: str) -> str:
        local, _, domain = email.partition("@")
        variant = self._rng.choice(["upper", "capitalize", "local_upper"])
        if variant == "upper":
            return email.upper()
        if variant == "capitalize":
            return f"{local.capitalize()}@{domain}"
        return f"{local.upper()}@{domain}"

    def _name_variant(self, name: str) -> str:
        first, _, last = name.partition(" ")
        variant = self._rng.choice(["short", "typo", "case"])
        if variant == "short" and first.lower() in _SHORT_FORMS:
            return f"{_SHORT_FORMS[first.lower()]} {last}"
        if variant == "typo" and len(last) > 4:
            return f"{first} {last[:-1]}"
        return name.upper()

    def _address_variant(self, address: str) -> str:
        if "Street" in address:
            variant = address.replace("Street", "St")
        elif "Road" in address:
            variant = address.replace("Road", "Rd")
        else:
            variant = address
        if self._rng.random() < 0.5:
            variant = variant.lower()
        return variant

    def _phone_variant(self, phone: str) -> str:
        digits = "".join(ch for ch in phone if ch.isdigit())[-10:]
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
