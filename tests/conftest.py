from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from entity_resolution.models import SourceRecord

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_record(record_id: str, minutes: int = 0, batch_id: str = "batch_1", **fields: str | None) -> SourceRecord:
    return SourceRecord(
        record_id=record_id,
        batch_id=batch_id,
        ingested_at=T0 + timedelta(minutes=minutes),
        **fields,
    )


@pytest.fixture
def five_records() -> list[SourceRecord]:
    return [
        make_record("r1", 0, name="Alice Walker", email="alice@example.com", phone="555-0100"),
        make_record("r2", 1, name="A. Walker-Jones", email="ALICE@example.com ", address="9 Pine Road"),
        make_record("r3", 2, name="Jonathan Smith"),
        make_record("r4", 3, name="Jonathon Smith"),
        make_record("r5", 4, name="Zebulon Quartermaine", email="zq@elsewhere.org", phone="+44 20 7946 0958"),
    ]
