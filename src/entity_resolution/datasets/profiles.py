from __future__ import annotations

# Column layout the CLI reads and writes; matches DEFAULT_SCHEMA case-insensitively.
CONTACT_COLUMNS = [
    "name",
    "email",
    "phone",
    "address",
    "organizationName",
    "organizationId",
    "source",
    "ingested_at",
]

RECORD_ID_COLUMN = "record_id"
