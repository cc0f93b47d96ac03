"""Versioned layout of the persisted record collection.

Version 1 was a bare JSON array of records. Version 2 wraps it in an
envelope ``{"version": 2, "records": [...]}``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ..core.errors import SchemaVersionError, StoreImportError
from .domain import OperationKind, PersistedFailureRecord

SCHEMA_VERSION = 2

_V1_REQUIRED = ("id", "type", "payload", "timestamp")


def build_envelope(records: Iterable[PersistedFailureRecord]) -> dict[str, Any]:
    return {"version": SCHEMA_VERSION, "records": [record.to_storage() for record in records]}


def _migrate_v1_record(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise StoreImportError(f"Invalid record structure: {raw!r}")

    missing = [name for name in _V1_REQUIRED if raw.get(name) in (None, "")]
    if missing:
        raise StoreImportError(f"Record {raw.get('id')!r} missing fields: {', '.join(missing)}")

    migrated = dict(raw)
    kind = str(migrated["type"])
    if kind.lower() in {member.value for member in OperationKind}:
        migrated["type"] = kind.lower()
    migrated.setdefault("retryCount", 0)
    migrated.setdefault("priority", 0)
    return migrated


def migrate_payload(raw: Any) -> list[dict[str, Any]]:
    """Upgrade any supported persisted layout to a list of v2 record dicts.

    Raises
    ------
    SchemaVersionError
        If the envelope declares a newer version than this code understands.
    StoreImportError
        If the data matches no known layout.
    """
    if isinstance(raw, list):
        return [_migrate_v1_record(item) for item in raw]

    if not isinstance(raw, dict):
        raise StoreImportError("Invalid operations format: expected an array or a versioned object")

    version = raw.get("version")
    if not isinstance(version, int) or isinstance(version, bool):
        raise StoreImportError(f"Invalid schema version {version!r}")
    if version > SCHEMA_VERSION:
        raise SchemaVersionError(version, SCHEMA_VERSION)
    if version < 2:
        return migrate_payload(raw.get("records"))

    records = raw.get("records")
    if not isinstance(records, list):
        raise StoreImportError("Versioned payload has no record list")
    return records
