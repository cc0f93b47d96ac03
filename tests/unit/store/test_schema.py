from __future__ import annotations

from typing import Any

import pytest

from resilient.core.errors import SchemaVersionError, StoreImportError
from resilient.store.schema import SCHEMA_VERSION, migrate_payload


def legacy_record(**overrides: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": "op_1",
        "type": "UPDATE",
        "payload": {"email": "a@b.c"},
        "timestamp": "2024-01-01T00:00:00Z",
    }
    record.update(overrides)
    return record


class TestMigratePayload:
    def test_bare_array_is_migrated(self) -> None:
        migrated = migrate_payload([legacy_record()])

        assert migrated == [
            {
                "id": "op_1",
                "type": "update",
                "payload": {"email": "a@b.c"},
                "timestamp": "2024-01-01T00:00:00Z",
                "retryCount": 0,
                "priority": 0,
            }
        ]

    def test_legacy_custom_kind_keeps_its_case(self) -> None:
        assert migrate_payload([legacy_record(type="Archive")])[0]["type"] == "Archive"

    def test_legacy_empty_payload_is_valid(self) -> None:
        assert migrate_payload([legacy_record(payload={})])[0]["payload"] == {}

    @pytest.mark.parametrize("missing", ["id", "type", "payload", "timestamp"])
    def test_legacy_record_without_required_field_is_rejected(self, missing: str) -> None:
        record = legacy_record()
        del record[missing]

        with pytest.raises(StoreImportError, match=missing):
            migrate_payload([record])

    def test_legacy_item_must_be_object(self) -> None:
        with pytest.raises(StoreImportError):
            migrate_payload(["not-a-record"])

    def test_current_envelope_passes_through(self) -> None:
        records = [{"id": "r"}]
        assert migrate_payload({"version": SCHEMA_VERSION, "records": records}) is records

    def test_version_one_envelope_is_migrated(self) -> None:
        assert migrate_payload({"version": 1, "records": [legacy_record()]})[0]["type"] == "update"

    def test_newer_version_is_rejected(self) -> None:
        with pytest.raises(SchemaVersionError) as exc_info:
            migrate_payload({"version": SCHEMA_VERSION + 1, "records": []})

        assert exc_info.value.found == SCHEMA_VERSION + 1
        assert exc_info.value.supported == SCHEMA_VERSION

    @pytest.mark.parametrize(
        "payload",
        [
            "text",
            42,
            {"records": []},
            {"version": "2", "records": []},
            {"version": True, "records": []},
            {"version": SCHEMA_VERSION},
        ],
    )
    def test_unknown_layouts_are_rejected(self, payload: Any) -> None:
        with pytest.raises(StoreImportError):
            migrate_payload(payload)
