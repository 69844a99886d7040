"""Tests for normalizing stored account records."""

import datetime

import pytest

from keyvault.errors import CorruptData
from keyvault.migration import (
    LegacyField, StructuredField, decode_field, is_likely_secret, migrate_fields,
    migrate_record, migrate_records,
)
from keyvault.models import FieldConfig


def legacy_record(**overrides):
    record = {
        "id": "acc-1",
        "name": "Mail",
        "fields": {"Username": "bob", "Password": "hunter2"},
        "createdAt": "2024-01-02T03:04:05.678Z",
        "updatedAt": "2024-01-03T03:04:05.678Z",
    }
    record.update(overrides)
    return record


class TestSecretHeuristic:

    @pytest.mark.parametrize("name", ["Password", "PWD", "passphrase", "PIN code", "Client Secret", "API Key"])
    def test_secret_names(self, name):
        assert is_likely_secret(name) is True

    @pytest.mark.parametrize("name", ["Username", "Email", "URL", "Notes"])
    def test_plain_names(self, name):
        assert is_likely_secret(name) is False


class TestDecodeField:

    def test_bare_string_is_legacy(self):
        assert decode_field("Password", "x") == LegacyField("x")

    def test_object_is_structured(self):
        decoded = decode_field("Username", {"value": "bob", "hidden": True})
        assert decoded == StructuredField(FieldConfig("bob", True))

    def test_object_without_hidden_uses_heuristic(self):
        assert decode_field("Password", {"value": "x"}) == StructuredField(FieldConfig("x", True))
        assert decode_field("Email", {"value": "x"}) == StructuredField(FieldConfig("x", False))

    @pytest.mark.parametrize("raw", [42, None, ["a"], {"hidden": True}, {"value": 1}])
    def test_unsupported_shapes_are_corrupt(self, raw):
        with pytest.raises(CorruptData):
            decode_field("Field", raw)

    def test_non_boolean_hidden_is_corrupt(self):
        with pytest.raises(CorruptData):
            decode_field("Field", {"value": "x", "hidden": "yes"})


class TestMigrateRecord:

    def test_legacy_password_becomes_hidden(self):
        account = migrate_record(legacy_record())
        assert account.fields["Password"] == FieldConfig(value="hunter2", hidden=True)
        assert account.fields["Username"] == FieldConfig(value="bob", hidden=False)

    def test_missing_field_order_follows_field_keys(self):
        account = migrate_record(legacy_record())
        assert account.field_order == ["Username", "Password"]

    def test_existing_field_order_kept(self):
        account = migrate_record(legacy_record(fieldOrder=["Password", "Username"]))
        assert account.field_order == ["Password", "Username"]

    def test_stale_field_order_reconciled(self):
        account = migrate_record(legacy_record(fieldOrder=["Gone", "Password"]))
        assert account.field_order == ["Password", "Username"]

    def test_structured_fields_pass_through(self):
        fields = {"Token": {"value": "abc", "hidden": False}}
        account = migrate_record(legacy_record(fields=fields))
        assert account.fields == {"Token": FieldConfig("abc", False)}

    def test_missing_tags_become_empty(self):
        assert migrate_record(legacy_record()).tags == []

    def test_timestamps_parsed_as_utc(self):
        account = migrate_record(legacy_record())
        assert account.created_at == datetime.datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=datetime.timezone.utc)
        assert account.updated_at > account.created_at

    def test_password_rules_parsed(self):
        account = migrate_record(legacy_record(passwordRules={"length": 24, "includeSymbols": False}))
        assert account.password_rules.length == 24
        assert account.password_rules.include_symbols is False

    def test_missing_id_is_corrupt(self):
        record = legacy_record()
        del record["id"]
        with pytest.raises(CorruptData):
            migrate_record(record)

    @pytest.mark.parametrize("order", [[["Password"]], [{"x": 1}], "Password", [1, 2]])
    def test_malformed_field_order_is_corrupt(self, order):
        with pytest.raises(CorruptData):
            migrate_record(legacy_record(fieldOrder=order))

    def test_bad_timestamp_is_corrupt(self):
        with pytest.raises(CorruptData):
            migrate_record(legacy_record(createdAt="yesterday"))

    def test_migration_is_idempotent(self):
        once = migrate_record(legacy_record(tags=["mail", "mail", "work"]))
        twice = migrate_record(once.to_dict())
        assert twice == once
        assert twice.to_dict() == once.to_dict()


class TestMigrateCollections:

    def test_migrate_fields_preserves_order(self):
        fields = migrate_fields({"b": "1", "a": {"value": "2", "hidden": True}})
        assert list(fields) == ["b", "a"]

    def test_duplicate_ids_rejected(self):
        with pytest.raises(CorruptData):
            migrate_records([legacy_record(), legacy_record()])

    def test_records_keep_order(self):
        accounts = migrate_records([legacy_record(id="x"), legacy_record(id="y")])
        assert [a.id for a in accounts] == ["x", "y"]
