"""Tests for the account model and its field-order invariant."""

import datetime

import pytest

from keyvault.errors import InvalidAccount, InvalidPolicy
from keyvault.models import (
    Account, FieldConfig, PasswordPolicy, VaultConfig, format_timestamp, parse_timestamp,
    reconcile_field_order,
)


def make_account():
    return Account(
        id="a1",
        name="Bank",
        fields={"User": FieldConfig("bob"), "PIN": FieldConfig("1234", True)},
        field_order=["User", "PIN"],
    )


def assert_permutation(account):
    assert sorted(account.field_order) == sorted(account.fields)
    assert len(account.field_order) == len(set(account.field_order))


class TestFieldEditing:

    def test_set_new_field_appends(self):
        account = make_account()
        account.set_field("Notes", "call first")
        assert account.field_order == ["User", "PIN", "Notes"]
        assert account.fields["Notes"] == FieldConfig("call first", False)

    def test_set_existing_field_keeps_position(self):
        account = make_account()
        account.set_field("User", "alice")
        assert account.field_order == ["User", "PIN"]
        assert account.fields["User"].value == "alice"
        assert account.fields["PIN"].hidden is True

    def test_remove_field(self):
        account = make_account()
        account.remove_field("User")
        assert account.field_order == ["PIN"]
        assert_permutation(account)

    def test_rename_field_keeps_position_and_value(self):
        account = make_account()
        account.rename_field("User", "Login")
        assert account.field_order == ["Login", "PIN"]
        assert list(account.fields) == ["Login", "PIN"]
        assert account.fields["Login"].value == "bob"

    def test_rename_onto_existing_field_rejected(self):
        account = make_account()
        with pytest.raises(InvalidAccount):
            account.rename_field("User", "PIN")
        assert_permutation(account)

    def test_move_field(self):
        account = make_account()
        account.move_field("PIN", 0)
        assert account.field_order == ["PIN", "User"]
        account.move_field("PIN", 99)
        assert account.field_order == ["User", "PIN"]

    def test_ordered_fields(self):
        account = make_account()
        account.move_field("PIN", 0)
        assert [name for name, _ in account.ordered_fields()] == ["PIN", "User"]

    def test_copy_is_deep(self):
        account = make_account()
        clone = account.copy()
        clone.fields["User"].value = "changed"
        assert account.fields["User"].value == "bob"


def test_reconcile_field_order():
    fields = {"a": 1, "b": 2, "c": 3}
    assert reconcile_field_order(fields, None) == ["a", "b", "c"]
    assert reconcile_field_order(fields, ["c", "x", "c", "a"]) == ["c", "a", "b"]


class TestPasswordPolicy:

    def test_defaults(self):
        policy = PasswordPolicy()
        assert policy.length == 16
        assert policy.exclude_ambiguous is True

    @pytest.mark.parametrize("length", [0, -1, "8", True])
    def test_invalid_length(self, length):
        with pytest.raises(InvalidPolicy):
            PasswordPolicy(length=length)

    def test_from_dict_uses_camel_case(self):
        policy = PasswordPolicy.from_dict({"length": 8, "includeNumbers": False, "excludeCharacters": "xyz"})
        assert policy.include_numbers is False
        assert policy.exclude_characters == "xyz"

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(InvalidPolicy):
            PasswordPolicy.from_dict({"length": 8, "includeEmoji": True})

    def test_canonical_json_is_fixed(self):
        policy = PasswordPolicy(length=12, include_symbols=False)
        assert policy.canonical_json() == (
            '{"length":12,"includeUppercase":true,"includeLowercase":true,'
            '"includeNumbers":true,"includeSymbols":false,"excludeAmbiguous":true,'
            '"customCharacters":"","excludeCharacters":""}'
        )

    def test_canonical_json_escapes_non_ascii(self):
        assert '"customCharacters":"\\u00e9"' in PasswordPolicy(custom_characters="é").canonical_json()

    def test_to_dict_round_trip(self):
        policy = PasswordPolicy(length=30, custom_characters="~")
        assert PasswordPolicy.from_dict(policy.to_dict()) == policy


class TestTimestamps:

    def test_format_uses_milliseconds_and_z(self):
        value = datetime.datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=datetime.timezone.utc)
        assert format_timestamp(value) == "2024-05-06T07:08:09.123Z"

    def test_parse_naive_as_utc(self):
        parsed = parse_timestamp("2024-05-06T07:08:09")
        assert parsed.tzinfo is not None
        assert parsed.hour == 7


class TestVaultConfig:

    def test_legacy_config_has_no_kdf(self):
        cfg = VaultConfig.from_dict({"version": "1.0", "salt": "00" * 32, "hash": "11" * 64,
                                     "createdAt": "2024-01-01T00:00:00.000Z"})
        assert cfg.is_legacy()

    def test_current_config_requires_kdf(self):
        with pytest.raises(ValueError):
            VaultConfig.from_dict({"version": "2.0", "salt": "00", "hash": "11"})

    def test_missing_salt_rejected(self):
        with pytest.raises(ValueError):
            VaultConfig.from_dict({"version": "1.0", "hash": "11"})
