"""Tests for the VaultService facade."""

import json

import pytest

from keyvault import config
from keyvault.controller import VaultState
from keyvault.errors import InvalidAccount, InvalidBackup, VaultLocked, WrongPassphraseOrCorrupt
from keyvault.generator import MODE_DETERMINISTIC, SiteContext
from keyvault.service import VaultService

from .conftest import FAST_KDF, PASSPHRASE


class TestLifecycle:

    def test_initialize_reports_success(self, service):
        assert service.state is VaultState.UNINITIALIZED
        assert service.initialize(PASSPHRASE) is True
        assert service.last_error is None
        assert service.is_unlocked()

    def test_initialize_twice_reports_failure(self, unlocked):
        assert unlocked.initialize(PASSPHRASE) is False
        assert unlocked.last_error.code == "AlreadyInitialized"

    def test_empty_passphrase(self, service):
        assert service.initialize("") is False
        assert service.last_error.code == "InvalidPassphrase"
        assert not service.is_initialized()

    def test_unlock_not_initialized(self, service):
        assert service.unlock(PASSPHRASE) is False
        assert service.last_error.code == "NotInitialized"

    def test_wrong_passphrase(self, unlocked):
        unlocked.lock()
        assert unlocked.unlock("nope") is False
        assert unlocked.last_error.code == "WrongPassphrase"
        assert unlocked.state is VaultState.LOCKED

    def test_last_error_cleared_on_success(self, unlocked):
        unlocked.lock()
        unlocked.unlock("nope")
        assert unlocked.unlock(PASSPHRASE) is True
        assert unlocked.last_error is None

    def test_change_passphrase(self, unlocked):
        assert unlocked.change_passphrase("nope", "new") is False
        assert unlocked.last_error.code == "WrongPassphrase"
        assert unlocked.change_passphrase(PASSPHRASE, "new") is True
        unlocked.lock()
        assert unlocked.unlock("new") is True

    def test_default_directory_from_environment(self, tmp_path):
        service = VaultService(kdf_params=FAST_KDF)
        assert service.vault_dir == str(tmp_path / "default-home")


class TestAccounts:

    def test_github_scenario(self, service, github_draft, vault_dir):
        assert service.initialize(PASSPHRASE)
        account = service.add_account(github_draft)
        assert account.fields["Password"].hidden is True
        assert account.field_order == ["Username", "Password"]
        service.lock()

        with pytest.raises(VaultLocked):
            service.list_accounts()

        reopened = VaultService(vault_dir, kdf_params=FAST_KDF)
        assert reopened.unlock(PASSPHRASE)
        [loaded] = reopened.list_accounts()
        assert loaded == account

    def test_crud(self, unlocked, github_draft):
        account = unlocked.add_account(github_draft)
        updated = unlocked.update_account(account.id, {"tags": ["work"]})
        assert unlocked.get_account(account.id).tags == ["work"]
        assert updated.name == "GitHub"
        assert unlocked.delete_account(account.id) is True
        assert unlocked.delete_account(account.id) is False
        assert unlocked.list_accounts() == []


class TestGeneration:

    def test_random(self, service):
        password = service.generate_password()
        assert service.is_usable_password(password)

    def test_deterministic_works_while_locked(self, service):
        context = SiteContext("master", "example.com")
        first = service.generate_password(None, MODE_DETERMINISTIC, context)
        assert first == service.generate_password(None, MODE_DETERMINISTIC, context)

    def test_sentinel_not_usable(self, service):
        password = service.generate_password(mode=MODE_DETERMINISTIC)
        assert password == config.GENERATOR_ERROR_MISSING_CONTEXT
        assert not service.is_usable_password(password)


class TestBackup:

    def test_blob_round_trip(self, service):
        blob = service.encrypt_blob("payload", "pw")
        assert service.decrypt_blob(blob, "pw") == "payload"
        with pytest.raises(WrongPassphraseOrCorrupt):
            service.decrypt_blob(blob, "other")

    def test_plain_export_and_import(self, unlocked, github_draft):
        original = unlocked.add_account(github_draft)
        text = unlocked.export_accounts()
        assert json.loads(text)["metadata"]["totalAccounts"] == 1

        imported = unlocked.import_accounts(text)
        assert len(imported) == 1
        assert imported[0].id != original.id
        assert imported[0].fields == original.fields
        assert len(unlocked.list_accounts()) == 2

    def test_encrypted_export_and_import(self, unlocked, github_draft):
        unlocked.add_account(github_draft)
        text = unlocked.export_accounts("backup-pass")
        assert "s3cr3t!" not in text
        with pytest.raises(WrongPassphraseOrCorrupt):
            unlocked.import_accounts(text, "wrong")
        assert len(unlocked.list_accounts()) == 1
        unlocked.import_accounts(text, "backup-pass")
        assert [a.name for a in unlocked.list_accounts()] == ["GitHub", "GitHub"]

    def test_import_rejects_bad_json(self, unlocked):
        with pytest.raises(InvalidBackup):
            unlocked.import_accounts("{broken")

    def test_import_with_malformed_field_order(self, unlocked):
        text = json.dumps({"accounts": [{"id": "x", "name": "A", "fields": {"a": {"value": "1", "hidden": False}},
                                         "fieldOrder": [["a"]]}]})
        with pytest.raises(InvalidAccount) as excinfo:
            unlocked.import_accounts(text)
        assert excinfo.value.code == "InvalidAccount"
        assert unlocked.list_accounts() == []

    def test_export_requires_unlock(self, service):
        service.initialize(PASSPHRASE)
        service.lock()
        with pytest.raises(VaultLocked):
            service.export_accounts()
