"""
Shared pytest fixtures for the KeyVault test suite.

Key derivation uses deliberately cheap Argon2id parameters so tests run
quickly; every vault lives in a per-test temporary directory.
"""

import pytest

from keyvault.crypto import KDFParams
from keyvault.service import VaultService

FAST_KDF = KDFParams(algorithm="argon2id", time_cost=1, memory_cost=64, parallelism=1)
FAST_PBKDF2 = KDFParams(algorithm="pbkdf2-sha256", iterations=1000)
PASSPHRASE = "correct-horse"


@pytest.fixture(autouse=True)
def _isolate_vault_home(tmp_path, monkeypatch):
    """Point the default vault directory at a temp dir so no test touches ~/.keyring."""
    monkeypatch.setenv("KEYVAULT_HOME", str(tmp_path / "default-home"))


@pytest.fixture
def fast_kdf():
    return FAST_KDF


@pytest.fixture
def vault_dir(tmp_path):
    return str(tmp_path / "vault")


@pytest.fixture
def service(vault_dir):
    return VaultService(vault_dir, kdf_params=FAST_KDF)


@pytest.fixture
def unlocked(service):
    """An initialized, unlocked vault with no accounts."""
    assert service.initialize(PASSPHRASE) is True
    yield service
    service.lock()


@pytest.fixture
def github_draft():
    return {
        "name": "GitHub",
        "fields": {
            "Username": {"value": "alice", "hidden": False},
            "Password": {"value": "s3cr3t!", "hidden": True},
        },
    }
