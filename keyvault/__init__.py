"""
KeyVault credential vault
Copyright (c) 2025

THREAT MODEL:
Accounts are encrypted at rest under a key derived from a single master
passphrase and are only held in memory between unlock and lock. The vault
does not protect against a compromised host process reading process memory,
and it supports exactly one process owning a vault directory at a time.
"""
from .config import APP_VERSION as __version__
from .controller import LockController, VaultState
from .errors import VaultError
from .models import Account, FieldConfig, PasswordPolicy
from .service import VaultService

__all__ = [
    "Account",
    "FieldConfig",
    "LockController",
    "PasswordPolicy",
    "VaultError",
    "VaultService",
    "VaultState",
]
