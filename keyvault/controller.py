"""
Lock state of the vault.

The LockController is the only path by which the encryption key enters or
leaves memory:

    UNINITIALIZED --initialize--> UNLOCKED
    LOCKED --unlock--> UNLOCKED --lock--> LOCKED

A failed unlock changes nothing and retains no key.
"""

import enum
import json
import logging
import os
import shutil
import threading
from typing import Optional

from . import config
from . import legacy
from . import vault_manager
from .crypto import CryptoManager, KDFParams, SecretKey
from .errors import (
    AlreadyInitialized, CorruptData, InvalidPassphrase, NotInitialized, StorageIOError,
    VaultError, WrongPassphrase,
)
from .migration import migrate_records
from .models import VaultConfig, format_timestamp, utc_now
from .storage import VaultStore
from .utils import atomic_write, ensure_private_dir

logger = logging.getLogger(__name__)

LEGACY_BACKUP_SUFFIX = ".v1.bak"


class VaultState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class LockController:
    """Finite-state gate around the VaultStore."""

    def __init__(self, vault_dir: str, kdf_params: Optional[KDFParams] = None):
        """
        Args:
            vault_dir: Directory holding config.json and the data file
            kdf_params: Key-stretching parameters for new vaults and passphrase changes
        """
        self.vault_dir = vault_dir
        self.config_path = vault_manager.get_config_path(vault_dir)
        self.data_path = vault_manager.get_data_path(vault_dir)
        self.kdf_params = kdf_params or KDFParams()
        self.store = VaultStore(self.data_path, CryptoManager(self.kdf_params))
        self._lock = threading.RLock()

    @property
    def state(self) -> VaultState:
        if self.is_unlocked():
            return VaultState.UNLOCKED
        if self.is_initialized():
            return VaultState.LOCKED
        return VaultState.UNINITIALIZED

    def is_initialized(self) -> bool:
        """Config file presence is the sole signal of an initialized vault."""
        return os.path.exists(self.config_path)

    def is_unlocked(self) -> bool:
        return self.store.is_open()

    def initialize(self, passphrase: str) -> None:
        """
        Create a new vault and leave it unlocked with no accounts.

        The empty data file is written before the config, so a failure part
        way leaves the vault uninitialized.

        Raises:
            AlreadyInitialized: If a config file already exists
            InvalidPassphrase: If the passphrase is empty
            StorageIOError: If the vault files cannot be written
        """
        with self._lock:
            _check_passphrase(passphrase)
            if self.is_initialized():
                raise AlreadyInitialized(f"Vault already initialized at {self.vault_dir}")

            crypto = CryptoManager(self.kdf_params)
            salt = crypto.generate_salt()
            verifier, key = crypto.derive_verifier_and_key(passphrase, salt)
            vault_config = VaultConfig(
                version=config.VAULT_FORMAT_VERSION,
                salt=salt,
                verifier=verifier,
                created_at=format_timestamp(utc_now()),
                kdf=self.kdf_params,
            )

            self.store.close()
            try:
                ensure_private_dir(self.vault_dir)
            except OSError as e:
                key.wipe()
                raise StorageIOError(f"Cannot create vault directory {self.vault_dir}: {e}") from e

            self._activate(crypto, key, [], vault_config)
            logger.info(f"Initialized new vault in {self.vault_dir}")

    def unlock(self, passphrase: str) -> None:
        """
        Verify the passphrase and load the account collection.

        Unlocking an already unlocked vault only re-checks the passphrase.

        Raises:
            NotInitialized: If there is no config file
            WrongPassphrase: If the passphrase does not match the verifier
            CorruptData: If the passphrase matched but the data is damaged
            StorageIOError: If the vault files cannot be read
        """
        with self._lock:
            if not isinstance(passphrase, str):
                raise InvalidPassphrase("Passphrase must be a string")
            vault_config = self._read_config()
            if vault_config.is_legacy():
                self._unlock_legacy(passphrase, vault_config)
                return

            crypto = CryptoManager(vault_config.kdf)
            key = self._verify(crypto, passphrase, vault_config)
            if self.is_unlocked():
                key.wipe()
                return

            self.store.crypto = crypto
            try:
                self.store.load(key)
            except VaultError:
                key.wipe()
                raise
            logger.info("Vault unlocked")

    def lock(self) -> None:
        """Wipe the key and drop the accounts. Always succeeds."""
        with self._lock:
            was_unlocked = self.is_unlocked()
            self.store.close()
            if was_unlocked:
                logger.info("Vault locked")

    def change_passphrase(self, old_passphrase: str, new_passphrase: str) -> None:
        """
        Re-key the vault under a new passphrase and a fresh salt.

        The data file is rewritten under the new key first; if the config
        cannot be written afterwards, the data file is rewritten under the
        old key again.

        Raises:
            WrongPassphrase: If `old_passphrase` is wrong
            InvalidPassphrase: If `new_passphrase` is empty
        """
        with self._lock:
            _check_passphrase(new_passphrase)
            if self.is_unlocked():
                vault_config = self._read_config()
                self._verify(CryptoManager(vault_config.kdf), old_passphrase, vault_config).wipe()
            else:
                self.unlock(old_passphrase)
                vault_config = self._read_config()

            crypto = CryptoManager(self.kdf_params)
            salt = crypto.generate_salt()
            verifier, new_key = crypto.derive_verifier_and_key(new_passphrase, salt)
            new_config = VaultConfig(
                version=config.VAULT_FORMAT_VERSION,
                salt=salt,
                verifier=verifier,
                created_at=vault_config.created_at,
                kdf=self.kdf_params,
            )

            old_key = self.store.rekey(new_key, wipe_old=False)
            try:
                self._write_config(new_config)
            except StorageIOError:
                self._roll_back_rekey(old_key)
                raise
            old_key.wipe()
            self.store.crypto = crypto
            logger.info("Master passphrase changed")

    def _roll_back_rekey(self, old_key: SecretKey) -> None:
        """
        Re-encrypt the data file under `old_key` after a failed config write.

        If that also fails the data file no longer matches config.json; the
        vault is locked and both keys are wiped.
        """
        try:
            self.store.rekey(old_key)
        except VaultError as e:
            logger.error(f"Could not restore the data file under the previous passphrase: {e}", exc_info=True)
            self.store.close()
            old_key.wipe()

    def _verify(self, crypto: CryptoManager, passphrase: str, vault_config: VaultConfig) -> SecretKey:
        verifier, key = crypto.derive_verifier_and_key(passphrase, vault_config.salt)
        if not crypto.secure_compare(verifier, vault_config.verifier):
            key.wipe()
            logger.warning("Unlock: passphrase verification failed")
            raise WrongPassphrase("Incorrect master passphrase")
        return key

    def _unlock_legacy(self, passphrase: str, vault_config: VaultConfig) -> None:
        """Unlock a 1.0 vault and upgrade it in place to the current format."""
        crypto = CryptoManager(self.kdf_params)
        verifier = legacy.derive_legacy_verifier(passphrase, vault_config.salt)
        if not crypto.secure_compare(verifier, vault_config.verifier):
            logger.warning("Unlock: legacy passphrase verification failed")
            raise WrongPassphrase("Incorrect master passphrase")

        legacy_key = legacy.derive_legacy_key(passphrase, vault_config.salt)
        try:
            records = legacy.read_legacy_records(self.data_path, legacy_key)
        except OSError as e:
            raise StorageIOError(f"Failed to read {self.data_path}: {e}") from e
        accounts = migrate_records(records)

        backup_path = self.data_path + LEGACY_BACKUP_SUFFIX
        has_data = os.path.exists(self.data_path)
        if has_data:
            try:
                shutil.copy2(self.data_path, backup_path)
            except OSError as e:
                raise StorageIOError(f"Cannot back up legacy data file: {e}") from e

        salt = crypto.generate_salt()
        new_verifier, key = crypto.derive_verifier_and_key(passphrase, salt)
        new_config = VaultConfig(
            version=config.VAULT_FORMAT_VERSION,
            salt=salt,
            verifier=new_verifier,
            created_at=vault_config.created_at or format_timestamp(utc_now()),
            kdf=self.kdf_params,
        )
        try:
            self._activate(crypto, key, accounts, new_config)
        except VaultError:
            if has_data:
                try:
                    shutil.copy2(backup_path, self.data_path)
                except OSError as e:
                    logger.error(f"Could not restore legacy data file from {backup_path}: {e}", exc_info=True)
                    raise StorageIOError(f"Upgrade failed and {self.data_path} could not be restored "
                                         f"from {backup_path}: {e}") from e
            raise
        logger.info(f"Upgraded legacy vault with {len(accounts)} account(s) to format {config.VAULT_FORMAT_VERSION}")

    def _activate(self, crypto: CryptoManager, key: SecretKey, accounts, vault_config: VaultConfig) -> None:
        """Persist `accounts` under `key`, then write the config; undo on failure."""
        self.store.crypto = crypto
        self.store.open(key, accounts)
        try:
            self.store.persist()
            self._write_config(vault_config)
        except VaultError:
            self.store.close()
            raise

    def _read_config(self) -> VaultConfig:
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise NotInitialized(f"No vault at {self.vault_dir}") from e
        except OSError as e:
            raise StorageIOError(f"Failed to read {self.config_path}: {e}") from e
        except ValueError as e:
            raise CorruptData(f"Vault config is not valid JSON: {e}") from e
        try:
            return VaultConfig.from_dict(data)
        except ValueError as e:
            raise CorruptData(f"Vault config is invalid: {e}") from e

    def _write_config(self, vault_config: VaultConfig) -> None:
        payload = json.dumps(vault_config.to_dict(), indent=2).encode('utf-8')
        try:
            atomic_write(self.config_path, payload)
        except OSError as e:
            logger.error(f"Error writing vault config {self.config_path}: {e}", exc_info=True)
            raise StorageIOError(f"Failed to write {self.config_path}: {e}") from e


def _check_passphrase(passphrase: str) -> None:
    if not isinstance(passphrase, str) or not passphrase:
        raise InvalidPassphrase("Passphrase must be a non-empty string")
