"""
Encrypted storage of the account collection.

The VaultStore holds the decrypted accounts and the encryption key while the
vault is unlocked. Every mutation builds the new collection, rewrites the
whole data file, and only then replaces the in-memory collection, so memory
and disk never diverge by more than the mutation in flight.
"""

import datetime
import json
import logging
import struct
import threading
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from cryptography.exceptions import InvalidTag

from . import config
from .crypto import CryptoManager, SecretKey
from .errors import (
    AccountNotFound, CorruptData, InvalidAccount, InvalidPolicy, StorageIOError, VaultLocked,
)
from .migration import migrate_fields, migrate_records
from .models import (
    Account, FieldConfig, PasswordPolicy, format_timestamp, is_permutation, normalize_tags,
    reconcile_field_order, utc_now,
)
from .utils import atomic_write

logger = logging.getLogger(__name__)

# Keys a patch may carry; the ignored ones are managed by the store itself.
EDITABLE_KEYS = frozenset({'name', 'tags', 'fields', 'fieldOrder', 'passwordRules'})
IGNORED_KEYS = frozenset({'id', 'createdAt', 'updatedAt'})

Draft = Union[Mapping[str, Any], Account]


class VaultStore:
    """Manages the encrypted account collection."""

    VERSION = config.DATA_FILE_VERSION
    MAGIC_BYTES = config.DATA_FILE_MAGIC

    def __init__(self, filepath: str, crypto: Optional[CryptoManager] = None):
        """
        Initialize the store.
        Args:
            filepath: Path to the encrypted data file
            crypto: Crypto manager used for AES-GCM
        """
        self.filepath = filepath
        self.crypto = crypto or CryptoManager()
        self._lock = threading.RLock()
        self._key: Optional[SecretKey] = None
        self._accounts: List[Account] = []

    def is_open(self) -> bool:
        """Check if the store holds a key, i.e. the vault is unlocked."""
        return self._key is not None

    def open(self, key: SecretKey, accounts: Optional[Iterable[Account]] = None) -> None:
        """Attach a key and an already-decrypted collection without touching disk."""
        with self._lock:
            self._key = key
            self._accounts = list(accounts or [])

    def load(self, key: SecretKey) -> None:
        """
        Read, decrypt and migrate the data file, then attach the key.

        A missing or empty file means "no accounts".

        Raises:
            CorruptData: If the file cannot be decrypted or parsed
            StorageIOError: If the file cannot be read
        """
        with self._lock:
            accounts = self._read(key)
            self._key = key
            self._accounts = accounts
            logger.info(f"Loaded {len(accounts)} account(s) from {self.filepath}")

    def close(self) -> None:
        """Wipe the key and drop the decrypted collection."""
        with self._lock:
            if self._key is not None:
                self._key.wipe()
            self._key = None
            self._accounts = []

    def rekey(self, new_key: SecretKey, wipe_old: bool = True) -> SecretKey:
        """
        Re-encrypt the collection under a new key.

        Returns:
            The previous key, already wiped unless `wipe_old` is False
        """
        with self._lock:
            self._require_open()
            self._save(self._accounts, new_key)
            old_key = self._key
            self._key = new_key
            if wipe_old and old_key is not new_key:
                old_key.wipe()
            return old_key

    def list(self) -> List[Account]:
        """Get a snapshot of all accounts in insertion order."""
        with self._lock:
            self._require_open()
            return [account.copy() for account in self._accounts]

    def get(self, account_id: str) -> Account:
        with self._lock:
            self._require_open()
            return self._accounts[self._index_of(account_id)].copy()

    def add(self, draft: Draft) -> Account:
        """
        Add a new account.

        Args:
            draft: Mapping with `name`, `fields` and optional `fieldOrder`,
                `tags`, `passwordRules`
        Returns:
            The stored account with its id and timestamps
        """
        with self._lock:
            self._require_open()
            now = utc_now()
            account = self._build_account(_as_mapping(draft), self._new_id(), now, now)
            self._commit(self._accounts + [account])
            logger.info(f"Added account {account.id}")
            return account.copy()

    def update(self, account_id: str, patch: Draft) -> Account:
        """
        Shallow-merge `patch` over an existing account.

        A provided `fields` map replaces the old one wholesale.

        Raises:
            AccountNotFound: If no account has `account_id`
            InvalidAccount: If the patch is malformed
        """
        with self._lock:
            self._require_open()
            index = self._index_of(account_id)
            current = self._accounts[index]
            merged = self._merge(current, _as_mapping(patch))
            accounts = list(self._accounts)
            accounts[index] = merged
            self._commit(accounts)
            logger.info(f"Updated account {account_id}")
            return merged.copy()

    def delete(self, account_id: str) -> bool:
        """Delete an account. Returns False if there was nothing to delete."""
        with self._lock:
            self._require_open()
            remaining = [a for a in self._accounts if a.id != account_id]
            if len(remaining) == len(self._accounts):
                return False
            self._commit(remaining)
            logger.info(f"Deleted account {account_id}")
            return True

    def import_accounts(self, records: Iterable[Draft]) -> List[Account]:
        """
        Append externally supplied records with fresh ids and timestamps.

        Records go through the field migration, so legacy string fields are
        accepted. All records are persisted in a single write.
        """
        with self._lock:
            self._require_open()
            imported = []
            taken = {a.id for a in self._accounts}
            for record in records:
                now = utc_now()
                account = self._build_account(_as_mapping(record), self._new_id(taken), now, now)
                taken.add(account.id)
                imported.append(account)
            if imported:
                self._commit(self._accounts + imported)
            logger.info(f"Imported {len(imported)} account(s)")
            return [account.copy() for account in imported]

    def persist(self) -> None:
        """Rewrite the data file from the in-memory collection."""
        with self._lock:
            self._require_open()
            self._save(self._accounts)

    def _commit(self, accounts: List[Account]) -> None:
        self._save(accounts)
        self._accounts = accounts

    def _require_open(self) -> None:
        if not self.is_open():
            raise VaultLocked("Vault is locked")

    def _index_of(self, account_id: str) -> int:
        for i, account in enumerate(self._accounts):
            if account.id == account_id:
                return i
        raise AccountNotFound(f"Account not found: {account_id}")

    def _new_id(self, taken: Optional[set] = None) -> str:
        if taken is None:
            taken = {a.id for a in self._accounts}
        while True:
            candidate = str(uuid.uuid4())
            if candidate not in taken:
                return candidate

    def _build_account(self, draft: Mapping[str, Any], account_id: str,
                       created_at: datetime.datetime, updated_at: datetime.datetime) -> Account:
        _check_keys(draft)
        if 'name' not in draft:
            raise InvalidAccount("Account name is required")
        fields = _coerce_fields(draft.get('fields') or {})
        return Account(
            id=account_id,
            name=_coerce_name(draft['name']),
            fields=fields,
            field_order=_coerce_field_order(fields, draft.get('fieldOrder'), None),
            tags=normalize_tags(draft.get('tags')),
            password_rules=_coerce_policy(draft.get('passwordRules')),
            created_at=created_at,
            updated_at=updated_at,
        )

    def _merge(self, current: Account, patch: Mapping[str, Any]) -> Account:
        _check_keys(patch)
        for key in IGNORED_KEYS.intersection(patch):
            logger.debug(f"Ignoring read-only key {key!r} in update of {current.id}")

        merged = current.copy()
        if 'name' in patch:
            merged.name = _coerce_name(patch['name'])
        if 'tags' in patch:
            merged.tags = normalize_tags(patch['tags'])
        if 'passwordRules' in patch:
            merged.password_rules = _coerce_policy(patch['passwordRules'])
        if 'fields' in patch:
            merged.fields = _coerce_fields(patch['fields'] or {})
        merged.field_order = _coerce_field_order(merged.fields, patch.get('fieldOrder'), current.field_order)
        merged.updated_at = max(utc_now(), current.updated_at)
        return merged

    def _save(self, accounts: List[Account], key: Optional[SecretKey] = None) -> None:
        """
        Serialize, encrypt and atomically write the collection.

        The header (magic and version) is authenticated as associated data.
        """
        key = key or self._key
        if key is None:
            raise VaultLocked("Vault is locked")

        data = {
            'accounts': [a.to_dict() for a in accounts],
            'metadata': {
                'version': self.VERSION,
                'lastModified': format_timestamp(utc_now()),
            }
        }
        plaintext = json.dumps(data, separators=(',', ':'), ensure_ascii=False).encode('utf-8')

        header = self.MAGIC_BYTES + struct.pack('<I', self.VERSION)
        ciphertext, nonce, tag = self.crypto.encrypt(plaintext, key, associated_data=header)

        blob = b''.join([
            header,
            struct.pack('<I', len(nonce)), nonce,
            struct.pack('<I', len(tag)), tag,
            struct.pack('<I', len(ciphertext)), ciphertext,
        ])

        try:
            atomic_write(self.filepath, blob)
        except OSError as e:
            logger.error(f"Error saving vault file {self.filepath}: {e}", exc_info=True)
            raise StorageIOError(f"Failed to write {self.filepath}: {e}") from e
        logger.debug(f"Saved {len(accounts)} account(s) to {self.filepath}")

    def _read(self, key: SecretKey) -> List[Account]:
        try:
            with open(self.filepath, 'rb') as f:
                blob = f.read()
        except FileNotFoundError:
            logger.info(f"No data file at {self.filepath}; starting with an empty vault")
            return []
        except OSError as e:
            logger.error(f"Error reading vault file {self.filepath}: {e}", exc_info=True)
            raise StorageIOError(f"Failed to read {self.filepath}: {e}") from e

        if not blob:
            return []

        try:
            magic = blob[:4]
            if magic != self.MAGIC_BYTES:
                raise CorruptData(f"Magic bytes mismatch. Expected {self.MAGIC_BYTES}, got {magic}")
            version = struct.unpack_from('<I', blob, 4)[0]
            if version != self.VERSION:
                raise CorruptData(f"Data file version mismatch. Expected {self.VERSION}, got {version}")
            offset = 8
            nonce, offset = _read_chunk(blob, offset)
            tag, offset = _read_chunk(blob, offset)
            ciphertext, offset = _read_chunk(blob, offset)
            if offset != len(blob):
                raise CorruptData("Trailing bytes after ciphertext")

            plaintext = self.crypto.decrypt(ciphertext, key, nonce, tag, associated_data=blob[:8])
            data = json.loads(plaintext.decode('utf-8'))
        except (struct.error, ValueError, InvalidTag) as e:
            # JSONDecodeError and UnicodeDecodeError are ValueErrors
            logger.warning(f"Failed to decrypt vault file {self.filepath}: {type(e).__name__}")
            raise CorruptData(f"Vault data could not be decrypted: {type(e).__name__}") from e

        return migrate_records(_extract_records(data))


def _read_chunk(blob: bytes, offset: int):
    size = struct.unpack_from('<I', blob, offset)[0]
    start = offset + 4
    end = start + size
    if end > len(blob):
        raise CorruptData("Data file is truncated")
    return blob[start:end], end


def _extract_records(data: Any) -> List[Any]:
    """Accept both the current {accounts, metadata} object and a bare list."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get('accounts'), list):
        return data['accounts']
    raise CorruptData("Vault data has no account list")


def _as_mapping(draft: Draft) -> Mapping[str, Any]:
    if isinstance(draft, Account):
        return draft.to_dict()
    if not isinstance(draft, Mapping):
        raise InvalidAccount("Account data must be a mapping")
    return draft


def _check_keys(data: Mapping[str, Any]) -> None:
    unknown = set(data) - EDITABLE_KEYS - IGNORED_KEYS
    if unknown:
        raise InvalidAccount(f"Unknown account attribute(s): {', '.join(sorted(map(str, unknown)))}")


def _coerce_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise InvalidAccount("Account name must be a non-empty string")
    return name


def _coerce_fields(raw_fields: Any) -> Dict[str, FieldConfig]:
    try:
        return migrate_fields(raw_fields)
    except CorruptData as e:
        raise InvalidAccount(str(e)) from e


def _coerce_field_order(fields: Mapping[str, FieldConfig], order: Any,
                        previous: Optional[List[str]]) -> List[str]:
    """An explicit order must be a permutation; otherwise the previous one is reconciled."""
    if order is None:
        return reconcile_field_order(fields, previous)
    if not isinstance(order, (list, tuple)) or not all(isinstance(name, str) for name in order):
        raise InvalidAccount("fieldOrder must be a list of field names")
    if not is_permutation(fields, list(order)):
        raise InvalidAccount("fieldOrder must be a permutation of the field names")
    return list(order)


def _coerce_policy(rules: Any) -> Optional[PasswordPolicy]:
    if rules is None or isinstance(rules, PasswordPolicy):
        return rules
    try:
        return PasswordPolicy.from_dict(rules)
    except InvalidPolicy as e:
        raise InvalidAccount(str(e)) from e
