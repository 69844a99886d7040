"""
Passphrase-encrypted blobs for export and import.

A blob is base64 text of::

    magic(4) | version(1) | kdf id(1) | 3 x uint32 kdf params | salt(32)
    | nonce(12) | tag(16) | AES-256-GCM ciphertext

Every blob gets a fresh salt, independent of the vault's own. The header and
salt are authenticated as associated data. Decryption failures are reported
as a single error so wrong passphrases and damaged blobs look the same.
"""

import base64
import binascii
import json
import logging
import struct
from typing import Any, Dict, Iterable, List, Mapping, Optional

from cryptography.exceptions import InvalidTag

from . import config
from .crypto import CryptoManager, KDFParams
from .errors import InvalidBackup, InvalidPassphrase, WrongPassphraseOrCorrupt
from .models import Account, format_timestamp, utc_now

logger = logging.getLogger(__name__)

HEADER = struct.Struct('<4sBBIII')
KDF_IDS = {
    config.KDF_ARGON2ID: 1,
    config.KDF_PBKDF2_SHA256: 2,
}
KDF_NAMES = {value: key for key, value in KDF_IDS.items()}


class BackupCodec:
    """Symmetric encryption of text under a passphrase."""

    def __init__(self, kdf_params: Optional[KDFParams] = None):
        self.kdf_params = kdf_params or KDFParams()

    def encrypt(self, plaintext: str, passphrase: str) -> str:
        """
        Encrypt `plaintext` under `passphrase`.

        Raises:
            InvalidPassphrase: If the passphrase is empty
        """
        if not isinstance(passphrase, str) or not passphrase:
            raise InvalidPassphrase("Backup passphrase must be a non-empty string")

        params = self.kdf_params
        crypto = CryptoManager(params)
        salt = crypto.generate_salt()
        if params.algorithm == config.KDF_ARGON2ID:
            values = (params.time_cost, params.memory_cost, params.parallelism)
        else:
            values = (params.iterations, 0, 0)
        header = HEADER.pack(config.BACKUP_MAGIC, config.BACKUP_FORMAT_VERSION,
                             KDF_IDS[params.algorithm], *values) + salt

        key = crypto.derive_key(passphrase, salt)
        try:
            ciphertext, nonce, tag = crypto.encrypt(plaintext.encode('utf-8'), key, associated_data=header)
        finally:
            key.wipe()
        return base64.b64encode(header + nonce + tag + ciphertext).decode('ascii')

    def decrypt(self, blob: str, passphrase: str) -> str:
        """
        Decrypt a blob produced by `encrypt`.

        Raises:
            WrongPassphraseOrCorrupt: On any format or integrity failure
        """
        if not isinstance(blob, str) or not isinstance(passphrase, str):
            raise WrongPassphraseOrCorrupt("Wrong passphrase or corrupted backup")
        try:
            raw = base64.b64decode(blob, validate=True)
            magic, version, kdf_id, p1, p2, p3 = HEADER.unpack_from(raw, 0)
            if magic != config.BACKUP_MAGIC or version != config.BACKUP_FORMAT_VERSION:
                raise ValueError("Not a backup blob")
            algorithm = KDF_NAMES[kdf_id]
            if algorithm == config.KDF_ARGON2ID:
                params = KDFParams(algorithm=algorithm, time_cost=p1, memory_cost=p2, parallelism=p3)
            else:
                params = KDFParams(algorithm=algorithm, iterations=p1)

            offset = HEADER.size
            salt = raw[offset:offset + config.SALT_SIZE]
            offset += config.SALT_SIZE
            nonce = raw[offset:offset + config.NONCE_SIZE]
            offset += config.NONCE_SIZE
            tag = raw[offset:offset + config.TAG_SIZE]
            offset += config.TAG_SIZE
            if len(raw) < offset:
                raise ValueError("Backup blob is truncated")
            header = raw[:HEADER.size + config.SALT_SIZE]

            crypto = CryptoManager(params)
            key = crypto.derive_key(passphrase, salt)
            try:
                plaintext = crypto.decrypt(raw[offset:], key, nonce, tag, associated_data=header)
            finally:
                key.wipe()
            return plaintext.decode('utf-8')
        except (binascii.Error, struct.error, KeyError, TypeError, ValueError, InvalidTag) as e:
            logger.warning(f"Backup decryption failed: {type(e).__name__}")
            raise WrongPassphraseOrCorrupt("Wrong passphrase or corrupted backup") from e


def build_export_document(accounts: Iterable[Account], passphrase: Optional[str] = None,
                          codec: Optional[BackupCodec] = None) -> Dict[str, Any]:
    """
    Build the JSON export document.

    With a passphrase, the plain document is encrypted into `data` and only
    non-secret metadata stays in the clear.
    """
    accounts = list(accounts)
    timestamp = format_timestamp(utc_now())
    document = {
        'version': config.EXPORT_FORMAT_VERSION,
        'timestamp': timestamp,
        'encrypted': False,
        'accounts': [account.to_dict() for account in accounts],
        'metadata': {
            'totalAccounts': len(accounts),
            'exportedBy': config.APP_NAME,
        },
    }
    if passphrase is None:
        return document

    codec = codec or BackupCodec()
    return {
        'version': config.EXPORT_FORMAT_VERSION,
        'timestamp': timestamp,
        'encrypted': True,
        'data': codec.encrypt(json.dumps(document, ensure_ascii=False), passphrase),
        'metadata': {'exportedBy': config.APP_NAME},
    }


def read_export_document(document: Mapping[str, Any], passphrase: Optional[str] = None,
                         codec: Optional[BackupCodec] = None) -> List[Mapping[str, Any]]:
    """
    Validate an export document and return its account records.

    Raises:
        InvalidBackup: If the structure is wrong or a passphrase is missing
        WrongPassphraseOrCorrupt: If an encrypted document cannot be decrypted
    """
    if not isinstance(document, Mapping):
        raise InvalidBackup("Backup must be a JSON object")

    if document.get('encrypted'):
        if not passphrase:
            raise InvalidBackup("This backup is encrypted; a passphrase is required")
        data = document.get('data')
        if not isinstance(data, str):
            raise InvalidBackup("Encrypted backup has no data")
        codec = codec or BackupCodec()
        text = codec.decrypt(data, passphrase)
        try:
            document = json.loads(text)
        except ValueError as e:
            raise WrongPassphraseOrCorrupt("Wrong passphrase or corrupted backup") from e
        if not isinstance(document, Mapping):
            raise InvalidBackup("Backup payload must be a JSON object")

    accounts = document.get('accounts')
    if not isinstance(accounts, list):
        raise InvalidBackup("Backup has no account list")
    for account in accounts:
        if not isinstance(account, Mapping) or not account.get('id') or not account.get('name') \
                or account.get('fields') is None:
            raise InvalidBackup("Backup contains an account without id, name or fields")
    return accounts
