"""
Reader for the version 1.0 vault format.

Version 1.0 vaults stored a PBKDF2 verifier in config.json and encrypted the
account list with an OpenSSL-compatible passphrase scheme: the hex-encoded
PBKDF2 key is the passphrase, the ciphertext is base64 of
``b"Salted__" + salt(8) + AES-256-CBC(PKCS7(json))`` and the AES key and IV
come from EVP_BytesToKey with MD5. Only decryption is supported; unlocking
a legacy vault upgrades it to the current format.
"""

import base64
import binascii
import json
import logging
from typing import Any, List

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from . import config
from .errors import CorruptData

logger = logging.getLogger(__name__)

OPENSSL_SALT_PREFIX = b"Salted__"
OPENSSL_SALT_SIZE = 8
AES_BLOCK_SIZE = 16


def _pbkdf2(passphrase: str, salt: bytes, length: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        iterations=config.LEGACY_PBKDF2_ITERATIONS,
        backend=default_backend()
    )
    return kdf.derive(passphrase.encode('utf-8'))


def derive_legacy_verifier(passphrase: str, salt: bytes) -> bytes:
    """64-byte PBKDF2-HMAC-SHA256 verifier of the 1.0 format."""
    return _pbkdf2(passphrase, salt, config.LEGACY_VERIFIER_SIZE)


def derive_legacy_key(passphrase: str, salt: bytes) -> str:
    """The 1.0 format used the hex text of a 32-byte PBKDF2 output as its cipher passphrase."""
    return _pbkdf2(passphrase, salt, config.LEGACY_KEY_SIZE).hex()


def evp_bytes_to_key(password: bytes, salt: bytes, key_len: int = 32, iv_len: int = 16):
    """OpenSSL EVP_BytesToKey with MD5 and a single iteration."""
    derived = b''
    block = b''
    while len(derived) < key_len + iv_len:
        digest = hashes.Hash(hashes.MD5(), backend=default_backend())
        digest.update(block + password + salt)
        block = digest.finalize()
        derived += block
    return derived[:key_len], derived[key_len:key_len + iv_len]


def decrypt_openssl_text(encrypted: str, passphrase: str) -> str:
    """
    Decrypt a base64 "Salted__" AES-256-CBC text.

    Raises:
        CorruptData: If the text is malformed or the padding is invalid
    """
    try:
        raw = base64.b64decode(encrypted.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise CorruptData("Legacy data is not valid base64") from e

    header_size = len(OPENSSL_SALT_PREFIX) + OPENSSL_SALT_SIZE
    if not raw.startswith(OPENSSL_SALT_PREFIX) or len(raw) <= header_size:
        raise CorruptData("Legacy data has no salt header")
    salt = raw[len(OPENSSL_SALT_PREFIX):header_size]
    ciphertext = raw[header_size:]
    if len(ciphertext) % AES_BLOCK_SIZE:
        raise CorruptData("Legacy ciphertext is not block aligned")

    key, iv = evp_bytes_to_key(passphrase.encode('utf-8'), salt)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv), backend=default_backend()).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode('utf-8')
    except ValueError as e:
        raise CorruptData("Legacy data could not be decrypted") from e


def read_legacy_records(filepath: str, legacy_key: str) -> List[Any]:
    """
    Read the raw account records of a 1.0 data file.

    A missing or empty file is an empty vault.

    Raises:
        CorruptData: If the file cannot be decrypted or parsed
        OSError: If the file exists but cannot be read
    """
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            encrypted = f.read()
    except FileNotFoundError:
        return []
    except UnicodeDecodeError as e:
        raise CorruptData("Legacy data file is not text") from e

    if not encrypted.strip():
        return []

    text = decrypt_openssl_text(encrypted, legacy_key)
    try:
        records = json.loads(text or '[]')
    except ValueError as e:
        raise CorruptData("Legacy data is not valid JSON") from e
    if not isinstance(records, list):
        raise CorruptData("Legacy data is not an account list")
    logger.info(f"Read {len(records)} legacy account record(s)")
    return records
