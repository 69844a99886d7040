"""
Cryptographic operations for the credential vault.

Key derivation turns the master passphrase and a salt into two independent
values: a verifier hash (stored on disk to check the passphrase) and an
AES-256 key (held in memory only while unlocked). A single slow stretch
(Argon2id or PBKDF2-HMAC-SHA256) produces a master secret which HKDF then
expands under two distinct labels and lengths.
"""

import hmac
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from . import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KDFParams:
    """Versioned key-stretching parameters, stored next to the salt."""
    algorithm: str = config.KDF_ALGORITHM_DEFAULT
    time_cost: int = config.ARGON2_TIME_COST
    memory_cost: int = config.ARGON2_MEMORY_COST
    parallelism: int = config.ARGON2_PARALLELISM
    iterations: int = config.PBKDF2_ITERATIONS

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Check the parameters are usable and within sane bounds.

        Raises:
            ValueError: If the algorithm is unknown or a parameter is out of range
        """
        if self.algorithm == config.KDF_ARGON2ID:
            if not 1 <= self.parallelism <= config.KDF_MAX_PARALLELISM:
                raise ValueError(f"Argon2 parallelism out of range: {self.parallelism}")
            if not 1 <= self.time_cost <= config.KDF_MAX_TIME_COST:
                raise ValueError(f"Argon2 time cost out of range: {self.time_cost}")
            if not 8 * self.parallelism <= self.memory_cost <= config.KDF_MAX_MEMORY_COST:
                raise ValueError(f"Argon2 memory cost out of range: {self.memory_cost}")
        elif self.algorithm == config.KDF_PBKDF2_SHA256:
            if not 1 <= self.iterations <= config.KDF_MAX_ITERATIONS:
                raise ValueError(f"PBKDF2 iterations out of range: {self.iterations}")
        else:
            raise ValueError(f"Unknown key derivation algorithm: {self.algorithm!r}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the dictionary written into config files."""
        if self.algorithm == config.KDF_ARGON2ID:
            return {
                'algorithm': self.algorithm,
                'timeCost': self.time_cost,
                'memoryCost': self.memory_cost,
                'parallelism': self.parallelism,
            }
        return {'algorithm': self.algorithm, 'iterations': self.iterations}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'KDFParams':
        """
        Create from a config dictionary.

        Raises:
            ValueError: If the dictionary does not describe valid parameters
        """
        if not isinstance(data, Mapping):
            raise ValueError("KDF parameters must be an object")
        algorithm = data.get('algorithm')
        if algorithm == config.KDF_ARGON2ID:
            return cls(
                algorithm=algorithm,
                time_cost=_require_int(data, 'timeCost'),
                memory_cost=_require_int(data, 'memoryCost'),
                parallelism=_require_int(data, 'parallelism'),
            )
        if algorithm == config.KDF_PBKDF2_SHA256:
            return cls(algorithm=algorithm, iterations=_require_int(data, 'iterations'))
        raise ValueError(f"Unknown key derivation algorithm: {algorithm!r}")


def _require_int(data: Mapping[str, Any], name: str) -> int:
    value = data.get(name)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"KDF parameter {name} must be an integer")
    return value


class SecretKey:
    """
    Symmetric key held in a mutable buffer so it can be zeroed on lock.

    Python cannot guarantee that no other copy of the key exists in memory,
    but the buffer owned here is overwritten rather than merely dropped.
    """

    def __init__(self, material: Union[bytes, bytearray]):
        self._buffer = bytearray(material)
        self._wiped = False

    @property
    def material(self) -> bytearray:
        if self._wiped:
            raise RuntimeError("Key material has been wiped")
        return self._buffer

    def is_wiped(self) -> bool:
        return self._wiped

    def wipe(self) -> None:
        """Overwrite the key buffer with zeros."""
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._wiped = True

    def __len__(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else "redacted"
        return f"SecretKey(<{state}>)"


class CryptoManager:
    """Handles all cryptographic operations for the vault."""

    def __init__(self, kdf_params: Optional[KDFParams] = None):
        """Initialize the crypto manager."""
        self.backend = default_backend()
        self.kdf_params = kdf_params or KDFParams()

    def generate_salt(self) -> bytes:
        """Generate a cryptographically secure random salt."""
        return os.urandom(config.SALT_SIZE)

    def stretch(self, passphrase: str, salt: bytes) -> bytearray:
        """
        Run the deliberately slow key-stretching function.

        Args:
            passphrase: The master passphrase
            salt: Random salt for key derivation

        Returns:
            32-byte master secret in a wipeable buffer
        """
        params = self.kdf_params
        secret = passphrase.encode('utf-8')
        if params.algorithm == config.KDF_ARGON2ID:
            master = hash_secret_raw(
                secret=secret,
                salt=salt,
                time_cost=params.time_cost,
                memory_cost=params.memory_cost,
                parallelism=params.parallelism,
                hash_len=config.MASTER_SECRET_SIZE,
                type=Type.ID
            )
        else:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=config.MASTER_SECRET_SIZE,
                salt=salt,
                iterations=params.iterations,
                backend=self.backend
            )
            master = kdf.derive(secret)
        return bytearray(master)

    def _expand(self, master: bytearray, salt: bytes, info: bytes, length: int) -> bytes:
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=length,
            salt=salt,
            info=info,
            backend=self.backend
        )
        return hkdf.derive(bytes(master))

    def derive_verifier(self, passphrase: str, salt: bytes) -> bytes:
        """Derive the 64-byte verifier hash stored in the vault config."""
        return self.derive_verifier_and_key(passphrase, salt)[0]

    def derive_key(self, passphrase: str, salt: bytes) -> SecretKey:
        """Derive the 32-byte encryption key."""
        return self.derive_verifier_and_key(passphrase, salt)[1]

    def derive_verifier_and_key(self, passphrase: str, salt: bytes) -> Tuple[bytes, SecretKey]:
        """
        Derive both outputs from a single stretch.

        The verifier and the key use different HKDF labels and lengths, so
        knowing the verifier reveals nothing about the key.
        """
        master = self.stretch(passphrase, salt)
        try:
            verifier = self._expand(master, salt, config.HKDF_INFO_VERIFIER, config.VERIFIER_SIZE)
            key = SecretKey(self._expand(master, salt, config.HKDF_INFO_ENCRYPTION, config.KEY_SIZE))
        finally:
            self.clear_bytes(master)
        return verifier, key

    def encrypt(self, plaintext: bytes, key: Union[SecretKey, bytes],
                associated_data: bytes = b"") -> Tuple[bytes, bytes, bytes]:
        """
        Encrypt data using AES-256-GCM.

        Args:
            plaintext: Data to encrypt
            key: 32-byte encryption key
            associated_data: Unencrypted header bytes bound to the ciphertext

        Returns:
            Tuple of (ciphertext, nonce, tag)
        """
        nonce = os.urandom(config.NONCE_SIZE)
        cipher = Cipher(
            algorithms.AES(_key_bytes(key)),
            modes.GCM(nonce),
            backend=self.backend
        )
        encryptor = cipher.encryptor()
        if associated_data:
            encryptor.authenticate_additional_data(associated_data)
        ciphertext = encryptor.update(plaintext) + encryptor.finalize()
        return ciphertext, nonce, encryptor.tag

    def decrypt(self, ciphertext: bytes, key: Union[SecretKey, bytes], nonce: bytes, tag: bytes,
                associated_data: bytes = b"") -> bytes:
        """
        Decrypt data using AES-256-GCM.

        Raises:
            InvalidTag: If authentication fails
        """
        cipher = Cipher(
            algorithms.AES(_key_bytes(key)),
            modes.GCM(nonce, tag),
            backend=self.backend
        )
        decryptor = cipher.decryptor()
        if associated_data:
            decryptor.authenticate_additional_data(associated_data)
        return decryptor.update(ciphertext) + decryptor.finalize()

    def secure_compare(self, a: bytes, b: bytes) -> bool:
        """Constant-time comparison to prevent timing attacks."""
        return hmac.compare_digest(a, b)

    def clear_bytes(self, data: bytearray) -> None:
        """Attempt to clear sensitive bytes from memory."""
        if isinstance(data, bytearray):
            for i in range(len(data)):
                data[i] = 0


def _key_bytes(key: Union[SecretKey, bytes]) -> Union[bytes, bytearray]:
    if isinstance(key, SecretKey):
        return key.material
    return key
