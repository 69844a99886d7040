"""
Configuration constants for the KeyVault credential vault.
"""

import string

# Application Metadata
APP_VERSION = "2.0.0"  # Use: Current version of the application. Type: str. Range: Semantic versioning string (e.g., "1.0.0")
APP_NAME = "KeyVault"  # Use: Name of the application, also written as `exportedBy` in export documents. Type: str. Range: Any valid string.

# Security Settings
SALT_SIZE = 32  # Use: Size of the cryptographic salt in bytes for key derivation (vault and backups). Type: int. Range: At least 32 bytes.
KEY_SIZE = 32  # Use: Size of the encryption key in bytes. Corresponds to AES-256. Type: int. Range: 16 (AES-128), 24 (AES-192), or 32 (AES-256) bytes.
MASTER_SECRET_SIZE = 32  # Use: Size of the stretched master secret produced by the slow KDF, expanded with HKDF afterwards. Type: int. Range: 32 bytes.
VERIFIER_SIZE = 64  # Use: Size of the passphrase verifier hash in bytes. Differs from KEY_SIZE so the two outputs never coincide. Type: int. Range: Any value other than KEY_SIZE.
NONCE_SIZE = 12  # Use: Size of the Nonce (Number used once) in bytes for AES-GCM. Type: int. Range: 12 bytes (96 bits) is the recommended size for GCM.
TAG_SIZE = 16  # Use: Size of the authentication tag in bytes for AES-GCM. Type: int. Range: 16 bytes (128 bits) is the recommended size for GCM.
HKDF_INFO_VERIFIER = b"keyvault/verifier/v2"  # Use: HKDF domain-separation label for the verifier hash. Type: bytes. Range: Must differ from HKDF_INFO_ENCRYPTION.
HKDF_INFO_ENCRYPTION = b"keyvault/encryption/v2"  # Use: HKDF domain-separation label for the encryption key. Type: bytes. Range: Must differ from HKDF_INFO_VERIFIER.

# Key Derivation Settings
KDF_ARGON2ID = "argon2id"  # Use: Identifier of the Argon2id key-stretching algorithm in config files and backups. Type: str. Range: "argon2id"
KDF_PBKDF2_SHA256 = "pbkdf2-sha256"  # Use: Identifier of the PBKDF2-HMAC-SHA256 key-stretching algorithm. Type: str. Range: "pbkdf2-sha256"
KDF_ALGORITHM_DEFAULT = KDF_ARGON2ID  # Use: Algorithm used for new vaults and backups. Type: str. Range: KDF_ARGON2ID or KDF_PBKDF2_SHA256.
ARGON2_TIME_COST = 2  # Use: Argon2id time cost parameter. Controls the number of iterations. Type: int. Range: Typically 1 to 10. Higher values increase security but also computation time.
ARGON2_MEMORY_COST = 65536  # Use: Argon2id memory cost parameter. Controls the memory usage in KiB. Type: int. Range: Recommended to be at least 65536 (64 MB).
ARGON2_PARALLELISM = 4  # Use: Argon2id parallelism parameter. Controls the number of threads/lanes. Type: int. Range: Typically 1 to 8.
PBKDF2_ITERATIONS = 600000  # Use: Number of iterations for PBKDF2-HMAC-SHA256 when that algorithm is selected. Type: int. Range: At least 600,000 (OWASP 2023).
KDF_MAX_TIME_COST = 64  # Use: Upper bound accepted for Argon2id time cost read from untrusted files. Type: int. Range: Positive integer.
KDF_MAX_MEMORY_COST = 1048576  # Use: Upper bound accepted for Argon2id memory cost (KiB) read from untrusted files. Type: int. Range: Positive integer (1 GiB).
KDF_MAX_PARALLELISM = 64  # Use: Upper bound accepted for Argon2id parallelism read from untrusted files. Type: int. Range: Positive integer.
KDF_MAX_ITERATIONS = 50000000  # Use: Upper bound accepted for PBKDF2 iterations read from untrusted files. Type: int. Range: Positive integer.

# Vault File Formats
VAULT_FORMAT_VERSION = "2.0"  # Use: Version written to config.json by initialize. Type: str. Range: "2.0"
LEGACY_FORMAT_VERSION = "1.0"  # Use: Version of the original vault format that is upgraded on unlock. Type: str. Range: "1.0"
LEGACY_PBKDF2_ITERATIONS = 100000  # Use: PBKDF2 iteration count of the legacy format. Type: int. Range: Fixed at 100000.
LEGACY_VERIFIER_SIZE = 64  # Use: Verifier length in bytes of the legacy format. Type: int. Range: Fixed at 64.
LEGACY_KEY_SIZE = 32  # Use: Key length in bytes of the legacy format (hex encoded before use). Type: int. Range: Fixed at 32.
DATA_FILE_MAGIC = b"KVDB"  # Use: Magic bytes at the start of the encrypted data file. Type: bytes. Range: 4 bytes.
DATA_FILE_VERSION = 2  # Use: Binary format version of the encrypted data file. Type: int. Range: Positive integer.
BACKUP_MAGIC = b"KVBK"  # Use: Magic bytes at the start of a decoded backup blob. Type: bytes. Range: 4 bytes.
BACKUP_FORMAT_VERSION = 1  # Use: Binary format version of backup blobs. Type: int. Range: 0-255.
EXPORT_FORMAT_VERSION = "1.0.0"  # Use: Version written to JSON export documents. Type: str. Range: Semantic versioning string.

# File and Directory Names
CONFIG_DIR_NAME = ".keyring"  # Use: Name of the hidden directory within the user's home directory holding the vault. Type: str. Range: Any valid directory name.
VAULT_DIR_ENV_VAR = "KEYVAULT_HOME"  # Use: Environment variable overriding the vault directory. Type: str. Range: Any valid variable name.
CONFIG_FILE = "config.json"  # Use: Filename of the (non-secret) vault config. Its presence means "initialized". Type: str. Range: Any valid filename.
DATA_FILE = "accounts.encrypted"  # Use: Filename of the encrypted account collection. Type: str. Range: Any valid filename.
TEMP_FILE_SUFFIX = ".tmp"  # Use: Suffix of the temporary sibling file used for atomic replacement. Type: str. Range: Any valid suffix.

# Field Migration Settings
SECRET_FIELD_KEYWORDS = ("password", "pwd", "pass", "pin", "secret", "key")  # Use: Case-insensitive substrings marking a legacy field as hidden. Type: tuple[str]. Range: Lowercase keywords.

# Password Generator Settings
PASSWORD_GENERATOR_DEFAULT_LENGTH = 16  # Use: Default length for generated passwords. Type: int. Range: Positive integer.
PASSWORD_GENERATOR_LOWERCASE = string.ascii_lowercase  # Use: Lowercase character class. Type: str. Range: "a-z"
PASSWORD_GENERATOR_UPPERCASE = string.ascii_uppercase  # Use: Uppercase character class. Type: str. Range: "A-Z"
PASSWORD_GENERATOR_DIGITS = string.digits  # Use: Digit character class. Type: str. Range: "0-9"
PASSWORD_GENERATOR_SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"  # Use: Symbol character class. Type: str. Range: Printable ASCII punctuation.
PASSWORD_GENERATOR_AMBIGUOUS_CHARS = "0O1lI"  # Use: Characters considered ambiguous and can be excluded from generated passwords. Type: str. Range: Any string of characters.
PASSWORD_GENERATOR_SEPARATOR = ":"  # Use: Separator between passphrase, site label and policy in deterministic mode. Type: str. Range: Single character.
GENERATOR_ERROR_EMPTY_CHARSET = "Please select at least one character type"  # Use: Placeholder returned by random mode when the charset is empty. Type: str. Range: Any descriptive string.
GENERATOR_ERROR_MISSING_CONTEXT = "Enter master password and site name"  # Use: Placeholder returned by deterministic mode without passphrase or site. Type: str. Range: Any descriptive string.
GENERATOR_ERROR_INVALID_CHARSET = "Invalid character set"  # Use: Placeholder returned by deterministic mode when the charset is empty. Type: str. Range: Any descriptive string.
GENERATOR_ERROR_GENERIC = "Error generating password"  # Use: Placeholder returned for any other generation failure. Type: str. Range: Any descriptive string.
GENERATOR_ERROR_TEXTS = (  # Use: Every sentinel text a caller must treat as "not a usable secret". Type: tuple[str]. Range: The GENERATOR_ERROR_* constants.
    GENERATOR_ERROR_EMPTY_CHARSET,
    GENERATOR_ERROR_MISSING_CONTEXT,
    GENERATOR_ERROR_INVALID_CHARSET,
    GENERATOR_ERROR_GENERIC,
)

# Command Line Settings
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'  # Use: Format passed to logging.basicConfig by the command-line driver. Type: str. Range: Any logging format string.
TABLE_PASSWORD_HIDDEN_TEXT = "••••••••"  # Use: Placeholder printed for hidden field values. Type: str. Range: Any string.
