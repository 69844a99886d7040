"""
Exception classes for vault operations.

Every exception carries a ``code`` tag so callers can branch on the failure
kind without matching on class names.
"""


class VaultError(Exception):
    """Base exception for vault operations"""
    code = "VaultError"


class AlreadyInitialized(VaultError):
    """Raised when initializing a vault whose config already exists"""
    code = "AlreadyInitialized"


class NotInitialized(VaultError):
    """Raised when the vault config file does not exist"""
    code = "NotInitialized"


class WrongPassphrase(VaultError):
    """Raised when the passphrase does not match the stored verifier"""
    code = "WrongPassphrase"


class VaultLocked(VaultError):
    """Raised when an account operation is attempted while locked"""
    code = "VaultLocked"


class AccountNotFound(VaultError):
    """Raised when no account has the requested id"""
    code = "NotFound"


class CorruptData(VaultError):
    """Raised when vault files cannot be decrypted or parsed"""
    code = "CorruptData"


class EmptyCharset(VaultError):
    """Raised when a password policy leaves no characters to draw from"""
    code = "EmptyCharset"


class StorageIOError(VaultError):
    """Raised when reading or writing vault files fails"""
    code = "IOFailure"


class WrongPassphraseOrCorrupt(VaultError):
    """Raised when a backup blob cannot be decrypted, whatever the cause"""
    code = "WrongPassphraseOrCorrupt"


class InvalidPassphrase(VaultError, ValueError):
    """Raised when a new passphrase is unusable (e.g. empty)"""
    code = "InvalidPassphrase"


class InvalidAccount(VaultError, ValueError):
    """Raised when an account draft or patch is malformed"""
    code = "InvalidAccount"


class InvalidPolicy(VaultError, ValueError):
    """Raised when a password policy is malformed"""
    code = "InvalidPolicy"


class InvalidBackup(VaultError, ValueError):
    """Raised when an export document has an unexpected structure"""
    code = "InvalidBackup"
