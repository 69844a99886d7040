"""
File helpers for the vault: owner-only permissions and atomic replacement.
"""
import logging
import os
import platform
import stat

from . import config

logger = logging.getLogger(__name__)

IS_WINDOWS = platform.system() == "Windows"

if IS_WINDOWS:
    try:
        import ntsecuritycon
        import win32api
        import win32security
        WINDOWS_SECURITY_AVAILABLE = True
    except ImportError:
        logger.warning("pywin32 not fully installed, cannot restrict vault file ACLs.")
        WINDOWS_SECURITY_AVAILABLE = False
else:
    WINDOWS_SECURITY_AVAILABLE = False


def _restrict_windows_acl(path: str) -> bool:
    """Replace the DACL of `path` with a single entry for the current user, blocking inheritance."""
    if not WINDOWS_SECURITY_AVAILABLE:
        logger.warning(f"Skipping ACL change for {path}: pywin32 not available.")
        return False

    try:
        token = win32security.OpenProcessToken(win32api.GetCurrentProcess(), win32security.TOKEN_QUERY)
        user_sid, _ = win32security.GetTokenInformation(token, win32security.TokenUser)

        dacl = win32security.ACL()
        dacl.AddAccessAllowedAce(
            win32security.ACL_REVISION,
            ntsecuritycon.FILE_GENERIC_READ | ntsecuritycon.FILE_GENERIC_WRITE | ntsecuritycon.DELETE,
            user_sid
        )
        win32security.SetNamedSecurityInfo(
            path,
            win32security.SE_FILE_OBJECT,
            win32security.DACL_SECURITY_INFORMATION | win32security.PROTECTED_DACL_SECURITY_INFORMATION,
            None,
            None,
            dacl,
            None
        )
    except win32api.error as e:
        logger.warning(f"Failed to restrict ACL of {path}: {e}")
        return False
    logger.debug(f"Restricted ACL of {path} to the current user.")
    return True


def set_owner_only_permissions(filepath: str) -> bool:
    """Set file to be readable/writable by owner only."""
    if IS_WINDOWS:
        return _restrict_windows_acl(filepath)
    os.chmod(filepath, stat.S_IRUSR | stat.S_IWUSR)  # 600
    return True


def ensure_private_dir(dirpath: str) -> None:
    """Create the vault directory, accessible by the owner only."""
    os.makedirs(dirpath, exist_ok=True)
    if IS_WINDOWS:
        _restrict_windows_acl(dirpath)
    else:
        os.chmod(dirpath, stat.S_IRWXU)  # 700


def atomic_write(filepath: str, data: bytes) -> None:
    """
    Replace `filepath` with `data` without a partial-write window.

    The bytes go to a temporary sibling file which is flushed, fsynced and
    then renamed over the target.

    Raises:
        OSError: If any step fails; the temporary file is removed
    """
    tmp_path = filepath + config.TEMP_FILE_SUFFIX
    try:
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, stat.S_IRUSR | stat.S_IWUSR)
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, filepath)
    except OSError:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise

    if not set_owner_only_permissions(filepath):
        logger.warning(f"Failed to set secure file permissions for {filepath}. This might indicate a permission issue.")
