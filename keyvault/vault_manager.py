import os
from typing import Optional
from . import config


def get_default_vault_dir() -> str:
    """
    Returns the directory holding the vault files.
    The KEYVAULT_HOME environment variable takes precedence over ~/.keyring.
    """
    override = os.environ.get(config.VAULT_DIR_ENV_VAR)
    if override:
        return os.path.expanduser(override)
    return os.path.join(os.path.expanduser("~"), config.CONFIG_DIR_NAME)


def resolve_vault_dir(vault_dir: Optional[str] = None) -> str:
    return os.path.abspath(vault_dir or get_default_vault_dir())


def get_config_path(vault_dir: str) -> str:
    return os.path.join(vault_dir, config.CONFIG_FILE)


def get_data_path(vault_dir: str) -> str:
    return os.path.join(vault_dir, config.DATA_FILE)
