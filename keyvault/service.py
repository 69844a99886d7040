"""
The vault handle used by a host application.

`VaultService` bundles the LockController, password generation and backup
codec behind the request/response calls a UI makes. The host creates one
instance per vault and owns it for the lifetime of the process.
"""

import json
import logging
from typing import Any, List, Mapping, Optional

from . import vault_manager
from .backup import BackupCodec, build_export_document, read_export_document
from .controller import LockController, VaultState
from .crypto import KDFParams
from .errors import InvalidBackup, VaultError
from .generator import MODE_RANDOM, SiteContext, generate_password, is_generation_error
from .models import Account, PasswordPolicy
from .storage import Draft

logger = logging.getLogger(__name__)


class VaultService:
    """Explicit vault handle; there is no module-level vault instance."""

    def __init__(self, vault_dir: Optional[str] = None, kdf_params: Optional[KDFParams] = None):
        self.vault_dir = vault_manager.resolve_vault_dir(vault_dir)
        self.controller = LockController(self.vault_dir, kdf_params)
        self.codec = BackupCodec(kdf_params)
        self.last_error: Optional[VaultError] = None

    @property
    def state(self) -> VaultState:
        return self.controller.state

    def _attempt(self, operation, *args) -> bool:
        """Run a state-changing operation, recording its failure tag."""
        self.last_error = None
        try:
            operation(*args)
            return True
        except VaultError as e:
            self.last_error = e
            logger.warning(f"{operation.__name__} failed: {e.code}")
            return False

    def initialize(self, passphrase: str) -> bool:
        return self._attempt(self.controller.initialize, passphrase)

    def unlock(self, passphrase: str) -> bool:
        return self._attempt(self.controller.unlock, passphrase)

    def change_passphrase(self, old_passphrase: str, new_passphrase: str) -> bool:
        return self._attempt(self.controller.change_passphrase, old_passphrase, new_passphrase)

    def lock(self) -> None:
        self.controller.lock()

    def is_unlocked(self) -> bool:
        return self.controller.is_unlocked()

    def is_initialized(self) -> bool:
        return self.controller.is_initialized()

    def list_accounts(self) -> List[Account]:
        return self.controller.store.list()

    def get_account(self, account_id: str) -> Account:
        return self.controller.store.get(account_id)

    def add_account(self, draft: Draft) -> Account:
        return self.controller.store.add(draft)

    def update_account(self, account_id: str, patch: Draft) -> Account:
        return self.controller.store.update(account_id, patch)

    def delete_account(self, account_id: str) -> bool:
        return self.controller.store.delete(account_id)

    def generate_password(self, policy: Optional[PasswordPolicy] = None, mode: str = MODE_RANDOM,
                          context: Optional[SiteContext] = None) -> str:
        return generate_password(policy, mode, context)

    @staticmethod
    def is_usable_password(text: str) -> bool:
        return not is_generation_error(text)

    def encrypt_blob(self, text: str, passphrase: str) -> str:
        return self.codec.encrypt(text, passphrase)

    def decrypt_blob(self, blob: str, passphrase: str) -> str:
        return self.codec.decrypt(blob, passphrase)

    def export_accounts(self, passphrase: Optional[str] = None) -> str:
        """Serialize every account into an export document (JSON text)."""
        document = build_export_document(self.list_accounts(), passphrase, self.codec)
        return json.dumps(document, indent=2, ensure_ascii=False)

    def import_accounts(self, text: str, passphrase: Optional[str] = None) -> List[Account]:
        """Add the accounts of an export document under fresh ids."""
        try:
            document: Mapping[str, Any] = json.loads(text)
        except ValueError as e:
            raise InvalidBackup(f"Backup is not valid JSON: {e}") from e
        records = read_export_document(document, passphrase, self.codec)
        return self.controller.store.import_accounts(records)
