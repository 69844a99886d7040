"""
Command-line entry point for the KeyVault credential vault.

Usage:
    keyvault init                   # Create a vault protected by a master passphrase
    keyvault status                 # Show whether a vault exists
    keyvault list                   # List accounts (hidden fields masked)
    keyvault add NAME --field K=V   # Add an account
    keyvault delete ID              # Delete an account
    keyvault generate               # Generate a password
    keyvault export FILE            # Export accounts to JSON
    keyvault import FILE            # Import accounts from JSON
    keyvault passwd                 # Change the master passphrase
"""

import argparse
import getpass
import logging
import sys
from typing import List, Optional, Tuple

from . import config
from .errors import VaultError
from .generator import MODE_DETERMINISTIC, MODE_RANDOM, SiteContext
from .models import Account, PasswordPolicy
from .service import VaultService

logger = logging.getLogger(__name__)


def _prompt_passphrase(prompt: str, confirm: bool = False) -> str:
    passphrase = getpass.getpass(prompt)
    if confirm and getpass.getpass("Repeat passphrase: ") != passphrase:
        raise SystemExit("Passphrases do not match")
    return passphrase


def _unlock(service: VaultService) -> bool:
    if service.unlock(_prompt_passphrase("Master passphrase: ")):
        return True
    print(f"Unlock failed: {service.last_error.code}", file=sys.stderr)
    return False


def _parse_pairs(pairs: List[str]) -> List[Tuple[str, str]]:
    result = []
    for pair in pairs:
        name, sep, value = pair.partition('=')
        if not sep or not name:
            raise SystemExit(f"Expected NAME=VALUE, got {pair!r}")
        result.append((name, value))
    return result


def _print_account(account: Account, show_hidden: bool) -> None:
    tags = f" [{', '.join(account.tags)}]" if account.tags else ""
    print(f"{account.id}  {account.name}{tags}")
    for name, field in account.ordered_fields():
        value = config.TABLE_PASSWORD_HIDDEN_TEXT if field.hidden and not show_hidden else field.value
        print(f"    {name}: {value}")


def _policy_from_args(args) -> PasswordPolicy:
    return PasswordPolicy(
        length=args.length,
        include_uppercase=not args.no_upper,
        include_lowercase=not args.no_lower,
        include_numbers=not args.no_digits,
        include_symbols=not args.no_symbols,
        exclude_ambiguous=not args.allow_ambiguous,
        custom_characters=args.custom,
        exclude_characters=args.exclude,
    )


def cmd_init(service: VaultService, args) -> int:
    if service.initialize(_prompt_passphrase("New master passphrase: ", confirm=True)):
        print(f"Vault created in {service.vault_dir}")
        return 0
    print(f"Initialization failed: {service.last_error.code}", file=sys.stderr)
    return 1


def cmd_status(service: VaultService, args) -> int:
    print(f"Vault directory: {service.vault_dir}")
    print(f"State: {service.state.value}")
    return 0


def cmd_list(service: VaultService, args) -> int:
    if not _unlock(service):
        return 1
    for account in service.list_accounts():
        _print_account(account, args.show_hidden)
    return 0


def cmd_add(service: VaultService, args) -> int:
    if not _unlock(service):
        return 1
    fields = {name: {'value': value, 'hidden': False} for name, value in _parse_pairs(args.field)}
    fields.update({name: {'value': value, 'hidden': True} for name, value in _parse_pairs(args.secret)})
    account = service.add_account({'name': args.name, 'fields': fields, 'tags': args.tag})
    print(account.id)
    return 0


def cmd_delete(service: VaultService, args) -> int:
    if not _unlock(service):
        return 1
    if service.delete_account(args.id):
        print(f"Deleted {args.id}")
        return 0
    print(f"No account with id {args.id}", file=sys.stderr)
    return 1


def cmd_generate(service: VaultService, args) -> int:
    policy = _policy_from_args(args)
    if args.site:
        context = SiteContext(_prompt_passphrase("Master passphrase: "), args.site)
        password = service.generate_password(policy, MODE_DETERMINISTIC, context)
    else:
        password = service.generate_password(policy, MODE_RANDOM)
    if not service.is_usable_password(password):
        print(password, file=sys.stderr)
        return 1
    print(password)
    return 0


def cmd_export(service: VaultService, args) -> int:
    if not _unlock(service):
        return 1
    passphrase = _prompt_passphrase("Backup passphrase: ", confirm=True) if args.encrypt else None
    text = service.export_accounts(passphrase)
    with open(args.file, 'w', encoding='utf-8') as f:
        f.write(text)
    print(f"Exported to {args.file}")
    return 0


def cmd_import(service: VaultService, args) -> int:
    with open(args.file, 'r', encoding='utf-8') as f:
        text = f.read()
    if not _unlock(service):
        return 1
    passphrase = _prompt_passphrase("Backup passphrase: ") if args.encrypted else None
    imported = service.import_accounts(text, passphrase)
    print(f"Imported {len(imported)} account(s)")
    return 0


def cmd_passwd(service: VaultService, args) -> int:
    old = _prompt_passphrase("Current master passphrase: ")
    new = _prompt_passphrase("New master passphrase: ", confirm=True)
    if service.change_passphrase(old, new):
        print("Master passphrase changed")
        return 0
    print(f"Passphrase change failed: {service.last_error.code}", file=sys.stderr)
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="keyvault", description=f"{config.APP_NAME} credential vault")
    parser.add_argument("--vault-dir", help="Vault directory (default: $KEYVAULT_HOME or ~/.keyring)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=config.APP_VERSION)
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create a new vault").set_defaults(handler=cmd_init)
    subparsers.add_parser("status", help="Show vault state").set_defaults(handler=cmd_status)

    list_parser = subparsers.add_parser("list", help="List accounts")
    list_parser.add_argument("--show-hidden", action="store_true", help="Print hidden field values")
    list_parser.set_defaults(handler=cmd_list)

    add_parser = subparsers.add_parser("add", help="Add an account")
    add_parser.add_argument("name")
    add_parser.add_argument("--field", action="append", default=[], metavar="NAME=VALUE")
    add_parser.add_argument("--secret", action="append", default=[], metavar="NAME=VALUE",
                            help="Field shown masked by default")
    add_parser.add_argument("--tag", action="append", default=[])
    add_parser.set_defaults(handler=cmd_add)

    delete_parser = subparsers.add_parser("delete", help="Delete an account")
    delete_parser.add_argument("id")
    delete_parser.set_defaults(handler=cmd_delete)

    gen_parser = subparsers.add_parser("generate", help="Generate a password")
    gen_parser.add_argument("--length", type=int, default=config.PASSWORD_GENERATOR_DEFAULT_LENGTH)
    gen_parser.add_argument("--no-upper", action="store_true")
    gen_parser.add_argument("--no-lower", action="store_true")
    gen_parser.add_argument("--no-digits", action="store_true")
    gen_parser.add_argument("--no-symbols", action="store_true")
    gen_parser.add_argument("--allow-ambiguous", action="store_true")
    gen_parser.add_argument("--custom", help="Extra characters to include")
    gen_parser.add_argument("--exclude", help="Characters to leave out")
    gen_parser.add_argument("--site", help="Derive a reproducible password for this site label")
    gen_parser.set_defaults(handler=cmd_generate)

    export_parser = subparsers.add_parser("export", help="Export accounts to a JSON file")
    export_parser.add_argument("file")
    export_parser.add_argument("--encrypt", action="store_true", help="Encrypt the export")
    export_parser.set_defaults(handler=cmd_export)

    import_parser = subparsers.add_parser("import", help="Import accounts from a JSON file")
    import_parser.add_argument("file")
    import_parser.add_argument("--encrypted", action="store_true", help="The file is an encrypted export")
    import_parser.set_defaults(handler=cmd_import)

    subparsers.add_parser("passwd", help="Change the master passphrase").set_defaults(handler=cmd_passwd)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format=config.LOG_FORMAT)

    service = VaultService(args.vault_dir)
    try:
        return args.handler(service, args)
    except VaultError as e:
        print(f"Error ({e.code}): {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        service.lock()


if __name__ == "__main__":
    sys.exit(main())
