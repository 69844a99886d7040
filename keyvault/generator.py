"""
Password generation.

Two modes share the same character-set construction:

- random: each character drawn independently with the ``secrets`` module.
- deterministic: SHA-256 over ``passphrase:site:policy_json`` (UTF-8), each
  output character picked by ``digest[i % 32] % len(charset)``. The policy
  JSON has a fixed key order and ASCII escapes, so the output is identical
  on every run and platform.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from . import config
from .errors import EmptyCharset, InvalidPolicy
from .models import PasswordPolicy

logger = logging.getLogger(__name__)

MODE_RANDOM = "random"
MODE_DETERMINISTIC = "deterministic"


@dataclass(frozen=True)
class SiteContext:
    """Inputs of deterministic mode besides the policy."""
    master_passphrase: str
    site_label: str


def build_charset(policy: PasswordPolicy) -> str:
    """
    Union of the selected classes and custom characters, minus exclusions.

    Characters keep their first-occurrence order, each appearing once.

    Raises:
        EmptyCharset: If no characters remain
    """
    chars = ""
    if policy.include_lowercase:
        chars += config.PASSWORD_GENERATOR_LOWERCASE
    if policy.include_uppercase:
        chars += config.PASSWORD_GENERATOR_UPPERCASE
    if policy.include_numbers:
        chars += config.PASSWORD_GENERATOR_DIGITS
    if policy.include_symbols:
        chars += config.PASSWORD_GENERATOR_SYMBOLS
    if policy.custom_characters:
        chars += policy.custom_characters

    excluded = set(policy.exclude_characters or "")
    if policy.exclude_ambiguous:
        excluded.update(config.PASSWORD_GENERATOR_AMBIGUOUS_CHARS)

    charset = ''.join(c for c in dict.fromkeys(chars) if c not in excluded)
    if not charset:
        raise EmptyCharset("The password policy leaves no characters to choose from")
    return charset


def generate_random(policy: PasswordPolicy) -> str:
    """Draw `policy.length` characters uniformly and independently."""
    charset = build_charset(policy)
    return ''.join(secrets.choice(charset) for _ in range(policy.length))


def deterministic_digest(master_passphrase: str, site_label: str, policy: PasswordPolicy) -> bytes:
    separator = config.PASSWORD_GENERATOR_SEPARATOR
    material = f"{master_passphrase}{separator}{site_label}{separator}{policy.canonical_json()}"
    return hashlib.sha256(material.encode('utf-8')).digest()


def generate_deterministic(master_passphrase: str, site_label: str, policy: PasswordPolicy) -> str:
    """
    Reproducible password for a passphrase and site label.

    Raises:
        ValueError: If the passphrase or site label is empty
        EmptyCharset: If the policy leaves no characters to choose from
    """
    if not master_passphrase or not site_label:
        raise ValueError("Master passphrase and site label are required")
    charset = build_charset(policy)
    digest = deterministic_digest(master_passphrase, site_label, policy)
    return ''.join(charset[digest[i % len(digest)] % len(charset)] for i in range(policy.length))


def generate_password(policy: Optional[PasswordPolicy] = None, mode: str = MODE_RANDOM,
                      context: Optional[SiteContext] = None) -> str:
    """
    Generate a password, returning a placeholder text instead of raising.

    Callers must check the result with `is_generation_error` before using it.
    """
    try:
        if policy is None:
            policy = PasswordPolicy()
        elif not isinstance(policy, PasswordPolicy):
            policy = PasswordPolicy.from_dict(policy)

        if mode == MODE_RANDOM:
            try:
                return generate_random(policy)
            except EmptyCharset:
                return config.GENERATOR_ERROR_EMPTY_CHARSET

        if mode == MODE_DETERMINISTIC:
            if context is None or not context.master_passphrase or not context.site_label:
                return config.GENERATOR_ERROR_MISSING_CONTEXT
            try:
                return generate_deterministic(context.master_passphrase, context.site_label, policy)
            except EmptyCharset:
                return config.GENERATOR_ERROR_INVALID_CHARSET

        logger.warning(f"Unknown password generation mode: {mode!r}")
    except InvalidPolicy as e:
        logger.warning(f"Rejected password policy: {e}")
    return config.GENERATOR_ERROR_GENERIC


def is_generation_error(text: str) -> bool:
    """True if `text` is one of the placeholder texts, not a usable secret."""
    return text in config.GENERATOR_ERROR_TEXTS
