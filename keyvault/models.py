"""
Data model for the credential vault.

Accounts are serialized with the camelCase keys of the on-disk format
(``fieldOrder``, ``passwordRules``, ``createdAt``, ``updatedAt``).
"""

import copy
import datetime
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import config
from .crypto import KDFParams
from .errors import InvalidAccount, InvalidPolicy


def utc_now() -> datetime.datetime:
    """Current UTC time truncated to the millisecond precision stored on disk."""
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def format_timestamp(value: datetime.datetime) -> str:
    """Format as ISO 8601 with milliseconds and a trailing Z."""
    value = value.astimezone(datetime.timezone.utc)
    return value.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_timestamp(value: str) -> datetime.datetime:
    """
    Parse an ISO 8601 timestamp; naive values are taken as UTC.

    Raises:
        ValueError: If the value is not a valid timestamp string
    """
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {type(value).__name__}")
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    parsed = datetime.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


@dataclass
class FieldConfig:
    """A single account field. `hidden` is a display hint only."""
    value: str
    hidden: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {'value': self.value, 'hidden': self.hidden}


@dataclass
class PasswordPolicy:
    """Character-class policy for generated passwords."""
    length: int = config.PASSWORD_GENERATOR_DEFAULT_LENGTH
    include_uppercase: bool = True
    include_lowercase: bool = True
    include_numbers: bool = True
    include_symbols: bool = True
    exclude_ambiguous: bool = True
    custom_characters: Optional[str] = None
    exclude_characters: Optional[str] = None

    # Fixed key order of the canonical serialization used by deterministic mode.
    _KEYS = (
        ('length', 'length'),
        ('include_uppercase', 'includeUppercase'),
        ('include_lowercase', 'includeLowercase'),
        ('include_numbers', 'includeNumbers'),
        ('include_symbols', 'includeSymbols'),
        ('exclude_ambiguous', 'excludeAmbiguous'),
        ('custom_characters', 'customCharacters'),
        ('exclude_characters', 'excludeCharacters'),
    )

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if not isinstance(self.length, int) or isinstance(self.length, bool) or self.length < 1:
            raise InvalidPolicy(f"Password length must be a positive integer, got {self.length!r}")
        for attr in ('include_uppercase', 'include_lowercase', 'include_numbers',
                     'include_symbols', 'exclude_ambiguous'):
            if not isinstance(getattr(self, attr), bool):
                raise InvalidPolicy(f"Policy flag {attr} must be a boolean")
        for attr in ('custom_characters', 'exclude_characters'):
            value = getattr(self, attr)
            if value is not None and not isinstance(value, str):
                raise InvalidPolicy(f"Policy field {attr} must be a string")

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for attr, key in self._KEYS:
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data

    def canonical_json(self) -> str:
        """
        Serialize with a fixed key order, no whitespace and ASCII escapes.

        Missing optional strings serialize as "", so the output depends only
        on the rules themselves, not on how they were constructed.
        """
        data = {}
        for attr, key in self._KEYS:
            value = getattr(self, attr)
            data[key] = "" if value is None else value
        return json.dumps(data, separators=(',', ':'), ensure_ascii=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'PasswordPolicy':
        if not isinstance(data, Mapping):
            raise InvalidPolicy("Password rules must be an object")
        unknown = set(data) - {key for _, key in cls._KEYS}
        if unknown:
            raise InvalidPolicy(f"Unknown password rule(s): {', '.join(sorted(unknown))}")
        kwargs = {attr: data[key] for attr, key in cls._KEYS if key in data}
        return cls(**kwargs)


def reconcile_field_order(fields: Mapping[str, Any], order: Optional[Iterable[str]]) -> List[str]:
    """
    Make `order` a permutation of the keys of `fields`.

    Names no longer present are dropped, duplicates collapsed, and fields
    missing from the order are appended in their natural key order.
    """
    result = []
    seen = set()
    for name in order or ():
        if name in fields and name not in seen:
            result.append(name)
            seen.add(name)
    result.extend(name for name in fields if name not in seen)
    return result


def is_permutation(fields: Mapping[str, Any], order: Sequence[str]) -> bool:
    return len(order) == len(fields) and set(order) == set(fields)


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """De-duplicate tags preserving first occurrence."""
    if tags is None:
        return []
    if isinstance(tags, str):
        raise InvalidAccount("Tags must be a list of strings")
    result = []
    for tag in tags:
        if not isinstance(tag, str):
            raise InvalidAccount("Tags must be a list of strings")
        if tag not in result:
            result.append(tag)
    return result


@dataclass
class Account:
    """A named bag of fields. Owned by the VaultStore while unlocked."""
    id: str
    name: str
    fields: Dict[str, FieldConfig] = field(default_factory=dict)
    field_order: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    password_rules: Optional[PasswordPolicy] = None
    created_at: datetime.datetime = field(default_factory=utc_now)
    updated_at: datetime.datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            'id': self.id,
            'name': self.name,
            'tags': list(self.tags),
            'fields': {name: cfg.to_dict() for name, cfg in self.fields.items()},
            'fieldOrder': list(self.field_order),
            'createdAt': format_timestamp(self.created_at),
            'updatedAt': format_timestamp(self.updated_at),
        }
        if self.password_rules is not None:
            data['passwordRules'] = self.password_rules.to_dict()
        return data

    def copy(self) -> 'Account':
        return copy.deepcopy(self)

    def ordered_fields(self) -> List[Tuple[str, FieldConfig]]:
        """Fields in display order."""
        return [(name, self.fields[name]) for name in self.field_order]

    def set_field(self, name: str, value: str, hidden: Optional[bool] = None) -> None:
        """Add a field at the end of the order, or change an existing one in place."""
        existing = self.fields.get(name)
        if existing is None:
            self.fields[name] = FieldConfig(value=value, hidden=bool(hidden))
            self.field_order.append(name)
        else:
            existing.value = value
            if hidden is not None:
                existing.hidden = hidden

    def remove_field(self, name: str) -> None:
        if name not in self.fields:
            raise KeyError(name)
        del self.fields[name]
        self.field_order.remove(name)

    def rename_field(self, old: str, new: str) -> None:
        """Rename a field, keeping its value and its position."""
        if old not in self.fields:
            raise KeyError(old)
        if new == old:
            return
        if new in self.fields:
            raise InvalidAccount(f"Field {new!r} already exists")
        self.fields = {(new if name == old else name): cfg for name, cfg in self.fields.items()}
        self.field_order = [new if name == old else name for name in self.field_order]

    def move_field(self, name: str, index: int) -> None:
        """Move a field to a new position in the display order."""
        if name not in self.fields:
            raise KeyError(name)
        self.field_order.remove(name)
        index = max(0, min(index, len(self.field_order)))
        self.field_order.insert(index, name)


@dataclass
class VaultConfig:
    """The non-secret vault config file contents."""
    version: str
    salt: bytes
    verifier: bytes
    created_at: str
    kdf: Optional[KDFParams] = None

    def is_legacy(self) -> bool:
        return self.kdf is None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'version': self.version,
            'salt': self.salt.hex(),
            'hash': self.verifier.hex(),
            'createdAt': self.created_at,
        }
        if self.kdf is not None:
            data['kdf'] = self.kdf.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'VaultConfig':
        """
        Create from the parsed config.json.

        Raises:
            ValueError: If a required key is missing or malformed
        """
        if not isinstance(data, Mapping):
            raise ValueError("Vault config must be an object")
        version = data.get('version')
        if not isinstance(version, str):
            raise ValueError("Vault config has no version")
        try:
            salt = bytes.fromhex(data['salt'])
            verifier = bytes.fromhex(data['hash'])
        except (KeyError, TypeError) as e:
            raise ValueError(f"Vault config is missing salt or hash: {e}") from e
        kdf = None
        if 'kdf' in data:
            kdf = KDFParams.from_dict(data['kdf'])
        elif version != config.LEGACY_FORMAT_VERSION:
            raise ValueError(f"Vault config version {version} has no KDF parameters")
        return cls(
            version=version,
            salt=salt,
            verifier=verifier,
            created_at=str(data.get('createdAt', '')),
            kdf=kdf,
        )
