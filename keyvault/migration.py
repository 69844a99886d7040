"""
Normalization of stored account records into the canonical schema.

Older vaults stored each field as a bare string; current vaults store
``{value, hidden}``. Raw field values are decoded into an explicit
``LegacyField | StructuredField`` union and normalized immediately, so the
ambiguous shape never escapes this module. Migration is idempotent.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Union

from . import config
from .errors import CorruptData, InvalidPolicy
from .models import (
    Account, FieldConfig, PasswordPolicy, normalize_tags, parse_timestamp,
    reconcile_field_order, utc_now,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LegacyField:
    """A field stored as a bare string."""
    value: str


@dataclass(frozen=True)
class StructuredField:
    """A field stored as ``{value, hidden}``."""
    config: FieldConfig


RawField = Union[LegacyField, StructuredField]


def is_likely_secret(field_name: str) -> bool:
    """Case-insensitive keyword match on the field name."""
    lowered = field_name.lower()
    return any(keyword in lowered for keyword in config.SECRET_FIELD_KEYWORDS)


def decode_field(name: str, raw: Any) -> RawField:
    """
    Decode a raw JSON field value.

    A structured value without a `hidden` flag gets the keyword heuristic,
    the same as a legacy string.

    Raises:
        CorruptData: If the value is neither a string nor a {value, hidden} object
    """
    if isinstance(raw, str):
        return LegacyField(raw)
    if isinstance(raw, FieldConfig):
        return StructuredField(FieldConfig(value=raw.value, hidden=raw.hidden))
    if isinstance(raw, Mapping) and isinstance(raw.get('value'), str):
        hidden = raw.get('hidden')
        if hidden is None:
            hidden = is_likely_secret(name)
        elif not isinstance(hidden, bool):
            raise CorruptData(f"Field {name!r} has a non-boolean hidden flag")
        return StructuredField(FieldConfig(value=raw['value'], hidden=hidden))
    raise CorruptData(f"Field {name!r} has an unsupported value of type {type(raw).__name__}")


def normalize_field(name: str, raw: RawField) -> FieldConfig:
    if isinstance(raw, LegacyField):
        return FieldConfig(value=raw.value, hidden=is_likely_secret(name))
    return raw.config


def migrate_fields(raw_fields: Mapping[str, Any]) -> Dict[str, FieldConfig]:
    """Convert every field value to a FieldConfig, preserving key order."""
    if not isinstance(raw_fields, Mapping):
        raise CorruptData("Account fields must be an object")
    migrated = {}
    for name, raw in raw_fields.items():
        if not isinstance(name, str):
            raise CorruptData("Field names must be strings")
        migrated[name] = normalize_field(name, decode_field(name, raw))
    return migrated


def migrate_record(record: Mapping[str, Any]) -> Account:
    """
    Turn one stored record into an Account.

    Missing tags become an empty list, a missing field order is synthesized
    from the migrated fields, and a stale one is reconciled with them.

    Raises:
        CorruptData: If the record cannot be interpreted
    """
    if not isinstance(record, Mapping):
        raise CorruptData("Account record must be an object")
    account_id = record.get('id')
    name = record.get('name')
    if not isinstance(account_id, str) or not account_id:
        raise CorruptData("Account record has no id")
    if not isinstance(name, str):
        raise CorruptData(f"Account {account_id} has no name")

    fields = migrate_fields(record.get('fields') or {})
    field_order = record.get('fieldOrder')
    if field_order is not None and (not isinstance(field_order, list)
                                    or not all(isinstance(n, str) for n in field_order)):
        raise CorruptData(f"Account {account_id} has a malformed field order")

    try:
        rules = record.get('passwordRules')
        password_rules = PasswordPolicy.from_dict(rules) if rules is not None else None
        created_at = parse_timestamp(record['createdAt']) if 'createdAt' in record else utc_now()
        updated_at = parse_timestamp(record['updatedAt']) if 'updatedAt' in record else created_at
        tags = normalize_tags(record.get('tags'))
    except (InvalidPolicy, ValueError) as e:
        raise CorruptData(f"Account {account_id} is malformed: {e}") from e

    return Account(
        id=account_id,
        name=name,
        fields=fields,
        field_order=reconcile_field_order(fields, field_order),
        tags=tags,
        password_rules=password_rules,
        created_at=created_at,
        updated_at=max(updated_at, created_at),
    )


def migrate_records(records: Iterable[Any]) -> List[Account]:
    """Migrate a whole collection, rejecting duplicate ids."""
    accounts = []
    seen = set()
    for record in records:
        account = migrate_record(record)
        if account.id in seen:
            raise CorruptData(f"Duplicate account id {account.id}")
        seen.add(account.id)
        accounts.append(account)
    logger.debug(f"Migrated {len(accounts)} account record(s)")
    return accounts
