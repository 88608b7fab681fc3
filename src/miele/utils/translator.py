"""Bidirectional mapping between persisted rows and domain records.

Reading is total: whatever a legacy row contains, ``from_persisted``
returns a record and logs what it had to repair. Writing is strict: a
value that cannot be stored raises ``TranslationError``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from miele.models.schema import EntitySchema
from miele.services.exceptions import TranslationError

logger = logging.getLogger(__name__)

ZERO = "0"


def decimal_string(value: Any, field: str = "") -> str:
    """Render a persisted numeric value as a plain decimal string.

    None becomes ``"0"``; anything that is not a finite number is logged
    and also becomes ``"0"``.
    """
    if value is None:
        return ZERO
    try:
        if isinstance(value, bool):
            raise InvalidOperation
        if isinstance(value, float):
            d = Decimal(repr(value))
        elif isinstance(value, (int, Decimal)):
            d = Decimal(value)
        elif isinstance(value, str):
            d = Decimal(value.strip())
        else:
            raise InvalidOperation
        if not d.is_finite():
            raise InvalidOperation
    except (InvalidOperation, ValueError):
        logger.warning("Valor monetario malformado em '%s': %r; usando 0", field, value)
        return ZERO
    return format(d, "f")


def parse_decimal(value: Any, field: str = "") -> int | float | None:
    """Parse a domain decimal string into the number the backend stores.

    Strings without a fractional part become ``int``; the rest ``float``.
    Empty values write ``None``. Raises TranslationError for anything that
    is not a finite number.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise TranslationError(field, value)
    if isinstance(value, (int, float, Decimal)):
        text = repr(value) if isinstance(value, float) else str(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        # "1500,50" from a pt-BR form
        if "," in text and "." not in text:
            text = text.replace(",", ".")
    else:
        raise TranslationError(field, value)
    try:
        d = Decimal(text)
    except InvalidOperation:
        raise TranslationError(field, value) from None
    if not d.is_finite():
        raise TranslationError(field, value)
    if d.as_tuple().exponent >= 0:
        return int(d)
    return float(d)


def from_persisted(schema: EntitySchema, record: Mapping[str, Any]) -> dict[str, Any]:
    """Translate a persisted row into a domain record. Never raises."""
    if not isinstance(record, Mapping):
        logger.warning("Registro ignorado em '%s': esperado objeto, recebido %s", schema.table, type(record).__name__)
        return {}

    out: dict[str, Any] = {}
    for column, value in record.items():
        key = schema.renames.get(column, column)
        if key in schema.monetary:
            value = decimal_string(value, key)
        elif column in schema.readers:
            try:
                value = schema.readers[column](value)
            except Exception:
                logger.warning("Falha ao converter '%s.%s'; valor mantido", schema.table, column, exc_info=True)
        out[key] = value

    for key in schema.monetary:
        out.setdefault(key, ZERO)

    if schema.post_read is not None:
        try:
            out = schema.post_read(out)
        except Exception:
            logger.warning("Falha ao derivar campos de '%s'; registro mantido", schema.table, exc_info=True)
    return out


def to_persisted(
    schema: EntitySchema, patch: Mapping[str, Any], *, for_insert: bool = False
) -> dict[str, Any]:
    """Translate a (partial) domain record into a persisted patch.

    Domain-only fields, read-only columns and persisted names that the
    domain shape renames are dropped silently.
    """
    data = dict(patch)
    if for_insert:
        for key, default in schema.insert_defaults.items():
            if data.get(key) is None:
                data[key] = default
    if schema.pre_write is not None:
        data = schema.pre_write(data)

    inverse = schema.domain_to_persisted
    out: dict[str, Any] = {}
    for key, value in data.items():
        if key in schema.renames:
            continue
        column = inverse.get(key, key)
        if column not in schema.columns or column in schema.read_only:
            continue
        if key in schema.monetary:
            value = parse_decimal(value, key)
        elif key in schema.writers:
            value = schema.writers[key](value)
        out[column] = value
    return out


def checked(field: str, validator: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """Wrap a validator as a write converter for an optional field.

    Empty values write ``None``; a ValueError from *validator* becomes
    TranslationError.
    """

    def write(value: Any) -> Any:
        if value is None or value == "":
            return None
        try:
            return validator(value)
        except ValueError:
            raise TranslationError(field, value) from None

    return write


def load_json(value: Any) -> Any:
    """Decode JSON stored as text by older rows; other values pass through."""
    if isinstance(value, str) and value[:1] in ("{", "["):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value
