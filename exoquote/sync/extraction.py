"""Extra-field extraction: origin and dimensions from loosely-shaped Exo details.

Exo exposes site-specific "extra fields" as a list of small records whose
name and value can sit under many different keys depending on the API
version and how the field was configured. Everything here is pure: same
details in, same attributes out.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

# Top-level keys that may hold the extra-field list, in lookup order.
EXTRA_FIELD_KEYS = (
    "extrafields",
    "extraFields",
    "extra_fields",
    "ExtraFields",
    "customfields",
    "customFields",
    "userdefinedfields",
)

# Keys that may carry a field's name, in slot order.
NAME_KEYS = ("name", "label", "caption", "description", "displayName", "fieldName", "key")

ORIGIN_ALIASES = frozenset({"origin", "countryoforigin", "country", "madein"})
LENGTH_ALIASES = frozenset({"length", "lengthcm", "lengthmm", "lengthm"})
WIDTH_ALIASES = frozenset({"width", "widthcm", "widthmm", "widthm"})
SIZE_ALIASES = frozenset({"size", "dimensions", "dimension", "dims", "sizecm"})

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_SIGNED_NUMBER = re.compile(r"[-+]?(?:\d+(?:\.\d+)?|\.\d+)")
_UNSIGNED_NUMBER = re.compile(r"\d+(?:\.\d+)?|\.\d+")


def normalize_name(text: str) -> str:
    """Lower-case and drop every non-alphanumeric character."""
    return _NON_ALNUM.sub("", text.lower())


@dataclass(frozen=True)
class ExtraField:
    """One upstream extra field: its name variants in slot order plus the raw record."""

    names: tuple[str, ...]
    raw: Mapping[str, Any]

    @classmethod
    def from_record(cls, record: Any) -> ExtraField | None:
        if not isinstance(record, Mapping):
            return None
        names = tuple(
            str(record[key]).strip()
            for key in NAME_KEYS
            if isinstance(record.get(key), (str, int)) and str(record[key]).strip()
        )
        return cls(names=names, raw=record)

    @property
    def normalized_names(self) -> tuple[str, ...]:
        return tuple(normalize_name(n) for n in self.names)

    @property
    def haystack(self) -> str:
        return normalize_name(" ".join(self.names))


@dataclass(frozen=True)
class ExtractedAttributes:
    origin: str | None = None
    length: Decimal | None = None
    width: Decimal | None = None
    size: str | None = None


def find_extra_fields(details: Mapping[str, Any]) -> list[ExtraField]:
    """Return the first non-empty extra-field list found under EXTRA_FIELD_KEYS."""
    for key in EXTRA_FIELD_KEYS:
        value = details.get(key)
        if isinstance(value, (list, tuple)) and value:
            return [f for f in (ExtraField.from_record(r) for r in value) if f is not None]
    return []


# --- name matching strategies ---


def _exact_alias(field: ExtraField, aliases: frozenset[str]) -> bool:
    return any(name in aliases for name in field.normalized_names)


def _substring(field: ExtraField, aliases: frozenset[str]) -> bool:
    haystack = field.haystack
    return bool(haystack) and any(alias in haystack for alias in aliases)


MATCH_STRATEGIES: tuple[tuple[str, Callable[[ExtraField, frozenset[str]], bool]], ...] = (
    ("exact_alias", _exact_alias),
    ("substring", _substring),
)


def find_field(fields: Sequence[ExtraField], aliases: Iterable[str]) -> ExtraField | None:
    """Apply each strategy over all fields in order; the first match wins."""
    wanted = frozenset(normalize_name(a) for a in aliases)
    for _name, matches in MATCH_STRATEGIES:
        for field in fields:
            if matches(field, wanted):
                return field
    return None


# --- value unwrapping ---


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, (bool, Mapping, list, tuple)):
        return None
    text = str(value).strip()
    return text or None


def _nested(record: Mapping[str, Any], outer: str, inner: str) -> Any:
    value = record.get(outer)
    return value.get(inner) if isinstance(value, Mapping) else None


_VALUE_PATHS: tuple[Callable[[Mapping[str, Any]], Any], ...] = (
    lambda r: _nested(r, "value", "value"),
    lambda r: _nested(r, "value", "text"),
    lambda r: r.get("value"),
    lambda r: r.get("text"),
    lambda r: r.get("val"),
    lambda r: r.get("displayValue"),
    lambda r: r.get("display"),
    lambda r: r.get("data"),
)


def field_value(field: ExtraField | None) -> str | None:
    """First defined, non-blank value found along the known nesting shapes."""
    if field is None:
        return None
    for path in _VALUE_PATHS:
        text = _as_text(path(field.raw))
        if text is not None:
            return text
    return None


# --- numbers ---


def _to_decimal(token: str) -> Decimal | None:
    try:
        number = Decimal(token)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def parse_measure(value: Any) -> Decimal | None:
    """First signed decimal number in ``value``; commas read as decimal points."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return _to_decimal(str(value))
    match = _SIGNED_NUMBER.search(str(value).replace(",", "."))
    return _to_decimal(match.group()) if match else None


def numeric_tokens(text: str) -> list[Decimal]:
    numbers = (_to_decimal(t) for t in _UNSIGNED_NUMBER.findall(text.replace(",", ".")))
    return [n for n in numbers if n is not None]


def format_measure(value: Decimal) -> str:
    """Plain notation without trailing zeros: 2.40 -> '2.4', 100 -> '100'."""
    return format(value.normalize(), "f")


def format_size(length: Decimal, width: Decimal) -> str:
    return f"{format_measure(length)} x {format_measure(width)}"


# --- entry point ---


def extract(details: Mapping[str, Any]) -> ExtractedAttributes:
    fields = find_extra_fields(details)
    if not fields:
        return ExtractedAttributes()

    origin = field_value(find_field(fields, ORIGIN_ALIASES))
    length_field = find_field(fields, LENGTH_ALIASES)
    width_field = find_field(fields, WIDTH_ALIASES)
    size_field = find_field(fields, SIZE_ALIASES)
    if length_field is not None and length_field is width_field:
        # one field named like "Length x Width" is a combined size, not two measures
        size_field = size_field or length_field
        length_field = width_field = None

    length = parse_measure(field_value(length_field))
    width = parse_measure(field_value(width_field))
    if length is not None and width is not None:
        return ExtractedAttributes(origin, length, width, format_size(length, width))

    size: str | None = None
    raw_size = field_value(size_field)
    if raw_size is not None:
        numbers = numeric_tokens(raw_size)
        if len(numbers) >= 2:
            length = length if length is not None else numbers[0]
            width = width if width is not None else numbers[1]
            size = format_size(length, width)
        else:
            size = raw_size
    return ExtractedAttributes(origin, length, width, size)
