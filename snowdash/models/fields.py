"""
ServiceNow field values.

The Table API returns a field either as a raw scalar (``"2"``) or, with
``sysparm_display_value=all`` / reference fields, as an object
``{"display_value": ..., "value": ..., "link": ...}``. Everything that reads
a record goes through ``normalize_field`` once and then uses the accessors
below.
"""

from dataclasses import dataclass
from typing import Any


RAW = "raw"
REFERENCE = "reference"
EMPTY = "empty"


@dataclass(frozen=True)
class FieldValue:
    """Tagged union over the three shapes a ServiceNow field can take.

    kind == "raw":        ``raw`` holds the scalar as a string.
    kind == "reference":  ``display_value`` / ``value`` / ``link`` / ``name``.
    kind == "empty":      None, "" or an object with nothing usable.
    """

    kind: str
    raw: str | None = None
    display_value: str | None = None
    value: str | None = None
    link: str | None = None
    name: str | None = None


_EMPTY = FieldValue(kind=EMPTY)


def _text(v: Any) -> str | None:
    if v is None:
        return None
    s = v if isinstance(v, str) else str(v)
    return s or None


def normalize_field(raw: Any) -> FieldValue:
    """Boundary normaliser; accepts anything, never raises."""
    if isinstance(raw, FieldValue):
        return raw
    if raw is None:
        return _EMPTY
    if isinstance(raw, dict):
        fv = FieldValue(
            kind=REFERENCE,
            display_value=_text(raw.get("display_value")),
            value=_text(raw.get("value")),
            link=_text(raw.get("link")),
            name=_text(raw.get("name")),
        )
        if not (fv.display_value or fv.value or fv.link or fv.name):
            return _EMPTY
        return fv
    if isinstance(raw, bool):
        return FieldValue(kind=RAW, raw="true" if raw else "false")
    text = _text(raw)
    return FieldValue(kind=RAW, raw=text) if text else _EMPTY


def display(field: Any, default: str = "") -> str:
    """Human-readable text: display_value, then value, then name."""
    fv = normalize_field(field)
    if fv.kind == RAW:
        return fv.raw
    if fv.kind == REFERENCE:
        return fv.display_value or fv.value or fv.name or default
    return default


def value(field: Any, default: str = "") -> str:
    """Stored value: value, then display_value."""
    fv = normalize_field(field)
    if fv.kind == RAW:
        return fv.raw
    if fv.kind == REFERENCE:
        return fv.value or fv.display_value or default
    return default


def sys_id(field: Any) -> str | None:
    """sys_id of a reference field (value, else last link segment)."""
    fv = normalize_field(field)
    if fv.kind == RAW:
        return fv.raw
    if fv.kind == REFERENCE:
        if fv.value:
            return fv.value
        if fv.link:
            return fv.link.rstrip("/").rsplit("/", 1)[-1]
    return None


def record_field(record: dict, key: str, default: str = "") -> str:
    """Shorthand for ``display(record.get(key), default)``."""
    return display(record.get(key), default)
