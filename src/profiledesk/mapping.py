"""Translate between flat form attribute maps and Attio record values."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any

from profiledesk.clients.attio import PersonRecord
from profiledesk.fields import FieldDescriptor, FieldType

# Value wrapper keys tried in order for non-select attributes.
_SCALAR_VALUE_KEYS = (
    "value",
    "full_name",
    "email_address",
    "original_phone_number",
    "domain",
)

_WORDED_DATE_FORMATS = ("%B %d %Y", "%b %d %Y", "%d %B %Y", "%d %b %Y")
_NUMERIC_DATE_FORMATS = (
    "%Y-%m-%d",
    "%m-%d-%Y",
    "%d-%m-%Y",
    "%m-%d-%y",
    "%d-%m-%y",
)


class FieldValueError(ValueError):
    """Raised when a submitted form value cannot be stored for its field type."""

    def __init__(self, slug: str, value: str) -> None:
        super().__init__(f"Invalid value for {slug}: {value!r}")
        self.slug = slug
        self.value = value


def _first_entry(record: PersonRecord, slug: str) -> dict[str, Any] | None:
    entries = record.values.get(slug)
    if not entries:
        return None
    return entries[0]


def _select_option_id(entry: Mapping[str, Any]) -> str:
    option = entry.get("option")
    if not isinstance(option, dict):
        return ""
    option_key = option.get("id")
    if not isinstance(option_key, dict):
        return ""
    option_id = option_key.get("option_id")
    return str(option_id) if option_id else ""


def _scalar_value(entry: Mapping[str, Any]) -> str:
    for key in _SCALAR_VALUE_KEYS:
        value = entry.get(key)
        if value is not None and value != "":
            return str(value)
    return ""


def attributes_from_record(
    record: PersonRecord,
    fields: Iterable[FieldDescriptor],
    *,
    email_slug: str,
    email: str,
) -> dict[str, Any]:
    """Read direction: one flat form value per field, email from the session."""
    attributes: dict[str, Any] = {}
    for field in fields:
        if field.slug == email_slug:
            attributes[field.slug] = [email]
            continue

        entry = _first_entry(record, field.slug)
        if entry is None:
            attributes[field.slug] = ""
        elif field.type is FieldType.SELECT:
            attributes[field.slug] = _select_option_id(entry)
        else:
            attributes[field.slug] = _scalar_value(entry)
    return attributes


def normalize_date(value: str) -> str:
    """Reduce a date or datetime string to `YYYY-MM-DD`.

    ISO forms are tried first, then written-out months (`Feb 29, 2024`) and
    numeric dates with `/`, `.` or space separators. Numeric dates read
    month-first before day-first, so `03/04/2024` is March 4th.
    """
    text = value.strip()
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        pass
    try:
        # Drops the time and timezone without shifting the calendar day.
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        pass

    worded = " ".join(text.replace(",", " ").split())
    for fmt in _WORDED_DATE_FORMATS:
        try:
            return datetime.strptime(worded, fmt).date().isoformat()
        except ValueError:
            continue

    numeric = re.sub(r"[./\s]+", "-", text)
    for fmt in _NUMERIC_DATE_FORMATS:
        try:
            return datetime.strptime(numeric, fmt).date().isoformat()
        except ValueError:
            continue

    raise ValueError(f"Unrecognised date: {value!r}")


def attributes_for_submission(
    form: Mapping[str, Any],
    fields: Iterable[FieldDescriptor],
    *,
    email_slug: str,
    email: str,
) -> dict[str, Any]:
    """Write direction: drop empty values, normalise dates, force the session email."""
    attributes: dict[str, Any] = {}
    for field in fields:
        if field.slug == email_slug:
            continue

        value = form.get(field.slug)
        if not value:
            continue

        if field.type is FieldType.DATE:
            try:
                attributes[field.slug] = normalize_date(str(value))
            except ValueError as exc:
                raise FieldValueError(field.slug, str(value)) from exc
        else:
            attributes[field.slug] = value if isinstance(value, str) else str(value)

    attributes[email_slug] = [email]
    return attributes
