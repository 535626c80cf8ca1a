"""Static profile field schema and its read-only registry."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class FieldType(StrEnum):
    """Input types understood by the profile form and the payload mapper."""

    TEXT = "text"
    EMAIL = "email"
    DATE = "date"
    SELECT = "select"
    NUMBER = "number"
    TEL = "tel"
    URL = "url"
    TEXTAREA = "textarea"


@dataclass(frozen=True)
class SelectOption:
    """One non-archived CRM option for a select attribute."""

    id: str
    title: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title}


@dataclass(frozen=True)
class FieldDescriptor:
    """One form field and the CRM attribute slug it is stored under."""

    slug: str
    label: str
    type: FieldType
    options: tuple[SelectOption, ...] | None = None

    @property
    def is_select(self) -> bool:
        return self.type is FieldType.SELECT

    def with_options(self, options: list[SelectOption]) -> FieldDescriptor:
        """Copy of this descriptor carrying lazily loaded select options."""
        return replace(self, options=tuple(options))


# Default Attio "people" attributes. FIELDS_CONFIG_PATH can replace this list.
DEFAULT_FIELDS: tuple[dict[str, str], ...] = (
    {"slug": "name", "label": "Name", "type": "text"},
    {"slug": "email_addresses", "label": "Email", "type": "email"},
    {"slug": "job_title", "label": "Job Title", "type": "text"},
    {"slug": "date_of_birth", "label": "Date of Birth", "type": "date"},
    {"slug": "plan", "label": "Plan", "type": "select"},
    {"slug": "description", "label": "About You", "type": "textarea"},
)


class FieldSchemaError(ValueError):
    """Raised when the configured field schema is malformed."""


def parse_field_definitions(raw: Any) -> tuple[FieldDescriptor, ...]:
    """Validate raw `{slug, label, type}` definitions into descriptors."""
    if not isinstance(raw, list | tuple):
        raise FieldSchemaError("Field schema must be a list of field objects")

    descriptors: list[FieldDescriptor] = []
    seen: set[str] = set()
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise FieldSchemaError(f"Field #{index} must be an object")

        slug = str(item.get("slug") or "").strip()
        if not slug:
            raise FieldSchemaError(f"Field #{index} is missing a slug")
        if slug in seen:
            raise FieldSchemaError(f"Duplicate field slug: {slug}")
        seen.add(slug)

        raw_type = str(item.get("type") or FieldType.TEXT).strip().lower()
        try:
            field_type = FieldType(raw_type)
        except ValueError as exc:
            raise FieldSchemaError(
                f"Unsupported field type {raw_type!r} for {slug}"
            ) from exc

        label = str(item.get("label") or "").strip() or slug
        descriptors.append(FieldDescriptor(slug=slug, label=label, type=field_type))

    return tuple(descriptors)


class FieldRegistry:
    """Ordered, read-only view over the field descriptors loaded at startup."""

    def __init__(self, fields: tuple[FieldDescriptor, ...]) -> None:
        self._fields = fields

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    @property
    def select_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(field for field in self._fields if field.is_select)


def load_field_registry(path: Path | None = None) -> FieldRegistry:
    """Build the registry from a JSON file, or the built-in defaults."""
    if path is None:
        return FieldRegistry(parse_field_definitions(list(DEFAULT_FIELDS)))

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise FieldSchemaError(f"Could not read field schema {path}: {exc}") from exc

    registry = FieldRegistry(parse_field_definitions(raw))
    logger.info("Loaded %s profile fields from %s", len(registry), path)
    return registry
