"""Unit tests for the profile field schema registry."""

import json
from pathlib import Path

import pytest

from profiledesk.fields import (
    FieldSchemaError,
    FieldType,
    SelectOption,
    load_field_registry,
    parse_field_definitions,
)


def test_default_registry_keeps_declared_order() -> None:
    registry = load_field_registry()

    assert [field.slug for field in registry][:2] == ["name", "email_addresses"]
    assert [field.slug for field in registry.select_fields] == ["plan"]
    by_slug = {field.slug: field for field in registry}
    assert by_slug["date_of_birth"].type is FieldType.DATE


def test_registry_loads_json_override(tmp_path: Path) -> None:
    path = tmp_path / "fields.json"
    path.write_text(
        json.dumps(
            [
                {"slug": "company", "label": "Company", "type": "text"},
                {"slug": "tier", "label": "Tier", "type": "select"},
            ]
        )
    )

    registry = load_field_registry(path)

    assert len(registry) == 2
    assert [field.slug for field in registry.select_fields] == ["tier"]


def test_registry_rejects_unreadable_file(tmp_path: Path) -> None:
    path = tmp_path / "fields.json"
    path.write_text("{not json")

    with pytest.raises(FieldSchemaError, match="Could not read field schema"):
        load_field_registry(path)


def test_parse_rejects_duplicate_slugs() -> None:
    with pytest.raises(FieldSchemaError, match="Duplicate field slug: name"):
        parse_field_definitions(
            [{"slug": "name", "type": "text"}, {"slug": "name", "type": "text"}]
        )


def test_parse_rejects_unknown_types() -> None:
    with pytest.raises(FieldSchemaError, match="Unsupported field type"):
        parse_field_definitions([{"slug": "avatar", "type": "files"}])


def test_parse_defaults_label_to_slug() -> None:
    (field,) = parse_field_definitions([{"slug": "nickname"}])

    assert field.label == "nickname"
    assert field.type is FieldType.TEXT


def test_with_options_returns_copy() -> None:
    (field,) = parse_field_definitions([{"slug": "plan", "type": "select"}])

    loaded = field.with_options([SelectOption(id="opt_1", title="Pro")])

    assert field.options is None
    assert loaded.options == (SelectOption(id="opt_1", title="Pro"),)
