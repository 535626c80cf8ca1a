"""Unit tests for form <-> CRM attribute mapping."""

import pytest

from profiledesk.clients.attio import PersonRecord
from profiledesk.fields import load_field_registry
from profiledesk.mapping import (
    FieldValueError,
    attributes_for_submission,
    attributes_from_record,
    normalize_date,
)

FIELDS = load_field_registry()
EMAIL_SLUG = "email_addresses"


def test_read_direction_extracts_first_values() -> None:
    record = PersonRecord(
        record_id="rec-1",
        values={
            "name": [{"full_name": "Jo Bloggs"}, {"full_name": "Old Name"}],
            "job_title": [{"value": "Engineer"}],
            "date_of_birth": [{"value": "1990-04-01"}],
            "plan": [{"option": {"id": {"option_id": "opt_1"}, "title": "Pro"}}],
            "email_addresses": [{"email_address": "someone-else@x.com"}],
        },
    )

    attributes = attributes_from_record(
        record, FIELDS, email_slug=EMAIL_SLUG, email="jo@x.com"
    )

    assert attributes == {
        "name": "Jo Bloggs",
        "email_addresses": ["jo@x.com"],
        "job_title": "Engineer",
        "date_of_birth": "1990-04-01",
        "plan": "opt_1",
        "description": "",
    }


def test_read_direction_blanks_missing_and_unresolvable_values() -> None:
    """Missing slugs and selects without an option id read as empty strings."""
    record = PersonRecord(record_id="rec-1", values={"plan": [{"option": None}]})

    attributes = attributes_from_record(
        record, FIELDS, email_slug=EMAIL_SLUG, email="jo@x.com"
    )

    assert attributes["plan"] == ""
    assert attributes["name"] == ""
    assert attributes["email_addresses"] == ["jo@x.com"]


def test_write_direction_omits_falsy_values() -> None:
    attributes = attributes_for_submission(
        {"name": "Jo", "job_title": "", "plan": None, "description": ""},
        FIELDS,
        email_slug=EMAIL_SLUG,
        email="jo@x.com",
    )

    assert attributes == {"name": "Jo", "email_addresses": ["jo@x.com"]}


def test_write_direction_forces_session_email() -> None:
    """The email attribute always comes from the session, never the form."""
    attributes = attributes_for_submission(
        {"email_addresses": "attacker@x.com", "name": "Jo"},
        FIELDS,
        email_slug=EMAIL_SLUG,
        email="jo@x.com",
    )

    assert attributes["email_addresses"] == ["jo@x.com"]


def test_write_direction_drops_unknown_keys() -> None:
    attributes = attributes_for_submission(
        {"name": "Jo", "is_admin": "true"},
        FIELDS,
        email_slug=EMAIL_SLUG,
        email="jo@x.com",
    )

    assert "is_admin" not in attributes


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024-02-29", "2024-02-29"),
        ("2024-02-29T23:30:00", "2024-02-29"),
        ("2024-02-29T23:30:00Z", "2024-02-29"),
        ("2024-02-29T23:30:00+05:00", "2024-02-29"),
        (" 2024-02-29 ", "2024-02-29"),
        ("2024/02/29", "2024-02-29"),
        ("02/29/2024", "2024-02-29"),
        ("29.02.2024", "2024-02-29"),
        ("Feb 29 2024", "2024-02-29"),
        ("February 29, 2024", "2024-02-29"),
        ("29 Feb 2024", "2024-02-29"),
        ("03/04/2024", "2024-03-04"),
    ],
)
def test_normalize_date_accepts_common_forms(raw: str, expected: str) -> None:
    assert normalize_date(raw) == expected


def test_write_direction_normalizes_date_fields() -> None:
    attributes = attributes_for_submission(
        {"date_of_birth": "1990-04-01T08:00:00Z"},
        FIELDS,
        email_slug=EMAIL_SLUG,
        email="jo@x.com",
    )

    assert attributes["date_of_birth"] == "1990-04-01"


def test_write_direction_rejects_unparseable_dates() -> None:
    with pytest.raises(FieldValueError, match="date_of_birth"):
        attributes_for_submission(
            {"date_of_birth": "next tuesday"},
            FIELDS,
            email_slug=EMAIL_SLUG,
            email="jo@x.com",
        )


def test_write_direction_normalizes_slash_dates() -> None:
    attributes = attributes_for_submission(
        {"date_of_birth": "04/01/1990"},
        FIELDS,
        email_slug=EMAIL_SLUG,
        email="jo@x.com",
    )

    assert attributes["date_of_birth"] == "1990-04-01"
