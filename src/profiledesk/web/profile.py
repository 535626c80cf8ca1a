"""Profile page view model: load fields, options and the user's CRM record."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from profiledesk.clients.attio import AttioClient, LookupStatus
from profiledesk.fields import FieldDescriptor, FieldRegistry
from profiledesk.mapping import attributes_for_submission, attributes_from_record

logger = logging.getLogger(__name__)


class SaveStatus(StrEnum):
    """Outcome of a profile save, carried to the next page load as `?status=`."""

    SAVED = "saved"
    ERROR = "error"


NOTIFICATIONS: dict[SaveStatus, str] = {
    SaveStatus.SAVED: "Saved successfully!",
    SaveStatus.ERROR: "Error saving data.",
}


@dataclass(frozen=True)
class ProfileView:
    """Everything the profile template needs for one render."""

    email: str
    fields: list[FieldDescriptor]
    attributes: dict[str, Any] = field(default_factory=dict)
    record_id: str | None = None
    lookup_status: LookupStatus = LookupStatus.NOT_FOUND

    def value_for(self, slug: str) -> str:
        value = self.attributes.get(slug, "")
        return value if isinstance(value, str) else ""


def notification_for(status: str | None) -> str | None:
    if not status:
        return None
    try:
        return NOTIFICATIONS[SaveStatus(status)]
    except ValueError:
        return None


async def load_field_options(
    client: AttioClient, registry: FieldRegistry
) -> list[FieldDescriptor]:
    """Attach CRM options to every select field; failures leave the list empty."""
    select_fields = registry.select_fields
    listings = await asyncio.gather(
        *(client.list_select_options(item.slug) for item in select_fields)
    )
    by_slug = {
        item.slug: item.with_options(listing.options)
        for item, listing in zip(select_fields, listings, strict=True)
    }
    return [by_slug.get(item.slug, item) for item in registry]


async def load_profile_view(
    client: AttioClient, registry: FieldRegistry, *, email: str
) -> ProfileView:
    """Load fields first, then the record for the session email."""
    fields = await load_field_options(client, registry)
    lookup = await client.find_person_by_email(email)

    if lookup.status is LookupStatus.TRANSPORT_ERROR:
        logger.warning(
            "Rendering blank profile after CRM lookup failure email=%s detail=%s",
            email,
            lookup.detail,
        )
    if lookup.record is None:
        return ProfileView(email=email, fields=fields, lookup_status=lookup.status)

    attributes = attributes_from_record(
        lookup.record,
        fields,
        email_slug=client.config.email_attribute,
        email=email,
    )
    return ProfileView(
        email=email,
        fields=fields,
        attributes=attributes,
        record_id=lookup.record.record_id,
        lookup_status=lookup.status,
    )


class ProfileLookupError(RuntimeError):
    """Raised when a save cannot tell whether the user already has a record."""


async def save_profile(
    client: AttioClient,
    registry: FieldRegistry,
    *,
    email: str,
    form: Mapping[str, Any],
) -> dict[str, Any]:
    """Map submitted form values and create or update the user's record."""
    attributes = attributes_for_submission(
        form,
        registry,
        email_slug=client.config.email_attribute,
        email=email,
    )

    lookup = await client.find_person_by_email(email)
    if lookup.status is LookupStatus.TRANSPORT_ERROR:
        # Creating here could duplicate a record the CRM failed to return.
        raise ProfileLookupError(f"CRM lookup failed: {lookup.detail}")

    record_id = lookup.record.record_id if lookup.record is not None else None
    return await client.upsert_person(record_id, attributes)
