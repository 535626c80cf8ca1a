"""Async Attio REST client for the Person object used by profile pages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from urllib.parse import quote

import httpx

from profiledesk.fields import SelectOption
from profiledesk.settings import SharedSettings

logger = logging.getLogger(__name__)


class AttioAPIError(Exception):
    """Raised when a CRM write fails upstream."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class AttioConfig:
    """Connection and object identifiers for one Attio workspace."""

    base_url: str
    api_key: str
    object_id: str
    email_attribute: str = "email_addresses"
    timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, settings: SharedSettings) -> AttioConfig:
        return cls(
            base_url=settings.attio_base_url,
            api_key=settings.attio_api_key,
            object_id=settings.attio_person_object_id,
            email_attribute=settings.attio_email_attribute,
            timeout_seconds=settings.attio_timeout_seconds,
        )


@dataclass(frozen=True)
class PersonRecord:
    """CRM-resident Person record with its raw per-attribute value lists."""

    record_id: str
    values: dict[str, list[dict[str, Any]]] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: object) -> PersonRecord | None:
        if not isinstance(payload, dict):
            return None
        record_key = payload.get("id")
        if not isinstance(record_key, dict):
            return None
        record_id = record_key.get("record_id")
        if not isinstance(record_id, str) or not record_id:
            return None

        raw_values = payload.get("values")
        values: dict[str, list[dict[str, Any]]] = {}
        if isinstance(raw_values, dict):
            for slug, entries in raw_values.items():
                if isinstance(entries, list):
                    values[str(slug)] = [
                        entry for entry in entries if isinstance(entry, dict)
                    ]
        return cls(record_id=record_id, values=values)


class LookupStatus(StrEnum):
    """Outcome of a lookup-by-email query."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class PersonLookup:
    """Tagged lookup result so callers can tell "no record" from "CRM down"."""

    status: LookupStatus
    record: PersonRecord | None = None
    detail: str | None = None

    @classmethod
    def found(cls, record: PersonRecord) -> PersonLookup:
        return cls(status=LookupStatus.FOUND, record=record)

    @classmethod
    def not_found(cls) -> PersonLookup:
        return cls(status=LookupStatus.NOT_FOUND)

    @classmethod
    def transport_error(cls, detail: str) -> PersonLookup:
        return cls(status=LookupStatus.TRANSPORT_ERROR, detail=detail)


@dataclass(frozen=True)
class OptionListing:
    """Select options for one attribute plus the upstream status they came with."""

    options: list[SelectOption]
    status_code: int = 200
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AttioClient:
    """Lookup, upsert and option listing for the configured Person object."""

    def __init__(self, config: AttioConfig, http_client: httpx.AsyncClient) -> None:
        self.config = config
        self.http_client = http_client

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    def _object_url(self, *parts: str) -> str:
        segments = ["objects", self.config.object_id, *parts]
        path = "/".join(quote(segment, safe="") for segment in segments)
        return f"{self.config.base_url}/{path}"

    async def find_person_by_email(self, email: str) -> PersonLookup:
        """Query for the first Person whose email attribute matches."""
        payload = {
            "filter": {self.config.email_attribute: {"email_address": email}},
            "limit": 1,
        }
        try:
            response = await self.http_client.post(
                self._object_url("records", "query"),
                headers=self.headers,
                json=payload,
                timeout=self.config.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.error("Attio person query failed email=%s error=%s", email, exc)
            return PersonLookup.transport_error(str(exc))

        if response.is_error:
            logger.error(
                "Attio person query HTTP error email=%s status=%s",
                email,
                response.status_code,
            )
            return PersonLookup.transport_error(
                f"HTTP {response.status_code}: {response.reason_phrase}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            logger.error("Attio person query returned invalid JSON email=%s", email)
            return PersonLookup.transport_error(f"invalid JSON: {exc}")

        rows = body.get("data") if isinstance(body, dict) else None
        if not isinstance(rows, list) or not rows:
            return PersonLookup.not_found()

        record = PersonRecord.from_payload(rows[0])
        if record is None:
            logger.warning("Attio person query returned an unreadable record")
            return PersonLookup.not_found()
        return PersonLookup.found(record)

    async def upsert_person(
        self, record_id: str | None, attributes: dict[str, Any]
    ) -> dict[str, Any]:
        """Update the record when an id is given, otherwise create one."""
        if record_id:
            method = "PATCH"
            url = self._object_url("records", record_id)
            payload: dict[str, Any] = {"data": {"values": attributes}}
        else:
            method = "POST"
            url = self._object_url("records")
            payload = {
                "object_id": self.config.object_id,
                "data": {"values": attributes},
            }

        logger.info(
            "Attio %s person record_id=%s attributes=%s",
            method,
            record_id,
            sorted(attributes),
        )
        response = await self.http_client.request(
            method,
            url,
            headers=self.headers,
            json=payload,
            timeout=self.config.timeout_seconds,
        )
        if response.is_error:
            logger.error(
                "Attio %s person failed record_id=%s status=%s body=%s",
                method,
                record_id,
                response.status_code,
                response.text[:500],
            )
            raise AttioAPIError(
                f"Attio {method} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            logger.exception("Attio %s person returned invalid JSON", method)
            return {}
        return body if isinstance(body, dict) else {}

    async def list_select_options(self, attribute_slug: str) -> OptionListing:
        """Return non-archived options configured for one select attribute."""
        try:
            response = await self.http_client.get(
                self._object_url("attributes", attribute_slug, "options"),
                headers=self.headers,
                timeout=self.config.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.error(
                "Attio options request failed slug=%s error=%s", attribute_slug, exc
            )
            return OptionListing(options=[], status_code=502, error=str(exc))

        if response.is_error:
            logger.error(
                "Failed to fetch options for %s: HTTP %s",
                attribute_slug,
                response.status_code,
            )
            return OptionListing(
                options=[],
                status_code=response.status_code,
                error=response.reason_phrase or f"HTTP {response.status_code}",
            )

        try:
            body = response.json()
        except ValueError as exc:
            logger.error("Attio options for %s returned invalid JSON", attribute_slug)
            return OptionListing(options=[], status_code=502, error=str(exc))

        rows = body.get("data") if isinstance(body, dict) else None
        if not isinstance(rows, list):
            return OptionListing(options=[])
        return OptionListing(options=_parse_options(rows))


def _parse_options(rows: list[Any]) -> list[SelectOption]:
    options: list[SelectOption] = []
    for row in rows:
        if not isinstance(row, dict) or row.get("is_archived"):
            continue
        option_key = row.get("id")
        option_id = option_key.get("option_id") if isinstance(option_key, dict) else None
        if not option_id:
            continue
        options.append(SelectOption(id=str(option_id), title=str(row.get("title", ""))))
    return options
