"""Shared fixtures: an in-memory Attio stand-in served through httpx.MockTransport."""

import json
from typing import Any

import httpx
import pytest

from profiledesk.clients.attio import AttioClient, AttioConfig

ATTIO_BASE_URL = "https://attio.test/v2"
OBJECT_PREFIX = "/v2/objects/people"


class FakeAttio:
    """Tiny Attio Person store speaking the query/options/create/update contract."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, list[dict[str, Any]]]] = {}
        self.options: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_queries = False
        self.fail_writes = False

    def add_options(self, slug: str, *options: tuple[str, str, bool]) -> None:
        self.options[slug] = [
            {"id": {"option_id": option_id}, "title": title, "is_archived": archived}
            for option_id, title, archived in options
        ]

    def add_record(self, record_id: str, values: dict[str, list[dict[str, Any]]]) -> None:
        self.records[record_id] = values

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))
        assert request.headers["Authorization"] == "Bearer test-key"
        assert path.startswith(OBJECT_PREFIX)
        tail = path[len(OBJECT_PREFIX) :].strip("/").split("/")

        if request.method == "POST" and tail == ["records", "query"]:
            if self.fail_queries:
                return httpx.Response(503, json={"message": "unavailable"})
            body = json.loads(request.content)
            email = body["filter"]["email_addresses"]["email_address"]
            rows = [
                self._row(record_id)
                for record_id, values in self.records.items()
                if any(
                    entry.get("email_address") == email
                    for entry in values.get("email_addresses", [])
                )
            ]
            return httpx.Response(200, json={"data": rows[: body["limit"]]})

        if request.method == "GET" and tail[0] == "attributes" and tail[-1] == "options":
            slug = tail[1]
            if slug not in self.options:
                return httpx.Response(404, json={"message": "attribute not found"})
            return httpx.Response(200, json={"data": self.options[slug]})

        if request.method in {"POST", "PATCH"} and tail[0] == "records":
            if self.fail_writes:
                return httpx.Response(500, json={"message": "boom"})
            body = json.loads(request.content)
            values = self._to_values(body["data"]["values"])
            if request.method == "POST":
                record_id = f"rec-{len(self.records) + 1}"
                self.records[record_id] = values
            else:
                record_id = tail[1]
                self.records[record_id].update(values)
            return httpx.Response(200, json={"data": self._row(record_id)})

        return httpx.Response(404, json={"message": "no route"})

    def _row(self, record_id: str) -> dict[str, Any]:
        return {"id": {"record_id": record_id}, "values": self.records[record_id]}

    def _to_values(self, attributes: dict[str, Any]) -> dict[str, list[dict[str, Any]]]:
        values: dict[str, list[dict[str, Any]]] = {}
        for slug, value in attributes.items():
            if slug == "email_addresses":
                values[slug] = [{"email_address": item} for item in value]
            elif slug in self.options:
                values[slug] = [{"option": {"id": {"option_id": value}}}]
            else:
                values[slug] = [{"value": value}]
        return values


@pytest.fixture
def fake_attio() -> FakeAttio:
    return FakeAttio()


@pytest.fixture
def attio_config() -> AttioConfig:
    return AttioConfig(base_url=ATTIO_BASE_URL, api_key="test-key", object_id="people")


@pytest.fixture
def attio_client(fake_attio: FakeAttio, attio_config: AttioConfig) -> AttioClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_attio.handler))
    return AttioClient(attio_config, http_client)
