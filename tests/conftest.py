"""Test fixtures: an in-memory content repository and knowledge service.

This module provides:
- FakeServices, an httpx.MockTransport handler that serves the repository's
  ``items``/``collections`` endpoints and Wikidata ``wbgetentities``
  lookups from plain dicts, records every request, and can inject failures
  and delays per path
- Two sample transcripts with events, people, places and date mentions
- Fixtures for a ViewerConfig pointing at the fake repository and a
  ResourceClient wired to the fake transport

The first transcript mentions "World War II" three times, so frequency and
occurrence-wrapping behaviour can be checked against it.
"""

import asyncio
from typing import Any

import httpx
import pytest

from ddhi.client import ResourceClient
from ddhi.config import ViewerConfig
from ddhi.document import Document, shade_color
from ddhi.entity import EntityType, parse_entity

REPOSITORY_URI = "http://repository.test"
WIKIDATA_HOST = "www.wikidata.org"

VETERAN_MARKUP = (
    "<p><span data-entity-id='Q362'>World War II</span> started when "
    "<span data-entity-id='p1'>Alice</span> was young. During "
    "<span data-entity-id='Q362'>the war</span>, in "
    "<date id='d1' when='1944-06'>June of '44</date>, came "
    "<span data-entity-id='Q8683'>the landings</span>. After the "
    "<span data-entity-id='Q362'>war</span> she met an "
    "<span data-entity-id='unlinked'>old friend</span> in "
    "<span id='pl1'>Paris</span>.</p>"
)

MERCHANT_MARKUP = (
    "<p>My father served in <span data-entity-id='Q362'>the war</span> and came home to "
    "<span data-entity-id='pl3'>Hanover</span>.</p>"
)


def _time_claim(value: str, rank: str = "normal") -> dict[str, Any]:
    return {
        "rank": rank,
        "mainsnak": {"snaktype": "value", "datavalue": {"type": "time", "value": {"time": value, "precision": 11}}},
    }


def sample_items() -> dict[str, dict[str, Any]]:
    return {
        "1": {
            "id": 1,
            "title": "Transcript of an Interview with a Veteran",
            "transcript": VETERAN_MARKUP,
            "uri": "http://repository.test/items/1",
        },
        "2": {
            "id": 2,
            "title": "Transcript of an Interview with Bob Jones",
            "transcript": MERCHANT_MARKUP,
        },
    }


def sample_entities() -> dict[tuple[str, str], Any]:
    return {
        ("1", "events"): [
            {"id": "Q362", "title": "World War II", "qid": "Q362"},
            {"id": "Q8683", "title": "Normandy landings", "qid": "Q8683"},
        ],
        ("1", "persons"): [{"id": "p1", "title": "Alice Smith"}],
        ("1", "places"): {
            "places": [
                {"id": "pl1", "title": "Paris", "location": {"lat": 48.8566, "lng": 2.3522}},
                {"id": "pl2", "title": "Somewhere at sea"},
            ]
        },
        ("1", "organizations"): [],
        ("1", "dates"): [{"id": "d1", "when": "1944-06"}],
        ("2", "events"): [{"id": "Q362", "title": "World War II", "qid": "Q362"}],
        ("2", "persons"): None,
        ("2", "places"): [{"id": "pl3", "title": "Hanover", "location": {"lat": 43.7022, "lng": -72.2896}}],
        ("2", "organizations"): [],
        ("2", "dates"): [],
    }


def sample_knowledge() -> dict[str, dict[str, Any]]:
    return {
        "Q362": {
            "id": "Q362",
            "claims": {
                "P580": [_time_claim("+1939-09-01T00:00:00Z")],
                "P582": [_time_claim("+1945-09-02T00:00:00Z")],
            },
        },
        "Q8683": {
            "id": "Q8683",
            "claims": {"P585": [_time_claim("+1944-06-06T00:00:00Z")]},
        },
    }


def build_document(document_id: str, color: str = "#3366cc") -> Document:
    """Assemble a sample Document the way the aggregator would, without HTTP."""
    item = sample_items()[document_id]
    listings = sample_entities()
    entities_by_type = {}
    for entity_type in EntityType:
        data = listings.get((document_id, entity_type.collection))
        if isinstance(data, dict):
            data = data[entity_type.collection]
        entities_by_type[entity_type] = tuple(parse_entity(d, default_type=entity_type) for d in data or [])
    return Document(
        id=document_id,
        title=item["title"],
        transcript=item["transcript"],
        entities_by_type=entities_by_type,
        display_color=color,
        display_border_color=shade_color(color),
    )


class FakeServices:
    """Serves repository and Wikidata requests from dicts.

    ``failures`` maps a URL path to a status code to return instead of data;
    ``delays`` maps a URL path to seconds to sleep before answering.
    """

    def __init__(self) -> None:
        self.items = sample_items()
        self.entities = sample_entities()
        self.knowledge = sample_knowledge()
        self.transcripts = [{"id": k, "title": v["title"]} for k, v in self.items.items()]
        self.requests: list[httpx.Request] = []
        self.failures: dict[str, int] = {}
        self.delays: dict[str, float] = {}

    def requests_to(self, path_prefix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith(path_prefix)]

    def knowledge_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == WIKIDATA_HOST]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.delays:
            await asyncio.sleep(self.delays[path])
        if path in self.failures:
            return httpx.Response(self.failures[path])

        if request.url.host == WIKIDATA_HOST:
            ids = request.url.params["ids"].split("|")
            entities = {i: self.knowledge.get(i, {"id": i, "missing": ""}) for i in ids}
            return httpx.Response(200, json={"entities": entities})

        rest = path.removeprefix("/ddhi-api/")
        if rest == "collections/transcripts":
            return httpx.Response(200, json=self.transcripts)
        parts = rest.split("/")
        if parts[0] == "items" and len(parts) == 2 and parts[1] in self.items:
            return httpx.Response(200, json=self.items[parts[1]])
        if parts[0] == "items" and len(parts) == 3 and (parts[1], parts[2]) in self.entities:
            data = self.entities[(parts[1], parts[2])]
            if data is None:
                return httpx.Response(200, content=b"null", headers={"content-type": "application/json"})
            return httpx.Response(200, json=data)
        return httpx.Response(404)


@pytest.fixture
def services() -> FakeServices:
    return FakeServices()


@pytest.fixture
def veteran_document() -> Document:
    return build_document("1")


@pytest.fixture
def merchant_document() -> Document:
    return build_document("2", color="#cc6633")


@pytest.fixture
def config() -> ViewerConfig:
    return ViewerConfig(repository_uri=REPOSITORY_URI, request_timeout=2.0)


@pytest.fixture
async def client(services: FakeServices, config: ViewerConfig):
    """ResourceClient whose requests are answered by ``services``."""
    resource_client = ResourceClient(config, transport=httpx.MockTransport(services.handler))
    yield resource_client
    await resource_client.aclose()
