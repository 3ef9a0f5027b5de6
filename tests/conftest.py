"""
Test fixtures and configuration for es-analytics tests.

Gateway tests run against an in-process fake Elasticsearch built on
aiohttp.web: it records every request and answers with configurable
responses.
"""

import asyncio
import json
import socket
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, AsyncGenerator

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from es_analytics.services.search_gateway import ElasticsearchConfig
from tests.factories import create_availability_response


@dataclass
class RecordedRequest:
    """One request received by the fake Elasticsearch."""

    method: str
    path: str
    query: dict[str, str]
    headers: Mapping[str, str]
    body: str

    def json(self) -> Any:
        return json.loads(self.body)


class FakeElasticsearch:
    """
    Minimal Elasticsearch stand-in.

    Default answers cover ``GET /``, ``PUT /_template/gravitee``,
    ``GET /_cluster/health``, ``POST /_bulk`` and any ``*/_search``;
    ``respond()`` overrides the answer for a method and path.
    """

    def __init__(self, version: str = "7.17.3"):
        self.version = version
        self.url = ""
        self.requests: list[RecordedRequest] = []
        self.delay = 0.0
        self.search_status = 200
        self._overrides: dict[tuple[str, str], tuple[int, Any]] = {}
        self.search_response, _ = create_availability_response(hours=3)

    def respond(self, method: str, path: str, status: int = 200, body: Any = None) -> None:
        self._overrides[(method, path)] = (status, body if body is not None else {})

    def requests_to(self, method: str, path: str) -> list[RecordedRequest]:
        return [r for r in self.requests if r.method == method and r.path == path]

    def _default(self, method: str, path: str) -> tuple[int, Any]:
        if method == "GET" and path == "/":
            return 200, {
                "name": "node-1",
                "cluster_name": "test-cluster",
                "version": {"number": self.version},
                "tagline": "You Know, for Search",
            }
        if method == "PUT" and path == "/_template/gravitee":
            return 200, {"acknowledged": True}
        if method == "GET" and path == "/_cluster/health":
            return 200, {
                "cluster_name": "test-cluster",
                "status": "green",
                "timed_out": False,
                "number_of_nodes": 3,
                "number_of_data_nodes": 3,
                "active_primary_shards": 10,
                "active_shards": 20,
                "relocating_shards": 0,
                "initializing_shards": 0,
                "unassigned_shards": 0,
                "active_shards_percent_as_number": 100.0,
            }
        if method == "POST" and path == "/_bulk":
            return 200, {"took": 7, "errors": False, "items": []}
        if method == "POST" and path.endswith("/_search"):
            return self.search_status, self.search_response
        return 404, {"error": "no handler found", "status": 404}

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.text()
        self.requests.append(RecordedRequest(
            method=request.method,
            path=request.path,
            query=dict(request.query),
            headers=request.headers.copy(),
            body=body,
        ))

        if self.delay:
            await asyncio.sleep(self.delay)

        status, payload = self._overrides.get((request.method, request.path)) or self._default(
            request.method, request.path
        )
        text = payload if isinstance(payload, str) else json.dumps(payload)
        return web.Response(status=status, text=text, content_type="application/json")


@pytest.fixture
async def fake_es() -> AsyncGenerator[FakeElasticsearch, None]:
    """Running fake Elasticsearch, reachable at ``fake_es.url``."""
    fake = FakeElasticsearch()
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", fake.handle)

    server = TestServer(app)
    await server.start_server()
    fake.url = f"http://{server.host}:{server.port}"

    yield fake

    await server.close()


@pytest.fixture
def es_config(fake_es: FakeElasticsearch) -> ElasticsearchConfig:
    """Configuration pointing at the fake Elasticsearch."""
    return ElasticsearchConfig(endpoints=[fake_es.url], timeout=5)


@pytest.fixture
def unused_endpoint() -> str:
    """Endpoint on a local port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}"


@pytest.fixture(autouse=True)
def clean_es_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep ELASTICSEARCH_* variables of the host out of the tests."""
    for name in (
        "ELASTICSEARCH_ENDPOINTS",
        "ELASTICSEARCH_USERNAME",
        "ELASTICSEARCH_PASSWORD",
        "ELASTICSEARCH_INDEX_NAME",
        "ELASTICSEARCH_NUMBER_OF_SHARDS",
        "ELASTICSEARCH_NUMBER_OF_REPLICAS",
        "ELASTICSEARCH_HEALTH_TYPE",
        "ELASTICSEARCH_TIMEOUT",
        "ELASTICSEARCH_VERIFY_CERTS",
    ):
        monkeypatch.delenv(name, raising=False)
