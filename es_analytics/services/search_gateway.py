"""
Search engine gateway.

This module provides a long-lived async HTTP gateway to an Elasticsearch-family
search engine: version detection and index template bootstrap at startup,
cluster health, search, and fire-and-forget bulk indexing, all with uniform
error handling.
"""

import asyncio
import base64
import json
import re
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import urlsplit

import aiohttp
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..config.query_templates import QueryTemplates, TemplateRenderer, index_template_name
from ..exceptions import (
    SearchEngineConnectionError,
    SearchEngineError,
    SearchEngineResponseError,
    TemplateRenderError,
)
from ..models.response import Health, StartupResult
from ..utils.error_handling import ErrorClassifier, create_error_context
from ..utils.logging import get_logger, log_search_error, log_search_request

URL_ROOT = "/"
URL_CLUSTER_HEALTH = "/_cluster/health"
URL_SEARCH = "/_search"
URL_TEMPLATE = "/_template/gravitee"
URL_BULK = "/_bulk"

JSON_CONTENT_TYPE = "application/json;charset=UTF-8"
NDJSON_CONTENT_TYPE = "application/x-ndjson"

HTTPS_SCHEME = "https"

MIN_SUPPORTED_MAJOR_VERSION = 2


class ElasticsearchConfig(BaseSettings):
    """Configuration for the search engine endpoint."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    endpoints: str | list[str] = Field(default="http://localhost:9200", alias="ELASTICSEARCH_ENDPOINTS")
    username: str | None = Field(default=None, alias="ELASTICSEARCH_USERNAME")
    password: str | None = Field(default=None, alias="ELASTICSEARCH_PASSWORD")

    # Index configuration
    index_name: str = Field(default="gravitee", alias="ELASTICSEARCH_INDEX_NAME")
    number_of_shards: int = Field(default=5, ge=1, alias="ELASTICSEARCH_NUMBER_OF_SHARDS")
    number_of_replicas: int = Field(default=1, ge=0, alias="ELASTICSEARCH_NUMBER_OF_REPLICAS")
    health_type: str = Field(default="health", alias="ELASTICSEARCH_HEALTH_TYPE")

    # Transport
    timeout: float = Field(default=30.0, gt=0, alias="ELASTICSEARCH_TIMEOUT")
    # Internal clusters commonly run self-signed certificates: validation is
    # off unless explicitly enabled.
    verify_certs: bool = Field(default=False, alias="ELASTICSEARCH_VERIFY_CERTS")

    @field_validator("endpoints", mode="before")
    @classmethod
    def parse_endpoints(cls, v: str | list[str]) -> list[str]:
        """Parse endpoints from a comma-separated string or a list."""
        if isinstance(v, str):
            endpoints = [endpoint.strip() for endpoint in v.split(",") if endpoint.strip()]
        else:
            endpoints = list(v)

        if not endpoints:
            raise ValueError("At least one Elasticsearch endpoint must be configured")

        formatted = []
        for endpoint in endpoints:
            if not endpoint.startswith(('http://', 'https://')):
                endpoint = f"http://{endpoint}"
            formatted.append(endpoint)
        return formatted

    @field_validator("username", "password", mode="before")
    @classmethod
    def empty_as_none(cls, v: str | None) -> str | None:
        if v == "":
            return None
        return v

    def validate_authentication_config(self) -> tuple[bool, str]:
        """
        Validate authentication configuration.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if self.username and self.password is None:
            return False, "Password must be provided when using username"
        if self.password and not self.username:
            return False, "Username must be provided when using password"
        return True, ""

    @property
    def endpoint(self) -> str:
        """The endpoint the gateway talks to (the first configured one)."""
        return self.endpoints[0]


def encode_basic_authorization(username: str, password: str) -> str:
    """
    Create the Basic HTTP authorization header value.

    Args:
        username: username
        password: password

    Returns:
        ``Basic <base64(username:password)>``
    """
    credentials = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(credentials).decode("ascii")


def resolve_endpoint(url: str) -> tuple[str, str, int]:
    """
    Split an endpoint URL into scheme, host and port.

    The port defaults to 443 for https and 80 otherwise. Any path on the
    endpoint is ignored.
    """
    parts = urlsplit(url)
    scheme = parts.scheme or "http"
    if not parts.hostname:
        raise ValueError(f"Invalid Elasticsearch endpoint: {url!r}")
    port = parts.port or (443 if scheme == HTTPS_SCHEME else 80)
    return scheme, parts.hostname, port


def parse_major_version(version: str) -> int:
    """Extract the major version from a version string such as ``7.17.3``."""
    match = re.match(r"\s*(\d+)", version)
    if not match:
        raise ValueError(f"Unparseable Elasticsearch version: {version!r}")
    return int(match.group(1))


class SearchGateway:
    """
    Async HTTP gateway to the search engine.

    One gateway owns one aiohttp session bound to the first configured
    endpoint. Every public coroutine awaits exactly one outcome and raises
    SearchEngineError on transport failures and non-200 responses. The
    session is safe to share between concurrent callers.
    """

    def __init__(
        self,
        config: ElasticsearchConfig | None = None,
        renderer: TemplateRenderer | None = None,
    ):
        """
        Initialize the gateway. No I/O happens before start().

        Args:
            config: Endpoint configuration. If None, loaded from environment.
            renderer: Template renderer for index templates. Defaults to QueryTemplates.

        Raises:
            SearchEngineError: If the authentication configuration is invalid
        """
        self.config = config or ElasticsearchConfig()
        self.renderer = renderer or QueryTemplates()
        self.logger = get_logger(__name__)

        self._session: aiohttp.ClientSession | None = None
        self._base_url: str | None = None
        self._authorization: str | None = None
        self._major_version: int | None = None
        self._startup: StartupResult | None = None
        self._bulk_tasks: set[asyncio.Task[None]] = set()
        self._start_lock = asyncio.Lock()

        is_valid, error_message = self.config.validate_authentication_config()
        if not is_valid:
            raise SearchEngineError(f"Invalid configuration: {error_message}")

    @property
    def is_started(self) -> bool:
        return self._session is not None

    @property
    def major_version(self) -> int | None:
        """Major version detected at startup, None if detection failed."""
        return self._major_version

    @property
    def startup(self) -> StartupResult | None:
        return self._startup

    async def __aenter__(self) -> "SearchGateway":
        await self.start()
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: Any) -> None:
        await self.close()

    async def start(self) -> StartupResult:
        """
        Create the HTTP client, then detect the engine version and install
        the index template.

        Version detection and template bootstrap are best-effort: their
        failures are logged and reported as a degraded StartupResult, and
        the gateway stays usable for search and health calls.

        Raises:
            SearchEngineConnectionError: If the HTTP client cannot be created
        """
        async with self._start_lock:
            if self._session is not None:
                self.logger.warning("Gateway already started")
                return self._startup or StartupResult.degraded("Startup did not complete")

            endpoint = self.config.endpoint
            try:
                scheme, host, port = resolve_endpoint(endpoint)
                verify = scheme != HTTPS_SCHEME or self.config.verify_certs
                if not verify:
                    self.logger.warning(
                        "TLS certificate validation is disabled for Elasticsearch",
                        extra={"endpoint": endpoint},
                    )

                self._session = aiohttp.ClientSession(
                    connector=aiohttp.TCPConnector(ssl=verify),
                    timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                )
            except (ValueError, aiohttp.ClientError, OSError) as e:
                error_msg = f"Failed to create Elasticsearch client for {endpoint}: {e}"
                self.logger.error(error_msg, extra={"error": str(e)})
                raise SearchEngineConnectionError(error_msg, e, host=endpoint) from e

            host_part = f"[{host}]" if ":" in host else host
            self._base_url = f"{scheme}://{host_part}:{port}"

            # For example when Elasticsearch is protected by nginx or x-pack
            if self.config.username:
                self._authorization = encode_basic_authorization(
                    self.config.username, self.config.password or ""
                )

            self.logger.info(
                "Elasticsearch gateway created",
                extra={
                    "endpoint": self._base_url,
                    "authenticated": self._authorization is not None,
                    "timeout_seconds": self.config.timeout,
                },
            )

            self._startup = await self._bootstrap()
            return self._startup

    async def _bootstrap(self) -> StartupResult:
        try:
            self._major_version = await self.detect_major_version()
        except SearchEngineError as e:
            self.logger.error(
                f"An error occurs while getting information from Elasticsearch at {self._base_url}",
                extra={"error": e.to_dict()},
            )
            return StartupResult.degraded(f"Version detection failed: {e.message}")

        try:
            await self.ensure_template()
        except SearchEngineError as e:
            self.logger.error(
                f"An error occurs while installing the index template on Elasticsearch at {self._base_url}",
                extra={"error": e.to_dict()},
            )
            return StartupResult.degraded(f"Template bootstrap failed: {e.message}", self._major_version)

        return StartupResult.ok(self._major_version)

    async def close(self) -> None:
        """Wait for in-flight bulk requests, then close the HTTP client."""
        if self._bulk_tasks:
            await asyncio.gather(*self._bulk_tasks, return_exceptions=True)

        if self._session is not None:
            try:
                await self._session.close()
                self.logger.info("Elasticsearch gateway closed")
            finally:
                self._session = None

    async def detect_major_version(self) -> int:
        """
        Read the engine version from ``GET /``.

        Returns:
            Leading integer of ``version.number``

        Raises:
            SearchEngineError: If the call fails or the version cannot be read
        """
        payload = self._decode_json(await self._perform("GET", URL_ROOT, operation="detect_major_version"), URL_ROOT)

        version_info = payload.get("version")
        version = version_info.get("number") if isinstance(version_info, dict) else None
        if not isinstance(version, str):
            raise SearchEngineError("Elasticsearch root endpoint did not report a version number")

        try:
            major = parse_major_version(version)
        except ValueError as e:
            raise SearchEngineError(str(e), original_error=e) from e

        if major < MIN_SUPPORTED_MAJOR_VERSION:
            self.logger.warning(
                "Please upgrade to Elasticsearch 2 or later",
                extra={"version": version},
            )

        self.logger.info(
            "Detected Elasticsearch version",
            extra={"version": version, "major_version": major},
        )
        return major

    async def cluster_health(self) -> Health:
        """
        Get the cluster health.

        Returns:
            Health as reported by the engine

        Raises:
            SearchEngineError: If the call fails or returns a non-200 status
        """
        body = await self._perform("GET", URL_CLUSTER_HEALTH, operation="cluster_health")
        self.logger.debug(f"Response of ES for GET {URL_CLUSTER_HEALTH}", extra={"body": body})

        try:
            return Health.model_validate_json(body)
        except ValidationError as e:
            raise SearchEngineError(
                "Invalid cluster health response from Elasticsearch", original_error=e
            ) from e

    async def search(self, index: str | None, doc_type: str | None, query: str) -> dict[str, Any]:
        """
        Perform a search request.

        Args:
            index: Index names or patterns, comma-separated. None searches all indices.
            doc_type: Document type(s), comma-separated. None searches all types.
            query: JSON request body

        Returns:
            The raw decoded search response, aggregations included

        Raises:
            SearchEngineError: If the call fails, returns a non-200 status or an
                undecodable body
        """
        target = index or "_all"
        path = f"/{target}"
        if doc_type:
            path += f"/{doc_type}"
        path += URL_SEARCH

        try:
            body = await self._perform(
                "POST",
                path,
                body=query,
                content_type=JSON_CONTENT_TYPE,
                params={"ignore_unavailable": "true"},
                operation="search",
                index=target,
            )
            payload = self._decode_json(body, path)
        except SearchEngineError as e:
            log_search_error(target, e.message, query)
            raise

        took = payload.get("took")
        log_search_request(target, doc_type, took if isinstance(took, int) else None)
        return payload

    async def ensure_template(self) -> None:
        """
        Install the version-specific index template under ``/_template/gravitee``.

        Raises:
            SearchEngineError: If the major version is unknown, the template
                cannot be rendered or the PUT fails
        """
        if self._major_version is None:
            raise SearchEngineError("Elasticsearch major version is unknown, cannot select an index template")

        template_name = index_template_name(self._major_version)
        params = {
            "indexName": self.config.index_name,
            "numberOfShards": self.config.number_of_shards,
            "numberOfReplicas": self.config.number_of_replicas,
        }

        try:
            template = self.renderer.render(template_name, params)
        except TemplateRenderError as e:
            raise SearchEngineError(
                f"Impossible to render index template {template_name}: {e.message}", original_error=e
            ) from e

        self.logger.debug("PUT template", extra={"template": template})

        body = await self._perform(
            "PUT",
            URL_TEMPLATE,
            body=template,
            content_type=JSON_CONTENT_TYPE,
            operation="ensure_template",
        )
        self.logger.debug(f"Response of ES for PUT {URL_TEMPLATE}", extra={"body": body})

    def bulk_index(self, bulk: str) -> None:
        """
        Send an NDJSON bulk request without waiting for its outcome.

        The request runs as a background task: the call returns once it is
        scheduled, failures are only logged, and callers get no completion
        signal. Pending requests are awaited by close().

        Args:
            bulk: NDJSON bulk body
        """
        if self._session is None:
            self.logger.error(f"Cannot call Elasticsearch POST {URL_BULK}: gateway is not started")
            return

        self.logger.debug(f"Try to call POST {URL_BULK}", extra={"body": bulk})

        try:
            task = asyncio.get_running_loop().create_task(self._send_bulk(bulk), name="elasticsearch-bulk")
        except RuntimeError as e:
            self.logger.error(
                "Unexpected error while bulk indexing data to Elasticsearch",
                extra={"error": str(e)},
            )
            return

        self._bulk_tasks.add(task)
        task.add_done_callback(self._bulk_tasks.discard)

    async def _send_bulk(self, bulk: str) -> None:
        try:
            body = await self._perform(
                "POST",
                URL_BULK,
                body=bulk,
                content_type=NDJSON_CONTENT_TYPE,
                operation="bulk_index",
            )
        except SearchEngineError as e:
            self.logger.error(
                f"An error occurs while calling Elasticsearch POST {URL_BULK}",
                extra={"error": e.to_dict()},
            )
            return

        self.logger.debug(f"Response of ES for POST {URL_BULK}", extra={"body": body})

        try:
            payload = json.loads(body)
        except ValueError:
            self.logger.warning(f"Unreadable response for POST {URL_BULK}", extra={"body": body[:500]})
            return

        if isinstance(payload, dict) and payload.get("errors"):
            failed = [
                item for item in payload.get("items", [])
                if isinstance(item, dict)
                and any(isinstance(result, dict) and "error" in result for result in item.values())
            ]
            self.logger.warning(
                "Elasticsearch rejected some bulk items",
                extra={"failed_items": len(failed)},
            )

    def _common_headers(self, content_type: str | None = None) -> dict[str, str]:
        """Headers sent with every request to the search engine."""
        headers = {
            "Accept": JSON_CONTENT_TYPE,
            "Accept-Charset": "UTF-8",
        }
        if content_type:
            headers["Content-Type"] = content_type
        if self._authorization is not None:
            headers["Authorization"] = self._authorization
        return headers

    async def _perform(
        self,
        method: str,
        path: str,
        *,
        body: str | None = None,
        content_type: str | None = None,
        params: dict[str, str] | None = None,
        operation: str,
        index: str | None = None,
    ) -> str:
        """
        Send one request and return its body.

        Raises:
            SearchEngineResponseError: On any status other than 200
            SearchEngineError: On transport failures, classified by ErrorClassifier
        """
        if self._session is None or self._base_url is None:
            raise SearchEngineError("Gateway not started. Call start() first.")

        try:
            async with self._session.request(
                method,
                f"{self._base_url}{path}",
                data=body.encode("utf-8") if body is not None else None,
                headers=self._common_headers(content_type),
                params=params,
            ) as response:
                text = await response.text(encoding="utf-8", errors="replace")
                if response.status != 200:
                    raise SearchEngineResponseError(
                        f"Impossible to call Elasticsearch. Elasticsearch response code is {response.status}",
                        status_code=response.status,
                        method=method,
                        path=path,
                        body=text,
                    )
                return text
        except (aiohttp.ClientError, TimeoutError, OSError) as e:
            context = create_error_context(
                operation,
                index=index,
                host=self._base_url,
                timeout_seconds=self.config.timeout,
            )
            structured_error = ErrorClassifier.classify_transport_error(e, context)
            self.logger.error(
                f"Impossible to call Elasticsearch {method} {path}",
                extra={"error": structured_error.to_dict()},
            )
            raise structured_error from e

    @staticmethod
    def _decode_json(body: str, path: str) -> dict[str, Any]:
        try:
            payload = json.loads(body)
        except ValueError as e:
            raise SearchEngineError(f"Invalid JSON response from Elasticsearch for {path}", original_error=e) from e

        if not isinstance(payload, dict):
            raise SearchEngineError(f"Unexpected response from Elasticsearch for {path}")
        return payload

    def __repr__(self) -> str:
        status = "started" if self.is_started else "stopped"
        return (
            f"SearchGateway(endpoint={self.config.endpoint}, status={status}, "
            f"major_version={self._major_version})"
        )


@asynccontextmanager
async def create_search_gateway(
    config: ElasticsearchConfig | None = None,
    renderer: TemplateRenderer | None = None,
) -> AsyncGenerator[SearchGateway, None]:
    """
    Create a started SearchGateway as an async context manager.

    Args:
        config: Optional configuration. If None, loads from environment.
        renderer: Optional template renderer.

    Yields:
        Started SearchGateway instance
    """
    gateway = SearchGateway(config, renderer)
    try:
        await gateway.start()
        yield gateway
    finally:
        await gateway.close()
