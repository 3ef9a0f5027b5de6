"""
Error classification for search engine calls.

Transport failures raised by aiohttp are translated into the package's
SearchEngineError hierarchy so that the gateway exposes a single technical
error kind, whatever the underlying cause.
"""

from datetime import UTC, datetime
from typing import Any

import aiohttp

from ..exceptions import (
    EsAnalyticsError,
    SearchEngineConnectionError,
    SearchEngineError,
    SearchEngineTimeoutError,
)
from .logging import get_logger

logger = get_logger(__name__)


class ErrorClassifier:
    """Classifies transport exceptions into structured search engine errors."""

    @staticmethod
    def classify_transport_error(error: Exception, context: dict[str, Any] | None = None) -> SearchEngineError:
        """
        Classify a transport exception into a SearchEngineError.

        Args:
            error: The exception raised while talking to the search engine
            context: Additional context information (operation, host, ...)

        Returns:
            Appropriate SearchEngineError subclass
        """
        context = context or {}
        operation = context.get("operation", "request")

        if isinstance(error, SearchEngineError):
            error.context.update(context)
            return error

        # Timeouts first: aiohttp's ServerTimeoutError is also a connection error
        if isinstance(error, TimeoutError):
            return SearchEngineTimeoutError(
                f"Elasticsearch {operation} timed out",
                original_error=error,
                operation=operation,
                timeout_seconds=context.get("timeout_seconds"),
            )

        if isinstance(error, aiohttp.ClientSSLError):
            return SearchEngineConnectionError(
                f"TLS handshake with Elasticsearch failed: {error}",
                original_error=error,
                host=context.get("host"),
                recoverable=False,
                recovery_hint="Check TLS configuration and certificates",
            )

        if isinstance(error, aiohttp.ClientError | OSError):
            return SearchEngineConnectionError(
                f"Impossible to call Elasticsearch: {error}",
                original_error=error,
                host=context.get("host"),
                context=dict(context),
            )

        if isinstance(error, EsAnalyticsError):
            return SearchEngineError(
                error.message,
                original_error=error,
                context=dict(context),
            )

        return SearchEngineError(
            f"Unexpected error while calling Elasticsearch: {error}",
            original_error=error,
            context=dict(context),
        )


def create_error_context(
    operation: str,
    index: str | None = None,
    host: str | None = None,
    **additional_context: Any
) -> dict[str, Any]:
    """
    Context dict attached to classified errors and their log records.

    ``index`` and ``host`` are only included when set; any other keyword
    (for example ``timeout_seconds``) is copied as is.
    """
    context: dict[str, Any] = {
        "operation": operation,
        "timestamp": datetime.now(UTC).isoformat(),
    }

    if index:
        context["index"] = index
    if host:
        context["host"] = host

    context.update(additional_context)
    return context
