"""
Custom exceptions for the Elasticsearch analytics package.

Every technical failure talking to the search engine (transport errors and
non-200 responses alike) is normalized into a SearchEngineError carrying the
original cause. Query commands wrap those into AnalyticsQueryError, which is the
only error a top-level caller has to handle.

Each class declares its classification as class attributes; constructor
arguments override them per instance.
"""

from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """How urgently a failure needs attention."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification and log routing."""

    CONNECTION = "connection"
    TIMEOUT = "timeout"
    PROTOCOL = "protocol"
    TEMPLATE = "template"
    QUERY = "query"
    SYSTEM = "system"
    UNKNOWN = "unknown"


class EsAnalyticsError(Exception):
    """
    Base exception for all analytics errors.

    Carries a severity, a category, free-form context and a recovery hint so
    that failures are logged the same way wherever they surface.
    """

    severity_default = ErrorSeverity.MEDIUM
    category_default = ErrorCategory.UNKNOWN
    recoverable_default = False
    recovery_hint_default: str | None = None

    def __init__(
        self,
        message: str,
        *,
        severity: ErrorSeverity | None = None,
        category: ErrorCategory | None = None,
        context: dict[str, Any] | None = None,
        recoverable: bool | None = None,
        recovery_hint: str | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity or self.severity_default
        self.category = category or self.category_default
        self.context: dict[str, Any] = dict(context) if context else {}
        self.recoverable = self.recoverable_default if recoverable is None else recoverable
        self.recovery_hint = recovery_hint or self.recovery_hint_default
        self.original_error = original_error

    def to_dict(self) -> dict[str, Any]:
        """Flatten the error for the ``error`` field of a log record."""
        cause = self.original_error
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "recoverable": self.recoverable,
            "recovery_hint": self.recovery_hint,
            "context": self.context,
            "original_error": None if cause is None else str(cause),
        }


class SearchEngineError(EsAnalyticsError):
    """
    Technical error raised by the search gateway.

    Raised directly for failures that are neither transport nor protocol
    errors (undecodable bodies, calls on a gateway that was never started).
    """

    severity_default = ErrorSeverity.HIGH
    category_default = ErrorCategory.SYSTEM
    recovery_hint_default = "Check the search engine logs"

    def __init__(self, message: str, original_error: Exception | None = None, **kwargs: Any) -> None:
        super().__init__(message, original_error=original_error, **kwargs)


class SearchEngineConnectionError(SearchEngineError):
    """Raised when the search engine cannot be reached (DNS, TCP, TLS)."""

    category_default = ErrorCategory.CONNECTION
    recoverable_default = True
    recovery_hint_default = "Check search engine connectivity and retry"

    def __init__(
        self, message: str, original_error: Exception | None = None, host: str | None = None, **kwargs: Any
    ) -> None:
        super().__init__(message, original_error, **kwargs)
        if host:
            self.context["host"] = host


class SearchEngineTimeoutError(SearchEngineError):
    """Raised when a search engine call exceeds the configured timeout."""

    severity_default = ErrorSeverity.MEDIUM
    category_default = ErrorCategory.TIMEOUT
    recoverable_default = True
    recovery_hint_default = "Increase ELASTICSEARCH_TIMEOUT or narrow the query"

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        operation: str | None = None,
        timeout_seconds: float | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, original_error, **kwargs)
        if operation is not None:
            self.context["operation"] = operation
        if timeout_seconds is not None:
            self.context["timeout_seconds"] = timeout_seconds


class SearchEngineResponseError(SearchEngineError):
    """Raised when the search engine answers with a status other than 200."""

    category_default = ErrorCategory.PROTOCOL
    recovery_hint_default = "Review the request and the search engine response"

    # bytes of the response body kept in the error context
    BODY_EXCERPT = 500

    def __init__(
        self,
        message: str,
        status_code: int,
        method: str | None = None,
        path: str | None = None,
        body: str | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("recoverable", status_code >= 500)
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.context["status_code"] = status_code
        for key, value in (("method", method), ("path", path), ("body", body and body[: self.BODY_EXCERPT])):
            if value:
                self.context[key] = value


class TemplateRenderError(EsAnalyticsError):
    """Raised when a request body template is unknown or cannot be rendered."""

    severity_default = ErrorSeverity.HIGH
    category_default = ErrorCategory.TEMPLATE
    recovery_hint_default = "Check the template name and its parameters"

    def __init__(
        self, message: str, template_name: str | None = None, original_error: Exception | None = None, **kwargs: Any
    ) -> None:
        super().__init__(message, original_error=original_error, **kwargs)
        if template_name:
            self.context["template"] = template_name


class AnalyticsQueryError(EsAnalyticsError):
    """
    Raised by query commands when an analytics query cannot be performed.

    Recoverable exactly when its cause is.
    """

    category_default = ErrorCategory.QUERY
    recovery_hint_default = "Retry later or check the search engine health"

    def __init__(
        self, message: str, original_error: Exception | None = None, query_type: str | None = None, **kwargs: Any
    ) -> None:
        kwargs.setdefault("recoverable", getattr(original_error, "recoverable", False))
        super().__init__(message, original_error=original_error, **kwargs)
        if query_type:
            self.context["query_type"] = query_type
