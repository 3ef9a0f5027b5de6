"""
Health-check analytics MCP tools.

Tools share the SearchGateway started by the server lifespan and reach it
through the request context.
"""

from fastmcp import Context, FastMCP

from ..exceptions import EsAnalyticsError
from ..models.query import DateHistogramQuery, RootFilter
from ..services.search_gateway import SearchGateway
from ..utils.logging import clear_correlation_id, get_logger, log_tool_request, log_tool_response, set_correlation_id
from .data_access.healthcheck_queries import AverageDateHistogramCommand

logger = get_logger(__name__)

DEFAULT_INTERVAL_MS = 3_600_000


def build_date_histogram_query(
    aggregations: list[str],
    root_field: str | None = None,
    root_id: str | None = None,
    interval_ms: int = DEFAULT_INTERVAL_MS,
) -> DateHistogramQuery:
    """
    Build a DateHistogramQuery from tool arguments.

    Raises:
        ValueError: If only one of root_field / root_id is given, or an
            aggregation expression is invalid
    """
    if (root_field is None) != (root_id is None):
        raise ValueError("root_field and root_id must be provided together")

    root = RootFilter(field=root_field, id=root_id) if root_field and root_id else None
    return DateHistogramQuery.model_validate({
        "root": root,
        "interval": interval_ms,
        "aggregations": aggregations,
    })


def request_gateway(ctx: Context) -> SearchGateway:
    """The gateway yielded by the server lifespan."""
    return ctx.request_context.lifespan_context


def register_healthcheck_tools(mcp: FastMCP) -> None:
    """Register health-check analytics tools."""

    @mcp.tool()
    async def healthcheck_date_histogram(
        ctx: Context,
        aggregations: list[str],
        root_field: str | None = None,
        root_id: str | None = None,
        interval_ms: int = DEFAULT_INTERVAL_MS,
    ) -> str:
        """
        Health-check time series over the last month.

        Args:
            aggregations: Aggregations as "kind:field", kind being field, avg, min or max
            root_field: Optional field restricting the documents (e.g. "api")
            root_id: Value of root_field to match
            interval_ms: Date bucket width in milliseconds (default: 1 hour)

        Examples:
            healthcheck_date_histogram ["field:available", "avg:response-time"]
            healthcheck_date_histogram ["field:success"] --root_field=api --root_id=my-api
        """
        arguments = {
            "aggregations": aggregations, "root_field": root_field,
            "root_id": root_id, "interval_ms": interval_ms,
        }
        set_correlation_id()
        log_tool_request("healthcheck_date_histogram", arguments)

        try:
            query = build_date_histogram_query(aggregations, root_field, root_id, interval_ms)

            result = await AverageDateHistogramCommand(request_gateway(ctx)).execute(query)

            log_tool_response("healthcheck_date_histogram", True, {
                "timestamps": len(result.timestamps),
                "series": sum(1 for bucket in result.values if bucket is not None),
            })
            return result.model_dump_json()
        except ValueError as e:
            log_tool_response("healthcheck_date_histogram", False, error=str(e))
            return f"Invalid date histogram request: {e}"
        except EsAnalyticsError as e:
            log_tool_response("healthcheck_date_histogram", False, error=str(e))
            return f"Date histogram error: {e}"
        finally:
            clear_correlation_id()

    @mcp.tool()
    async def cluster_health(ctx: Context) -> str:
        """
        Search engine cluster health (status, nodes and shards).
        """
        set_correlation_id()
        log_tool_request("cluster_health", {})

        try:
            health = await request_gateway(ctx).cluster_health()

            log_tool_response("cluster_health", True, {"status": health.status})
            return health.model_dump_json()
        except EsAnalyticsError as e:
            log_tool_response("cluster_health", False, error=str(e))
            return f"Cluster health error: {e}"
        finally:
            clear_correlation_id()
