"""
Health-check date histogram queries.

This module runs health-check aggregations against the daily health indices
of the last month. Translation of the raw response lives in
tools/analysis/date_histogram_analyzer.py.
"""

from collections.abc import Callable
from datetime import UTC, datetime

from dateutil.relativedelta import relativedelta

from ...config.query_templates import AVG_DATE_HISTOGRAM_TEMPLATE, QueryTemplates, TemplateRenderer
from ...exceptions import AnalyticsQueryError, SearchEngineError, TemplateRenderError
from ...models.query import DateHistogramQuery
from ...models.response import DateHistogramResponse
from ...services.search_gateway import SearchGateway
from ...utils.index_names import index_names_for_range
from ...utils.logging import get_logger
from ..analysis.date_histogram_analyzer import translate_date_histogram

logger = get_logger(__name__)

# Mapping types were removed in 7.x
TYPELESS_MAJOR_VERSION = 7


def _epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AverageDateHistogramCommand:
    """
    Runs a DateHistogramQuery over the last calendar month of health checks.
    """

    query_type = "AverageResponseTimeQuery"

    def __init__(
        self,
        gateway: SearchGateway,
        renderer: TemplateRenderer | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.gateway = gateway
        self.renderer = renderer or QueryTemplates()
        self.clock = clock

    def time_range(self) -> tuple[int, int]:
        """Return the ``(from, to)`` epoch millis window: one calendar month back from now."""
        now = self.clock()
        return _epoch_millis(now - relativedelta(months=1)), _epoch_millis(now)

    def _doc_type(self) -> str | None:
        major_version = self.gateway.major_version
        if major_version is not None and major_version < TYPELESS_MAJOR_VERSION:
            return self.gateway.config.health_type
        return None

    async def execute(self, query: DateHistogramQuery) -> DateHistogramResponse:
        """
        Execute the query.

        Args:
            query: Requested aggregations, root filter and bucket interval

        Returns:
            DateHistogramResponse with slots in the query's aggregation order

        Raises:
            AnalyticsQueryError: If the request body cannot be rendered or the
                search fails
        """
        start, end = self.time_range()
        index = index_names_for_range(self.gateway.config.index_name, start, end)

        try:
            body = self.renderer.render(
                AVG_DATE_HISTOGRAM_TEMPLATE,
                {
                    "query": query,
                    "from": start,
                    "to": end,
                    "majorVersion": self.gateway.major_version or 0,
                },
            )
            logger.debug(
                "Executing date histogram query",
                extra={"index": index, "interval_ms": query.interval, "aggregations": len(query.aggregations)},
            )
            es_response = await self.gateway.search(index, self._doc_type(), body)
        except (SearchEngineError, TemplateRenderError) as e:
            logger.error(
                "Impossible to perform AverageResponseTimeQuery",
                extra={"error": e.to_dict()},
            )
            raise AnalyticsQueryError(
                "Impossible to perform AverageResponseTimeQuery",
                original_error=e,
                query_type=self.query_type,
            ) from e

        return translate_date_histogram(es_response, query)
