"""
Tests for AverageDateHistogramCommand with a mocked gateway.
"""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from es_analytics.config.query_templates import AVG_DATE_HISTOGRAM_TEMPLATE
from es_analytics.exceptions import (
    AnalyticsQueryError,
    SearchEngineConnectionError,
    SearchEngineResponseError,
    TemplateRenderError,
)
from es_analytics.models.query import DateHistogramQuery
from es_analytics.services.search_gateway import ElasticsearchConfig, SearchGateway
from es_analytics.tools.data_access.healthcheck_queries import AverageDateHistogramCommand
from tests.factories import date_bucket, metric_value, search_response, term_buckets

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)
NOW_MS = int(NOW.timestamp() * 1000)
MONTH_AGO_MS = int(datetime(2024, 2, 15, 12, 0, tzinfo=UTC).timestamp() * 1000)


def make_gateway(major_version: int | None, response: dict | None = None) -> MagicMock:
    gateway = MagicMock(spec=SearchGateway)
    gateway.config = ElasticsearchConfig()
    gateway.major_version = major_version
    gateway.search = AsyncMock(return_value=response if response is not None else search_response([]))
    return gateway


def make_command(gateway: MagicMock, **kwargs) -> AverageDateHistogramCommand:
    return AverageDateHistogramCommand(gateway, clock=lambda: NOW, **kwargs)


class RecordingRenderer:
    """TemplateRenderer recording what it was asked to render."""

    def __init__(self):
        self.calls = []

    def render(self, template_name, params):
        self.calls.append((template_name, params))
        return '{"size": 0}'


class TestTimeRange:
    """One calendar month look-back window."""

    def test_calendar_month(self):
        command = make_command(make_gateway(7))
        assert command.time_range() == (MONTH_AGO_MS, NOW_MS)

    def test_end_of_month_is_clamped(self):
        end = datetime(2024, 3, 31, 8, 30, tzinfo=UTC)
        command = AverageDateHistogramCommand(make_gateway(7), clock=lambda: end)

        start_ms, end_ms = command.time_range()

        assert datetime.fromtimestamp(start_ms / 1000, tz=UTC) == datetime(2024, 2, 29, 8, 30, tzinfo=UTC)
        assert end_ms == int(end.timestamp() * 1000)

    def test_default_clock_is_now(self):
        command = AverageDateHistogramCommand(make_gateway(7))
        start_ms, end_ms = command.time_range()

        now_ms = datetime.now(UTC).timestamp() * 1000
        assert abs(end_ms - now_ms) < 60_000
        assert 28 * 86_400_000 <= end_ms - start_ms <= 31 * 86_400_000


class TestExecute:
    """Command orchestration."""

    async def test_legacy_engine_searches_health_type(self):
        raw = search_response([
            date_bucket(NOW_MS - 3_600_000, by_available=term_buckets(3, 1)),
            date_bucket(NOW_MS, by_available=term_buckets(1, 0)),
        ])
        gateway = make_gateway(6, raw)
        query = DateHistogramQuery(aggregations=["field:available"])

        result = await make_command(gateway).execute(query)

        gateway.search.assert_awaited_once()
        index, doc_type, body = gateway.search.await_args.args
        names = index.split(",")
        assert names[0] == "gravitee-2024.02.15"
        assert names[-1] == "gravitee-2024.03.15"
        assert len(names) == 30
        assert doc_type == "health"

        date_histogram = json.loads(body)["aggregations"]["by_date"]["date_histogram"]
        assert date_histogram["interval"] == "3600000ms"
        assert date_histogram["extended_bounds"] == {"min": MONTH_AGO_MS, "max": NOW_MS}

        assert result.timestamps == [NOW_MS - 3_600_000, NOW_MS]
        assert [point.value for point in result.values[0].points()] == [75.0, 100.0]

    async def test_typeless_engine(self):
        gateway = make_gateway(7)

        await make_command(gateway).execute(DateHistogramQuery(aggregations=["avg:response-time"]))

        _, doc_type, body = gateway.search.await_args.args
        assert doc_type is None
        assert "fixed_interval" in json.loads(body)["aggregations"]["by_date"]["date_histogram"]

    async def test_unknown_version_searches_without_type(self):
        gateway = make_gateway(None)

        await make_command(gateway).execute(DateHistogramQuery())

        _, doc_type, _ = gateway.search.await_args.args
        assert doc_type is None

    async def test_index_name_from_configuration(self):
        gateway = make_gateway(7)
        gateway.config = ElasticsearchConfig(index_name="healthchecks")

        await make_command(gateway).execute(DateHistogramQuery())

        index = gateway.search.await_args.args[0]
        assert all(name.startswith("healthchecks-") for name in index.split(","))

    async def test_custom_renderer(self):
        gateway = make_gateway(6)
        renderer = RecordingRenderer()
        query = DateHistogramQuery(aggregations=["max:latency"])

        await make_command(gateway, renderer=renderer).execute(query)

        [(template_name, params)] = renderer.calls
        assert template_name == AVG_DATE_HISTOGRAM_TEMPLATE
        assert params == {"query": query, "from": MONTH_AGO_MS, "to": NOW_MS, "majorVersion": 6}
        assert gateway.search.await_args.args[2] == '{"size": 0}'

    async def test_slots_in_query_order(self):
        raw = search_response([date_bucket(
            NOW_MS,
            by_success=term_buckets(1, 1),
            max_latency=metric_value(99.9),
        )])
        gateway = make_gateway(7, raw)
        query = DateHistogramQuery(aggregations=["max:latency", "avg:latency", "field:success"])

        result = await make_command(gateway).execute(query)

        assert result.values[0].key == "max_latency"
        assert result.values[1] is None
        assert result.values[2].key == "by_success"

    @pytest.mark.parametrize("error", [
        SearchEngineResponseError("Impossible to call Elasticsearch", status_code=500),
        SearchEngineConnectionError("refused", ConnectionRefusedError()),
    ])
    async def test_search_errors_are_wrapped(self, error):
        gateway = make_gateway(7)
        gateway.search.side_effect = error

        with pytest.raises(AnalyticsQueryError, match="Impossible to perform AverageResponseTimeQuery") as exc_info:
            await make_command(gateway).execute(DateHistogramQuery())

        assert exc_info.value.__cause__ is error
        assert exc_info.value.original_error is error
        assert exc_info.value.context == {"query_type": "AverageResponseTimeQuery"}

    async def test_render_errors_are_wrapped(self):
        gateway = make_gateway(7)
        renderer = MagicMock()
        renderer.render.side_effect = TemplateRenderError("Unknown template", template_name=AVG_DATE_HISTOGRAM_TEMPLATE)

        with pytest.raises(AnalyticsQueryError) as exc_info:
            await make_command(gateway, renderer=renderer).execute(DateHistogramQuery())

        assert isinstance(exc_info.value.__cause__, TemplateRenderError)
        gateway.search.assert_not_awaited()
