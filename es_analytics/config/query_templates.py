"""
Request body templates for Elasticsearch calls.

Query bodies and index templates are generated from configuration held in
this module rather than written inline at call sites. Anything implementing
TemplateRenderer can replace QueryTemplates, e.g. a renderer loading bodies
from files.
"""

import json
from collections.abc import Callable
from typing import Any, Protocol

from ..exceptions import TemplateRenderError
from ..models.query import AggregationType, DateHistogramQuery
from ..utils.logging import get_logger

logger = get_logger(__name__)

AVG_DATE_HISTOGRAM_TEMPLATE = "healthcheck/avg-date-histogram"
INDEX_TEMPLATE_PATTERN = "index-template-es-{major}x"
# 7.x and every later major share the typeless mapping
TYPELESS_TEMPLATE_MAJOR = 7

TIMESTAMP_FIELD = "@timestamp"

# Health-check document fields, by mapping family
HEALTH_FIELDS = {
    "api": "keyword",
    "endpoint": "keyword",
    "gateway": "keyword",
    "available": "boolean",
    "success": "boolean",
    "state": "integer",
    "response-time": "integer",
    "message": "text",
}

METRIC_AGGREGATIONS = {
    AggregationType.AVG: "avg",
    AggregationType.MIN: "min",
    AggregationType.MAX: "max",
}


class TemplateRenderer(Protocol):
    """Renders a named request body template with the given parameters."""

    def render(self, template_name: str, params: dict[str, Any]) -> str:
        ...


def index_template_name(major_version: int) -> str:
    """Name of the index template matching a search engine major version."""
    return INDEX_TEMPLATE_PATTERN.format(major=min(major_version, TYPELESS_TEMPLATE_MAJOR))


def _legacy_field_mapping(field_type: str) -> dict[str, Any]:
    # 2.x has no keyword/text split
    if field_type == "keyword":
        return {"type": "string", "index": "not_analyzed"}
    if field_type == "text":
        return {"type": "string"}
    return {"type": field_type}


def _health_properties(legacy: bool) -> dict[str, Any]:
    properties: dict[str, Any] = {TIMESTAMP_FIELD: {"type": "date"}}
    for name, field_type in HEALTH_FIELDS.items():
        properties[name] = _legacy_field_mapping(field_type) if legacy else {"type": field_type}
    return properties


def _index_settings(params: dict[str, Any]) -> dict[str, Any]:
    return {
        "index.number_of_shards": params["numberOfShards"],
        "index.number_of_replicas": params["numberOfReplicas"],
    }


def build_index_template_es2x(params: dict[str, Any]) -> dict[str, Any]:
    return {
        "template": f"{params['indexName']}-*",
        "settings": _index_settings(params),
        "mappings": {
            "health": {"properties": _health_properties(legacy=True)},
        },
    }


def build_index_template_es5x(params: dict[str, Any]) -> dict[str, Any]:
    return {
        "template": f"{params['indexName']}-*",
        "settings": _index_settings(params),
        "mappings": {
            "health": {"properties": _health_properties(legacy=False)},
        },
    }


def build_index_template_es6x(params: dict[str, Any]) -> dict[str, Any]:
    return {
        "index_patterns": [f"{params['indexName']}-*"],
        "settings": _index_settings(params),
        "mappings": {
            "health": {"properties": _health_properties(legacy=False)},
        },
    }


def build_index_template_es7x(params: dict[str, Any]) -> dict[str, Any]:
    # typeless mappings from 7.x on
    return {
        "index_patterns": [f"{params['indexName']}-*"],
        "settings": _index_settings(params),
        "mappings": {"properties": _health_properties(legacy=False)},
    }


def build_avg_date_histogram(params: dict[str, Any]) -> dict[str, Any]:
    """
    Build the date histogram search body for a health-check query.

    Expected params: ``query`` (DateHistogramQuery), ``from`` and ``to``
    (epoch millis) and ``majorVersion``.
    """
    query: DateHistogramQuery = params["query"]
    start, end = params["from"], params["to"]

    filters: list[dict[str, Any]] = []
    if query.root is not None:
        filters.append({"term": {query.root.field: query.root.id}})
    filters.append({"range": {TIMESTAMP_FIELD: {"gte": start, "lte": end}}})

    sub_aggregations: dict[str, Any] = {}
    for aggregation in query.aggregations:
        if aggregation.type is AggregationType.FIELD:
            sub_aggregations[aggregation.key] = {"terms": {"field": aggregation.field}}
        else:
            metric = METRIC_AGGREGATIONS[aggregation.type]
            sub_aggregations[aggregation.key] = {metric: {"field": aggregation.field}}

    # "interval" was replaced by "fixed_interval" in 7.x
    interval_key = "fixed_interval" if params.get("majorVersion", 0) >= 7 else "interval"

    date_histogram: dict[str, Any] = {
        "date_histogram": {
            "field": TIMESTAMP_FIELD,
            interval_key: f"{query.interval}ms",
            "min_doc_count": 0,
            "extended_bounds": {"min": start, "max": end},
        }
    }
    if sub_aggregations:
        date_histogram["aggregations"] = sub_aggregations

    return {
        "size": 0,
        "query": {"bool": {"filter": filters}},
        "aggregations": {"by_date": date_histogram},
    }


class QueryTemplates:
    """Default TemplateRenderer, building request bodies from Python builders."""

    def __init__(self) -> None:
        self._builders: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
            AVG_DATE_HISTOGRAM_TEMPLATE: build_avg_date_histogram,
            index_template_name(2): build_index_template_es2x,
            index_template_name(5): build_index_template_es5x,
            index_template_name(6): build_index_template_es6x,
            index_template_name(7): build_index_template_es7x,
        }

    @property
    def template_names(self) -> list[str]:
        return sorted(self._builders)

    def render(self, template_name: str, params: dict[str, Any]) -> str:
        """
        Render a template to a JSON request body.

        Raises:
            TemplateRenderError: If the template is unknown or a parameter is missing
        """
        builder = self._builders.get(template_name)
        if builder is None:
            raise TemplateRenderError(f"Unknown template: {template_name}", template_name=template_name)

        try:
            body = builder(params)
        except KeyError as e:
            raise TemplateRenderError(
                f"Missing parameter {e} for template {template_name}",
                template_name=template_name,
                original_error=e,
            ) from e

        logger.debug("Rendered template", extra={"template": template_name})
        return json.dumps(body)
