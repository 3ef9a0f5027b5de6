"""
Date histogram translation logic.

Turns the nested aggregation tree of a health-check search response
(``by_date`` buckets holding ``by_<field>`` / ``avg_<field>`` /
``min_<field>`` / ``max_<field>`` sub-aggregations) into a flat time series
ordered like the query's aggregations. No data access, no I/O: malformed
sub-aggregations are skipped, never raised.
"""

import math
from enum import Enum
from numbers import Real
from typing import Any, NamedTuple

from ...models.query import DateHistogramQuery
from ...models.response import Bucket, DataPoint, DateHistogramResponse
from ...utils.logging import get_logger

logger = get_logger(__name__)

DATE_HISTOGRAM_AGGREGATION = "by_date"

# Term bucket key counted as a success by ratio aggregations
SUCCESS_TERM = "1"

# Availability reported for a date bucket without any term count
NO_DATA_PERCENT = 100.0


class SubAggregationKind(str, Enum):
    """Kinds of sub-aggregation found inside a date bucket, by name prefix."""

    RATIO = "by"
    AVG = "avg"
    MIN = "min"
    MAX = "max"


class RatioAggregation(NamedTuple):
    """Terms sub-aggregation reduced to success and failure counts."""

    key: str
    field: str
    success: int
    failure: int

    def percent(self) -> float:
        total = self.success + self.failure
        if total == 0:
            return NO_DATA_PERCENT
        return (self.success / total) * 100


class MetricAggregation(NamedTuple):
    """Single-value metric sub-aggregation (avg, min or max)."""

    key: str
    field: str
    value: int | None


SubAggregation = RatioAggregation | MetricAggregation


def classify_sub_aggregation(name: str) -> tuple[SubAggregationKind, str] | None:
    """
    Classify a date bucket field by its name prefix.

    Returns:
        (kind, field) for ``by_``, ``avg_``, ``min_`` and ``max_`` names,
        None for anything else (``key``, ``doc_count``, engine metadata...)
    """
    prefix, sep, field = name.partition("_")
    if not sep or not field:
        return None
    try:
        return SubAggregationKind(prefix), field
    except ValueError:
        return None


def _is_finite_number(value: Any) -> bool:
    # json.loads accepts NaN and Infinity, which int() cannot convert
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def _count(term_bucket: dict[str, Any]) -> int:
    doc_count = term_bucket.get("doc_count")
    if not _is_finite_number(doc_count):
        return 0
    return int(doc_count)


def _decode_ratio(key: str, field: str, node: Any) -> RatioAggregation | None:
    if not isinstance(node, dict) or not isinstance(node.get("buckets"), list):
        return None

    success = 0
    failure = 0
    for term_bucket in node["buckets"]:
        if not isinstance(term_bucket, dict) or "key" not in term_bucket:
            continue
        if str(term_bucket["key"]) == SUCCESS_TERM:
            success += _count(term_bucket)
        else:
            failure += _count(term_bucket)

    return RatioAggregation(key, field, success, failure)


def _decode_metric(key: str, field: str, node: Any) -> MetricAggregation | None:
    if not isinstance(node, dict):
        return None

    value = node.get("value")
    if not _is_finite_number(value):
        return MetricAggregation(key, field, None)
    # latency metrics are reported in whole milliseconds
    return MetricAggregation(key, field, int(value))


def decode_sub_aggregation(name: str, node: Any) -> SubAggregation | None:
    """
    Decode one date bucket field into a typed sub-aggregation.

    Args:
        name: Field name inside the date bucket, e.g. ``by_available``
        node: Field value

    Returns:
        RatioAggregation, MetricAggregation, or None when the field is not a
        recognized sub-aggregation or is malformed
    """
    classified = classify_sub_aggregation(name)
    if classified is None:
        return None

    kind, field = classified
    if kind is SubAggregationKind.RATIO:
        return _decode_ratio(name, field, node)
    return _decode_metric(name, field, node)


def _append_point(buckets: dict[str, Bucket], key: str, field: str, point: DataPoint) -> None:
    bucket = buckets.get(key)
    if bucket is None:
        bucket = Bucket(key=key, name=field)
        buckets[key] = bucket
    bucket.data.setdefault(key, []).append(point)


def translate_date_histogram(
    es_response: dict[str, Any],
    query: DateHistogramQuery
) -> DateHistogramResponse:
    """
    Translate a date histogram search response into a time series.

    Args:
        es_response: Raw search response
        query: Query the response answers; gives the output bucket order

    Returns:
        DateHistogramResponse with one timestamp per date bucket and one
        slot per requested aggregation (None when no data was found for it)
    """
    response = DateHistogramResponse()

    aggregations = es_response.get("aggregations")
    if aggregations is None:
        return response

    date_histogram = aggregations.get(DATE_HISTOGRAM_AGGREGATION) if isinstance(aggregations, dict) else None
    date_buckets = date_histogram.get("buckets") if isinstance(date_histogram, dict) else None
    if not isinstance(date_buckets, list):
        logger.debug("Search response has no date histogram buckets")
        date_buckets = []

    buckets: dict[str, Bucket] = {}

    for date_bucket in date_buckets:
        if not isinstance(date_bucket, dict):
            continue
        timestamp = date_bucket.get("key")
        if not _is_finite_number(timestamp):
            continue
        timestamp = int(timestamp)
        response.timestamps.append(timestamp)

        for name, node in date_bucket.items():
            sub_aggregation = decode_sub_aggregation(name, node)
            match sub_aggregation:
                case RatioAggregation():
                    point = DataPoint(timestamp=timestamp, value=sub_aggregation.percent())
                    _append_point(buckets, sub_aggregation.key, sub_aggregation.field, point)
                case MetricAggregation(value=int() as value):
                    point = DataPoint(timestamp=timestamp, value=value)
                    _append_point(buckets, sub_aggregation.key, sub_aggregation.field, point)
                case _:
                    pass

    response.values.extend(buckets.get(aggregation.key) for aggregation in query.aggregations)
    return response
