"""
Data models for the analytics package.

This module contains Pydantic models for health-check queries, the normalized
time series they produce, and search engine value objects.
"""

from .query import Aggregation, AggregationType, DateHistogramQuery, RootFilter
from .response import (
    Bucket,
    DataPoint,
    DateHistogramResponse,
    Health,
    StartupResult,
    StartupState,
)

__all__ = [
    # Query models
    "AggregationType",
    "Aggregation",
    "RootFilter",
    "DateHistogramQuery",
    # Response models
    "DataPoint",
    "Bucket",
    "DateHistogramResponse",
    "Health",
    "StartupState",
    "StartupResult",
]
