"""
Response models for health-check analytics and search engine calls.

Provides the normalized date histogram time series, the cluster health value
object, and the outcome of gateway startup.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class DataPoint(BaseModel):
    """One value of a series, attached to the date bucket it was computed for."""

    timestamp: int = Field(..., description="Date bucket start, epoch milliseconds")
    value: int | float = Field(..., description="Aggregated value for this date bucket")


class Bucket(BaseModel):
    """
    Series produced by one requested aggregation.

    ``data`` maps the aggregation key to its points, one point per date
    bucket that carried data for it.
    """

    key: str = Field(..., description="Aggregation key, e.g. by_available or avg_response-time")
    name: str = Field(..., description="Field the aggregation was computed on")
    data: dict[str, list[DataPoint]] = Field(default_factory=dict)

    def points(self) -> list[DataPoint]:
        """Return the points recorded under this bucket's own key."""
        return self.data.get(self.key, [])


class DateHistogramResponse(BaseModel):
    """
    Time series answer to a DateHistogramQuery.

    ``values`` holds one slot per requested aggregation, in request order; a
    slot is None when no data was found for that aggregation.
    """

    timestamps: list[int] = Field(default_factory=list)
    values: list[Bucket | None] = Field(default_factory=list)

    @computed_field
    def is_empty(self) -> bool:
        """True when the search returned no date bucket at all."""
        return len(self.timestamps) == 0


class Health(BaseModel):
    """
    Cluster health as reported by ``GET /_cluster/health``.

    The shape belongs to the search engine; unknown fields are kept.
    """

    model_config = ConfigDict(extra="allow")

    cluster_name: str | None = None
    status: str | None = None
    timed_out: bool | None = None
    number_of_nodes: int | None = None
    number_of_data_nodes: int | None = None
    active_primary_shards: int | None = None
    active_shards: int | None = None
    relocating_shards: int | None = None
    initializing_shards: int | None = None
    unassigned_shards: int | None = None


class StartupState(str, Enum):
    """Outcome of the gateway's best-effort startup sequence."""

    READY = "ready"
    DEGRADED = "degraded"


class StartupResult(BaseModel):
    """
    Result of SearchGateway.start().

    A degraded gateway can still serve search and health calls; ``reason``
    explains which bootstrap step failed.
    """

    state: StartupState
    major_version: int | None = None
    reason: str | None = None

    @computed_field
    def ready(self) -> bool:
        return self.state is StartupState.READY

    @classmethod
    def ok(cls, major_version: int) -> "StartupResult":
        return cls(state=StartupState.READY, major_version=major_version)

    @classmethod
    def degraded(cls, reason: str, major_version: int | None = None) -> "StartupResult":
        return cls(state=StartupState.DEGRADED, major_version=major_version, reason=reason)
