"""
Query models for health-check analytics.

A DateHistogramQuery describes which aggregations a caller wants per date
bucket, and in which order they must come back.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class AggregationType(str, Enum):
    """Statistical operation applied to a field inside each date bucket."""

    FIELD = "FIELD"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"


class Aggregation(BaseModel):
    """
    One requested aggregation: a kind applied to a document field.
    """

    model_config = ConfigDict(frozen=True)

    type: AggregationType = Field(
        ...,
        description="Aggregation kind (FIELD ratio or AVG/MIN/MAX metric)"
    )

    field: str = Field(
        ...,
        min_length=1,
        description="Document field to aggregate on",
        examples=["available", "response-time"]
    )

    @computed_field
    def key(self) -> str:
        """Name of the sub-aggregation holding this aggregation's data."""
        if self.type is AggregationType.FIELD:
            return f"by_{self.field}"
        return f"{self.type.value.lower()}_{self.field}"

    @classmethod
    def parse(cls, expression: str) -> "Aggregation":
        """
        Build an aggregation from a ``kind:field`` expression.

        ``field:available`` and ``avg:response-time`` are valid expressions.
        """
        kind, sep, field = expression.partition(":")
        if not sep or not field:
            raise ValueError(f"Invalid aggregation expression: {expression!r}. Expected 'kind:field'")
        return cls(type=AggregationType(kind.strip().upper()), field=field.strip())


class RootFilter(BaseModel):
    """Restricts a query to the documents of one entity (an API, an endpoint...)."""

    model_config = ConfigDict(frozen=True)

    field: str = Field(..., min_length=1, examples=["api"])
    id: str = Field(..., min_length=1)


class DateHistogramQuery(BaseModel):
    """
    Date histogram query over health-check documents.
    """

    root: RootFilter | None = Field(
        None,
        description="Optional filter restricting the documents taken into account"
    )

    interval: int = Field(
        3_600_000,
        gt=0,
        description="Date bucket width in milliseconds"
    )

    aggregations: list[Aggregation] = Field(
        default_factory=list,
        description="Requested aggregations, in the order results must be returned"
    )

    @field_validator('aggregations', mode='before')
    @classmethod
    def parse_aggregation_expressions(cls, v: object) -> object:
        """Accept ``kind:field`` strings as well as aggregation objects."""
        if isinstance(v, list):
            return [Aggregation.parse(item) if isinstance(item, str) else item for item in v]
        return v
