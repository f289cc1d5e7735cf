from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

AttributeValue = str | bool | int | float
Attributes = dict[str, AttributeValue]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class MetricType(str, Enum):
    GAUGE = 'gauge'
    SUM = 'sum'
    HISTOGRAM = 'histogram'
    SUMMARY = 'summary'


class Temporality(str, Enum):
    DELTA = 'delta'
    CUMULATIVE = 'cumulative'
    UNSPECIFIED = 'unspecified'


class QuantileValue(CamelModel):
    quantile: float
    value: float


class DataPoint(CamelModel):
    attributes: Attributes = {}
    time_unix_nano: str
    start_time_unix_nano: str | None = None
    series_key: str

    # gauge / sum
    value: int | float | None = None

    # histogram / summary
    count: int | None = None
    sum: float | None = None
    bucket_counts: list[int] | None = None
    explicit_bounds: list[float] | None = None
    quantile_values: list[QuantileValue] | None = None


class ParsedMetric(CamelModel):
    id: str
    name: str
    description: str | None = None
    unit: str | None = None
    type: MetricType
    temporality: Temporality | None = None
    monotonic: bool | None = None
    data_points: list[DataPoint] = []
    attribute_keys: list[str] = []
    resource_ids: list[str] = []
    scope_ids: list[str] = []


class ParsedScope(CamelModel):
    id: str
    name: str
    version: str | None = None
    attributes: Attributes | None = None
    metric_ids: list[str] = []


class ParsedResource(CamelModel):
    id: str
    attributes: Attributes = {}
    scopes: list[ParsedScope] = []


class ParsedSnapshot(CamelModel):
    id: str
    timestamp: int
    resources: list[ParsedResource] = []
    metrics: dict[str, ParsedMetric] = {}
    metric_count: int = 0
    total_series: int = 0
    total_data_points: int = 0


class DiffedSeries(CamelModel):
    series_key: str
    attributes: Attributes = {}
    value_a: int | float | None = None
    value_b: int | float | None = None
    delta: int | float | None = None
    rate: float | None = None
    reset_detected: bool | None = None
    value_with_reset: int | float | None = None


class DiffedMetric(CamelModel):
    id: str
    name: str
    type: MetricType
    unit: str | None = None
    description: str | None = None
    series: dict[str, DiffedSeries] = {}


class DiffResult(CamelModel):
    metrics: dict[str, DiffedMetric] = {}
    time_gap_ms: int
    snapshot_a_id: str
    snapshot_b_id: str
    timestamp: int


class MetricDefinition(CamelModel):
    id: str
    name: str
    description: str | None = None
    unit: str | None = None
    type: MetricType
    temporality: Temporality | None = None
    monotonic: bool | None = None
    attribute_keys: list[str] = []
    data_point_count: int = 0
    series_count: int = 0
    min_value: int | float | None = None
    max_value: int | float | None = None
    avg_value: float | None = None
    last_value: int | float | None = None


class DiffTimeInfo(CamelModel):
    time_gap_ms: int = 0
    last_updated: int = 0
