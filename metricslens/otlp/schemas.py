from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class OTLPModel(BaseModel):
    # Accepts both OTLP/JSON camelCase and the proto field names that
    # MessageToDict(preserving_proto_field_name=True) produces.
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
    )


class ArrayValue(OTLPModel):
    values: list['AnyValue'] = []


class KeyValueList(OTLPModel):
    values: list['KeyValue'] = []


class AnyValue(OTLPModel):
    string_value: str | None = None
    bool_value: bool | None = None
    int_value: str | int | None = None
    double_value: float | None = None
    array_value: ArrayValue | None = None
    kvlist_value: KeyValueList | None = None


class KeyValue(OTLPModel):
    key: str
    value: AnyValue | None = None


class NumberDataPoint(OTLPModel):
    attributes: list[KeyValue] = []
    start_time_unix_nano: str | int | None = None
    time_unix_nano: str | int = '0'
    as_int: str | int | None = None
    as_double: float | None = None


class HistogramDataPoint(OTLPModel):
    attributes: list[KeyValue] = []
    start_time_unix_nano: str | int | None = None
    time_unix_nano: str | int = '0'
    count: str | int = 0
    sum: float | None = None
    bucket_counts: list[str | int] | None = None
    explicit_bounds: list[float] | None = None


class ValueAtQuantile(OTLPModel):
    quantile: float = 0.0
    value: float = 0.0


class SummaryDataPoint(OTLPModel):
    attributes: list[KeyValue] = []
    start_time_unix_nano: str | int | None = None
    time_unix_nano: str | int = '0'
    count: str | int = 0
    sum: float | None = None
    quantile_values: list[ValueAtQuantile] = []


AggregationTemporality = str | int | None


class Sum(OTLPModel):
    data_points: list[NumberDataPoint] = []
    aggregation_temporality: AggregationTemporality = None
    is_monotonic: bool | None = None


class Gauge(OTLPModel):
    data_points: list[NumberDataPoint] = []


class Histogram(OTLPModel):
    data_points: list[HistogramDataPoint] = []
    aggregation_temporality: AggregationTemporality = None


class Summary(OTLPModel):
    data_points: list[SummaryDataPoint] = []


class Metric(OTLPModel):
    name: str
    description: str | None = None
    unit: str | None = None
    gauge: Gauge | None = None
    sum: Sum | None = None
    histogram: Histogram | None = None
    summary: Summary | None = None


class InstrumentationScope(OTLPModel):
    name: str = ''
    version: str | None = None
    attributes: list[KeyValue] | None = None


class ScopeMetrics(OTLPModel):
    scope: InstrumentationScope | None = None
    # Each metric is validated on its own so one bad metric is skipped
    # instead of failing the whole payload.
    metrics: list[Any] = []


class Resource(OTLPModel):
    attributes: list[KeyValue] = []


class ResourceMetrics(OTLPModel):
    resource: Resource | None = None
    scope_metrics: list[ScopeMetrics] = []


class OTLPMetricsRequest(OTLPModel):
    resource_metrics: list[ResourceMetrics] = []


ArrayValue.model_rebuild()
KeyValueList.model_rebuild()
