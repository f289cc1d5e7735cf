from collections.abc import Mapping
import itertools
import logging
import time
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from metricslens.errors import ParseError
from metricslens.internal.schemas import (
    Attributes,
    AttributeValue,
    DataPoint,
    MetricType,
    ParsedMetric,
    ParsedResource,
    ParsedScope,
    ParsedSnapshot,
    QuantileValue,
    Temporality,
)
from metricslens.otlp.schemas import (
    AnyValue,
    HistogramDataPoint,
    KeyValue,
    Metric,
    NumberDataPoint,
    OTLPMetricsRequest,
    SummaryDataPoint,
)
from metricslens.series_key import build_series_key

logger = logging.getLogger(__name__)

# default snapshot ids are unique per process
_snapshot_sequence = itertools.count(1)

_TEMPORALITY_MAP: dict[str | int, Temporality] = {
    'AGGREGATION_TEMPORALITY_DELTA': Temporality.DELTA,
    'AGGREGATION_TEMPORALITY_CUMULATIVE': Temporality.CUMULATIVE,
    1: Temporality.DELTA,
    2: Temporality.CUMULATIVE,
}


class ParserOptions(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
        frozen=True,
    )

    snapshot_id: str | None = None
    timestamp: int | None = None
    include_zero_values: bool = True
    normalize_attributes: bool = True
    compute_statistics: bool = True
    validate_input: bool = True


def _parse_any_value(value: AnyValue | None, normalize: bool) -> AttributeValue | None:
    if value is None:
        return None
    if value.string_value is not None:
        return value.string_value.strip() if normalize else value.string_value
    if value.int_value is not None:
        try:
            return int(value.int_value)
        except ValueError:
            return str(value.int_value)
    if value.double_value is not None:
        return value.double_value
    if value.bool_value is not None:
        return value.bool_value
    if value.array_value is not None or value.kvlist_value is not None:
        return orjson.dumps(
            value.model_dump(by_alias=True, exclude_none=True)
        ).decode('utf-8')
    return None


def _attributes_to_dict(attributes: list[KeyValue] | None, normalize: bool) -> Attributes:
    result: Attributes = {}
    for kv in attributes or []:
        key = kv.key.strip().lower() if normalize else kv.key
        value = _parse_any_value(kv.value, normalize)
        if value is not None:
            result[key] = value
    return result


def _nano(value: str | int | None) -> str | None:
    return None if value is None else str(value)


def _determine_type(metric: Metric) -> MetricType:
    if metric.gauge is not None:
        return MetricType.GAUGE
    if metric.sum is not None:
        return MetricType.SUM
    if metric.histogram is not None:
        return MetricType.HISTOGRAM
    if metric.summary is not None:
        return MetricType.SUMMARY
    return MetricType.GAUGE


def _determine_temporality(metric: Metric, metric_type: MetricType) -> Temporality | None:
    if metric_type == MetricType.GAUGE:
        return None
    raw: str | int | None = None
    if metric_type == MetricType.SUM and metric.sum is not None:
        raw = metric.sum.aggregation_temporality
    elif metric_type == MetricType.HISTOGRAM and metric.histogram is not None:
        raw = metric.histogram.aggregation_temporality
    if raw is None:
        return Temporality.UNSPECIFIED
    return _TEMPORALITY_MAP.get(raw, Temporality.UNSPECIFIED)


def _determine_monotonic(metric: Metric, metric_type: MetricType) -> bool | None:
    if metric_type == MetricType.SUM and metric.sum is not None:
        return metric.sum.is_monotonic
    return None


def _number_value(dp: NumberDataPoint) -> int | float:
    if dp.as_double is not None:
        return dp.as_double
    if dp.as_int is not None:
        return int(dp.as_int)
    return 0


def _convert_number_data_point(
    dp: NumberDataPoint, metric_name: str, normalize: bool
) -> DataPoint:
    attributes = _attributes_to_dict(dp.attributes, normalize)
    return DataPoint(
        attributes=attributes,
        time_unix_nano=str(dp.time_unix_nano),
        start_time_unix_nano=_nano(dp.start_time_unix_nano),
        value=_number_value(dp),
        series_key=build_series_key(metric_name, attributes),
    )


def _convert_histogram_data_point(
    dp: HistogramDataPoint, metric_name: str, normalize: bool
) -> DataPoint:
    attributes = _attributes_to_dict(dp.attributes, normalize)
    return DataPoint(
        attributes=attributes,
        time_unix_nano=str(dp.time_unix_nano),
        start_time_unix_nano=_nano(dp.start_time_unix_nano),
        count=int(dp.count),
        sum=dp.sum,
        bucket_counts=(
            [int(bc) for bc in dp.bucket_counts]
            if dp.bucket_counts is not None
            else None
        ),
        explicit_bounds=dp.explicit_bounds,
        series_key=build_series_key(metric_name, attributes),
    )


def _convert_summary_data_point(
    dp: SummaryDataPoint, metric_name: str, normalize: bool
) -> DataPoint:
    attributes = _attributes_to_dict(dp.attributes, normalize)
    return DataPoint(
        attributes=attributes,
        time_unix_nano=str(dp.time_unix_nano),
        start_time_unix_nano=_nano(dp.start_time_unix_nano),
        count=int(dp.count),
        sum=dp.sum,
        quantile_values=[
            QuantileValue(quantile=q.quantile, value=q.value)
            for q in dp.quantile_values
        ],
        series_key=build_series_key(metric_name, attributes),
    )


def _extract_data_points(
    metric: Metric,
    metric_type: MetricType,
    include_zero_values: bool,
    normalize: bool,
) -> list[DataPoint]:
    points: list[DataPoint] = []

    if metric_type in (MetricType.GAUGE, MetricType.SUM):
        container = metric.gauge if metric_type == MetricType.GAUGE else metric.sum
        for dp_num in container.data_points if container is not None else []:
            point = _convert_number_data_point(dp_num, metric.name, normalize)
            if not include_zero_values and point.value == 0:
                continue
            points.append(point)
    elif metric_type == MetricType.HISTOGRAM and metric.histogram is not None:
        for dp_hist in metric.histogram.data_points:
            point = _convert_histogram_data_point(dp_hist, metric.name, normalize)
            if not include_zero_values and point.count == 0:
                continue
            points.append(point)
    elif metric_type == MetricType.SUMMARY and metric.summary is not None:
        for dp_sum in metric.summary.data_points:
            point = _convert_summary_data_point(dp_sum, metric.name, normalize)
            if not include_zero_values and point.count == 0:
                continue
            points.append(point)
    return points


def _collect_attribute_keys(points: list[DataPoint]) -> list[str]:
    # dict keeps first-seen order
    keys: dict[str, None] = {}
    for point in points:
        for key in point.attributes:
            keys.setdefault(key, None)
    return list(keys)


def _convert_metric(
    raw_metric: Any,
    metric_id: str,
    resource_id: str,
    scope_id: str,
    options: ParserOptions,
) -> ParsedMetric | None:
    try:
        metric = Metric.model_validate(raw_metric)
        metric_type = _determine_type(metric)
        points = _extract_data_points(
            metric,
            metric_type,
            options.include_zero_values,
            options.normalize_attributes,
        )
    except (ValidationError, ValueError, TypeError) as e:
        logger.warning(
            'Skipping malformed metric',
            extra={'metric_id': metric_id, 'error': str(e)},
        )
        return None

    return ParsedMetric(
        id=metric_id,
        name=metric.name,
        description=metric.description,
        unit=metric.unit,
        type=metric_type,
        temporality=_determine_temporality(metric, metric_type),
        monotonic=_determine_monotonic(metric, metric_type),
        data_points=points,
        attribute_keys=_collect_attribute_keys(points),
        resource_ids=[resource_id],
        scope_ids=[scope_id],
    )


def _validate_payload(payload: Any) -> None:
    if payload is None:
        raise ParseError('Empty OTLP data')
    if not isinstance(payload, Mapping) or not isinstance(
        payload.get('resourceMetrics', payload.get('resource_metrics')), list
    ):
        raise ParseError(
            'Invalid OTLP format: missing or invalid resourceMetrics array'
        )


def _count_totals(metrics: dict[str, ParsedMetric]) -> tuple[int, int]:
    total_data_points = 0
    series_keys: set[str] = set()
    for metric in metrics.values():
        total_data_points += len(metric.data_points)
        series_keys.update(dp.series_key for dp in metric.data_points)
    return total_data_points, len(series_keys)


def parse_otlp_payload(
    payload: Any, options: ParserOptions | Mapping[str, Any] | None = None
) -> ParsedSnapshot:
    """Build a ParsedSnapshot from an already decoded OTLP metrics payload.

    Only the resource and scope envelope has to be well formed. A metric
    whose body fails validation is logged and left out of the snapshot.
    """
    if not isinstance(options, ParserOptions):
        options = ParserOptions.model_validate(options or {})

    now_ms = int(time.time() * 1000)
    snapshot_id = (
        options.snapshot_id or f'snapshot-{now_ms}-{next(_snapshot_sequence)}'
    )
    timestamp = options.timestamp if options.timestamp is not None else now_ms

    if options.validate_input:
        _validate_payload(payload)
    if not isinstance(payload, Mapping):
        payload = {}

    try:
        request = OTLPMetricsRequest.model_validate(payload)
    except ValidationError as e:
        raise ParseError(f'Invalid OTLP format: {e}') from e

    normalize = options.normalize_attributes
    resources: list[ParsedResource] = []
    metrics: dict[str, ParsedMetric] = {}
    total_data_points = 0
    series_keys: set[str] = set()

    for resource_index, rm in enumerate(request.resource_metrics):
        resource_id = f'resource-{resource_index}'
        resource_attrs = _attributes_to_dict(
            rm.resource.attributes if rm.resource is not None else None, normalize
        )
        scopes: list[ParsedScope] = []

        for scope_index, sm in enumerate(rm.scope_metrics):
            scope_id = f'{resource_id}-scope-{scope_index}'
            metric_ids: list[str] = []

            for metric_index, raw_metric in enumerate(sm.metrics):
                metric_id = f'{scope_id}-metric-{metric_index}'
                parsed = _convert_metric(
                    raw_metric, metric_id, resource_id, scope_id, options
                )
                if parsed is None:
                    continue
                metrics[metric_id] = parsed
                metric_ids.append(metric_id)
                total_data_points += len(parsed.data_points)
                series_keys.update(dp.series_key for dp in parsed.data_points)

            scope = sm.scope
            scopes.append(
                ParsedScope(
                    id=scope_id,
                    name=scope.name if scope is not None else '',
                    version=scope.version if scope is not None else None,
                    attributes=_attributes_to_dict(
                        scope.attributes if scope is not None else None, normalize
                    ),
                    metric_ids=metric_ids,
                )
            )

        resources.append(
            ParsedResource(id=resource_id, attributes=resource_attrs, scopes=scopes)
        )

    total_series = len(series_keys)
    if options.compute_statistics:
        total_data_points, total_series = _count_totals(metrics)

    snapshot = ParsedSnapshot(
        id=snapshot_id,
        timestamp=timestamp,
        resources=resources,
        metrics=metrics,
        metric_count=len(metrics),
        total_series=total_series,
        total_data_points=total_data_points,
    )
    logger.debug(
        'Parsed OTLP snapshot',
        extra={
            'snapshot_id': snapshot.id,
            'metric_count': snapshot.metric_count,
            'total_series': snapshot.total_series,
            'total_data_points': snapshot.total_data_points,
        },
    )
    return snapshot


def parse_otlp_json(
    json_text: str | bytes, options: ParserOptions | Mapping[str, Any] | None = None
) -> ParsedSnapshot:
    try:
        payload = orjson.loads(json_text)
    except orjson.JSONDecodeError as e:
        raise ParseError(f'Invalid JSON format: {e}') from e
    return parse_otlp_payload(payload, options)
