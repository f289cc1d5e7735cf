from collections.abc import Iterable
import logging
import time
from typing import Any

from metricslens.errors import InvalidArgumentError, OutOfOrderSnapshotsError
from metricslens.internal.schemas import (
    DataPoint,
    DiffedMetric,
    DiffedSeries,
    DiffResult,
    MetricType,
    ParsedMetric,
    ParsedSnapshot,
)

logger = logging.getLogger(__name__)


def _metric_instances(snapshot: ParsedSnapshot) -> Iterable[ParsedMetric]:
    for metric in snapshot.metrics.values():
        if isinstance(metric, ParsedMetric):
            yield metric


def _group_by_name(snapshot: ParsedSnapshot) -> dict[str, list[ParsedMetric]]:
    grouped: dict[str, list[ParsedMetric]] = {}
    for metric in _metric_instances(snapshot):
        grouped.setdefault(metric.name, []).append(metric)
    return grouped


def _index_data_points(metrics: list[ParsedMetric]) -> dict[str, DataPoint]:
    """Map each series key to the first data point that carries it."""
    index: dict[str, DataPoint] = {}
    for metric in metrics:
        if not isinstance(metric.data_points, list):
            continue
        for dp in metric.data_points:
            if dp.series_key:
                index.setdefault(dp.series_key, dp)
    return index


def _diff_series(
    series_key: str,
    dp_a: DataPoint | None,
    dp_b: DataPoint | None,
    time_gap_ms: int,
    detect_resets: bool,
) -> DiffedSeries:
    source = dp_a if dp_a is not None else dp_b
    value_a = dp_a.value if dp_a is not None else None
    value_b = dp_b.value if dp_b is not None else None

    fields: dict[str, Any] = {
        'series_key': series_key,
        'attributes': source.attributes if source is not None else {},
        'value_a': value_a,
        'value_b': value_b,
    }
    if value_a is not None and value_b is not None:
        delta = value_b - value_a
        fields['delta'] = delta
        fields['rate'] = delta / (time_gap_ms / 1000)
        if detect_resets and delta < 0:
            fields['reset_detected'] = True
            fields['value_with_reset'] = value_b
    return DiffedSeries(**fields)


def compute_diffs(
    snapshot_a: ParsedSnapshot | None, snapshot_b: ParsedSnapshot | None
) -> DiffResult:
    """Diff two snapshots, A being the earlier one.

    Metric instances sharing a name are pooled and joined on series key.
    A series seen on one side only keeps its single value and gets no
    delta or rate. A negative delta on a monotonic sum is reported as a
    counter reset.
    """
    if snapshot_a is None or snapshot_b is None:
        raise InvalidArgumentError('Both snapshots must be defined')

    time_gap_ms = snapshot_b.timestamp - snapshot_a.timestamp
    if time_gap_ms <= 0:
        raise OutOfOrderSnapshotsError(snapshot_a.timestamp, snapshot_b.timestamp)

    metrics_a = _group_by_name(snapshot_a)
    metrics_b = _group_by_name(snapshot_b)

    diffed_metrics: dict[str, DiffedMetric] = {}
    for metric_name in {**metrics_a, **metrics_b}:
        a_instances = metrics_a.get(metric_name, [])
        b_instances = metrics_b.get(metric_name, [])
        proto = (a_instances or b_instances)[0]
        detect_resets = proto.type == MetricType.SUM and proto.monotonic is True

        index_a = _index_data_points(a_instances)
        index_b = _index_data_points(b_instances)

        series: dict[str, DiffedSeries] = {}
        for series_key in {**index_a, **index_b}:
            series[series_key] = _diff_series(
                series_key,
                index_a.get(series_key),
                index_b.get(series_key),
                time_gap_ms,
                detect_resets,
            )

        diffed_metrics[metric_name] = DiffedMetric(
            id=f'diff_{proto.id}',
            name=proto.name,
            type=proto.type,
            unit=proto.unit,
            description=proto.description,
            series=series,
        )

    result = DiffResult(
        metrics=diffed_metrics,
        time_gap_ms=time_gap_ms,
        snapshot_a_id=snapshot_a.id,
        snapshot_b_id=snapshot_b.id,
        timestamp=int(time.time() * 1000),
    )
    logger.debug(
        'Computed snapshot diff',
        extra={
            'snapshot_a_id': snapshot_a.id,
            'snapshot_b_id': snapshot_b.id,
            'metric_count': len(diffed_metrics),
            'time_gap_ms': time_gap_ms,
        },
    )
    return result
