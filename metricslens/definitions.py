from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from metricslens.internal.schemas import MetricDefinition, ParsedMetric, ParsedSnapshot


@dataclass
class _ValueStats:
    min_value: int | float
    max_value: int | float
    avg_value: float
    # last element of dataPoints, not the latest timeUnixNano
    last_value: int | float


def _value_stats(metric: ParsedMetric) -> _ValueStats | None:
    values = [dp.value for dp in metric.data_points if dp.value is not None]
    if not values:
        return None
    return _ValueStats(
        min_value=min(values),
        max_value=max(values),
        avg_value=sum(values) / len(values),
        last_value=values[-1],
    )


def _series_count(metric: ParsedMetric) -> int:
    return len({dp.series_key for dp in metric.data_points if dp.series_key})


def _create_definition(metric: ParsedMetric) -> MetricDefinition:
    stats = _value_stats(metric)
    return MetricDefinition(
        id=metric.id,
        name=metric.name,
        description=metric.description,
        unit=metric.unit,
        type=metric.type,
        temporality=metric.temporality,
        monotonic=metric.monotonic,
        attribute_keys=list(metric.attribute_keys),
        data_point_count=len(metric.data_points),
        series_count=_series_count(metric),
        min_value=stats.min_value if stats else None,
        max_value=stats.max_value if stats else None,
        avg_value=stats.avg_value if stats else None,
        last_value=stats.last_value if stats else None,
    )


def _merge_definition(
    definition: MetricDefinition, metric: ParsedMetric
) -> MetricDefinition:
    attribute_keys = list(definition.attribute_keys)
    attribute_keys.extend(
        key for key in metric.attribute_keys if key not in attribute_keys
    )
    update: dict[str, Any] = {
        'attribute_keys': attribute_keys,
        'data_point_count': definition.data_point_count + len(metric.data_points),
        # a series present in several snapshots is counted once per snapshot
        'series_count': definition.series_count + _series_count(metric),
    }

    stats = _value_stats(metric)
    if stats is not None:
        update['min_value'] = (
            stats.min_value
            if definition.min_value is None
            else min(definition.min_value, stats.min_value)
        )
        update['max_value'] = (
            stats.max_value
            if definition.max_value is None
            else max(definition.max_value, stats.max_value)
        )
        # unweighted mean of the running and the new average
        update['avg_value'] = (
            stats.avg_value
            if definition.avg_value is None
            else (definition.avg_value + stats.avg_value) / 2
        )
        update['last_value'] = stats.last_value

    return definition.model_copy(update=update)


def build_metric_definitions(
    snapshots: Mapping[str, ParsedSnapshot],
) -> dict[str, MetricDefinition]:
    """Fold every metric instance of every snapshot into one definition per name.

    Snapshots are folded in mapping order, so ``last_value`` comes from the
    last snapshot (and last metric instance) that carried values.
    """
    definitions: dict[str, MetricDefinition] = {}
    for snapshot in snapshots.values():
        for metric in snapshot.metrics.values():
            existing = definitions.get(metric.name)
            definitions[metric.name] = (
                _create_definition(metric)
                if existing is None
                else _merge_definition(existing, metric)
            )
    return definitions
