from collections.abc import Callable, Mapping
from typing import Any

import pytest

from metricslens.internal.schemas import (
    DataPoint,
    MetricType,
    ParsedMetric,
    ParsedResource,
    ParsedScope,
    ParsedSnapshot,
)
from metricslens.series_key import build_series_key


class OTLP:
    """Builders for OTLP/JSON payload fragments."""

    @staticmethod
    def attr(key: str, value: Any) -> dict[str, Any]:
        if isinstance(value, bool):
            return {'key': key, 'value': {'boolValue': value}}
        if isinstance(value, int):
            return {'key': key, 'value': {'intValue': str(value)}}
        if isinstance(value, float):
            return {'key': key, 'value': {'doubleValue': value}}
        return {'key': key, 'value': {'stringValue': value}}

    @classmethod
    def attrs(cls, attributes: Mapping[str, Any] | None) -> list[dict[str, Any]]:
        return [cls.attr(k, v) for k, v in (attributes or {}).items()]

    @classmethod
    def number_point(
        cls, value: int | float, attributes: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        point: dict[str, Any] = {
            'attributes': cls.attrs(attributes),
            'startTimeUnixNano': '1700000000000000000',
            'timeUnixNano': '1700000060000000000',
        }
        if isinstance(value, int):
            point['asInt'] = str(value)
        else:
            point['asDouble'] = value
        return point

    @classmethod
    def gauge(cls, name: str, points: list[dict[str, Any]], unit: str = '1') -> dict:
        return {
            'name': name,
            'description': f'{name} gauge',
            'unit': unit,
            'gauge': {'dataPoints': points},
        }

    @classmethod
    def counter(
        cls,
        name: str,
        points: list[dict[str, Any]],
        unit: str = '1',
        monotonic: bool = True,
        temporality: str | int = 'AGGREGATION_TEMPORALITY_CUMULATIVE',
    ) -> dict:
        return {
            'name': name,
            'unit': unit,
            'sum': {
                'dataPoints': points,
                'aggregationTemporality': temporality,
                'isMonotonic': monotonic,
            },
        }

    @classmethod
    def request(
        cls,
        metrics: list[dict[str, Any]],
        resource: Mapping[str, Any] | None = None,
        scope_name: str = 'test-scope',
    ) -> dict[str, Any]:
        return {
            'resourceMetrics': [
                {
                    'resource': {
                        'attributes': cls.attrs(
                            resource or {'service.name': 'checkout'}
                        )
                    },
                    'scopeMetrics': [
                        {
                            'scope': {'name': scope_name, 'version': '1.0.0'},
                            'metrics': metrics,
                        }
                    ],
                }
            ]
        }


@pytest.fixture
def otlp() -> type[OTLP]:
    return OTLP


MetricFactory = Callable[..., ParsedMetric]
SnapshotFactory = Callable[..., ParsedSnapshot]


@pytest.fixture
def make_metric() -> MetricFactory:
    def build(
        name: str,
        points: list[tuple[Mapping[str, Any], int | float | None]],
        metric_type: MetricType = MetricType.GAUGE,
        monotonic: bool | None = None,
        metric_id: str | None = None,
        unit: str | None = None,
        resource_ids: list[str] | None = None,
    ) -> ParsedMetric:
        data_points = [
            DataPoint(
                attributes=dict(attributes),
                time_unix_nano='1700000060000000000',
                value=value,
                series_key=build_series_key(name, attributes),
            )
            for attributes, value in points
        ]
        keys: dict[str, None] = {}
        for attributes, _ in points:
            keys.update(dict.fromkeys(attributes))
        return ParsedMetric(
            id=metric_id or f'resource-0-scope-0-metric-{name}',
            name=name,
            unit=unit,
            type=metric_type,
            monotonic=monotonic,
            data_points=data_points,
            attribute_keys=list(keys),
            resource_ids=resource_ids or ['resource-0'],
            scope_ids=['resource-0-scope-0'],
        )

    return build


@pytest.fixture
def make_snapshot() -> SnapshotFactory:
    def build(
        metrics: list[ParsedMetric],
        snapshot_id: str = 'snapshot-a',
        timestamp: int = 1_700_000_000_000,
    ) -> ParsedSnapshot:
        by_id = {metric.id: metric for metric in metrics}
        series = {dp.series_key for m in metrics for dp in m.data_points}
        return ParsedSnapshot(
            id=snapshot_id,
            timestamp=timestamp,
            resources=[
                ParsedResource(
                    id='resource-0',
                    scopes=[
                        ParsedScope(
                            id='resource-0-scope-0', name='test', metric_ids=list(by_id)
                        )
                    ],
                )
            ],
            metrics=by_id,
            metric_count=len(by_id),
            total_series=len(series),
            total_data_points=sum(len(m.data_points) for m in metrics),
        )

    return build
