import pytest

from metricslens.cardinality import analyze_cardinality, simulate_recommendations
from metricslens.internal.cardinality import (
    AnalysisOptions,
    CostModel,
    Priority,
    Recommendation,
    RecommendationImpactEstimate,
    RecommendationType,
)
from metricslens.internal.schemas import MetricType

DATAPOINTS_PER_MONTH = 30 * 24 * 3600 / 60


@pytest.fixture
def basic_snapshot(make_metric, make_snapshot):
    cpu = make_metric(
        'system.cpu.usage',
        [
            ({'cpu': 'cpu0', 'host': 'host1', 'region': 'us-east-1'}, 45.5),
            ({'cpu': 'cpu1', 'host': 'host1', 'region': 'us-east-1'}, 32.1),
            ({'cpu': 'cpu0', 'host': 'host2', 'region': 'us-east-1'}, 41.2),
        ],
        metric_id='metric-1',
    )
    requests = make_metric(
        'http.server.requests',
        [
            ({'method': 'GET', 'path': '/api/users', 'status': '200'}, 1250),
            ({'method': 'POST', 'path': '/api/users', 'status': '201'}, 542),
            ({'method': 'GET', 'path': '/api/products', 'status': '200'}, 418),
        ],
        MetricType.SUM,
        monotonic=True,
        metric_id='metric-2',
    )
    return make_snapshot([cpu, requests], snapshot_id='test-snapshot')


def _transactions(make_metric, name, count, metric_id=None):
    return make_metric(
        name,
        [
            ({'transaction_id': f'tx-{i}', 'region': f'r{i % 2}'}, 1)
            for i in range(count)
        ],
        MetricType.SUM,
        metric_id=metric_id or name,
    )


def test_analysis_totals(basic_snapshot):
    analysis = analyze_cardinality(basic_snapshot)

    assert analysis.snapshot_id == 'test-snapshot'
    assert analysis.timestamp == basic_snapshot.timestamp
    assert analysis.total_metrics == 2
    assert analysis.total_cardinality == 6
    assert analysis.total_data_points == 6
    assert set(analysis.metrics) == {'metric-1', 'metric-2'}


def test_analysis_factors_sorted_by_impact(basic_snapshot):
    info = analyze_cardinality(basic_snapshot).metrics['metric-1']

    assert info.metric_name == 'system.cpu.usage'
    assert info.total_series == 3
    assert [f.attribute_key for f in info.attribute_cardinality_factors] == [
        'cpu',
        'host',
        'region',
    ]
    cpu, host, region = info.attribute_cardinality_factors
    assert cpu.unique_values == 2
    assert cpu.cardinality_impact == pytest.approx(2 / 3)
    assert cpu.value_examples == ['cpu0', 'cpu1']
    assert host.cardinality_impact == pytest.approx(2 / 3)
    # a single value cannot split series
    assert region.unique_values == 1
    assert region.cardinality_impact == 0


def test_analysis_value_lengths_and_patterns(make_metric, make_snapshot):
    metric = make_metric(
        'm',
        [
            ({'code': 200, 'path': '/a'}, 1),
            ({'code': 404, 'path': '/bb'}, 1),
            ({'code': 500, 'path': '/cc'}, 1),
        ],
        metric_id='m',
    )

    info = analyze_cardinality(make_snapshot([metric])).metrics['m']
    factors = {f.attribute_key: f for f in info.attribute_cardinality_factors}

    code = factors['code']
    assert code.value_examples == ['200', '404', '500']
    assert code.patterns.numeric is True
    assert code.patterns.has_special_chars is False
    assert code.value_lengths.avg == 3

    path = factors['path']
    assert path.patterns.numeric is False
    assert path.patterns.has_special_chars is True
    # a single shared character is not reported
    assert path.patterns.common_prefix is None
    assert path.value_lengths.min == 2
    assert path.value_lengths.max == 3
    assert path.value_lengths.avg == 2.67


@pytest.mark.parametrize(
    ('values', 'numeric'),
    [
        (['1e3', ' 42 ', '-0.5'], True),
        (['0x1F', '0b101', '0o17'], True),
        (['Infinity', '-Infinity'], True),
        (['1_000'], False),
        (['infinity'], False),
        (['-inf'], False),
        (['NaN'], False),
        (['', '1'], False),
        (['-0x1F'], False),
    ],
)
def test_analysis_numeric_pattern_follows_number_literals(
    make_metric, make_snapshot, values, numeric
):
    metric = make_metric('m', [({'v': v}, 1) for v in values], metric_id='m')

    info = analyze_cardinality(make_snapshot([metric])).metrics['m']

    assert info.attribute_cardinality_factors[0].patterns.numeric is numeric


def test_analysis_examples_are_first_five_distinct(make_metric, make_snapshot):
    metric = make_metric(
        'm', [({'k': f'v{i % 7}'}, i) for i in range(14)], metric_id='m'
    )

    info = analyze_cardinality(make_snapshot([metric])).metrics['m']
    factor = info.attribute_cardinality_factors[0]

    assert factor.unique_values == 7
    assert factor.value_examples == ['v0', 'v1', 'v2', 'v3', 'v4']


def test_analysis_recommends_dropping_id_attribute(make_metric, make_snapshot):
    snapshot = make_snapshot([_transactions(make_metric, 'app.transactions', 250)])

    info = analyze_cardinality(snapshot, {'attributeThreshold': 100}).metrics[
        'app.transactions'
    ]

    assert info.total_series == 250
    assert info.attribute_cardinality_factors[0].attribute_key == 'transaction_id'
    assert info.attribute_cardinality_factors[0].cardinality_impact == 1.0
    [recommendation] = info.recommendations
    assert recommendation.type == RecommendationType.DROP
    assert recommendation.attribute_key == 'transaction_id'
    assert recommendation.target_metrics == ['app.transactions']
    assert recommendation.impact.cardinality_reduction == 250
    assert recommendation.impact.percent_reduction == 100
    assert recommendation.priority == Priority.HIGH
    assert info.estimated_cost == pytest.approx(250 * DATAPOINTS_PER_MONTH * 0.001)


def test_analysis_id_attribute_below_double_threshold_is_not_dropped(
    make_metric, make_snapshot
):
    snapshot = make_snapshot([_transactions(make_metric, 'app.transactions', 150)])

    [recommendation] = analyze_cardinality(snapshot).metrics[
        'app.transactions'
    ].recommendations

    # tx-0..tx-4 share the 'tx-' prefix, so the transform rule wins
    assert recommendation.type == RecommendationType.TRANSFORM
    assert recommendation.transform_regex == 's/^tx-/shortened_/'


def test_analysis_recommends_prefix_transform(make_metric, make_snapshot):
    metric = make_metric(
        'm', [({'endpoint': f'svc.api.{i}'}, 1) for i in range(150)], metric_id='m'
    )

    [recommendation] = analyze_cardinality(make_snapshot([metric])).metrics[
        'm'
    ].recommendations

    assert recommendation.type == RecommendationType.TRANSFORM
    assert recommendation.attribute_key == 'endpoint'
    assert recommendation.transform_regex == r's/^svc\.api\./shortened_/'
    assert recommendation.impact.cardinality_reduction == 30
    assert recommendation.impact.percent_reduction == 20
    assert recommendation.priority == Priority.MEDIUM


def test_analysis_recommends_suffix_transform(make_metric, make_snapshot):
    metric = make_metric(
        'm', [({'host': f'{i}.example.com'}, 1) for i in range(150)], metric_id='m'
    )

    info = analyze_cardinality(make_snapshot([metric])).metrics['m']
    [recommendation] = info.recommendations

    assert info.attribute_cardinality_factors[0].patterns.common_suffix == (
        '.example.com'
    )
    assert recommendation.transform_regex == r's/\.example\.com$/_shortened/'


def test_analysis_recommends_bucketing(make_metric, make_snapshot):
    metric = make_metric(
        'm', [({'size': i * 7}, 1) for i in range(150)], metric_id='m'
    )

    [recommendation] = analyze_cardinality(make_snapshot([metric])).metrics[
        'm'
    ].recommendations

    assert recommendation.type == RecommendationType.AGGREGATE
    assert recommendation.aggregation_function == 'bucket'
    assert recommendation.impact.cardinality_reduction == 120
    assert recommendation.impact.percent_reduction == 80


def test_analysis_recommends_consolidating_low_impact_attributes(
    make_metric, make_snapshot
):
    constant = {'a': 'x', 'b': 'x', 'c': 'x', 'd': 'x', 'e': 'x'}
    metric = make_metric(
        'm', [({'k': f'v{i}', **constant}, 1) for i in range(20)], metric_id='m'
    )

    [recommendation] = analyze_cardinality(make_snapshot([metric])).metrics[
        'm'
    ].recommendations

    assert recommendation.type == RecommendationType.DROP
    assert recommendation.attribute_key is None
    assert recommendation.priority == Priority.LOW
    assert recommendation.impact.cardinality_reduction == 5
    assert recommendation.impact.percent_reduction == 0


def test_analysis_cross_metric_recommendation(make_metric, make_snapshot):
    snapshot = make_snapshot(
        [
            _transactions(make_metric, 'orders.created', 250),
            _transactions(make_metric, 'orders.failed', 250),
        ]
    )

    analysis = analyze_cardinality(snapshot, AnalysisOptions(attribute_threshold=100))

    impact = analysis.attribute_impact['transaction_id']
    assert impact.affected_metrics == ['orders.created', 'orders.failed']
    assert impact.weighted_impact == 1.0
    assert impact.overall_unique_values == 5

    [overall] = analysis.overall_recommendations
    assert overall.type == RecommendationType.DROP
    assert overall.attribute_key == 'transaction_id'
    assert overall.target_metrics == ['orders.created', 'orders.failed']
    assert overall.impact.cardinality_reduction == 500
    assert overall.impact.percent_reduction == 100
    assert overall.impact.estimated_savings == pytest.approx(
        500 * DATAPOINTS_PER_MONTH * 0.001
    )
    assert overall.priority == Priority.HIGH


def test_analysis_single_metric_attribute_is_not_an_overall_recommendation(
    make_metric, make_snapshot
):
    snapshot = make_snapshot([_transactions(make_metric, 'app.transactions', 250)])

    analysis = analyze_cardinality(snapshot)

    assert analysis.attribute_impact['transaction_id'].weighted_impact == 1.0
    assert analysis.overall_recommendations == []


def test_analysis_flags_very_high_total_cardinality(make_metric, make_snapshot):
    metric = make_metric(
        'huge', [({'series': f's-{i}'}, 1) for i in range(10_001)], metric_id='huge'
    )

    analysis = analyze_cardinality(make_snapshot([metric]))

    [holistic] = analysis.overall_recommendations
    assert holistic.type == RecommendationType.AGGREGATE
    assert holistic.priority == Priority.HIGH
    assert holistic.impact.cardinality_reduction == 5000
    assert holistic.impact.percent_reduction == 50
    assert holistic.impact.estimated_savings == pytest.approx(
        10_001 * DATAPOINTS_PER_MONTH * 0.001 * 0.5
    )


def test_analysis_include_filter(basic_snapshot):
    analysis = analyze_cardinality(
        basic_snapshot, {'includeMetrics': ['system.cpu.usage']}
    )

    assert analysis.total_metrics == 1
    assert list(analysis.metrics) == ['metric-1']
    assert analysis.total_cardinality == 3


def test_analysis_exclude_filter(basic_snapshot):
    analysis = analyze_cardinality(
        basic_snapshot, {'excludeMetrics': ['system.cpu.usage']}
    )

    assert list(analysis.metrics) == ['metric-2']


def test_analysis_exclude_wins_over_include(basic_snapshot):
    analysis = analyze_cardinality(
        basic_snapshot,
        {
            'includeMetrics': ['system.cpu.usage'],
            'excludeMetrics': ['system.cpu.usage'],
        },
    )

    assert analysis.total_metrics == 0
    assert analysis.total_cardinality == 0
    assert analysis.attribute_impact == {}
    assert analysis.overall_recommendations == []


def test_analysis_ignores_unknown_options(basic_snapshot):
    analysis = analyze_cardinality(basic_snapshot, {'notAnOption': 1})

    assert analysis.total_metrics == 2


def test_analysis_series_attributed_to_first_resource(make_metric, make_snapshot):
    metric = make_metric(
        'm',
        [({'k': 'a'}, 1), ({'k': 'b'}, 2)],
        metric_id='m',
        resource_ids=['resource-0', 'resource-1'],
    )

    info = analyze_cardinality(make_snapshot([metric])).metrics['m']

    assert info.cardinality_per_resource == {'resource-0': 2, 'resource-1': 0}


def _recommendation(reduction, metrics):
    return Recommendation(
        type=RecommendationType.DROP,
        description='drop',
        target_metrics=metrics,
        impact=RecommendationImpactEstimate(
            cardinality_reduction=reduction, percent_reduction=0
        ),
        priority=Priority.MEDIUM,
    )


def test_simulation_clamps_reduction(basic_snapshot):
    impact = simulate_recommendations(
        basic_snapshot,
        [
            _recommendation(4, ['system.cpu.usage']),
            _recommendation(5, ['http.server.requests', 'system.cpu.usage']),
        ],
    )

    assert impact.original_cardinality == 6
    assert impact.cardinality_reduction == 6
    assert impact.projected_cardinality == 0
    assert impact.percent_reduction == 100
    assert impact.estimated_savings == pytest.approx(6 * DATAPOINTS_PER_MONTH * 0.001)
    assert impact.metrics_affected == ['system.cpu.usage', 'http.server.requests']


def test_simulation_without_recommendations(basic_snapshot):
    impact = simulate_recommendations(basic_snapshot, [])

    assert impact.cardinality_reduction == 0
    assert impact.projected_cardinality == 6
    assert impact.percent_reduction == 0
    assert impact.estimated_savings == 0
    assert impact.metrics_affected == []


def test_simulation_rounds_percent_half_up(make_metric, make_snapshot):
    snapshot = make_snapshot([make_metric('m', [({'i': i}, 1) for i in range(40)])])

    impact = simulate_recommendations(snapshot, [_recommendation(1, None)])

    assert impact.percent_reduction == 3


def test_simulation_on_empty_snapshot(make_snapshot):
    impact = simulate_recommendations(make_snapshot([]), [_recommendation(10, ['m'])])

    assert impact.original_cardinality == 0
    assert impact.cardinality_reduction == 0
    assert impact.percent_reduction == 0


def test_simulation_uses_cost_model(basic_snapshot):
    impact = simulate_recommendations(
        basic_snapshot,
        [_recommendation(2, ['m'])],
        CostModel(cost_per_series=0.5, scrape_interval_seconds=30),
    )

    assert impact.estimated_savings == pytest.approx(2 * 86400 * 0.5)
