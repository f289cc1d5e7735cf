from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
import logging
import math
import re
from typing import Any

from metricslens.internal.cardinality import (
    AnalysisOptions,
    AttributeCardinalityFactor,
    AttributeImpactInfo,
    CardinalityAnalysis,
    CostModel,
    MetricCardinalityInfo,
    Priority,
    Recommendation,
    RecommendationImpact,
    RecommendationImpactEstimate,
    RecommendationType,
    ValueLengths,
    ValuePatterns,
)
from metricslens.internal.schemas import ParsedMetric, ParsedSnapshot
from metricslens.series_key import coerce_attribute_value

logger = logging.getLogger(__name__)

MAX_VALUE_EXAMPLES = 5
ID_LIKE_MARKERS = ('id', 'guid', 'uuid')
OVERALL_IMPACT_THRESHOLD = 0.3
HIGH_TOTAL_CARDINALITY = 10000

_SPECIAL_CHARS_RE = re.compile(r'[^\w\s]', re.ASCII)
_REGEX_META_RE = re.compile(r'[.*+?^${}()|[\]\\]')
_RADIX_LITERAL_RE = re.compile(r'0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+')


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _escape_regex(value: str) -> str:
    return _REGEX_META_RE.sub(lambda m: '\\' + m.group(0), value)


def _is_numeric(value: str) -> bool:
    """Number-literal check with JavaScript ``Number()`` rules.

    Unsigned hex, octal and binary literals and a signed ``Infinity`` count.
    Blank strings, digit separators and the ``inf``/``nan`` spellings that
    ``float`` also takes do not.
    """
    text = value.strip()
    if not text or '_' in text:
        return False
    if _RADIX_LITERAL_RE.fullmatch(text) or text.lstrip('+-') == 'Infinity':
        return True
    lowered = text.lower()
    if 'inf' in lowered or 'nan' in lowered:
        return False
    try:
        float(text)
    except ValueError:
        return False
    return True


def _common_prefix(values: list[str]) -> str:
    first = values[0]
    length = 0
    for i, char in enumerate(first):
        if all(i < len(v) and v[i] == char for v in values):
            length = i + 1
        else:
            break
    return first[:length]


def _common_suffix(values: list[str]) -> str:
    first = values[0]
    length = 0
    for i in range(len(first)):
        char = first[-1 - i]
        if all(i < len(v) and v[-1 - i] == char for v in values):
            length = i + 1
        else:
            break
    return first[len(first) - length :]


def _value_lengths(values: list[str]) -> ValueLengths:
    if not values:
        return ValueLengths()
    lengths = [len(v) for v in values]
    avg = sum(lengths) / len(lengths)
    return ValueLengths(
        min=min(lengths), max=max(lengths), avg=_round_half_up(avg * 100) / 100
    )


def _value_patterns(values: list[str]) -> ValuePatterns:
    if not values:
        return ValuePatterns()

    prefix = suffix = ''
    if len(values) > 1:
        prefix = _common_prefix(values)
        suffix = _common_suffix(values)

    return ValuePatterns(
        numeric=all(_is_numeric(v) for v in values),
        has_special_chars=any(_SPECIAL_CHARS_RE.search(v) for v in values),
        common_prefix=prefix if len(prefix) > 1 else None,
        common_suffix=suffix if len(suffix) > 1 else None,
    )


def _is_id_like(attribute_key: str) -> bool:
    return any(marker in attribute_key for marker in ID_LIKE_MARKERS)


def _attribute_recommendation(
    metric: ParsedMetric, factor: AttributeCardinalityFactor, threshold: int
) -> Recommendation | None:
    key = factor.attribute_key
    unique = factor.unique_values
    patterns = factor.patterns

    if _is_id_like(key) and unique > threshold * 2:
        return Recommendation(
            type=RecommendationType.DROP,
            attribute_key=key,
            target_metrics=[metric.name],
            description=(
                f"Drop high-cardinality ID attribute '{key}' "
                f'with {unique} unique values'
            ),
            impact=RecommendationImpactEstimate(
                cardinality_reduction=math.floor(unique * factor.cardinality_impact),
                percent_reduction=_round_half_up(factor.cardinality_impact * 100),
            ),
            priority=(
                Priority.HIGH if factor.cardinality_impact > 0.5 else Priority.MEDIUM
            ),
        )

    if patterns.common_prefix or patterns.common_suffix:
        if patterns.common_prefix:
            affix = 'common prefix'
            regex = f's/^{_escape_regex(patterns.common_prefix)}/shortened_/'
        else:
            affix = 'common suffix'
            regex = f's/{_escape_regex(patterns.common_suffix or "")}$/_shortened/'
        return Recommendation(
            type=RecommendationType.TRANSFORM,
            attribute_key=key,
            target_metrics=[metric.name],
            description=f"Transform values of '{key}' to remove {affix}",
            impact=RecommendationImpactEstimate(
                cardinality_reduction=math.floor(unique * 0.2),
                percent_reduction=20,
            ),
            transform_regex=regex,
            priority=Priority.MEDIUM,
        )

    if threshold < unique <= threshold * 2:
        return Recommendation(
            type=RecommendationType.AGGREGATE,
            attribute_key=key,
            target_metrics=[metric.name],
            description=(
                f"Aggregate values of '{key}' into buckets to reduce cardinality"
            ),
            impact=RecommendationImpactEstimate(
                cardinality_reduction=math.floor(unique * 0.8),
                percent_reduction=80,
            ),
            aggregation_function='bucket',
            priority=Priority.MEDIUM,
        )
    return None


def _metric_recommendations(
    metric: ParsedMetric,
    factors: list[AttributeCardinalityFactor],
    threshold: int,
) -> list[Recommendation]:
    recommendations: list[Recommendation] = []
    high_cardinality = [f for f in factors if f.unique_values > threshold]

    for factor in high_cardinality:
        recommendation = _attribute_recommendation(metric, factor, threshold)
        if recommendation is not None:
            recommendations.append(recommendation)

    if not high_cardinality and len(factors) > 5:
        low_impact = [f for f in factors if f.cardinality_impact < 0.1]
        if len(low_impact) > 3:
            recommendations.append(
                Recommendation(
                    type=RecommendationType.DROP,
                    target_metrics=[metric.name],
                    description=(
                        f'Consider consolidating {len(low_impact)} low-impact '
                        'attributes that collectively add little value'
                    ),
                    impact=RecommendationImpactEstimate(
                        cardinality_reduction=sum(f.unique_values for f in low_impact),
                        percent_reduction=_round_half_up(
                            sum(f.cardinality_impact for f in low_impact) * 100
                        ),
                    ),
                    priority=Priority.LOW,
                )
            )
    return recommendations


def _analyze_metric(
    metric: ParsedMetric, attribute_threshold: int, cost_model: CostModel
) -> MetricCardinalityInfo:
    series_keys: set[str] = set()
    series_by_resource: dict[str, set[str]] = {rid: set() for rid in metric.resource_ids}
    unique_values: dict[str, set[str]] = {key: set() for key in metric.attribute_keys}
    examples: dict[str, list[str]] = {key: [] for key in metric.attribute_keys}
    # all series of a metric are attributed to its first resource
    resource_id = metric.resource_ids[0] if metric.resource_ids else None

    for dp in metric.data_points:
        if dp.series_key:
            series_keys.add(dp.series_key)
            if resource_id in series_by_resource:
                series_by_resource[resource_id].add(dp.series_key)

        for key, value in dp.attributes.items():
            if key not in unique_values:
                continue
            value_str = coerce_attribute_value(value)
            unique_values[key].add(value_str)
            if len(examples[key]) < MAX_VALUE_EXAMPLES and value_str not in examples[key]:
                examples[key].append(value_str)

    total_series = len(series_keys)
    factors: list[AttributeCardinalityFactor] = []
    for key in metric.attribute_keys:
        unique = len(unique_values[key])
        factors.append(
            AttributeCardinalityFactor(
                attribute_key=key,
                unique_values=unique,
                cardinality_impact=unique / (total_series or 1) if unique > 1 else 0,
                value_examples=examples[key],
                value_lengths=_value_lengths(examples[key]),
                patterns=_value_patterns(examples[key]),
            )
        )
    factors.sort(key=lambda f: f.cardinality_impact, reverse=True)

    return MetricCardinalityInfo(
        metric_id=metric.id,
        metric_name=metric.name,
        total_series=total_series,
        total_data_points=len(metric.data_points),
        attribute_keys=list(metric.attribute_keys),
        attribute_cardinality_factors=factors,
        cardinality_per_resource={
            rid: len(keys) for rid, keys in series_by_resource.items()
        },
        recommendations=_metric_recommendations(metric, factors, attribute_threshold),
        estimated_cost=(
            total_series * cost_model.datapoints_per_month * cost_model.cost_per_series
        ),
    )


@dataclass
class _AttributeStats:
    unique_values: set[str] = field(default_factory=set)
    affected_metrics: dict[str, None] = field(default_factory=dict)
    total_impact: float = 0.0


def _overall_recommendations(
    total_cardinality: int,
    attribute_impact: dict[str, AttributeImpactInfo],
    cost_model: CostModel,
) -> list[Recommendation]:
    recommendations: list[Recommendation] = []
    datapoints_per_month = cost_model.datapoints_per_month

    high_impact = sorted(
        (
            attr
            for attr in attribute_impact.values()
            if attr.weighted_impact > OVERALL_IMPACT_THRESHOLD
            and len(attr.affected_metrics) > 1
        ),
        key=lambda attr: attr.weighted_impact,
        reverse=True,
    )
    for attr in high_impact:
        reduction = math.floor(total_cardinality * attr.weighted_impact)
        percent = _round_half_up(attr.weighted_impact * 100)
        recommendations.append(
            Recommendation(
                type=RecommendationType.DROP,
                attribute_key=attr.attribute_key,
                target_metrics=list(attr.affected_metrics),
                description=(
                    f"Drop high-impact attribute '{attr.attribute_key}' "
                    f'across {len(attr.affected_metrics)} metrics'
                ),
                impact=RecommendationImpactEstimate(
                    cardinality_reduction=reduction,
                    percent_reduction=percent,
                    estimated_savings=(
                        reduction * datapoints_per_month * cost_model.cost_per_series
                    ),
                ),
                priority=Priority.HIGH if percent > 30 else Priority.MEDIUM,
            )
        )

    if total_cardinality > HIGH_TOTAL_CARDINALITY:
        monthly_cost = total_cardinality * datapoints_per_month * cost_model.cost_per_series
        recommendations.append(
            Recommendation(
                type=RecommendationType.AGGREGATE,
                description=(
                    f'Overall cardinality ({total_cardinality} series) is very high. '
                    'Consider a holistic review of your metrics strategy.'
                ),
                impact=RecommendationImpactEstimate(
                    cardinality_reduction=math.floor(total_cardinality * 0.5),
                    percent_reduction=50,
                    estimated_savings=monthly_cost * 0.5,
                ),
                priority=Priority.HIGH,
            )
        )
    return recommendations


def _select_metrics(
    snapshot: ParsedSnapshot, options: AnalysisOptions
) -> list[ParsedMetric]:
    selected = []
    for metric in snapshot.metrics.values():
        if options.include_metrics is not None and metric.name not in options.include_metrics:
            continue
        if options.exclude_metrics is not None and metric.name in options.exclude_metrics:
            continue
        selected.append(metric)
    return selected


def analyze_cardinality(
    snapshot: ParsedSnapshot,
    options: AnalysisOptions | Mapping[str, Any] | None = None,
) -> CardinalityAnalysis:
    """Score series cardinality per metric and per attribute, with recommendations.

    Unknown keys in ``options`` are ignored.
    """
    if not isinstance(options, AnalysisOptions):
        options = AnalysisOptions.model_validate(options or {})

    metrics = _select_metrics(snapshot, options)
    metric_infos: dict[str, MetricCardinalityInfo] = {}
    attribute_stats: dict[str, _AttributeStats] = {}
    total_cardinality = 0
    total_data_points = 0

    for metric in metrics:
        info = _analyze_metric(metric, options.attribute_threshold, options.cost_model)
        metric_infos[metric.id] = info
        total_cardinality += info.total_series
        total_data_points += info.total_data_points

        for factor in info.attribute_cardinality_factors:
            stats = attribute_stats.setdefault(factor.attribute_key, _AttributeStats())
            stats.affected_metrics.setdefault(metric.name, None)
            stats.total_impact += factor.cardinality_impact
            stats.unique_values.update(factor.value_examples)

    attribute_impact = {
        key: AttributeImpactInfo(
            attribute_key=key,
            overall_unique_values=len(stats.unique_values),
            affected_metrics=list(stats.affected_metrics),
            weighted_impact=stats.total_impact / len(metrics),
        )
        for key, stats in attribute_stats.items()
    }

    analysis = CardinalityAnalysis(
        snapshot_id=snapshot.id,
        timestamp=snapshot.timestamp,
        total_cardinality=total_cardinality,
        total_data_points=total_data_points,
        total_metrics=len(metrics),
        metrics=metric_infos,
        attribute_impact=attribute_impact,
        overall_recommendations=_overall_recommendations(
            total_cardinality, attribute_impact, options.cost_model
        ),
    )
    logger.debug(
        'Cardinality analysis complete',
        extra={
            'snapshot_id': snapshot.id,
            'total_metrics': analysis.total_metrics,
            'total_cardinality': analysis.total_cardinality,
        },
    )
    return analysis


def simulate_recommendations(
    snapshot: ParsedSnapshot,
    recommendations: Sequence[Recommendation],
    cost_model: CostModel | None = None,
) -> RecommendationImpact:
    """Project cardinality and cost after applying ``recommendations``.

    Reductions are summed as-is, so overlapping recommendations are
    double counted until the total is clamped to the snapshot's series.
    """
    cost_model = cost_model or CostModel()
    original = snapshot.total_series
    reduction = min(
        sum(rec.impact.cardinality_reduction for rec in recommendations), original
    )
    percent = _round_half_up(reduction / original * 100) if original else 0

    metrics_affected: dict[str, None] = {}
    for rec in recommendations:
        for name in rec.target_metrics or []:
            metrics_affected.setdefault(name, None)

    return RecommendationImpact(
        original_cardinality=original,
        projected_cardinality=original - reduction,
        cardinality_reduction=reduction,
        percent_reduction=percent,
        estimated_savings=(
            reduction * cost_model.datapoints_per_month * cost_model.cost_per_series
        ),
        metrics_affected=list(metrics_affected),
    )
