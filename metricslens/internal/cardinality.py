from enum import Enum

from pydantic import ConfigDict, Field

from metricslens.internal.schemas import CamelModel


class RecommendationType(str, Enum):
    DROP = 'drop'
    AGGREGATE = 'aggregate'
    TRANSFORM = 'transform'
    RELABEL = 'relabel'


class Priority(str, Enum):
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'


class CostModel(CamelModel):
    model_config = ConfigDict(extra='ignore')

    cost_per_series: float = 0.001
    cost_per_data_point: float = 0.0000001
    retention_period_days: int = 30
    scrape_interval_seconds: float = Field(default=60, gt=0)
    currency: str = 'USD'

    @property
    def datapoints_per_month(self) -> float:
        return (30 * 24 * 60 * 60) / self.scrape_interval_seconds


class AnalysisOptions(CamelModel):
    model_config = ConfigDict(extra='ignore')

    include_metrics: list[str] | None = None
    exclude_metrics: list[str] | None = None
    attribute_threshold: int = 100
    # reserved for attribute-combination analysis
    depth_limit: int = 3
    cost_model: CostModel = Field(default_factory=CostModel)
    calculate_combinations: bool = True


class ValueLengths(CamelModel):
    min: int = 0
    max: int = 0
    avg: float = 0


class ValuePatterns(CamelModel):
    numeric: bool = False
    has_special_chars: bool = False
    common_prefix: str | None = None
    common_suffix: str | None = None


class AttributeCardinalityFactor(CamelModel):
    attribute_key: str
    unique_values: int
    cardinality_impact: float
    value_examples: list[str] = []
    value_lengths: ValueLengths = Field(default_factory=ValueLengths)
    patterns: ValuePatterns = Field(default_factory=ValuePatterns)


class RecommendationImpactEstimate(CamelModel):
    cardinality_reduction: int
    percent_reduction: int
    estimated_savings: float | None = None


class Recommendation(CamelModel):
    type: RecommendationType
    attribute_key: str | None = None
    target_metrics: list[str] | None = None
    description: str
    impact: RecommendationImpactEstimate
    priority: Priority
    new_attribute_key: str | None = None
    aggregation_function: str | None = None
    transform_regex: str | None = None


class MetricCardinalityInfo(CamelModel):
    metric_id: str
    metric_name: str
    total_series: int
    total_data_points: int
    attribute_keys: list[str] = []
    attribute_cardinality_factors: list[AttributeCardinalityFactor] = []
    cardinality_per_resource: dict[str, int] = {}
    recommendations: list[Recommendation] = []
    estimated_cost: float | None = None


class AttributeImpactInfo(CamelModel):
    attribute_key: str
    overall_unique_values: int
    affected_metrics: list[str] = []
    weighted_impact: float


class CardinalityAnalysis(CamelModel):
    snapshot_id: str
    timestamp: int
    total_cardinality: int = 0
    total_data_points: int = 0
    total_metrics: int = 0
    metrics: dict[str, MetricCardinalityInfo] = {}
    attribute_impact: dict[str, AttributeImpactInfo] = {}
    overall_recommendations: list[Recommendation] = []


class RecommendationImpact(CamelModel):
    original_cardinality: int
    projected_cardinality: int
    cardinality_reduction: int
    percent_reduction: int
    estimated_savings: float
    metrics_affected: list[str] = []
