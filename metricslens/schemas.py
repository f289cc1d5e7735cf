from metricslens.internal.cardinality import CostModel, Recommendation
from metricslens.internal.schemas import Attributes, CamelModel, ParsedSnapshot


class SnapshotSummary(CamelModel):
    id: str
    timestamp: int
    resource_count: int
    metric_count: int
    total_series: int
    total_data_points: int

    @classmethod
    def from_snapshot(cls, snapshot: ParsedSnapshot) -> 'SnapshotSummary':
        return cls(
            id=snapshot.id,
            timestamp=snapshot.timestamp,
            resource_count=len(snapshot.resources),
            metric_count=snapshot.metric_count,
            total_series=snapshot.total_series,
            total_data_points=snapshot.total_data_points,
        )


class DiffRequest(CamelModel):
    snapshot_a_id: str
    snapshot_b_id: str


class SimulationRequest(CamelModel):
    recommendations: list[Recommendation] = []
    cost_model: CostModel | None = None


class SeriesRate(CamelModel):
    metric_name: str
    series_key: str
    attributes: Attributes = {}
    unit: str | None = None
    value_a: int | float | None = None
    value_b: int | float | None = None
    delta: int | float | None = None
    rate: float | None = None
    reset_detected: bool = False
    rate_display: str
    delta_display: str


class DiffRatesResponse(CamelModel):
    snapshot_a_id: str
    snapshot_b_id: str
    time_gap_ms: int
    time_span: str
    series: list[SeriesRate] = []
