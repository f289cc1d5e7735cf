import logging

from metricslens.definitions import build_metric_definitions
from metricslens.errors import SnapshotNotFoundError
from metricslens.events import now_ms
from metricslens.internal.cardinality import CardinalityAnalysis, CostModel
from metricslens.internal.schemas import (
    DiffedMetric,
    DiffedSeries,
    DiffResult,
    DiffTimeInfo,
    MetricDefinition,
    ParsedMetric,
    ParsedSnapshot,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_STORED_DIFFS = 10
DEFAULT_AUTO_REFRESH_INTERVAL_MS = 30_000
MIN_AUTO_REFRESH_INTERVAL_MS = 1000


class SnapshotStore:
    """Process-local state shared by the services and the HTTP layer.

    Records held here are immutable models; the store only swaps references.
    """

    def __init__(
        self,
        max_stored_diffs: int = DEFAULT_MAX_STORED_DIFFS,
        cost_model: CostModel | None = None,
    ) -> None:
        self.snapshots: dict[str, ParsedSnapshot] = {}
        self.metric_definitions: dict[str, MetricDefinition] = {}

        self.current_diff: DiffResult | None = None
        self.previous_diffs: list[DiffResult] = []
        self.max_stored_diffs = max_stored_diffs

        self.analyses: dict[str, CardinalityAnalysis] = {}
        self.cost_model = cost_model or CostModel()

        self.live_mode = False
        self.auto_refresh_enabled = False
        self.auto_refresh_interval_ms = DEFAULT_AUTO_REFRESH_INTERVAL_MS
        self.last_updated = 0

    # snapshots

    def add_snapshot(self, snapshot: ParsedSnapshot) -> None:
        if snapshot.id in self.snapshots:
            logger.warning(
                'Replacing stored snapshot with the same id',
                extra={'snapshot_id': snapshot.id},
            )
            # the replacement moves to the end like a fresh upload
            del self.snapshots[snapshot.id]
        self.snapshots[snapshot.id] = snapshot
        self.metric_definitions = build_metric_definitions(self.snapshots)
        logger.debug(
            'Snapshot stored',
            extra={'snapshot_id': snapshot.id, 'snapshots': len(self.snapshots)},
        )

    def remove_snapshot(self, snapshot_id: str) -> ParsedSnapshot:
        try:
            snapshot = self.snapshots.pop(snapshot_id)
        except KeyError as e:
            raise SnapshotNotFoundError(snapshot_id) from e
        self.analyses.pop(snapshot_id, None)
        self.metric_definitions = build_metric_definitions(self.snapshots)
        return snapshot

    def clear_snapshots(self) -> None:
        self.snapshots = {}
        self.metric_definitions = {}
        self.analyses = {}

    def has_snapshot(self, snapshot_id: str) -> bool:
        return snapshot_id in self.snapshots

    def get_snapshot(self, snapshot_id: str) -> ParsedSnapshot:
        try:
            return self.snapshots[snapshot_id]
        except KeyError as e:
            raise SnapshotNotFoundError(snapshot_id) from e

    def get_metric(self, snapshot_id: str, metric_id: str) -> ParsedMetric | None:
        snapshot = self.snapshots.get(snapshot_id)
        if snapshot is None:
            return None
        return snapshot.metrics.get(metric_id)

    def get_metrics_for_snapshot(self, snapshot_id: str) -> list[ParsedMetric]:
        snapshot = self.snapshots.get(snapshot_id)
        if snapshot is None:
            return []
        return list(snapshot.metrics.values())

    def get_metric_definition(self, metric_name: str) -> MetricDefinition | None:
        return self.metric_definitions.get(metric_name)

    # diffs

    def set_diff(self, diff: DiffResult) -> None:
        if self.current_diff is not None:
            self.previous_diffs.insert(0, self.current_diff)
            del self.previous_diffs[self.max_stored_diffs :]
        self.current_diff = diff
        self.last_updated = now_ms()

    def clear_diffs(self) -> None:
        self.current_diff = None
        self.previous_diffs = []
        self.last_updated = now_ms()

    def set_live_mode(self, enabled: bool) -> None:
        self.live_mode = enabled

    def set_auto_refresh(self, enabled: bool, interval_ms: int | None = None) -> None:
        self.auto_refresh_enabled = enabled
        if interval_ms and interval_ms >= MIN_AUTO_REFRESH_INTERVAL_MS:
            self.auto_refresh_interval_ms = interval_ms

    def get_diffed_metric(self, metric_name: str) -> DiffedMetric | None:
        if self.current_diff is None:
            return None
        return self.current_diff.metrics.get(metric_name)

    def get_diffed_series(self, series_key: str) -> DiffedSeries | None:
        if self.current_diff is None:
            return None
        for metric in self.current_diff.metrics.values():
            if series_key in metric.series:
                return metric.series[series_key]
        return None

    def get_related_series(self, metric_name: str) -> list[DiffedSeries]:
        metric = self.get_diffed_metric(metric_name)
        return list(metric.series.values()) if metric is not None else []

    def get_diff_time_info(self) -> DiffTimeInfo:
        return DiffTimeInfo(
            time_gap_ms=self.current_diff.time_gap_ms if self.current_diff else 0,
            last_updated=self.last_updated,
        )

    # cardinality

    def set_analysis(self, analysis: CardinalityAnalysis) -> None:
        self.analyses[analysis.snapshot_id] = analysis

    def get_analysis(self, snapshot_id: str) -> CardinalityAnalysis | None:
        return self.analyses.get(snapshot_id)

    def set_cost_model(self, cost_model: CostModel) -> None:
        self.cost_model = cost_model
