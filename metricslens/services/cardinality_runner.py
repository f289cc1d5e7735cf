from collections.abc import Sequence
import logging

from metricslens.cardinality import analyze_cardinality, simulate_recommendations
from metricslens.events import (
    CardinalityAnalyzed,
    CardinalityAnalyzing,
    CardinalityFailed,
    EventRelay,
    SnapshotLoaded,
    Unsubscribe,
)
from metricslens.internal.cardinality import (
    AnalysisOptions,
    CardinalityAnalysis,
    CostModel,
    Recommendation,
    RecommendationImpact,
)
from metricslens.runners import RunnerPolicy
from metricslens.store import SnapshotStore

logger = logging.getLogger(__name__)

DEFAULT_ATTRIBUTE_THRESHOLD = 50
DEFAULT_DEPTH_LIMIT = 2


class CardinalityRunner:
    def __init__(
        self,
        store: SnapshotStore,
        relay: EventRelay,
        policy: RunnerPolicy,
        attribute_threshold: int = DEFAULT_ATTRIBUTE_THRESHOLD,
        depth_limit: int = DEFAULT_DEPTH_LIMIT,
    ) -> None:
        self.store = store
        self.relay = relay
        self.policy = policy
        self.attribute_threshold = attribute_threshold
        self.depth_limit = depth_limit
        self._unsubscribe: Unsubscribe | None = None

    def start(self) -> None:
        self._unsubscribe = self.relay.on(SnapshotLoaded, self.handle_snapshot_loaded)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def default_options(self) -> AnalysisOptions:
        return AnalysisOptions(
            attribute_threshold=self.attribute_threshold,
            depth_limit=self.depth_limit,
            calculate_combinations=True,
            cost_model=self.store.cost_model,
        )

    async def handle_snapshot_loaded(self, event: SnapshotLoaded) -> None:
        if not self.store.has_snapshot(event.snapshot_id):
            logger.error(
                'Loaded snapshot missing from store',
                extra={'snapshot_id': event.snapshot_id},
            )
            return
        await self.analyze(event.snapshot_id)

    async def analyze(
        self, snapshot_id: str, options: AnalysisOptions | None = None
    ) -> CardinalityAnalysis:
        """Analyze a stored snapshot and keep the result in the store.

        Options that do not set a cost model use the store's.
        """
        snapshot = self.store.get_snapshot(snapshot_id)
        if options is None:
            options = self.default_options()
        elif 'cost_model' not in options.model_fields_set:
            options = options.model_copy(update={'cost_model': self.store.cost_model})

        size = snapshot.total_data_points
        await self.relay.emit(
            CardinalityAnalyzing(
                snapshot_id=snapshot_id, offloaded=self.policy.should_offload(size)
            )
        )
        try:
            analysis = await self.policy.select(size).run(
                analyze_cardinality, snapshot, options
            )
        except Exception as e:
            logger.error(
                'Cardinality analysis failed',
                extra={'snapshot_id': snapshot_id, 'error': str(e)},
            )
            await self.relay.emit(
                CardinalityFailed(snapshot_id=snapshot_id, error=str(e))
            )
            raise

        self.store.set_analysis(analysis)
        logger.info(
            'Cardinality analysis stored',
            extra={
                'snapshot_id': snapshot_id,
                'total_cardinality': analysis.total_cardinality,
            },
        )
        await self.relay.emit(
            CardinalityAnalyzed(
                snapshot_id=snapshot_id, total_cardinality=analysis.total_cardinality
            )
        )
        return analysis

    async def simulate(
        self,
        snapshot_id: str,
        recommendations: Sequence[Recommendation],
        cost_model: CostModel | None = None,
    ) -> RecommendationImpact:
        snapshot = self.store.get_snapshot(snapshot_id)
        runner = self.policy.select(snapshot.total_data_points)
        return await runner.run(
            simulate_recommendations,
            snapshot,
            list(recommendations),
            cost_model or self.store.cost_model,
        )
