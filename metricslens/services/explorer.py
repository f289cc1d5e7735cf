from concurrent.futures import ThreadPoolExecutor
import logging

from metricslens.config import Settings
from metricslens.events import EventRelay
from metricslens.runners import ExecutorRunner, InlineRunner, RunnerPolicy
from metricslens.services.cardinality_runner import CardinalityRunner
from metricslens.services.diff_runner import DiffRunner
from metricslens.services.snapshot_loader import SnapshotLoader
from metricslens.store import SnapshotStore

logger = logging.getLogger(__name__)


class Explorer:
    """Wires the store, the relay and the services of one application."""

    def __init__(
        self,
        store: SnapshotStore,
        relay: EventRelay,
        loader: SnapshotLoader,
        diff_runner: DiffRunner,
        cardinality_runner: CardinalityRunner,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.store = store
        self.relay = relay
        self.loader = loader
        self.diff_runner = diff_runner
        self.cardinality_runner = cardinality_runner
        self.executor = executor

    @classmethod
    def from_settings(cls, settings: Settings) -> 'Explorer':
        executor = ThreadPoolExecutor(
            max_workers=settings.OFFLOAD_MAX_WORKERS,
            thread_name_prefix='metricslens',
        )
        inline = InlineRunner()
        store = SnapshotStore(max_stored_diffs=settings.MAX_STORED_DIFFS)
        relay = EventRelay(history_enabled=settings.EVENT_HISTORY_ENABLED)

        parse_policy = RunnerPolicy(
            inline=inline,
            offloaded=ExecutorRunner(executor, prefix='parse'),
            threshold=settings.OFFLOAD_THRESHOLD_BYTES,
        )
        analyze_policy = RunnerPolicy(
            inline=inline,
            offloaded=ExecutorRunner(executor, prefix='analyze'),
            threshold=settings.OFFLOAD_THRESHOLD_DATA_POINTS,
        )

        return cls(
            store=store,
            relay=relay,
            loader=SnapshotLoader(store, relay, parse_policy),
            diff_runner=DiffRunner(store, relay),
            cardinality_runner=CardinalityRunner(
                store,
                relay,
                analyze_policy,
                attribute_threshold=settings.CARDINALITY_ATTRIBUTE_THRESHOLD,
                depth_limit=settings.CARDINALITY_DEPTH_LIMIT,
            ),
            executor=executor,
        )

    def start(self) -> None:
        self.diff_runner.start()
        self.cardinality_runner.start()
        logger.info('Explorer services started')

    def close(self) -> None:
        self.diff_runner.stop()
        self.cardinality_runner.stop()
        if self.executor is not None:
            self.executor.shutdown(wait=True)
        logger.info('Explorer services stopped')

    def clear(self) -> None:
        self.store.clear_snapshots()
        self.diff_runner.clear()
