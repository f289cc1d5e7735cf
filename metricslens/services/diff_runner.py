import logging

from metricslens.diff_engine import compute_diffs
from metricslens.errors import MetricsLensError
from metricslens.events import (
    DiffComputed,
    DiffFailed,
    EventRelay,
    Frame,
    SnapshotLoaded,
    SnapshotRemoved,
    Unsubscribe,
)
from metricslens.internal.schemas import DiffResult, ParsedSnapshot
from metricslens.store import SnapshotStore

logger = logging.getLogger(__name__)


class DiffRunner:
    """Keeps a pair of A/B frames and diffs them whenever both are filled.

    Without an explicit frame the first snapshot becomes A and every later
    one replaces B. The automatic diff runs the pair oldest first.
    """

    def __init__(self, store: SnapshotStore, relay: EventRelay) -> None:
        self.store = store
        self.relay = relay
        self.frames: dict[Frame, str] = {}
        self._subscriptions: list[Unsubscribe] = []

    def start(self) -> None:
        self._subscriptions = [
            self.relay.on(SnapshotLoaded, self.handle_snapshot_loaded),
            self.relay.on(SnapshotRemoved, self.handle_snapshot_removed),
        ]

    def stop(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []

    async def handle_snapshot_loaded(self, event: SnapshotLoaded) -> None:
        if not self.store.has_snapshot(event.snapshot_id):
            logger.error(
                'Loaded snapshot missing from store',
                extra={'snapshot_id': event.snapshot_id},
            )
            return

        frame: Frame = event.frame or ('A' if 'A' not in self.frames else 'B')
        self.frames[frame] = event.snapshot_id
        logger.info(
            'Snapshot assigned to frame',
            extra={'snapshot_id': event.snapshot_id, 'frame': frame},
        )

        pair = self._frame_snapshots()
        if pair is None:
            return
        snapshot_a, snapshot_b = pair
        if snapshot_b.timestamp < snapshot_a.timestamp:
            snapshot_a, snapshot_b = snapshot_b, snapshot_a

        try:
            diff = compute_diffs(snapshot_a, snapshot_b)
        except MetricsLensError as e:
            logger.warning('Automatic diff failed', extra={'error': str(e)})
            await self.relay.emit(DiffFailed(error=str(e)))
            return
        await self._publish(diff)

    async def handle_snapshot_removed(self, event: SnapshotRemoved) -> None:
        for frame, snapshot_id in list(self.frames.items()):
            if snapshot_id == event.snapshot_id:
                del self.frames[frame]

    async def compute_for(self, snapshot_a_id: str, snapshot_b_id: str) -> DiffResult:
        """Diff two stored snapshots in the given order."""
        snapshot_a = self.store.get_snapshot(snapshot_a_id)
        snapshot_b = self.store.get_snapshot(snapshot_b_id)
        self.frames = {'A': snapshot_a_id, 'B': snapshot_b_id}

        try:
            diff = compute_diffs(snapshot_a, snapshot_b)
        except MetricsLensError as e:
            await self.relay.emit(DiffFailed(error=str(e)))
            raise
        await self._publish(diff)
        return diff

    def clear(self) -> None:
        self.frames = {}
        self.store.clear_diffs()

    def _frame_snapshots(self) -> tuple[ParsedSnapshot, ParsedSnapshot] | None:
        if 'A' not in self.frames or 'B' not in self.frames:
            return None
        snapshot_a = self.store.snapshots.get(self.frames['A'])
        snapshot_b = self.store.snapshots.get(self.frames['B'])
        if snapshot_a is None or snapshot_b is None:
            return None
        return snapshot_a, snapshot_b

    async def _publish(self, diff: DiffResult) -> None:
        self.store.set_diff(diff)
        logger.info(
            'Computed diff between snapshots',
            extra={
                'snapshot_a_id': diff.snapshot_a_id,
                'snapshot_b_id': diff.snapshot_b_id,
                'metric_count': len(diff.metrics),
            },
        )
        await self.relay.emit(
            DiffComputed(
                diff_id=f'{diff.snapshot_a_id}_{diff.snapshot_b_id}',
                snapshot_a_id=diff.snapshot_a_id,
                snapshot_b_id=diff.snapshot_b_id,
                metric_count=len(diff.metrics),
            )
        )
