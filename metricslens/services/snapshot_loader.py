from collections.abc import Callable, Mapping
import logging
from typing import Any

from metricslens.converters import ParserOptions, parse_otlp_json, parse_otlp_payload
from metricslens.events import (
    EventRelay,
    Frame,
    SnapshotFailed,
    SnapshotLoaded,
    SnapshotLoading,
    SnapshotRemoved,
)
from metricslens.internal.schemas import ParsedSnapshot
from metricslens.runners import RunnerPolicy
from metricslens.store import SnapshotStore

logger = logging.getLogger(__name__)


class SnapshotLoader:
    """Parses uploads into snapshots and announces them on the relay.

    The policy threshold is compared against the raw body size in bytes.
    """

    def __init__(
        self, store: SnapshotStore, relay: EventRelay, policy: RunnerPolicy
    ) -> None:
        self.store = store
        self.relay = relay
        self.policy = policy

    async def load_json(
        self,
        body: str | bytes,
        file_name: str,
        options: ParserOptions | None = None,
        frame: Frame | None = None,
    ) -> ParsedSnapshot:
        return await self._load(
            parse_otlp_json, body, len(body), file_name, options, frame
        )

    async def load_payload(
        self,
        payload: Mapping[str, Any],
        file_name: str,
        size: int,
        options: ParserOptions | None = None,
        frame: Frame | None = None,
    ) -> ParsedSnapshot:
        return await self._load(
            parse_otlp_payload, payload, size, file_name, options, frame
        )

    async def _load(
        self,
        parser: Callable[..., ParsedSnapshot],
        source: Any,
        size: int,
        file_name: str,
        options: ParserOptions | None,
        frame: Frame | None,
    ) -> ParsedSnapshot:
        await self.relay.emit(SnapshotLoading(file_name=file_name))
        try:
            snapshot = await self.policy.select(size).run(parser, source, options)
        except Exception as e:
            logger.warning(
                'Failed to load snapshot',
                extra={'file_name': file_name, 'error': str(e)},
            )
            await self.relay.emit(SnapshotFailed(file_name=file_name, error=str(e)))
            raise

        self.store.add_snapshot(snapshot)
        logger.info(
            'Snapshot loaded',
            extra={
                'snapshot_id': snapshot.id,
                'file_name': file_name,
                'metric_count': snapshot.metric_count,
                'offloaded': self.policy.should_offload(size),
            },
        )
        await self.relay.emit(
            SnapshotLoaded(snapshot_id=snapshot.id, file_name=file_name, frame=frame)
        )
        return snapshot

    async def remove(self, snapshot_id: str) -> None:
        self.store.remove_snapshot(snapshot_id)
        logger.info('Snapshot removed', extra={'snapshot_id': snapshot_id})
        await self.relay.emit(SnapshotRemoved(snapshot_id=snapshot_id))
