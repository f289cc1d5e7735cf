from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import inspect
import logging
import time
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

Frame = Literal['A', 'B']

DEFAULT_HISTORY_SIZE = 100


def now_ms() -> int:
    return int(time.time() * 1000)


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(default_factory=now_ms)


class SnapshotLoading(Event):
    file_name: str


class SnapshotLoaded(Event):
    snapshot_id: str
    file_name: str
    frame: Frame | None = None


class SnapshotFailed(Event):
    file_name: str
    error: str


class SnapshotRemoved(Event):
    snapshot_id: str


class DiffComputed(Event):
    diff_id: str
    snapshot_a_id: str
    snapshot_b_id: str
    metric_count: int


class DiffFailed(Event):
    error: str


class CardinalityAnalyzing(Event):
    snapshot_id: str
    offloaded: bool


class CardinalityAnalyzed(Event):
    snapshot_id: str
    total_cardinality: int


class CardinalityFailed(Event):
    snapshot_id: str
    error: str


E = TypeVar('E', bound=Event)
Handler = Callable[[Any], Awaitable[None] | None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class EventRecord:
    timestamp: int
    event_name: str
    event: Event


class EventRelay:
    """In-process publish/subscribe keyed by event class.

    Handlers run in subscription order. A failing handler is logged and
    does not stop the remaining handlers.
    """

    def __init__(
        self, history_enabled: bool = False, history_size: int = DEFAULT_HISTORY_SIZE
    ) -> None:
        self._handlers: dict[type[Event], list[Handler]] = {}
        self._history_enabled = history_enabled
        self._history: deque[EventRecord] = deque(maxlen=history_size)

    def on(self, event_type: type[E], handler: Callable[[E], Any]) -> Unsubscribe:
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

        def unsubscribe() -> None:
            registered = self._handlers.get(event_type)
            if registered is None or handler not in registered:
                return
            registered.remove(handler)
            if not registered:
                del self._handlers[event_type]

        return unsubscribe

    def once(self, event_type: type[E], handler: Callable[[E], Any]) -> Unsubscribe:
        def once_handler(event: E) -> Any:
            unsubscribe()
            return handler(event)

        unsubscribe = self.on(event_type, once_handler)
        return unsubscribe

    async def emit(self, event: Event) -> None:
        event_name = type(event).__name__
        if self._history_enabled:
            self._history.append(
                EventRecord(timestamp=now_ms(), event_name=event_name, event=event)
            )

        handlers = list(self._handlers.get(type(event), ()))
        if not handlers:
            logger.debug('No handlers registered', extra={'event': event_name})
            return

        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception('Event handler failed', extra={'event': event_name})

    def has_listeners(self, event_type: type[Event]) -> bool:
        return bool(self._handlers.get(event_type))

    def listener_count(self, event_type: type[Event]) -> int:
        return len(self._handlers.get(event_type, ()))

    def clear_event(self, event_type: type[Event]) -> None:
        self._handlers.pop(event_type, None)

    def clear_all(self) -> None:
        self._handlers.clear()

    def set_history_enabled(self, enabled: bool) -> None:
        self._history_enabled = enabled
        if not enabled:
            self._history.clear()

    def history(self) -> list[EventRecord]:
        return list(self._history)
