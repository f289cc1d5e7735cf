import asyncio
from collections.abc import Callable
from concurrent.futures import Executor
from dataclasses import dataclass
from functools import partial
import logging
import secrets
from typing import Any, Protocol, TypeVar

from metricslens.events import now_ms

logger = logging.getLogger(__name__)

T = TypeVar('T')


def make_request_id(prefix: str) -> str:
    return f'{prefix}-{now_ms()}-{secrets.token_hex(4)}'


class Runner(Protocol):
    async def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T: ...


class InlineRunner:
    async def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return func(*args, **kwargs)


class ExecutorRunner:
    """Runs a blocking function on an executor without blocking the event loop.

    The executor is owned by the caller. A request that nobody awaits any
    more still runs to completion.
    """

    def __init__(self, executor: Executor, prefix: str) -> None:
        self.executor = executor
        self.prefix = prefix

    async def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        request_id = make_request_id(self.prefix)
        task_name = getattr(func, '__name__', repr(func))
        loop = asyncio.get_running_loop()

        logger.debug(
            'Offloaded task started',
            extra={'request_id': request_id, 'task': task_name},
        )
        try:
            result = await loop.run_in_executor(
                self.executor, partial(func, *args, **kwargs)
            )
        except Exception as e:
            logger.error(
                'Offloaded task failed',
                extra={'request_id': request_id, 'task': task_name, 'error': str(e)},
            )
            raise

        logger.debug(
            'Offloaded task finished',
            extra={'request_id': request_id, 'task': task_name},
        )
        return result


@dataclass(frozen=True)
class RunnerPolicy:
    """Picks the off-thread runner once a workload grows past ``threshold``."""

    inline: Runner
    offloaded: Runner
    threshold: int

    def should_offload(self, size: int) -> bool:
        return size > self.threshold

    def select(self, size: int) -> Runner:
        return self.offloaded if self.should_offload(size) else self.inline
