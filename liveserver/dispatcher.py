"""
Change dispatcher
Filters watcher events and turns each burst of changes into one reload
"""
import asyncio
import logging
import time
from typing import AsyncIterator, List, Optional, Set

from liveserver.broadcaster import ReloadBroadcaster
from liveserver.errors import WatcherError
from liveserver.watcher import ChangeEvent, ChangeKind

log = logging.getLogger(__name__)

# Only content writes and new files reload the page
RELOAD_KINDS = frozenset({ChangeKind.WRITE, ChangeKind.CREATE})


def should_reload(event: ChangeEvent) -> bool:
    return event.kind in RELOAD_KINDS


class ChangeDispatcher:
    """
    Consumes change events and triggers broadcasts

    With a debounce window of 0 every accepted event broadcasts at once.
    Otherwise accepted events are coalesced: the reload fires once the
    stream has been quiet for `debounce` seconds, and never later than
    `max_delay` seconds after the first change of the burst.
    """

    def __init__(
        self,
        broadcaster: ReloadBroadcaster,
        debounce: float = 0.1,
        max_delay: float = 0.5,
    ):
        self.broadcaster = broadcaster
        self.debounce = max(debounce, 0.0)
        self.max_delay = max(max_delay, self.debounce)
        self.reloads = 0
        self._pending: List[str] = []
        self._burst_started: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> List[str]:
        return list(self._pending)

    async def run(self, events: AsyncIterator[ChangeEvent]):
        """
        Dispatch loop
        Returns when the event source ends or fails, after flushing any
        pending burst. A watcher failure is logged, not raised
        """
        try:
            async for event in events:
                await self.handle(event)
        except WatcherError as e:
            log.error("File watching stopped, live reload disabled: %s", e)
        except asyncio.CancelledError:
            self._cancel_timer()
            raise
        await self.drain()

    async def handle(self, event: ChangeEvent):
        if not should_reload(event):
            log.debug("Ignoring %s event: %s", event.kind.value, event.path)
            return

        log.info("Change detected: %s", event.path)

        if self.debounce == 0:
            await self._reload()
            return

        now = time.monotonic()
        if self._burst_started is None:
            self._burst_started = now
        self._pending.append(event.path)
        self._schedule(now)

    def _schedule(self, now: float):
        self._cancel_timer()
        deadline = self._burst_started + self.max_delay
        delay = max(min(self.debounce, deadline - now), 0.0)
        self._timer = asyncio.get_running_loop().call_later(delay, self._flush)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _flush(self):
        self._timer = None
        paths, self._pending = self._pending, []
        self._burst_started = None
        if len(paths) > 1:
            log.info("Coalesced %d changes into one reload", len(paths))

        task = asyncio.get_running_loop().create_task(self._reload())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _reload(self):
        self.reloads += 1
        await self.broadcaster.broadcast_reload()

    async def drain(self):
        """Flush a pending burst immediately and wait for in-flight reloads"""
        if self._timer is not None:
            self._cancel_timer()
            self._flush()
        if self._tasks:
            await asyncio.gather(*self._tasks)
