"""
Filesystem watcher
Wraps a watchdog observer and exposes changes as an async event stream
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, List, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from liveserver.errors import WatcherError

log = logging.getLogger(__name__)


class ChangeKind(Enum):
    WRITE = "write"
    CREATE = "create"
    REMOVE = "remove"
    RENAME = "rename"
    METADATA_ONLY = "metadata"


@dataclass(frozen=True)
class ChangeEvent:
    """Single filesystem change"""
    path: str
    kind: ChangeKind


def translate(event: FileSystemEvent) -> List[ChangeEvent]:
    """Map a watchdog event to change events

    A move becomes RENAME for the old path plus CREATE for the new one.
    Directory modifications (child list / mtime updates) and open/close
    notifications carry no content change and map to METADATA_ONLY.
    """
    src = os.fsdecode(event.src_path)

    if event.event_type == EVENT_TYPE_MOVED:
        dest = os.fsdecode(event.dest_path)
        return [ChangeEvent(src, ChangeKind.RENAME), ChangeEvent(dest, ChangeKind.CREATE)]
    if event.event_type == EVENT_TYPE_CREATED:
        return [ChangeEvent(src, ChangeKind.CREATE)]
    if event.event_type == EVENT_TYPE_DELETED:
        return [ChangeEvent(src, ChangeKind.REMOVE)]
    if event.event_type == EVENT_TYPE_MODIFIED and not event.is_directory:
        return [ChangeEvent(src, ChangeKind.WRITE)]
    return [ChangeEvent(src, ChangeKind.METADATA_ONLY)]


def list_directories(root: Path) -> List[Path]:
    """All directories under root, root included"""
    directories = [root]
    for dirpath, dirnames, _ in os.walk(root):
        directories.extend(Path(dirpath) / name for name in dirnames)
    return directories


class _QueueHandler(FileSystemEventHandler):
    """Forwards observer-thread events onto the event loop"""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
        self._loop = loop
        self._queue = queue

    def on_any_event(self, event: FileSystemEvent):
        for change in translate(event):
            try:
                self._loop.call_soon_threadsafe(self._queue.put_nowait, change)
            except RuntimeError:
                # Loop closed during shutdown
                return


class DirectoryWatcher:
    """
    Recursive watch over the served root
    Produces a lazy, non-restartable stream of ChangeEvent
    """

    # Seconds between liveness checks of the observer thread
    POLL_INTERVAL = 1.0

    def __init__(self, root: Path):
        self.root = Path(root)
        self._observer: Optional[Observer] = None
        self._queue: Optional[asyncio.Queue] = None
        self._consumed = False

    @property
    def is_running(self) -> bool:
        # The emitter thread ends on its own when the watched root disappears
        return (
            self._observer is not None
            and self._observer.is_alive()
            and all(emitter.is_alive() for emitter in self._observer.emitters)
        )

    def start(self):
        """
        Subscribe to changes under root
        Raises WatcherError if the native watch cannot be created
        """
        if self._observer is not None:
            raise WatcherError("Watcher already started")
        if not self.root.is_dir():
            raise WatcherError(f"Cannot watch {self.root}: not a directory")

        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        directories = list_directories(self.root)

        observer = Observer()
        try:
            # Recursive watch also picks up directories created later
            observer.schedule(_QueueHandler(loop, self._queue), str(self.root), recursive=True)
            observer.start()
        except OSError as e:
            raise WatcherError(f"Cannot watch {self.root}: {e}") from e

        self._observer = observer
        log.info("Watching %d directories under %s", len(directories), self.root)

    def stop(self):
        """Stop the observer thread"""
        if self._observer is None:
            return
        observer, self._observer = self._observer, None
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=5)

    async def events(self) -> AsyncIterator[ChangeEvent]:
        """
        Yield change events as they arrive
        Ends only by raising WatcherError when the observer dies
        """
        if self._queue is None:
            raise WatcherError("Watcher not started")
        if self._consumed:
            raise WatcherError("Event stream already consumed")
        self._consumed = True

        while True:
            try:
                yield await asyncio.wait_for(self._queue.get(), timeout=self.POLL_INTERVAL)
            except asyncio.TimeoutError:
                if not self.is_running:
                    raise WatcherError(f"Watch on {self.root} was lost")
