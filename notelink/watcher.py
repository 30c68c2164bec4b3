"""
Change watcher for the note root.

A watchdog observer reports filesystem events on its own thread. Events
for Markdown notes are handed to the asyncio loop, where additions and
edits wait until the file size has stayed the same for a quiet period
before being queued. A single consumer task drains the bounded queue and
passes each typed ChangeEvent to the handler, one at a time.

Moves are reported as a removal of the old path and an addition of the
new one. Nothing is reported for files that already existed when the
watcher started.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .notes import is_note_path

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


@dataclass(frozen=True)
class ChangeEvent:
    """A settled change to one note file."""
    kind: ChangeKind
    path: Path


class WatcherState(str, Enum):
    STOPPED = "stopped"
    WATCHING = "watching"


class _NoteEventHandler(FileSystemEventHandler):
    """Forwards note file events from the observer thread."""

    def __init__(self, root: Path, dispatch: Callable[[ChangeKind, Path, bool], None]):
        super().__init__()
        self._root = root
        self._dispatch = dispatch

    def _note_path(self, raw_path) -> Path | None:
        path = Path(os.fsdecode(raw_path))
        try:
            relative = path.relative_to(self._root)
        except ValueError:
            return None
        return path if is_note_path(relative) else None

    def _forward(self, event: FileSystemEvent, kind: ChangeKind, created: bool = False) -> None:
        if event.is_directory:
            return
        path = self._note_path(event.src_path)
        if path is not None:
            self._dispatch(kind, path, created)

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward(event, ChangeKind.ADDED, created=True)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._forward(event, ChangeKind.CHANGED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._forward(event, ChangeKind.REMOVED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        src = self._note_path(event.src_path)
        if src is not None:
            self._dispatch(ChangeKind.REMOVED, src, False)
        dest = self._note_path(getattr(event, "dest_path", "") or "")
        if dest is not None:
            self._dispatch(ChangeKind.ADDED, dest, True)


class ChangeWatcher:
    """
    Watches a note root and feeds settled changes to an async handler.

    Handler errors are logged and never stop the watcher. After stop()
    returns no event from the old root reaches the handler.
    """

    def __init__(
        self,
        root: Path,
        handler: Callable[[ChangeEvent], Awaitable[None]],
        *,
        observer_factory: Callable[[], object] = Observer,
        quiet_period: float = 0.5,
        poll_interval: float = 0.1,
        queue_size: int = 256,
    ):
        self._root = Path(root)
        self._handler = handler
        self._observer_factory = observer_factory
        self._quiet_period = quiet_period
        self._poll_interval = poll_interval
        self._queue_size = queue_size

        self._state = WatcherState.STOPPED
        self._generation = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._observer = None
        self._queue: asyncio.Queue | None = None
        self._consumer: asyncio.Task | None = None
        self._settling: dict[Path, asyncio.Task] = {}
        self._pending_kind: dict[Path, ChangeKind] = {}
        self._touched: dict[Path, float] = {}
        self._emitters: set[asyncio.Task] = set()

    @property
    def root(self) -> Path:
        return self._root

    @root.setter
    def root(self, value: Path) -> None:
        if self._state is not WatcherState.STOPPED:
            raise RuntimeError("Stop the watcher before changing its root")
        self._root = Path(value)

    @property
    def state(self) -> WatcherState:
        return self._state

    async def start(self) -> bool:
        """
        Begin watching the current root.

        Returns False, after logging, when the root is missing or the
        observer cannot start.
        """
        if self._state is WatcherState.WATCHING:
            return True
        root = self._root
        if not root.is_dir():
            logger.error("Cannot watch %s: not a directory", root)
            return False

        self._loop = asyncio.get_running_loop()
        self._generation += 1
        generation = self._generation

        def dispatch(kind: ChangeKind, path: Path, created: bool) -> None:
            try:
                self._loop.call_soon_threadsafe(self._on_raw_event, generation, kind, path, created)
            except RuntimeError:
                pass  # loop already closed

        try:
            observer = self._observer_factory()
            observer.schedule(_NoteEventHandler(root, dispatch), str(root), recursive=True)
            observer.start()
        except Exception as e:
            logger.error("Failed to start watching %s: %s", root, e)
            return False

        self._observer = observer
        self._queue = asyncio.Queue(maxsize=self._queue_size)
        self._consumer = self._loop.create_task(self._consume(self._queue), name="note-watcher")
        self._state = WatcherState.WATCHING
        logger.info("Watching notes in %s", root)
        return True

    async def stop(self) -> None:
        """
        Stop watching and wait until the watcher is fully closed.

        Pending and queued changes are discarded; a change already being
        handled runs to completion.
        """
        if self._state is WatcherState.STOPPED:
            return
        self._state = WatcherState.STOPPED
        self._generation += 1

        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            await asyncio.to_thread(observer.join, 5.0)

        inflight = list(self._settling.values()) + list(self._emitters)
        for task in inflight:
            task.cancel()
        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)
        self._settling.clear()
        self._pending_kind.clear()
        self._touched.clear()
        self._emitters.clear()

        queue, consumer = self._queue, self._consumer
        self._queue = None
        self._consumer = None
        if queue is not None:
            while not queue.empty():
                queue.get_nowait()
            queue.put_nowait(None)
        if consumer is not None:
            await consumer
        logger.info("Stopped watching %s", self._root)

    async def restart(self, new_root: Path) -> bool:
        """Close the current watch completely, then watch new_root."""
        await self.stop()
        self._root = Path(new_root)
        return await self.start()

    # -- Event flow (loop thread) --

    def _on_raw_event(self, generation: int, kind: ChangeKind, path: Path, created: bool) -> None:
        if generation != self._generation or self._state is not WatcherState.WATCHING:
            return
        if kind is ChangeKind.REMOVED:
            settling = self._settling.pop(path, None)
            if settling is not None:
                settling.cancel()
            self._pending_kind.pop(path, None)
            self._touched.pop(path, None)
            self._emit(ChangeEvent(ChangeKind.REMOVED, path))
            return

        self._touched[path] = self._loop.time()
        if created or path not in self._pending_kind:
            self._pending_kind[path] = ChangeKind.ADDED if created else kind
        if path not in self._settling:
            self._settling[path] = self._loop.create_task(
                self._settle(path), name=f"settle:{path.name}",
            )

    async def _settle(self, path: Path) -> None:
        """Wait until the file stops changing, then queue it."""
        loop = asyncio.get_running_loop()
        last_size = None
        quiet_since = loop.time()
        try:
            while True:
                try:
                    size = path.stat().st_size
                except FileNotFoundError:
                    logger.debug("Note vanished before settling: %s", path)
                    return
                now = loop.time()
                if size != last_size:
                    last_size = size
                    quiet_since = now
                quiet_since = max(quiet_since, self._touched.get(path, quiet_since))
                if now - quiet_since >= self._quiet_period and last_size is not None:
                    break
                await asyncio.sleep(self._poll_interval)
        finally:
            if self._settling.get(path) is asyncio.current_task():
                self._settling.pop(path, None)
        kind = self._pending_kind.pop(path, ChangeKind.CHANGED)
        self._touched.pop(path, None)
        await self._put(ChangeEvent(kind, path))

    def _emit(self, event: ChangeEvent) -> None:
        task = self._loop.create_task(self._put(event), name=f"emit:{event.kind.value}")
        self._emitters.add(task)
        task.add_done_callback(self._emitters.discard)

    async def _put(self, event: ChangeEvent) -> None:
        queue = self._queue
        if queue is not None:
            await queue.put(event)

    async def _consume(self, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            if event is None:
                break
            try:
                await self._handler(event)
            except Exception as e:
                logger.warning("Failed to handle %s for %s: %s", event.kind.value, event.path, e)
