"""File system watcher feeding debounced change batches to the graph service."""

import asyncio
import logging
import threading
import time
from typing import Awaitable, Callable, Optional, Set, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .discovery import FileDiscovery

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Set[str], Set[str]], Awaitable[None]]


class SourceFileEventHandler(FileSystemEventHandler):
    """Collects changed source files as workspace-relative paths."""

    def __init__(self, discovery: FileDiscovery):
        """Initialize event handler.

        Args:
            discovery: Decides which paths are source files of the workspace
        """
        super().__init__()
        self.discovery = discovery

        # Observer callbacks run on the watchdog thread
        self._lock = threading.Lock()
        self.modified_files: Set[str] = set()
        self.deleted_files: Set[str] = set()
        self.last_change_time = 0.0

    def _source_path(self, file_path) -> Optional[str]:
        if isinstance(file_path, bytes):
            file_path = file_path.decode("utf-8", errors="replace")
        rel_path = self.discovery.relative_path(file_path)
        if rel_path is None or not self.discovery.is_source_file(rel_path):
            return None
        return rel_path

    def _record(self, rel_path: str, deleted: bool) -> None:
        with self._lock:
            if deleted:
                self.modified_files.discard(rel_path)
                self.deleted_files.add(rel_path)
            else:
                self.deleted_files.discard(rel_path)
                self.modified_files.add(rel_path)
            self.last_change_time = time.time()

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        rel_path = self._source_path(event.src_path)
        if rel_path:
            logger.debug(f"File modified: {rel_path}")
            self._record(rel_path, deleted=False)

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        rel_path = self._source_path(event.src_path)
        if rel_path:
            logger.debug(f"File created: {rel_path}")
            self._record(rel_path, deleted=False)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        rel_path = self._source_path(event.src_path)
        if rel_path:
            logger.debug(f"File deleted: {rel_path}")
            self._record(rel_path, deleted=True)

    def on_moved(self, event: FileSystemEvent) -> None:
        """A move is a delete of the source plus a create of the destination."""
        if event.is_directory:
            return
        src_path = self._source_path(event.src_path)
        if src_path:
            logger.debug(f"File moved from: {src_path}")
            self._record(src_path, deleted=True)
        dest_path = self._source_path(getattr(event, "dest_path", "") or "")
        if dest_path:
            logger.debug(f"File moved to: {dest_path}")
            self._record(dest_path, deleted=False)

    def get_pending_changes(self) -> Tuple[Set[str], Set[str]]:
        """Get pending changes and clear buffers.

        Returns:
            Tuple of (modified_files, deleted_files)
        """
        with self._lock:
            modified = self.modified_files.copy()
            deleted = self.deleted_files.copy()
            self.modified_files.clear()
            self.deleted_files.clear()
        return modified, deleted

    def has_pending_changes(self) -> bool:
        with self._lock:
            return bool(self.modified_files or self.deleted_files)

    def time_since_last_change(self) -> float:
        return time.time() - self.last_change_time


class WorkspaceWatcher:
    """Watches a workspace and hands debounced change batches to a callback."""

    def __init__(
        self,
        discovery: FileDiscovery,
        on_change_callback: ChangeCallback,
        debounce_seconds: float = 2.0,
    ):
        """Initialize the watcher.

        Args:
            discovery: Workspace root and source file filter
            on_change_callback: Async callback receiving (modified, deleted) paths
            debounce_seconds: Quiet period before a batch is delivered
        """
        self.discovery = discovery
        self.on_change_callback = on_change_callback
        self.debounce_seconds = debounce_seconds

        self.event_handler = SourceFileEventHandler(discovery)
        self.observer = Observer()
        self.observer.schedule(self.event_handler, str(discovery.root), recursive=True)

        self._running = False
        self._debounce_task: Optional[asyncio.Task] = None

        logger.info(f"Initialized file watcher for: {discovery.root}")

    def start(self) -> None:
        if not self._running:
            self.observer.start()
            self._running = True
            logger.info(f"Started watching: {self.discovery.root}")

    def stop(self) -> None:
        if self._running:
            self.observer.stop()
            self.observer.join(timeout=5.0)
            self._running = False
            logger.info("Stopped file watcher")

    def is_running(self) -> bool:
        return self._running

    async def flush(self) -> bool:
        """Deliver pending changes if the debounce window has passed.

        Returns:
            True when a batch was delivered
        """
        if not self.event_handler.has_pending_changes():
            return False
        if self.event_handler.time_since_last_change() < self.debounce_seconds:
            return False

        modified, deleted = self.event_handler.get_pending_changes()
        if not modified and not deleted:
            return False

        logger.info(f"Processing changes: {len(modified)} modified, {len(deleted)} deleted")
        try:
            await self.on_change_callback(modified, deleted)
        except Exception as e:
            logger.error(f"Error processing file changes: {e}", exc_info=True)
        return True

    async def start_debounce_processor(self) -> None:
        """Poll for debounced batches until the watcher stops."""
        logger.info("Started debounce processor")
        while self._running:
            try:
                await self.flush()
                await asyncio.sleep(0.5)
            except asyncio.CancelledError:
                logger.info("Debounce processor cancelled")
                break

    async def run_async(self) -> None:
        """Run the watcher until stopped or cancelled."""
        self.start()
        self._debounce_task = asyncio.create_task(self.start_debounce_processor())

        try:
            while self._running:
                await asyncio.sleep(1.0)
        finally:
            self._debounce_task.cancel()
            try:
                await self._debounce_task
            except asyncio.CancelledError:
                pass
            self.stop()
