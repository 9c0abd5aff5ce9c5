"""Graph service: wires the store, loaders and watcher together."""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Set

from .settings import Settings
from .graph_db.graph_store import GraphStore, GraphStoreError
from .graph_db.kuzu_client import KuzuGraphStore
from .graph_db.neo4j_client import Neo4jGraphStore
from .indexer.bulk_loader import BulkLoader
from .indexer.discovery import FileDiscovery
from .indexer.file_watcher import WorkspaceWatcher
from .indexer.models import LoadReport
from .indexer.source_model import SourceModelBuilder, WorkspaceContext
from .indexer.synchronizer import GraphSynchronizer
from .tools.context_tool import DependencyContextTool

logger = logging.getLogger(__name__)


def create_graph_store(settings: Settings) -> GraphStore:
    """Instantiate the configured backend (not yet connected)."""
    if settings.graph_backend == "neo4j":
        return Neo4jGraphStore(
            uri=settings.neo4j_uri,
            user=settings.neo4j_user,
            password=settings.neo4j_password,
            database=settings.neo4j_database,
        )
    if settings.graph_backend != "kuzu":
        raise ValueError(f"Unknown graph backend: {settings.graph_backend}")

    db_path = Path(settings.graph_db_path)
    if not db_path.is_absolute():
        db_path = Path(settings.workspace_path) / db_path
    return KuzuGraphStore(str(db_path), reset=settings.reset_on_start)


class GraphService:
    """Keeps the code graph of one workspace up to date."""

    def __init__(self, settings: Settings, store: Optional[GraphStore] = None):
        self.settings = settings
        self.store = store or create_graph_store(settings)
        self.context = WorkspaceContext(settings.workspace_path, read_from_disk=True)
        self.discovery = FileDiscovery(
            settings.workspace_path,
            extensions=settings.source_extensions,
            exclude_patterns=settings.exclude_patterns,
        )
        self.builder = SourceModelBuilder()
        self.synchronizer = GraphSynchronizer(self.store, self.builder)
        self.loader = BulkLoader(self.store, self.builder, self.synchronizer)
        self.context_tool = DependencyContextTool(self.store, self.context)
        self.watcher: Optional[WorkspaceWatcher] = None

    async def start(self) -> None:
        """Connect to the graph database.

        Raises:
            GraphConnectionError: The store is unavailable (reported to the operator)
        """
        logger.info(f"Starting graph service for {self.discovery.root} ({self.store.backend})")
        await self.store.connect()

    async def initial_load(self) -> LoadReport:
        """Bulk load the workspace unless the graph is already populated."""
        return await self.loader.load_directory(self.discovery, self.context)

    async def handle_file_changes(self, modified_files: Set[str], deleted_files: Set[str]) -> None:
        """Apply a batch of workspace changes to the graph.

        Args:
            modified_files: Workspace-relative paths created or modified
            deleted_files: Workspace-relative paths removed
        """
        logger.info(
            f"Handling changes: {len(modified_files)} modified, {len(deleted_files)} deleted"
        )

        for path in sorted(deleted_files):
            self.context.remove(path)
            try:
                await self.store.remove_file(path)
            except GraphStoreError as e:
                logger.error(f"Error removing {path} from the graph: {e}")

        for path in sorted(modified_files):
            file_path = self.discovery.root / path
            try:
                content = await asyncio.to_thread(file_path.read_text, encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning(f"Skipping {path}, could not read it: {e}")
                continue
            try:
                await self.synchronizer.update_file(path, content, self.context)
            except Exception as e:
                logger.error(f"Error updating {path}: {e}", exc_info=True)

    async def watch(self) -> None:
        """Watch the workspace and apply changes until cancelled."""
        self.watcher = WorkspaceWatcher(
            self.discovery,
            self.handle_file_changes,
            debounce_seconds=self.settings.watcher_debounce,
        )
        await self.watcher.run_async()

    async def close(self) -> None:
        if self.watcher is not None:
            self.watcher.stop()
        await self.store.close()
