"""Bulk Loader: first-run population of an empty graph from the whole workspace."""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from ..graph_db.graph_store import GraphStore
from .discovery import FileDiscovery
from .models import LoadReport, SourceFile
from .source_model import SourceModelBuilder, WorkspaceContext
from .synchronizer import GraphSynchronizer

logger = logging.getLogger(__name__)


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


async def read_workspace_files(
    root: str, paths: List[str], context: Optional[WorkspaceContext] = None
) -> List[SourceFile]:
    """Read files concurrently; unreadable files are logged and dropped.

    Args:
        root: Workspace root
        paths: Workspace-relative paths
        context: Optional context to record the contents in

    Returns:
        Source files in the order of `paths`
    """
    root_path = Path(root)

    async def read(rel_path: str) -> Optional[SourceFile]:
        try:
            content = await asyncio.to_thread(_read_text, root_path / rel_path)
        except OSError as e:
            logger.warning(f"Could not read {rel_path}: {e}")
            return None
        return SourceFile(path=rel_path, content=content)

    results = await asyncio.gather(*(read(rel_path) for rel_path in paths))
    files = [source_file for source_file in results if source_file is not None]
    if context is not None:
        context.update(files)
    return files


class BulkLoader:
    """Builds one whole-program model and synchronizes every file against it."""

    def __init__(
        self,
        store: GraphStore,
        builder: Optional[SourceModelBuilder] = None,
        synchronizer: Optional[GraphSynchronizer] = None,
    ):
        self.store = store
        self.builder = builder or SourceModelBuilder()
        self.synchronizer = synchronizer or GraphSynchronizer(store, self.builder)

    async def is_populated(self) -> bool:
        return await self.store.count_files() > 0

    async def load_workspace(self, files: List[SourceFile]) -> LoadReport:
        """Populate the store from (path, content) pairs.

        Does nothing when the store already holds File nodes. A failure to
        count files propagates to the caller.
        """
        if await self.is_populated():
            logger.info("Graph already populated, skipping bulk load")
            return LoadReport(total_files=len(files), skipped=True)
        return await self._synchronize_all(files)

    async def load_directory(self, discovery: FileDiscovery, context: WorkspaceContext) -> LoadReport:
        """Discover, read and load the workspace (first run only)."""
        if await self.is_populated():
            logger.info("Graph already populated, skipping bulk load")
            return LoadReport(skipped=True)

        paths = discovery.discover()
        files = await read_workspace_files(str(discovery.root), paths, context)
        return await self._synchronize_all(files)

    async def _synchronize_all(self, files: List[SourceFile]) -> LoadReport:
        report = LoadReport(total_files=len(files))
        program = self.builder.build(files)

        logger.info(f"Processing {len(files)} files...")
        for idx, source_file in enumerate(files, 1):
            unit = program.get_source_file(source_file.path)
            try:
                logger.debug(f"[{idx}/{len(files)}] {source_file.path}")
                sync_report = await self.synchronizer.synchronize(program, unit)
            except Exception as e:
                logger.error(f"Error synchronizing {source_file.path}: {e}", exc_info=True)
                report.failed_files.append(source_file.path)
                continue

            report.synchronized += 1
            report.functions += sync_report.functions
            report.calls += sync_report.calls
            if sync_report.failures:
                report.failed_files.append(source_file.path)

        logger.info("=" * 80)
        logger.info("Bulk load complete")
        logger.info(f"Total files: {report.total_files}")
        logger.info(f"Synchronized: {report.synchronized}")
        logger.info(f"Functions: {report.functions}")
        logger.info(f"Calls: {report.calls}")
        logger.info(f"Files with failures: {len(report.failed_files)}")
        logger.info("=" * 80)

        if report.failed_files:
            logger.warning(f"{len(report.failed_files)} files had failures:")
            for failed_file in report.failed_files:
                logger.warning(f"  - {failed_file}")
        return report
