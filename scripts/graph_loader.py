#!/usr/bin/env python3
"""Standalone graph loader - builds the code graph of a workspace, optionally keeps watching."""

import asyncio
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


async def main() -> int:
    """Main loader function."""
    from shiftgraph.graph_db.graph_store import GraphConnectionError
    from shiftgraph.service import GraphService
    from shiftgraph.settings import Settings, setup_logging

    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_file)

    workspace = Path(settings.workspace_path)
    if not workspace.is_dir():
        logger.error(f"Workspace path does not exist: {workspace}")
        return 1

    logger.info(f"Starting graph loader for workspace: {workspace.resolve()}")
    logger.info(f"Backend: {settings.graph_backend}")
    logger.info(f"File watcher: {settings.enable_watcher}")

    service = GraphService(settings)
    try:
        await service.start()
    except GraphConnectionError as e:
        logger.error(f"Could not open the graph database: {e}")
        return 1

    try:
        report = await service.initial_load()
        if report.skipped:
            logger.info("Existing graph kept (set GRAPH_RESET_ON_START=true to rebuild)")

        stats = await service.store.get_statistics()
        logger.info(
            f"Graph: {stats['files']} files, {stats['functions']} functions, "
            f"{stats['has_function']} HasFunction edges, {stats['calls']} Calls edges"
        )

        if settings.enable_watcher:
            logger.info("Watching for changes (Ctrl+C to stop)")
            await service.watch()
        return 0

    except Exception as e:
        logger.error(f"Fatal error during graph load: {e}", exc_info=True)
        return 1
    finally:
        await service.close()


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)
