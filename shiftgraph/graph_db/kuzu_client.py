"""Embedded Kùzu backend for the code graph."""

import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

import kuzu

from . import queries
from .graph_store import GraphConnectionError, GraphStore

logger = logging.getLogger(__name__)


class KuzuGraphStore(GraphStore):
    """Graph store backed by an on-disk Kùzu database."""

    backend = "kuzu"
    schema = queries.KUZU_SCHEMA

    def __init__(self, db_path: str, reset: bool = False, max_concurrent_queries: int = 4):
        """Initialize the store (the database is opened by `connect`).

        Args:
            db_path: Database location (Kùzu creates it)
            reset: Delete any existing database before opening
            max_concurrent_queries: Worker threads of the async connection
        """
        self.db_path = Path(db_path)
        self.reset = reset
        self.max_concurrent_queries = max_concurrent_queries
        self._db: Optional[kuzu.Database] = None
        self._conn: Optional[kuzu.AsyncConnection] = None

    def _wipe(self) -> None:
        # depending on the Kùzu release the database is a directory or a file + WAL
        for path in (self.db_path, Path(f"{self.db_path}.wal")):
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
        logger.info(f"Reset Kùzu database at {self.db_path}")

    async def connect(self) -> None:
        """Open the database and create the schema.

        Raises:
            GraphConnectionError: If the database cannot be opened
        """
        try:
            if self.reset:
                self._wipe()
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = kuzu.Database(str(self.db_path))
            self._conn = kuzu.AsyncConnection(self._db, max_concurrent_queries=self.max_concurrent_queries)
        except Exception as e:
            logger.error(f"Failed to open Kùzu database at {self.db_path}: {e}")
            raise GraphConnectionError("connect", e) from e

        logger.info(f"Opened Kùzu database at {self.db_path}")
        await self.initialize()

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        if self._db is not None:
            self._db.close()
            self._db = None
            logger.info("Kùzu database closed")

    async def _run(self, query: str, parameters: Dict[str, Any]) -> List[Dict[str, Any]]:
        if self._conn is None:
            raise GraphConnectionError("query", RuntimeError("database is not open"))

        results = await self._conn.execute(query, parameters)
        # multi-statement queries return one result per statement
        if not isinstance(results, list):
            results = [results]

        # a QueryResult must not outlive the Database it came from
        try:
            result = results[-1]
            columns = result.get_column_names()
            rows = []
            while result.has_next():
                rows.append(dict(zip(columns, result.get_next())))
            return rows
        finally:
            for result in results:
                result.close()
