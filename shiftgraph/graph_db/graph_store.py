"""Graph Store: File/Function nodes with HasFunction and Calls edges.

Backends implement `_run` (execute one Cypher statement with bound
parameters, return rows as dicts). Everything else lives here so the Kùzu and
Neo4j stores behave identically.
"""

import logging
from typing import Any, Dict, List, Optional

from ..indexer.models import CalleeRecord, FunctionRecord
from . import queries

logger = logging.getLogger(__name__)


class GraphStoreError(Exception):
    """A graph query, upsert or delete failed."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        message = f"{operation} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class GraphConnectionError(GraphStoreError):
    """The graph database could not be opened or reached."""


class GraphStore:
    """Async graph store API shared by all backends."""

    backend = "abstract"
    schema: List[str] = []

    async def connect(self) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError

    async def _run(self, query: str, parameters: Dict[str, Any]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def _execute(
        self, operation: str, query: str, parameters: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        parameters = parameters or {}
        logger.debug(f"[{self.backend}] {operation}: {queries.render_query(query, parameters)}")
        try:
            return await self._run(query, parameters)
        except GraphStoreError:
            raise
        except Exception as e:
            logger.error(f"[{self.backend}] {operation} failed: {e}")
            raise GraphStoreError(operation, e) from e

    async def initialize(self) -> None:
        """Create the schema (idempotent)."""
        for statement in self.schema:
            await self._execute("initialize", statement)
        logger.info(f"[{self.backend}] Graph schema ready")

    async def upsert_file(self, path: str) -> None:
        await self._execute("upsert_file", queries.UPSERT_FILE, {"path": path})

    async def upsert_function(
        self,
        function_id: str,
        name: str,
        start_line: int,
        start_column: int,
        end_line: int,
        end_column: int,
    ) -> None:
        """Merge a Function node by id and (re)set its attributes."""
        await self._execute(
            "upsert_function",
            queries.UPSERT_FUNCTION,
            {
                "id": function_id,
                "name": name,
                "startLine": start_line,
                "startColumn": start_column,
                "endLine": end_line,
                "endColumn": end_column,
            },
        )

    async def upsert_has_function(self, file_path: str, function_id: str) -> None:
        await self._execute(
            "upsert_has_function",
            queries.UPSERT_HAS_FUNCTION,
            {"path": file_path, "functionId": function_id},
        )

    async def upsert_calls(self, caller_id: str, callee_id: str) -> None:
        await self._execute(
            "upsert_calls",
            queries.UPSERT_CALLS,
            {"callerId": caller_id, "calleeId": callee_id},
        )

    async def count_files(self) -> int:
        rows = await self._execute("count_files", queries.COUNT_FILES)
        return int(rows[0]["count"]) if rows else 0

    async def list_files(self) -> List[str]:
        rows = await self._execute("list_files", queries.LIST_FILES)
        return [row["path"] for row in rows]

    async def functions_of_file(self, path: str) -> List[FunctionRecord]:
        """Function records linked to a file via HasFunction."""
        rows = await self._execute("functions_of_file", queries.FUNCTIONS_OF_FILE, {"path": path})
        return [
            FunctionRecord(
                id=row["id"],
                name=row["name"],
                start_line=int(row["startLine"]),
                start_column=int(row["startColumn"]),
                end_line=int(row["endLine"]),
                end_column=int(row["endColumn"]),
            )
            for row in rows
        ]

    async def callees_of(self, function_id: str) -> List[CalleeRecord]:
        """Callees of a function declared in a different file than the caller."""
        rows = await self._execute("callees_of", queries.CALLEES_OF, {"functionId": function_id})
        return [
            CalleeRecord(
                id=row["id"],
                name=row["name"],
                path=row["path"],
                start_line=int(row["startLine"]),
                end_line=int(row["endLine"]),
            )
            for row in rows
        ]

    async def delete_function_and_edges(self, function_id: str) -> None:
        """Remove a Function node, its HasFunction edge and every Calls edge touching it."""
        await self._execute("delete_function_and_edges", queries.DELETE_FUNCTION, {"functionId": function_id})

    async def remove_file(self, path: str) -> int:
        """Remove a File node together with its functions and their edges.

        Returns:
            Number of Function nodes removed
        """
        functions = await self.functions_of_file(path)
        await self._execute("remove_file", queries.DELETE_FILE_FUNCTIONS, {"path": path})
        await self._execute("remove_file", queries.DELETE_FILE, {"path": path})
        logger.info(f"[{self.backend}] Removed {path} and {len(functions)} functions")
        return len(functions)

    async def get_statistics(self) -> Dict[str, int]:
        """Node and edge counts."""
        stats = {}
        for key, query in (
            ("files", queries.COUNT_FILES),
            ("functions", queries.COUNT_FUNCTIONS),
            ("has_function", queries.COUNT_HAS_FUNCTION),
            ("calls", queries.COUNT_CALLS),
        ):
            rows = await self._execute("get_statistics", query)
            stats[key] = int(rows[0]["count"]) if rows else 0
        return stats

    async def clear(self) -> None:
        await self._execute("clear", queries.CLEAR_GRAPH)
        logger.info(f"[{self.backend}] Cleared graph")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
