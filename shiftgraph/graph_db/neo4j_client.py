"""Neo4j backend for the code graph.

Nodes:
- File: a source file, keyed by workspace-relative path
- Function: a function-like declaration, keyed by "<path>:<offset>"

Relationships:
- HasFunction: File declares Function
- Calls: Function calls Function
"""

import logging
from typing import Any, Dict, List, Optional

from neo4j import AsyncGraphDatabase
from neo4j.exceptions import AuthError, ServiceUnavailable

from . import queries
from .graph_store import GraphConnectionError, GraphStore

logger = logging.getLogger(__name__)


class Neo4jGraphStore(GraphStore):
    """Graph store backed by a Neo4j server."""

    backend = "neo4j"
    schema = queries.NEO4J_SCHEMA

    def __init__(self, uri: str, user: str, password: str, database: Optional[str] = None):
        """Initialize Neo4j settings (the driver is created by `connect`).

        Args:
            uri: Neo4j connection URI (e.g., "bolt://localhost:7687")
            user: Neo4j username
            password: Neo4j password
            database: Database name, or None for the server default
        """
        self.uri = uri
        self.user = user
        self.password = password
        self.database = database
        self.driver = None

    async def connect(self) -> None:
        """Create the driver, verify connectivity and create constraints.

        Raises:
            GraphConnectionError: If the server is unreachable or rejects the credentials
        """
        try:
            self.driver = AsyncGraphDatabase.driver(self.uri, auth=(self.user, self.password))
            await self.driver.verify_connectivity()
            logger.info(f"Connected to Neo4j at {self.uri}")
        except (ServiceUnavailable, AuthError) as e:
            logger.error(f"Failed to connect to Neo4j: {e}")
            raise GraphConnectionError("connect", e) from e

        await self.initialize()

    async def close(self) -> None:
        """Close the Neo4j connection."""
        if self.driver:
            await self.driver.close()
            self.driver = None
            logger.info("Neo4j connection closed")

    async def verify_connectivity(self) -> bool:
        """Verify connection to Neo4j.

        Returns:
            True if connection is successful, False otherwise
        """
        try:
            rows = await self._run("RETURN 1 AS result", {})
            return bool(rows) and rows[0]["result"] == 1
        except Exception as e:
            logger.error(f"Neo4j connectivity check failed: {e}")
            return False

    async def _run(self, query: str, parameters: Dict[str, Any]) -> List[Dict[str, Any]]:
        if self.driver is None:
            raise GraphConnectionError("query", RuntimeError("driver is not connected"))

        async with self.driver.session(database=self.database) as session:
            result = await session.run(query, parameters)
            return [record.data() async for record in result]
