"""Cypher text shared by the graph backends.

Values always travel as bound parameters. `render_query` inlines them (through
`escape_cypher_string`) only to produce readable query text for debug logs.
"""

import re
from typing import Any, Dict, Optional


# Kùzu schema (tables must exist before any MERGE)
KUZU_SCHEMA = [
    "CREATE NODE TABLE IF NOT EXISTS File(path STRING, PRIMARY KEY (path))",
    "CREATE NODE TABLE IF NOT EXISTS Function("
    "id STRING, name STRING, startLine INT64, startColumn INT64, "
    "endLine INT64, endColumn INT64, PRIMARY KEY (id))",
    "CREATE REL TABLE IF NOT EXISTS HasFunction(FROM File TO Function)",
    "CREATE REL TABLE IF NOT EXISTS Calls(FROM Function TO Function)",
]

# Neo4j is schemaless; keys are enforced with uniqueness constraints
NEO4J_SCHEMA = [
    "CREATE CONSTRAINT file_path IF NOT EXISTS FOR (f:File) REQUIRE f.path IS UNIQUE",
    "CREATE CONSTRAINT function_id IF NOT EXISTS FOR (fn:Function) REQUIRE fn.id IS UNIQUE",
]

UPSERT_FILE = "MERGE (f:File {path: $path})"

UPSERT_FUNCTION = """
MERGE (fn:Function {id: $id})
ON CREATE SET fn.name = $name, fn.startLine = $startLine, fn.startColumn = $startColumn,
              fn.endLine = $endLine, fn.endColumn = $endColumn
ON MATCH SET fn.name = $name, fn.startLine = $startLine, fn.startColumn = $startColumn,
             fn.endLine = $endLine, fn.endColumn = $endColumn
"""

UPSERT_HAS_FUNCTION = """
MATCH (f:File {path: $path}), (fn:Function {id: $functionId})
MERGE (f)-[:HasFunction]->(fn)
"""

UPSERT_CALLS = """
MATCH (caller:Function {id: $callerId}), (callee:Function {id: $calleeId})
MERGE (caller)-[:Calls]->(callee)
"""

COUNT_FILES = "MATCH (f:File) RETURN count(f) AS count"

LIST_FILES = "MATCH (f:File) RETURN f.path AS path ORDER BY path"

FUNCTIONS_OF_FILE = """
MATCH (f:File {path: $path})-[:HasFunction]->(fn:Function)
RETURN fn.id AS id, fn.name AS name,
       fn.startLine AS startLine, fn.startColumn AS startColumn,
       fn.endLine AS endLine, fn.endColumn AS endColumn
ORDER BY startLine, startColumn, id
"""

# Same-file callees are excluded: the caller's own file content already has them
CALLEES_OF = """
MATCH (callerFile:File)-[:HasFunction]->(caller:Function {id: $functionId})-[:Calls]->(callee:Function),
      (calleeFile:File)-[:HasFunction]->(callee)
WHERE calleeFile.path <> callerFile.path
RETURN DISTINCT callee.id AS id, callee.name AS name, calleeFile.path AS path,
       callee.startLine AS startLine, callee.endLine AS endLine
ORDER BY path, startLine
"""

# DETACH removes the HasFunction edge and Calls edges in both directions
DELETE_FUNCTION = "MATCH (fn:Function {id: $functionId}) DETACH DELETE fn"

DELETE_FILE_FUNCTIONS = """
MATCH (f:File {path: $path})-[:HasFunction]->(fn:Function)
DETACH DELETE fn
"""

DELETE_FILE = "MATCH (f:File {path: $path}) DETACH DELETE f"

COUNT_FUNCTIONS = "MATCH (fn:Function) RETURN count(fn) AS count"
COUNT_HAS_FUNCTION = "MATCH (:File)-[r:HasFunction]->(:Function) RETURN count(r) AS count"
COUNT_CALLS = "MATCH (:Function)-[r:Calls]->(:Function) RETURN count(r) AS count"

CLEAR_GRAPH = "MATCH (n) DETACH DELETE n"


_PARAMETER_PATTERN = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def escape_cypher_string(value: str) -> str:
    """Escape a value for interpolation inside a single-quoted Cypher literal.

    Newlines collapse to spaces, single quotes are doubled, backslashes and
    backticks are escaped, and the result is trimmed.
    """
    return (
        value.replace("\r\n", " ")
        .replace("\n", " ")
        .replace("\r", " ")
        .replace("'", "''")
        .replace("\\", "\\\\")
        .replace("`", "\\`")
        .strip()
    )


def _literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return f"'{escape_cypher_string(str(value))}'"


def render_query(query: str, parameters: Optional[Dict[str, Any]] = None) -> str:
    """Inline parameters into a query for logging.

    Args:
        query: Cypher text with $name placeholders
        parameters: Bound parameter values

    Returns:
        Single-line query text with escaped literals
    """
    parameters = parameters or {}

    def substitute(match: "re.Match") -> str:
        name = match.group(1)
        if name not in parameters:
            return match.group(0)
        return _literal(parameters[name])

    return _PARAMETER_PATTERN.sub(substitute, _WHITESPACE_PATTERN.sub(" ", query).strip())
