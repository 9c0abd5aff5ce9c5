"""Shared fixtures: an in-memory graph store with MATCH/MERGE semantics."""

from typing import Dict, List, Optional, Set, Tuple

import pytest

from shiftgraph.graph_db.graph_store import GraphConnectionError, GraphStore, GraphStoreError
from shiftgraph.indexer.models import CalleeRecord, FunctionRecord, SourceFile
from shiftgraph.indexer.source_model import SourceModelBuilder


class InMemoryGraphStore(GraphStore):
    """Graph store double.

    Edges are only created when both endpoints exist, like the MATCH ... MERGE
    queries of the real backends. Operations named in `fail_on` raise
    GraphStoreError (GraphConnectionError for "connect").
    """

    backend = "memory"

    def __init__(self):
        self.files: Set[str] = set()
        self.functions: Dict[str, dict] = {}
        self.has_function: Set[Tuple[str, str]] = set()
        self.calls: Set[Tuple[str, str]] = set()
        self.fail_on: Set[str] = set()
        self.operations: List[str] = []
        self.connected = False

    def _check(self, operation: str) -> None:
        self.operations.append(operation)
        if operation in self.fail_on:
            error = GraphConnectionError if operation == "connect" else GraphStoreError
            raise error(operation, RuntimeError("injected failure"))

    async def connect(self) -> None:
        self._check("connect")
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def upsert_file(self, path: str) -> None:
        self._check("upsert_file")
        self.files.add(path)

    async def upsert_function(self, function_id, name, start_line, start_column, end_line, end_column):
        self._check("upsert_function")
        self.functions[function_id] = {
            "name": name,
            "start_line": start_line,
            "start_column": start_column,
            "end_line": end_line,
            "end_column": end_column,
        }

    async def upsert_has_function(self, file_path: str, function_id: str) -> None:
        self._check("upsert_has_function")
        if file_path in self.files and function_id in self.functions:
            self.has_function.add((file_path, function_id))

    async def upsert_calls(self, caller_id: str, callee_id: str) -> None:
        self._check("upsert_calls")
        if caller_id in self.functions and callee_id in self.functions:
            self.calls.add((caller_id, callee_id))

    async def count_files(self) -> int:
        self._check("count_files")
        return len(self.files)

    async def list_files(self) -> List[str]:
        self._check("list_files")
        return sorted(self.files)

    async def functions_of_file(self, path: str) -> List[FunctionRecord]:
        self._check("functions_of_file")
        records = [
            FunctionRecord(id=function_id, **self.functions[function_id])
            for file_path, function_id in self.has_function
            if file_path == path
        ]
        return sorted(records, key=lambda r: (r.start_line, r.start_column, r.id))

    async def callees_of(self, function_id: str) -> List[CalleeRecord]:
        self._check("callees_of")
        caller_file = self.file_of(function_id)
        callees = []
        for caller, callee in sorted(self.calls):
            if caller != function_id:
                continue
            callee_file = self.file_of(callee)
            if caller_file is None or callee_file is None or callee_file == caller_file:
                continue
            data = self.functions[callee]
            callees.append(
                CalleeRecord(
                    id=callee,
                    name=data["name"],
                    path=callee_file,
                    start_line=data["start_line"],
                    end_line=data["end_line"],
                )
            )
        return callees

    async def delete_function_and_edges(self, function_id: str) -> None:
        self._check("delete_function_and_edges")
        self.functions.pop(function_id, None)
        self.has_function = {edge for edge in self.has_function if edge[1] != function_id}
        self.calls = {edge for edge in self.calls if function_id not in edge}

    async def remove_file(self, path: str) -> int:
        self._check("remove_file")
        function_ids = [function_id for file_path, function_id in self.has_function if file_path == path]
        for function_id in function_ids:
            self.functions.pop(function_id, None)
            self.calls = {edge for edge in self.calls if function_id not in edge}
        self.has_function = {edge for edge in self.has_function if edge[0] != path}
        self.files.discard(path)
        return len(function_ids)

    async def get_statistics(self) -> Dict[str, int]:
        self._check("get_statistics")
        return {
            "files": len(self.files),
            "functions": len(self.functions),
            "has_function": len(self.has_function),
            "calls": len(self.calls),
        }

    async def clear(self) -> None:
        self._check("clear")
        self.files.clear()
        self.functions.clear()
        self.has_function.clear()
        self.calls.clear()

    # inspection helpers

    def file_of(self, function_id: str) -> Optional[str]:
        for file_path, fid in self.has_function:
            if fid == function_id:
                return file_path
        return None

    def ids_named(self, name: str) -> List[str]:
        return sorted(fid for fid, data in self.functions.items() if data["name"] == name)

    def id_named(self, name: str) -> str:
        ids = self.ids_named(name)
        assert len(ids) == 1, f"expected one function named {name}, found {ids}"
        return ids[0]

    def named_calls(self) -> Set[Tuple[str, str]]:
        return {
            (self.functions[caller]["name"], self.functions[callee]["name"])
            for caller, callee in self.calls
        }


@pytest.fixture
def store():
    return InMemoryGraphStore()


@pytest.fixture
def builder():
    return SourceModelBuilder()


@pytest.fixture
def make_program(builder):
    """Build a whole program from a {path: content} mapping."""

    def _make(files: Dict[str, str]):
        return builder.build([SourceFile(path=path, content=content) for path, content in files.items()])

    return _make
