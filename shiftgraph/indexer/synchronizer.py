"""Graph Synchronizer: writes a file's functions and calls into the graph store."""

import logging
from typing import List, Optional, Set, Tuple

from tree_sitter import Node

from ..graph_db.graph_store import GraphStore, GraphStoreError
from .models import SyncReport, make_function_id
from .resolver import ResolvedTarget
from .source_model import Program, SourceModelBuilder, SourceUnit, WorkspaceContext
from .syntax import FunctionKind, function_kind, function_name, walk

logger = logging.getLogger(__name__)

ENTER = 0
EXIT = 1


def collect_function_ids(unit: SourceUnit) -> Set[str]:
    """Ids of every function-like node of a file (what the graph should hold)."""
    if unit.is_declaration_file:
        return set()
    return {
        make_function_id(unit.path, node.start_byte)
        for node in walk(unit.root)
        if function_kind(node) is not None
    }


class _Pass:
    """Bookkeeping for one synchronization pass."""

    def __init__(self, path: str):
        self.report = SyncReport(path=path)
        self.functions: Set[str] = set()
        self.files: Set[str] = set()


class GraphSynchronizer:
    """Walks syntax trees and reconciles Function nodes and Calls edges."""

    def __init__(self, store: GraphStore, builder: Optional[SourceModelBuilder] = None):
        self.store = store
        self.builder = builder or SourceModelBuilder()

    async def synchronize(self, program: Program, unit: SourceUnit) -> SyncReport:
        """Upsert the File node, every function of the file and every resolved call.

        Store failures are logged per node and never abort the traversal.

        Args:
            program: Program the unit belongs to (used for resolution)
            unit: File to synchronize

        Returns:
            Counts of written functions, calls and failures
        """
        state = _Pass(unit.path)
        await self._upsert_file(unit.path, state)

        if unit.is_declaration_file:
            state.report.skipped = True
            logger.debug(f"Skipping declaration file {unit.path}")
            return state.report

        resolver = program.resolver
        function_stack: List[str] = []
        stack: List[Tuple[int, Node]] = [(ENTER, unit.root)]

        while stack:
            action, node = stack.pop()
            if action == EXIT:
                function_stack.pop()
                continue

            kind = function_kind(node)
            if kind is not None:
                function_id = await self._upsert_function(unit, node, kind, state)
                state.report.functions += 1
                function_stack.append(function_id)
                stack.append((EXIT, node))
            elif node.type == "call_expression" and function_stack:
                resolution = resolver.resolve_call(unit, node)
                for target in resolution.targets:
                    await self._record_call(function_stack[-1], target, state)

            stack.extend((ENTER, child) for child in reversed(node.named_children))

        report = state.report
        logger.debug(
            f"Synchronized {unit.path}: {report.functions} functions, "
            f"{report.calls} calls, {report.failures} failures"
        )
        return report

    async def _upsert_file(self, path: str, state: _Pass) -> None:
        if path in state.files:
            return
        try:
            await self.store.upsert_file(path)
            state.files.add(path)
        except GraphStoreError as e:
            state.report.failures += 1
            logger.warning(f"Could not write File node {path}: {e}")

    async def _upsert_function(
        self, unit: SourceUnit, node: Node, kind: Optional[FunctionKind], state: _Pass
    ) -> str:
        function_id = make_function_id(unit.path, node.start_byte)
        if function_id in state.functions:
            return function_id

        start_line, start_column, end_line, end_column = unit.location(node)
        try:
            await self.store.upsert_function(
                function_id,
                function_name(node, kind),
                start_line,
                start_column,
                end_line,
                end_column,
            )
        except GraphStoreError as e:
            state.report.failures += 1
            logger.warning(f"Could not write function {function_id}: {e}")
            return function_id

        try:
            await self.store.upsert_has_function(unit.path, function_id)
            state.functions.add(function_id)
        except GraphStoreError as e:
            state.report.failures += 1
            logger.warning(f"Could not link function {function_id} to {unit.path}: {e}")
            # a Function node without its HasFunction edge must not receive Calls edges
            await self._discard_function(function_id, state)
        return function_id

    async def _discard_function(self, function_id: str, state: _Pass) -> None:
        try:
            await self.store.delete_function_and_edges(function_id)
        except GraphStoreError as e:
            state.report.failures += 1
            logger.error(f"Could not remove unlinked function {function_id}: {e}")

    async def _record_call(self, caller_id: str, target: ResolvedTarget, state: _Pass) -> None:
        callee_id = target.function_id
        if callee_id not in state.functions:
            # the callee may live in a file that has not been synchronized yet
            await self._upsert_file(target.unit.path, state)
            await self._upsert_function(target.unit, target.node, function_kind(target.node), state)

        try:
            await self.store.upsert_calls(caller_id, callee_id)
            state.report.calls += 1
        except GraphStoreError as e:
            state.report.failures += 1
            logger.warning(f"Could not write call {caller_id} -> {callee_id}: {e}")

    async def update_file(self, path: str, content: str, context: WorkspaceContext) -> SyncReport:
        """Re-synchronize one edited file and prune functions that disappeared.

        The upsert pass runs first so surviving functions are current before
        stale ids are deleted. A failure to read the existing ids only skips
        pruning.

        Args:
            path: Workspace-relative path of the edited file
            content: New file content
            context: Workspace contents used to load imported files

        Returns:
            Report including the pruned function ids
        """
        context.set(path, content)

        existing: Optional[Set[str]] = None
        try:
            existing = {record.id for record in await self.store.functions_of_file(path)}
        except GraphStoreError as e:
            logger.warning(f"Could not read existing functions of {path}, pruning skipped: {e}")

        program = self.builder.build_incremental(path, content, context)
        unit = program.get_source_file(path)
        report = await self.synchronize(program, unit)

        if existing is not None:
            for stale_id in sorted(existing - collect_function_ids(unit)):
                try:
                    await self.store.delete_function_and_edges(stale_id)
                    report.pruned.append(stale_id)
                except GraphStoreError as e:
                    report.failures += 1
                    logger.warning(f"Could not prune function {stale_id}: {e}")

        logger.info(
            f"Updated {path}: {report.functions} functions, {report.calls} calls, "
            f"{len(report.pruned)} pruned, {report.failures} failures"
        )
        return report
