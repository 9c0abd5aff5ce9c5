"""Tool assembling per-file dependency context from the code graph."""

import asyncio
import logging
from typing import Dict, List

from ..graph_db.graph_store import GraphStore, GraphStoreError
from ..indexer.models import CalleeRecord
from ..indexer.source_model import WorkspaceContext

logger = logging.getLogger(__name__)


def number_lines(content: str, first_line: int = 1) -> str:
    """Prefix each line with its 1-based line number."""
    return "\n".join(f"{first_line + index}: {line}" for index, line in enumerate(content.split("\n")))


class DependencyContextTool:
    """Builds the file + cross-file dependency context handed to the analysis client."""

    def __init__(self, store: GraphStore, context: WorkspaceContext):
        """Initialize context tool.

        Args:
            store: Graph store holding the call graph
            context: Workspace contents (file and dependency sources)
        """
        self.store = store
        self.context = context

    async def _callees(self, function_id: str) -> List[CalleeRecord]:
        try:
            return await self.store.callees_of(function_id)
        except GraphStoreError as e:
            logger.warning(f"Skipping dependencies of {function_id}: {e}")
            return []

    def _dependency_section(self, callee: CalleeRecord) -> str:
        content = self.context.get(callee.path)
        if content is None:
            logger.warning(f"Source of {callee.path} unavailable for {callee.name}")
            return ""
        lines = content.split("\n")[callee.start_line - 1 : callee.end_line]
        code = number_lines("\n".join(lines), callee.start_line)
        return f"### {callee.name} (from {callee.path})\n\n```typescript\n{code}\n```\n\n"

    async def build_context(self, file_path: str) -> dict:
        """Assemble the analysis context for one file.

        Args:
            file_path: Workspace-relative path of the file

        Returns:
            Dictionary with the rendered context and its dependencies
        """
        try:
            content = self.context.get(file_path)
            if content is None:
                return {"success": False, "error": f"File content not available: {file_path}"}

            functions = await self.store.functions_of_file(file_path)
            callee_lists = await asyncio.gather(*(self._callees(func.id) for func in functions))

            dependencies: Dict[str, CalleeRecord] = {}
            for callees in callee_lists:
                for callee in callees:
                    dependencies.setdefault(callee.id, callee)

            logger.debug(
                f"Found {len(dependencies)} external function dependencies for file {file_path}"
            )

            text = f"## File Analysis\n{file_path}\n\n```typescript\n{number_lines(content)}\n```\n\n"
            if dependencies:
                text += "\n## Function Dependencies\n\n"
                text += "".join(self._dependency_section(callee) for callee in dependencies.values())

            return {
                "success": True,
                "file_path": file_path,
                "total_functions": len(functions),
                "dependencies": [
                    {
                        "id": callee.id,
                        "name": callee.name,
                        "path": callee.path,
                        "start_line": callee.start_line,
                        "end_line": callee.end_line,
                    }
                    for callee in dependencies.values()
                ],
                "context": text,
            }

        except Exception as e:
            logger.error(f"Error building context for {file_path}: {e}")
            return {"success": False, "error": str(e)}

    async def build_workspace_contexts(self) -> dict:
        """Build the context of every file in the graph, one file at a time."""
        try:
            paths = await self.store.list_files()
        except GraphStoreError as e:
            logger.error(f"Error listing files: {e}")
            return {"success": False, "error": str(e)}

        contexts = []
        failed = []
        for path in paths:
            result = await self.build_context(path)
            if result["success"]:
                contexts.append(result)
            else:
                failed.append({"file_path": path, "error": result["error"]})

        return {
            "success": True,
            "total_files": len(paths),
            "contexts": contexts,
            "failed": failed,
        }
