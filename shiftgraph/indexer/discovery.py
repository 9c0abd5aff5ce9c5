"""Workspace file discovery with extension and exclude-pattern filtering."""

import logging
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


DEFAULT_SOURCE_EXTENSIONS = [".ts", ".tsx", ".js", ".jsx", ".mts", ".cts", ".mjs", ".cjs"]

# Directories never worth walking into
DEFAULT_EXCLUDED_DIRS = {
    "node_modules",
    ".git",
    "dist",
    "build",
    "out",
    "coverage",
    ".next",
    ".turbo",
    ".shift-graph",
}


def matches_exclude(rel_path: str, patterns: Iterable[str]) -> Optional[str]:
    """Return the first exclude pattern matching a workspace-relative path.

    Supported forms: "dir/**" (recursive), "dir/*" (one level), globs
    (matched with PurePosixPath.match) and exact file or directory paths.
    """
    path = PurePosixPath(rel_path)
    for pattern in patterns:
        if pattern.endswith("/**"):
            dir_prefix = pattern[:-3]
            if rel_path.startswith(dir_prefix + "/") or rel_path == dir_prefix:
                return pattern
        elif pattern.endswith("/*"):
            dir_prefix = pattern[:-2]
            if rel_path.startswith(dir_prefix + "/") and "/" not in rel_path[len(dir_prefix) + 1:]:
                return pattern
        elif "*" in pattern or "?" in pattern:
            if path.match(pattern):
                return pattern
        elif rel_path == pattern or rel_path.startswith(pattern.rstrip("/") + "/"):
            return pattern
    return None


class FileDiscovery:
    """Enumerates source files under a workspace root."""

    def __init__(
        self,
        root: str,
        extensions: Optional[List[str]] = None,
        exclude_patterns: Optional[List[str]] = None,
        excluded_dirs: Optional[Iterable[str]] = None,
    ):
        """Initialize discovery.

        Args:
            root: Workspace root directory
            extensions: Source extensions to include (with leading dot)
            exclude_patterns: Additional exclude patterns, relative to root
            excluded_dirs: Directory names skipped anywhere in the tree
        """
        self.root = Path(root).resolve()
        self.extensions = [ext.lower() for ext in (extensions or DEFAULT_SOURCE_EXTENSIONS)]
        self.exclude_patterns = list(exclude_patterns or [])
        self.excluded_dirs = set(excluded_dirs) if excluded_dirs is not None else set(DEFAULT_EXCLUDED_DIRS)

    def relative_path(self, file_path: str) -> Optional[str]:
        """Workspace-relative "/" path, or None when outside the root."""
        try:
            return Path(file_path).resolve().relative_to(self.root).as_posix()
        except ValueError:
            return None

    def is_source_file(self, rel_path: str) -> bool:
        """True when a workspace-relative path would be discovered."""
        lowered = rel_path.lower()
        if not any(lowered.endswith(ext) for ext in self.extensions):
            return False
        if any(part in self.excluded_dirs for part in PurePosixPath(rel_path).parts[:-1]):
            return False
        return matches_exclude(rel_path, self.exclude_patterns) is None

    def discover(self) -> List[str]:
        """List source files, sorted, as workspace-relative paths."""
        if not self.root.is_dir():
            logger.error(f"Workspace path does not exist: {self.root}")
            return []

        found = []
        excluded = 0
        # explicit stack so excluded directories are never descended into
        stack = [self.root]
        while stack:
            directory = stack.pop()
            try:
                entries = list(directory.iterdir())
            except OSError as e:
                logger.warning(f"Cannot list {directory}: {e}")
                continue
            for entry in entries:
                if entry.is_dir():
                    if entry.name not in self.excluded_dirs and not entry.is_symlink():
                        stack.append(entry)
                    continue
                rel_path = entry.relative_to(self.root).as_posix()
                if not any(rel_path.lower().endswith(ext) for ext in self.extensions):
                    continue
                if matches_exclude(rel_path, self.exclude_patterns):
                    excluded += 1
                    continue
                found.append(rel_path)

        found.sort()
        logger.info(f"Found {len(found)} source files under {self.root} ({excluded} excluded by pattern)")
        return found
