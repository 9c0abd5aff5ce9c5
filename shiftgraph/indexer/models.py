"""Data models for code graph construction."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class ScriptDialect(str, Enum):
    """Script flavour a file is parsed as, inferred from its extension."""

    TS = "ts"
    TSX = "tsx"
    JS = "js"
    JSX = "jsx"
    UNKNOWN = "unknown"


@dataclass
class SourceFile:
    """A (path, content) pair supplied by file discovery."""

    path: str  # workspace-relative, "/" separated
    content: str


@dataclass
class FunctionRecord:
    """Represents a Function node as stored in the graph."""

    id: str  # "<path>:<byte offset>"
    name: str
    start_line: int  # 1-based
    start_column: int  # 1-based
    end_line: int
    end_column: int


@dataclass
class CalleeRecord:
    """A function called from another file, with its declaring path."""

    id: str
    name: str
    path: str
    start_line: int
    end_line: int


@dataclass
class SyncReport:
    """Outcome of synchronizing one file into the graph."""

    path: str
    functions: int = 0
    calls: int = 0
    failures: int = 0
    pruned: List[str] = field(default_factory=list)
    skipped: bool = False


@dataclass
class LoadReport:
    """Outcome of a bulk workspace load."""

    total_files: int = 0
    synchronized: int = 0
    functions: int = 0
    calls: int = 0
    failed_files: List[str] = field(default_factory=list)
    skipped: bool = False


def make_function_id(file_path: str, offset: int) -> str:
    """Build the Function primary key from the declaring file and start offset."""
    return f"{file_path}:{offset}"
