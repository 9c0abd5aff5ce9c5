"""Source Model Builder: parsed files plus whole-program module resolution."""

import logging
import posixpath
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from tree_sitter import Node, Tree

from .binder import ModuleBinding, Symbol, bind_unit
from .grammars import LanguageRegistry, get_language_registry
from .models import ScriptDialect, SourceFile

logger = logging.getLogger(__name__)


# Candidate suffixes tried, in order, for an extensionless relative import
MODULE_EXTENSIONS = [".ts", ".tsx", ".d.ts", ".js", ".jsx", ".mts", ".cts", ".mjs", ".cjs"]

# import "./x.js" may refer to a TypeScript source compiled to x.js
SCRIPT_TO_TYPESCRIPT = {
    ".js": [".ts", ".tsx", ".d.ts"],
    ".jsx": [".tsx"],
    ".mjs": [".mts", ".d.mts"],
    ".cjs": [".cts", ".d.cts"],
}


class SourceUnit:
    """One parsed file of a program."""

    def __init__(
        self,
        path: str,
        content: str,
        dialect: ScriptDialect,
        tree: Tree,
        is_declaration_file: bool,
    ):
        self.path = path
        self.content = content
        self.source = content.encode("utf-8")
        self.dialect = dialect
        self.tree = tree
        self.root: Node = tree.root_node
        self.is_declaration_file = is_declaration_file
        self.has_errors = self.root.has_error
        self._binding: Optional[ModuleBinding] = None

    @property
    def binding(self) -> ModuleBinding:
        if self._binding is None:
            self._binding = bind_unit(self)
        return self._binding

    def location(self, node: Node) -> Tuple[int, int, int, int]:
        """1-based (start line, start column, end line, end column) in characters."""
        start_row, start_col = node.start_point
        end_row, end_col = node.end_point
        return (
            start_row + 1,
            self._char_column(node.start_byte, start_col) + 1,
            end_row + 1,
            self._char_column(node.end_byte, end_col) + 1,
        )

    def _char_column(self, byte_offset: int, byte_column: int) -> int:
        # tree-sitter columns count bytes; multi-byte characters count once
        line_start = byte_offset - byte_column
        return len(self.source[line_start:byte_offset].decode("utf-8", errors="replace"))

    def __repr__(self) -> str:
        return f"SourceUnit({self.path!r}, dialect={self.dialect.value})"


class WorkspaceContext:
    """Explicit path -> content map shared by the builder and the loaders.

    When a root is given and disk fallback is enabled, unknown paths are read
    from the workspace on first access and cached.
    """

    def __init__(self, root: Optional[str] = None, read_from_disk: bool = False):
        self.root = Path(root).resolve() if root else None
        self.read_from_disk = read_from_disk and self.root is not None
        self._contents: Dict[str, str] = {}

    def set(self, path: str, content: str) -> None:
        self._contents[path] = content

    def update(self, files: Iterable[SourceFile]) -> None:
        for source_file in files:
            self._contents[source_file.path] = source_file.content

    def get(self, path: str) -> Optional[str]:
        content = self._contents.get(path)
        if content is not None or not self.read_from_disk:
            return content

        file_path = self.root / path
        if not file_path.is_file():
            return None
        try:
            content = file_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Could not read {file_path}: {e}")
            return None
        logger.debug(f"Loaded {path} from disk into workspace context")
        self._contents[path] = content
        return content

    def remove(self, path: str) -> None:
        self._contents.pop(path, None)

    def paths(self) -> List[str]:
        return list(self._contents.keys())

    def __contains__(self, path: str) -> bool:
        return path in self._contents

    def __len__(self) -> int:
        return len(self._contents)


UnitLoader = Callable[[str], Optional[SourceUnit]]


class Program:
    """A set of source units that can resolve symbols across each other.

    A program built for incremental re-analysis starts with a single unit and
    loads further units on demand (relative import targets) through `loader`.
    """

    def __init__(self, units: Dict[str, SourceUnit], loader: Optional[UnitLoader] = None):
        self.units = units
        self._loader = loader
        self._missing: set = set()
        self._globals: Optional[Dict[str, Symbol]] = None
        self._resolver = None

    @property
    def source_files(self) -> List[SourceUnit]:
        return list(self.units.values())

    def get_source_file(self, path: str) -> Optional[SourceUnit]:
        unit = self.units.get(path)
        if unit is not None or self._loader is None or path in self._missing:
            return unit

        unit = self._loader(path)
        if unit is None:
            self._missing.add(path)
            return None
        self.units[path] = unit
        self._globals = None
        return unit

    def resolve_module(self, from_path: str, specifier: Optional[str]) -> Optional[SourceUnit]:
        """Resolve a relative module specifier to a unit of this program.

        Args:
            from_path: Path of the importing file
            specifier: Module specifier as written ("./a", "../lib/index.js")

        Returns:
            The target unit, or None for bare package names and unknown files
        """
        if not specifier or not specifier.startswith((".", "/")):
            return None

        if specifier.startswith("/"):
            base = posixpath.normpath(specifier.lstrip("/"))
        else:
            base = posixpath.normpath(posixpath.join(posixpath.dirname(from_path), specifier))

        for candidate in self._module_candidates(base):
            unit = self.get_source_file(candidate)
            if unit is not None:
                return unit

        logger.debug(f"Unresolved module {specifier!r} imported from {from_path}")
        return None

    def _module_candidates(self, base: str) -> List[str]:
        candidates = []
        suffix = posixpath.splitext(base)[1]
        if suffix:
            candidates.append(base)
            stem = base[: -len(suffix)]
            candidates.extend(stem + replacement for replacement in SCRIPT_TO_TYPESCRIPT.get(suffix, []))
        candidates.extend(base + extension for extension in MODULE_EXTENSIONS)
        candidates.extend(posixpath.join(base, "index" + extension) for extension in MODULE_EXTENSIONS)
        return candidates

    @property
    def globals(self) -> Dict[str, Symbol]:
        """Top-level symbols of script (non-module) files, visible everywhere."""
        if self._globals is None:
            table: Dict[str, Symbol] = {}
            for unit in list(self.units.values()):
                binding = unit.binding
                if binding.is_module:
                    continue
                for name, symbol in binding.module_scope.symbols.items():
                    table.setdefault(name, symbol)
            self._globals = table
        return self._globals

    @property
    def resolver(self):
        if self._resolver is None:
            from .resolver import SymbolResolver

            self._resolver = SymbolResolver(self)
        return self._resolver


class SourceModelBuilder:
    """Wraps (path, content) pairs into a Program."""

    def __init__(self, registry: Optional[LanguageRegistry] = None):
        self.registry = registry or get_language_registry()

    def parse(self, path: str, content: str) -> SourceUnit:
        """Parse one file under the dialect inferred from its extension.

        Never raises on malformed input; the tree then contains ERROR nodes.
        """
        dialect = self.registry.detect_dialect(path)
        parser = self.registry.get_parser(dialect)
        tree = parser.parse(content.encode("utf-8"))
        unit = SourceUnit(
            path=path,
            content=content,
            dialect=dialect,
            tree=tree,
            is_declaration_file=self.registry.is_declaration_file(path),
        )
        if unit.has_errors:
            logger.debug(f"Parsed {path} with syntax errors ({dialect.value})")
        return unit

    def build(self, files: Iterable[SourceFile]) -> Program:
        """Build a whole-program model spanning every supplied file."""
        units: Dict[str, SourceUnit] = {}
        for source_file in files:
            units[source_file.path] = self.parse(source_file.path, source_file.content)
        logger.debug(f"Built program with {len(units)} files")
        return Program(units)

    def build_incremental(self, path: str, content: str, context: WorkspaceContext) -> Program:
        """Build a program for re-analysing a single edited file.

        Other files are only parsed when the edited file imports them and
        their content is known to the workspace context.
        """

        def load(other_path: str) -> Optional[SourceUnit]:
            other_content = context.get(other_path)
            if other_content is None:
                return None
            return self.parse(other_path, other_content)

        return Program({path: self.parse(path, content)}, loader=load)
