"""Script dialect detection and tree-sitter parser registry."""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import tree_sitter_javascript as tsjavascript
import tree_sitter_typescript as tstypescript
from tree_sitter import Language, Parser

from .models import ScriptDialect

logger = logging.getLogger(__name__)


# Language module mapping
LANGUAGE_MODULES = {
    "typescript": tstypescript,
    "tsx": tstypescript,
    "javascript": tsjavascript,
}

# Modules that use non-standard language function names
LANGUAGE_FUNCTION_OVERRIDES = {
    "typescript": "language_typescript",
    "tsx": "language_tsx",
}

# Files with an unrecognized extension are parsed with this grammar
FALLBACK_GRAMMAR = "typescript"


class LanguageConfig:
    """Configuration for one script dialect."""

    def __init__(
        self,
        name: str,
        dialect: ScriptDialect,
        extensions: List[str],
        tree_sitter_language: str,
        declaration_suffixes: List[str],
    ):
        """Initialize language configuration.

        Args:
            name: Language name (typescript, tsx, javascript, jsx)
            dialect: Script dialect tag assigned to matching files
            extensions: List of file extensions
            tree_sitter_language: Tree-sitter grammar identifier
            declaration_suffixes: Suffixes marking declaration-only files
        """
        self.name = name
        self.dialect = dialect
        self.extensions = extensions
        self.tree_sitter_language = tree_sitter_language
        self.declaration_suffixes = declaration_suffixes


class LanguageRegistry:
    """Registry of dialect configurations and their parsers."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize language registry.

        Args:
            config_path: Path to languages.json config file
        """
        if config_path is None:
            config_path = Path(__file__).parent.parent / "config" / "languages.json"

        self.config_path = config_path
        self.languages: Dict[str, LanguageConfig] = {}
        self.extension_map: Dict[str, str] = {}
        self.declaration_suffixes: List[str] = []
        self._parsers: Dict[str, Parser] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load dialect configurations from JSON file."""
        try:
            with open(self.config_path, "r") as f:
                config_data = json.load(f)

            for lang_name, lang_config in config_data.items():
                language = LanguageConfig(
                    name=lang_name,
                    dialect=ScriptDialect(lang_config["dialect"]),
                    extensions=lang_config["extensions"],
                    tree_sitter_language=lang_config["tree_sitter_language"],
                    declaration_suffixes=lang_config.get("declaration_suffixes", []),
                )
                self.languages[lang_name] = language

                for ext in language.extensions:
                    self.extension_map[ext] = lang_name
                self.declaration_suffixes.extend(language.declaration_suffixes)

            logger.info(f"Loaded {len(self.languages)} dialect configurations")

        except Exception as e:
            logger.error(f"Error loading language config from {self.config_path}: {e}")
            raise

    def detect_language(self, file_path: str) -> Optional[str]:
        """Detect the language entry for a file from its extension.

        Args:
            file_path: Path to the file

        Returns:
            Language name or None if not recognized
        """
        extension = Path(file_path).suffix.lower()
        if extension in self.extension_map:
            return self.extension_map[extension]

        logger.debug(f"Unknown file extension: {extension}")
        return None

    def detect_dialect(self, file_path: str) -> ScriptDialect:
        """Get the script dialect tag for a file.

        Args:
            file_path: Path to the file

        Returns:
            Matching dialect, or ScriptDialect.UNKNOWN
        """
        language = self.detect_language(file_path)
        if language is None:
            return ScriptDialect.UNKNOWN
        return self.languages[language].dialect

    def is_declaration_file(self, file_path: str) -> bool:
        """Check whether a file only carries ambient declarations (e.g. lib.d.ts)."""
        lowered = file_path.lower()
        return any(lowered.endswith(suffix) for suffix in self.declaration_suffixes)

    def _grammar_for(self, dialect: ScriptDialect) -> str:
        for language in self.languages.values():
            if language.dialect == dialect:
                return language.tree_sitter_language
        return FALLBACK_GRAMMAR

    def get_parser(self, dialect: ScriptDialect) -> Parser:
        """Get (and cache) the tree-sitter parser for a dialect.

        Args:
            dialect: Script dialect of the file being parsed

        Returns:
            A configured tree-sitter parser
        """
        ts_lang_name = self._grammar_for(dialect)
        parser = self._parsers.get(ts_lang_name)
        if parser is not None:
            return parser

        module = LANGUAGE_MODULES[ts_lang_name]
        lang_func_name = LANGUAGE_FUNCTION_OVERRIDES.get(ts_lang_name, "language")
        lang_func = getattr(module, lang_func_name)

        language = Language(lang_func())

        parser = Parser(language)
        self._parsers[ts_lang_name] = parser
        logger.debug(f"Initialized parser for {ts_lang_name}")
        return parser


# Global registry instance
_registry: Optional[LanguageRegistry] = None


def get_language_registry(config_path: Optional[Path] = None) -> LanguageRegistry:
    """Get the global language registry instance.

    Args:
        config_path: Path to config file (only used on first call)

    Returns:
        Language registry instance
    """
    global _registry
    if _registry is None:
        _registry = LanguageRegistry(config_path)
    return _registry
