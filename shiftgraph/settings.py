"""Environment configuration and logging setup."""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from .indexer.discovery import DEFAULT_SOURCE_EXTENSIONS

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _list(name: str, default: str = "") -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass
class Settings:
    """Runtime settings, read from environment variables by `from_env`."""

    workspace_path: str = "."
    graph_backend: str = "kuzu"
    graph_db_path: str = ".shift-graph/kuzu"
    reset_on_start: bool = True
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "neo4j"
    neo4j_database: Optional[str] = None
    source_extensions: List[str] = field(default_factory=lambda: list(DEFAULT_SOURCE_EXTENSIONS))
    exclude_patterns: List[str] = field(default_factory=list)
    enable_watcher: bool = False
    watcher_debounce: float = 2.0
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            workspace_path=os.getenv("WORKSPACE_PATH", "."),
            graph_backend=os.getenv("GRAPH_BACKEND", "kuzu").lower(),
            graph_db_path=os.getenv("GRAPH_DB_PATH", ".shift-graph/kuzu"),
            reset_on_start=_flag("GRAPH_RESET_ON_START", "true"),
            neo4j_uri=os.getenv("NEO4J_URI", "bolt://localhost:7687"),
            neo4j_user=os.getenv("NEO4J_USER", "neo4j"),
            neo4j_password=os.getenv("NEO4J_PASSWORD", "neo4j"),
            neo4j_database=os.getenv("NEO4J_DATABASE") or None,
            source_extensions=_list("SOURCE_EXTENSIONS", ",".join(DEFAULT_SOURCE_EXTENSIONS)),
            exclude_patterns=_list("EXCLUDE_PATTERNS"),
            enable_watcher=_flag("ENABLE_FILE_WATCHER", "false"),
            watcher_debounce=float(os.getenv("WATCHER_DEBOUNCE_SECONDS", "2.0")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE") or None,
        )


_installed_handlers: List[logging.Handler] = []


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure the root logger with a console and an optional file handler.

    Handlers installed by an earlier call are replaced, so calling this more
    than once never duplicates log lines.
    """
    formatter = logging.Formatter(LOG_FORMAT)
    root_logger = logging.getLogger()

    while _installed_handlers:
        handler = _installed_handlers.pop()
        root_logger.removeHandler(handler)
        handler.close()

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)
    _installed_handlers.append(console_handler)

    # File handler (for detailed logs)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        _installed_handlers.append(file_handler)
