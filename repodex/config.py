"""
Configuration management for repodex.

Provides default configuration and loading from .repodex/config.toml.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Optional
try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Fallback for older Python versions

logger = logging.getLogger(__name__)


DEFAULT_INDEX_DIR = Path.home() / ".repodex" / "index"

DEFAULT_CONFIG = {
    "indexer": {
        "extensions": [
            ".js", ".ts", ".jsx", ".tsx",
            ".json", ".md", ".txt",
            ".html", ".css", ".scss", ".sass",
            ".yml", ".yaml", ".xml",
            ".py", ".rb", ".go", ".rs", ".java", ".c", ".cpp", ".h",
            ".sh", ".bash", ".zsh",
            ".sql", ".graphql", ".gql",
        ],
        "exclude": [
            "node_modules",
            ".git",
            "dist",
            "build",
            "coverage",
            ".cache",
            ".next",
            ".nuxt",
            ".output",
            "*.min.js",
            "*.min.css",
            "*.map",
            ".DS_Store",
            "package-lock.json",
            "yarn.lock",
            "pnpm-lock.yaml",
            ".repodex",
        ],
        "use_gitignore": True,
        "max_file_size": 2097152,  # 2MB
        "max_chunk_size": 1000,
        "cleanup_deleted": True,
    },
    "embeddings": {
        "provider": "ollama",       # "ollama", "sentence-transformers", "hashing"
        "model": "nomic-embed-text",
        "dimension": 768,
        "base_url": "http://localhost:11434",
        "timeout": 30.0,
        "max_text_length": 8000,
        "max_retries": 2,
        "retry_delay": 0.5,
        "request_delay": 0.01,
        "max_workers": 1,
    },
    "store": {
        "path": str(DEFAULT_INDEX_DIR / "repository.db"),
    },
    "search": {
        "default_limit": 5,
    },
    "watcher": {
        "debounce_seconds": 0.5,
    },
    "logging": {
        "level": "INFO",
        "file": None,
        "json": False,
        "max_size_mb": 10,
        "backups": 5,
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Return base updated with override; nested tables merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """
    Layered repodex settings.

    Values come from DEFAULT_CONFIG, then $OLLAMA_HOST, then
    <project_root>/.repodex/config.toml. A missing or unreadable file
    leaves the defaults in place.
    """

    def __init__(self, project_root: Optional[Path] = None):
        """
        Args:
            project_root: Directory holding .repodex/config.toml (defaults to cwd)
        """
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.config_path = self.project_root / ".repodex" / "config.toml"
        self._config = self._load()

    def _load(self) -> dict[str, Any]:
        settings = copy.deepcopy(DEFAULT_CONFIG)

        # Same variable the Ollama CLI reads
        ollama_host = os.environ.get("OLLAMA_HOST")
        if ollama_host:
            settings["embeddings"]["base_url"] = ollama_host

        if not self.config_path.is_file():
            logger.debug(f"No config at {self.config_path}, using defaults")
            return settings

        try:
            with open(self.config_path, "rb") as f:
                user_settings = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Ignoring unreadable config {self.config_path}: {e}")
            return settings

        logger.debug(f"Loaded config from {self.config_path}")
        return _deep_merge(settings, user_settings)

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Look up a nested value, e.g. get("embeddings", "model").

        Returns default when any key along the way is missing.
        """
        node: Any = self._config
        for key in keys:
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def set(self, *keys: str, value: Any) -> None:
        """Override a nested value in memory, creating tables as needed."""
        if not keys:
            raise ValueError("set() needs at least one key")
        node = self._config
        for key in keys[:-1]:
            node = node.setdefault(key, {})
        node[keys[-1]] = value

    @property
    def store_path(self) -> Path:
        """Location of the index database file."""
        return Path(self.get("store", "path", default=str(DEFAULT_INDEX_DIR / "repository.db"))).expanduser()

    def __repr__(self) -> str:
        return f"Config(config_path={self.config_path})"
