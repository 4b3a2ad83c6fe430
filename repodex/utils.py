"""Shared helpers for repodex."""

import functools
import logging
import time
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def retry_on_failure(
    max_attempts: int = 3,
    delay: float = 0.5,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,),
    sleep: Optional[Callable[[float], None]] = None,
):
    """
    Retry the decorated callable with exponential backoff.

    Args:
        max_attempts: Total number of attempts, including the first call
        delay: Seconds to wait after the first failure
        backoff: Multiplier applied to the delay after every failure
        exceptions: Exception types that trigger a retry
        sleep: Sleep function (injectable for tests)

    The last exception is re-raised once all attempts are exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    sleep_fn = sleep or time.sleep

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        raise
                    logger.debug(
                        f"{func.__name__} failed (attempt {attempt}/{max_attempts}): {e}; "
                        f"retrying in {wait:.2f}s"
                    )
                    if wait > 0:
                        sleep_fn(wait)
                    wait *= backoff
        return wrapper

    return decorator


def detect_language(path: str) -> Optional[str]:
    """
    Detect the language of a file from its extension.

    Returns:
        Language name (lowercase), or None when the extension is unknown
    """
    return LANGUAGE_MAP.get(Path(path).suffix.lower())


LANGUAGE_MAP = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".py": "python",
    ".rb": "ruby",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".c": "c",
    ".cpp": "cpp",
    ".h": "c",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".sass": "sass",
    ".json": "json",
    ".md": "markdown",
    ".txt": "text",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".xml": "xml",
    ".sh": "bash",
    ".bash": "bash",
    ".zsh": "zsh",
    ".sql": "sql",
    ".graphql": "graphql",
    ".gql": "graphql",
}
