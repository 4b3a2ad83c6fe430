"""
Directory scanning for repodex.

Walks a root directory, prunes ignored directories and yields the files
that pass the extension allowlist and ignore rules.
"""

import logging
import os
from pathlib import Path, PurePath
from typing import Iterable, Iterator, Optional
import pathspec

from .config import Config

logger = logging.getLogger(__name__)


def load_nested_gitignore(root_path: Path, exclude: Optional[pathspec.PathSpec] = None) -> Optional[pathspec.PathSpec]:
    """
    Load and merge all .gitignore files in a directory tree.

    Patterns from nested .gitignore files are scoped to the directory that
    contains them.

    Args:
        root_path: Root directory to search for .gitignore files
        exclude: Directories matching this spec are not searched

    Returns:
        PathSpec with the merged patterns, or None if no .gitignore files were found
    """
    all_patterns: list[str] = []
    gitignore_files: list[Path] = []

    for dirpath, dirnames, filenames in os.walk(root_path):
        rel_dir = Path(dirpath).relative_to(root_path)
        if exclude is not None:
            dirnames[:] = [
                d for d in dirnames
                if not exclude.match_file((rel_dir / d).as_posix() + "/")
            ]
        if ".gitignore" in filenames:
            gitignore_files.append(Path(dirpath) / ".gitignore")

    if not gitignore_files:
        logger.debug("No .gitignore files found")
        return None

    for gitignore_path in gitignore_files:
        try:
            with open(gitignore_path, "r", encoding="utf-8") as f:
                patterns = f.read().splitlines()
        except OSError as e:
            logger.warning(f"Failed to read {gitignore_path}: {e}")
            continue

        gitignore_dir = gitignore_path.parent.relative_to(root_path)
        if str(gitignore_dir) == ".":
            all_patterns.extend(patterns)
            continue

        for pattern in patterns:
            stripped = pattern.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if stripped.startswith("!"):
                all_patterns.append(f"!{gitignore_dir.as_posix()}/{stripped[1:].lstrip('/')}")
            else:
                all_patterns.append(f"{gitignore_dir.as_posix()}/{stripped.lstrip('/')}")

        logger.debug(f"Loaded {len(patterns)} patterns from {gitignore_path}")

    if not all_patterns:
        return None

    logger.debug(f"Loaded {len(all_patterns)} patterns from {len(gitignore_files)} .gitignore files")
    return pathspec.PathSpec.from_lines("gitwildmatch", all_patterns)


class DirectoryScanner:
    """
    Finds candidate files under a root directory.

    A path is a candidate when its extension is in the allowlist and it
    matches no ignore pattern. Ignore patterns use gitignore wildcard
    syntax: a bare name such as "node_modules" matches that path component
    at any depth, "*.min.js" matches by file name.
    """

    def __init__(
        self,
        extensions: Iterable[str],
        exclude: Iterable[str] = (),
        use_gitignore: bool = True,
        max_file_size: Optional[int] = None,
    ):
        """
        Initialize the scanner.

        Args:
            extensions: Allowed file extensions, including the leading dot
            exclude: Ignore patterns
            use_gitignore: Also honor .gitignore files found under the scanned root
            max_file_size: Files larger than this many bytes are reported as oversize
        """
        self.extensions = {ext.lower() for ext in extensions}
        self.exclude_patterns = list(exclude)
        self.exclude_spec = pathspec.PathSpec.from_lines("gitwildmatch", self.exclude_patterns)
        self.use_gitignore = use_gitignore
        self.max_file_size = max_file_size
        self._gitignore_cache: dict[Path, Optional[pathspec.PathSpec]] = {}

    @classmethod
    def from_config(cls, config: Config) -> "DirectoryScanner":
        """Build a scanner from the [indexer] configuration section."""
        return cls(
            extensions=config.get("indexer", "extensions", default=[]),
            exclude=config.get("indexer", "exclude", default=[]),
            use_gitignore=config.get("indexer", "use_gitignore", default=True),
            max_file_size=config.get("indexer", "max_file_size", default=None),
        )

    def scan(self, root: Path) -> Iterator[Path]:
        """
        Lazily yield candidate files under root.

        Every call starts a fresh walk. Ignored directories are pruned
        without descending into them.

        Args:
            root: Directory to scan

        Yields:
            Absolute paths of candidate files
        """
        root = Path(root).resolve()
        if not root.is_dir():
            raise ValueError(f"Path is not a directory: {root}")

        gitignore = self._gitignore_for(root, refresh=True)

        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root)

            kept = []
            for name in sorted(dirnames):
                rel = (rel_dir / name).as_posix() + "/"
                if self.exclude_spec.match_file(rel):
                    logger.debug(f"Pruning ignored directory: {rel}")
                    continue
                if gitignore is not None and gitignore.match_file(rel):
                    logger.debug(f"Pruning gitignored directory: {rel}")
                    continue
                kept.append(name)
            dirnames[:] = kept

            for name in sorted(filenames):
                file_path = Path(dirpath) / name
                if not file_path.is_file():
                    continue
                rel = (rel_dir / name).as_posix()
                if not self._matches_rules(rel, name, gitignore):
                    continue
                yield file_path

    def is_candidate(self, path: Path, root: Optional[Path] = None) -> bool:
        """
        Check whether a single path passes the extension and ignore rules.

        The file does not need to exist, so removed paths can be filtered too.

        Args:
            path: File path to check
            root: Root the path belongs to; ignore patterns match relative to it

        Returns:
            True if the path would be yielded by a scan
        """
        path = Path(path)
        gitignore = None
        if root is not None:
            root = Path(root).resolve()
            try:
                rel = path.resolve().relative_to(root).as_posix()
                gitignore = self._gitignore_for(root)
            except ValueError:
                rel = self._anchorless(path)
        else:
            rel = self._anchorless(path)
        return self._matches_rules(rel, path.name, gitignore)

    def is_ignored_directory(self, path: Path, root: Path) -> bool:
        """Check whether a directory under root would be pruned by a scan."""
        root = Path(root).resolve()
        try:
            rel = Path(path).resolve().relative_to(root).as_posix()
        except ValueError:
            return True
        if rel == ".":
            return False
        rel += "/"
        if self.exclude_spec.match_file(rel):
            return True
        gitignore = self._gitignore_for(root)
        return gitignore is not None and gitignore.match_file(rel)

    def exceeds_size_limit(self, path: Path) -> bool:
        """Check whether a file is larger than the configured maximum size."""
        if not self.max_file_size:
            return False
        try:
            size = Path(path).stat().st_size
        except OSError:
            return False
        if size > self.max_file_size:
            logger.warning(
                f"Skipping large file: {path} "
                f"({size / 1024 / 1024:.1f}MB > {self.max_file_size / 1024 / 1024:.1f}MB limit)"
            )
            return True
        return False

    def _matches_rules(self, rel_path: str, name: str, gitignore: Optional[pathspec.PathSpec]) -> bool:
        if PurePath(name).suffix.lower() not in self.extensions:
            return False
        if self.exclude_spec.match_file(rel_path):
            return False
        if gitignore is not None and gitignore.match_file(rel_path):
            return False
        return True

    def _gitignore_for(self, root: Path, refresh: bool = False) -> Optional[pathspec.PathSpec]:
        if not self.use_gitignore:
            return None
        if refresh or root not in self._gitignore_cache:
            self._gitignore_cache[root] = load_nested_gitignore(root, exclude=self.exclude_spec)
        return self._gitignore_cache[root]

    @staticmethod
    def _anchorless(path: Path) -> str:
        parts = Path(path).parts
        if parts and Path(path).anchor:
            parts = parts[1:]
        return "/".join(parts)

    def __repr__(self) -> str:
        return f"DirectoryScanner(extensions={len(self.extensions)}, exclude={len(self.exclude_patterns)})"
