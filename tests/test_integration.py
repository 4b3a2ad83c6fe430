"""
Integration tests for repodex.

Tests the full workflow from indexing to searching against SQLite, and the
CLI commands end to end.
"""

import logging
import time
import pytest
from click.testing import CliRunner
from repodex import Config, RepositoryIndex
from repodex.cli import main


@pytest.fixture
def hashing_config_root(temp_dir):
    """Project root whose config selects the hashing provider."""
    root = temp_dir / "project"
    (root / ".repodex").mkdir(parents=True)
    (root / ".repodex" / "config.toml").write_text(
        '[embeddings]\nprovider = "hashing"\ndimension = 64\nrequest_delay = 0\n'
        '\n[watcher]\ndebounce_seconds = 0.05\n'
    )
    return root


def test_full_index_and_search_workflow(sample_repo, hashing_config_root, temp_dir):
    config = Config(project_root=hashing_config_root)
    config.set("store", "path", value=str(temp_dir / "workflow.db"))

    with RepositoryIndex(config) as index:
        result = index.index_repository(sample_repo)
        assert result.indexed_files == 3

        results = index.search_similar("open database connection pool", top_k=5)
        assert results
        assert results[0].path == str(sample_repo / "src" / "db.py")
        for r in results:
            assert r.start_line >= 1
            assert r.end_line >= r.start_line
            assert -1.0 <= r.score <= 1.0

        stats = index.get_index_stats()
        assert stats.total_files == 3
        assert stats.total_size_bytes > 0


def test_incremental_reindex_across_sessions(sample_repo, hashing_config_root, temp_dir):
    config = Config(project_root=hashing_config_root)
    config.set("store", "path", value=str(temp_dir / "sessions.db"))

    with RepositoryIndex(config) as index:
        index.index_repository(sample_repo)

    (sample_repo / "src" / "cache.py").write_text(
        "def evict_stale_cache_entries():\n"
        "    \"\"\"Evict stale cache entries.\"\"\"\n"
        "    pass\n"
    )

    with RepositoryIndex(config) as index:
        result = index.index_repository(sample_repo)
        assert result.indexed_files == 1
        assert result.skipped_files == 3

        results = index.search_similar("evict stale cache entries", top_k=1)
        assert results[0].path.endswith("cache.py")


def test_live_watching_updates_index(sample_repo, hashing_config_root, temp_dir):
    config = Config(project_root=hashing_config_root)
    config.set("store", "path", value=str(temp_dir / "watch.db"))

    with RepositoryIndex(config) as index:
        index.index_repository(sample_repo)
        index.start_file_watching(sample_repo)

        new_file = sample_repo / "src" / "payments.py"
        new_file.write_text("def refund_payment(order):\n    pass\n")

        deadline = time.monotonic() + 10
        while time.monotonic() < deadline and index.get_file_info(new_file) is None:
            time.sleep(0.1)

        assert index.get_file_info(new_file) is not None
        index.stop_file_watching()


class TestCli:

    @pytest.fixture
    def run(self, hashing_config_root, temp_dir):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        runner = CliRunner()
        db = temp_dir / "cli.db"

        def invoke(*args, **kwargs):
            return runner.invoke(
                main,
                ["--config-root", str(hashing_config_root), "--db", str(db), *args],
                **kwargs,
            )

        yield invoke

        # The CLI installs its own handlers on the root logger
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)

    def test_index_and_search(self, run, sample_repo):
        result = run("index", str(sample_repo))
        assert result.exit_code == 0, result.output
        assert "Indexing complete" in result.output

        result = run("search", "database connection pool", "-n", "1")
        assert result.exit_code == 0, result.output
        assert "db.py" in result.output

    def test_stats_and_files(self, run, sample_repo):
        run("index", str(sample_repo))

        result = run("stats")
        assert result.exit_code == 0, result.output
        assert "Total files" in result.output

        result = run("files")
        assert result.exit_code == 0, result.output
        assert "markdown" in result.output

    def test_clear_requires_confirmation(self, run, sample_repo):
        run("index", str(sample_repo))

        result = run("clear", input="n\n")
        assert result.exit_code != 0

        result = run("clear", "--yes")
        assert result.exit_code == 0, result.output

        result = run("files")
        assert "No files indexed" in result.output

    def test_vacuum(self, run):
        result = run("vacuum")
        assert result.exit_code == 0, result.output

    def test_search_empty_index(self, run):
        result = run("search", "anything")
        assert result.exit_code == 0
        assert "No results found" in result.output

    def test_index_missing_path(self, run, temp_dir):
        result = run("index", str(temp_dir / "missing"))
        assert result.exit_code != 0
