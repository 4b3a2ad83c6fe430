"""
Pytest fixtures for repodex tests.

Provides reusable fixtures for temporary directories, sample repositories,
a deterministic embedding client, storages and a ready-to-use index.
"""

import pytest
import tempfile
import shutil
from pathlib import Path
from repodex.config import Config
from repodex.embeddings import EmbeddingClient, HashingProvider
from repodex.engine import RepositoryIndex
from repodex.models import FileEvent
from repodex.storage import MemoryStorage, SQLiteStorage
from repodex.watcher import Watcher


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    temp_path = Path(tempfile.mkdtemp()).resolve()
    yield temp_path
    # Cleanup
    if temp_path.exists():
        shutil.rmtree(temp_path)


@pytest.fixture
def sample_repo(temp_dir):
    """Create a small repository with code, docs and ignored directories."""
    repo = temp_dir / "repo"
    (repo / "src").mkdir(parents=True)
    (repo / "docs").mkdir()
    (repo / "node_modules" / "left-pad").mkdir(parents=True)

    (repo / "src" / "auth.js").write_text(
        "\n".join(
            ["function authenticateUser(token) {"]
            + [f"  // verify login session token step {i}" for i in range(48)]
            + ["}"]
        )
    )
    (repo / "src" / "db.py").write_text(
        "def connect_database(url):\n"
        "    \"\"\"Open a database connection pool.\"\"\"\n"
        "    return create_pool(url)\n"
    )
    (repo / "docs" / "guide.md").write_text(
        "# Guide\n\n" + "\n".join(f"Installation notes line {i}" for i in range(8))
    )
    (repo / "node_modules" / "left-pad" / "index.js").write_text("module.exports = leftPad;\n")
    (repo / "src" / "bundle.min.js").write_text("var a=1;\n")
    (repo / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    return repo


@pytest.fixture
def config(temp_dir):
    """Create a test configuration with a hashing provider and a temp database."""
    cfg = Config(project_root=temp_dir)
    cfg.set("embeddings", "provider", value="hashing")
    cfg.set("embeddings", "dimension", value=64)
    cfg.set("embeddings", "request_delay", value=0)
    cfg.set("embeddings", "retry_delay", value=0)
    cfg.set("store", "path", value=str(temp_dir / "index" / "repository.db"))
    cfg.set("watcher", "debounce_seconds", value=0.05)
    return cfg


@pytest.fixture
def embedder():
    """Deterministic embedding client that needs no model or network."""
    return EmbeddingClient(HashingProvider(dimension=64), request_delay=0, retry_delay=0)


@pytest.fixture
def memory_storage(embedder):
    storage = MemoryStorage(dimension=embedder.dimension)
    storage.open()
    yield storage
    storage.close()


@pytest.fixture
def sqlite_storage(temp_dir, embedder):
    storage = SQLiteStorage(temp_dir / "index" / "repository.db", dimension=embedder.dimension)
    storage.open()
    yield storage
    storage.close()


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    """Run a test against both storage backends."""
    return request.getfixturevalue(f"{request.param}_storage")


class FakeWatcher(Watcher):
    """Watcher whose events are emitted by the test."""

    def __init__(self):
        self.root = None
        self.sink = None
        self.started = 0
        self.stopped = 0

    def start(self, root, sink):
        self.root = Path(root)
        self.sink = sink
        self.started += 1

    def stop(self):
        if self.sink is not None:
            self.stopped += 1
        self.sink = None

    @property
    def is_running(self):
        return self.sink is not None

    def emit(self, kind, path, is_directory=False):
        self.sink(FileEvent(kind=kind, path=str(Path(path).resolve()), is_directory=is_directory))


@pytest.fixture
def fake_watcher():
    return FakeWatcher()


@pytest.fixture
def repo_index(config, embedder, memory_storage, fake_watcher):
    """Open RepositoryIndex over memory storage with a fake watcher."""
    index = RepositoryIndex(
        config,
        storage=memory_storage,
        embedder=embedder,
        watcher_factory=lambda: fake_watcher,
    )
    index.open()
    yield index
    index.close()
