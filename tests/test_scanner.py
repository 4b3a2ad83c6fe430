"""
Unit tests for directory scanning and ignore rules.
"""

import pytest
from repodex.config import Config
from repodex.scanner import DirectoryScanner, load_nested_gitignore


@pytest.fixture
def scanner(config):
    return DirectoryScanner.from_config(config)


def relative(paths, root):
    return sorted(p.relative_to(root).as_posix() for p in paths)


def test_scan_yields_candidates_only(scanner, sample_repo):
    found = relative(scanner.scan(sample_repo), sample_repo)

    assert found == ["docs/guide.md", "src/auth.js", "src/db.py"]


def test_scan_yields_absolute_paths(scanner, sample_repo):
    for path in scanner.scan(sample_repo):
        assert path.is_absolute()


def test_scan_is_restartable(scanner, sample_repo):
    first = list(scanner.scan(sample_repo))
    second = list(scanner.scan(sample_repo))
    assert first == second


def test_scan_is_lazy(scanner, sample_repo):
    iterator = scanner.scan(sample_repo)
    first = next(iterator)
    assert first.exists()


def test_scan_rejects_non_directory(scanner, sample_repo):
    with pytest.raises(ValueError):
        list(scanner.scan(sample_repo / "src" / "db.py"))


def test_ignored_component_at_any_depth(scanner, sample_repo):
    nested = sample_repo / "packages" / "web" / "node_modules" / "lib"
    nested.mkdir(parents=True)
    (nested / "index.js").write_text("export default 1;\n")
    (sample_repo / "packages" / "web" / "app.js").write_text("run();\n")

    found = relative(scanner.scan(sample_repo), sample_repo)

    assert "packages/web/app.js" in found
    assert not any("node_modules" in p for p in found)


def test_extension_match_is_case_insensitive(scanner, sample_repo):
    (sample_repo / "README.MD").write_text("# Title\n")
    assert "README.MD" in relative(scanner.scan(sample_repo), sample_repo)


def test_is_candidate(scanner, sample_repo):
    assert scanner.is_candidate(sample_repo / "src" / "auth.js", sample_repo)
    assert not scanner.is_candidate(sample_repo / "logo.png", sample_repo)
    assert not scanner.is_candidate(sample_repo / "src" / "bundle.min.js", sample_repo)
    assert not scanner.is_candidate(sample_repo / "node_modules" / "left-pad" / "index.js", sample_repo)


def test_is_candidate_for_missing_file(scanner, sample_repo):
    """Removed paths can still be filtered."""
    assert scanner.is_candidate(sample_repo / "src" / "gone.ts", sample_repo)
    assert not scanner.is_candidate(sample_repo / "dist" / "gone.js", sample_repo)


def test_is_ignored_directory(scanner, sample_repo):
    assert scanner.is_ignored_directory(sample_repo / "node_modules", sample_repo)
    assert scanner.is_ignored_directory(sample_repo / "src" / ".git", sample_repo)
    assert not scanner.is_ignored_directory(sample_repo / "src", sample_repo)
    assert not scanner.is_ignored_directory(sample_repo, sample_repo)


def test_gitignore_is_honored(scanner, sample_repo):
    (sample_repo / ".gitignore").write_text("generated/\n*.log.txt\n")
    (sample_repo / "generated").mkdir()
    (sample_repo / "generated" / "types.ts").write_text("type A = 1;\n")
    (sample_repo / "debug.log.txt").write_text("log\n")

    found = relative(scanner.scan(sample_repo), sample_repo)

    assert "generated/types.ts" not in found
    assert "debug.log.txt" not in found


def test_nested_gitignore_is_scoped(sample_repo):
    (sample_repo / "src" / ".gitignore").write_text("db.py\n")
    (sample_repo / "docs" / "db.py").write_text("pass\n")

    spec = load_nested_gitignore(sample_repo)

    assert spec.match_file("src/db.py")
    assert not spec.match_file("docs/db.py")


def test_no_gitignore_returns_none(sample_repo):
    assert load_nested_gitignore(sample_repo) is None


def test_gitignore_can_be_disabled(config, sample_repo):
    config.set("indexer", "use_gitignore", value=False)
    (sample_repo / ".gitignore").write_text("src/\n")

    scanner = DirectoryScanner.from_config(config)

    assert "src/db.py" in relative(scanner.scan(sample_repo), sample_repo)


def test_exceeds_size_limit(sample_repo):
    scanner = DirectoryScanner(extensions=[".py"], max_file_size=10)
    big = sample_repo / "big.py"
    big.write_text("x = 1\n" * 100)

    assert scanner.exceeds_size_limit(big)
    assert not scanner.exceeds_size_limit(sample_repo / "missing.py")
    assert not DirectoryScanner(extensions=[".py"]).exceeds_size_limit(big)


def test_custom_extensions(temp_dir):
    (temp_dir / "a.rs").write_text("fn main() {}\n")
    (temp_dir / "b.py").write_text("pass\n")

    scanner = DirectoryScanner(extensions=[".rs"])

    assert relative(scanner.scan(temp_dir), temp_dir) == ["a.rs"]


def test_from_config_defaults(temp_dir):
    scanner = DirectoryScanner.from_config(Config(project_root=temp_dir))
    assert ".js" in scanner.extensions
    assert "node_modules" in scanner.exclude_patterns
    assert scanner.max_file_size == 2 * 1024 * 1024
