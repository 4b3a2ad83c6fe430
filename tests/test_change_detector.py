"""
Unit tests for content-hash change detection.
"""

import hashlib
from repodex.change_detector import ChangeAction, ChangeDetector, compute_content_hash
from repodex.models import FileRecord


def test_compute_content_hash_is_sha256():
    data = b"print('hello')\n"
    assert compute_content_hash(data) == hashlib.sha256(data).hexdigest()


def test_hash_differs_for_different_content():
    assert compute_content_hash(b"a") != compute_content_hash(b"b")


def test_new_file_needs_reindex(memory_storage):
    decision = ChangeDetector(memory_storage).check("/repo/a.py", b"x = 1\n")

    assert decision.action == ChangeAction.REINDEX
    assert decision.should_reindex
    assert decision.existing is None


def test_unchanged_file_is_skipped(memory_storage):
    data = b"x = 1\n"
    memory_storage.replace_file(
        FileRecord(path="/repo/a.py", content_hash=compute_content_hash(data), last_modified=0, file_size=6),
        [],
    )

    decision = ChangeDetector(memory_storage).check("/repo/a.py", data)

    assert decision.action == ChangeAction.SKIP
    assert decision.existing.path == "/repo/a.py"


def test_changed_file_needs_reindex(memory_storage):
    memory_storage.replace_file(
        FileRecord(path="/repo/a.py", content_hash=compute_content_hash(b"old"), last_modified=0, file_size=3),
        [],
    )

    decision = ChangeDetector(memory_storage).check("/repo/a.py", b"new")

    assert decision.should_reindex
    assert decision.content_hash == compute_content_hash(b"new")


def test_force_reindexes_unchanged_file(memory_storage):
    data = b"same"
    memory_storage.replace_file(
        FileRecord(path="/repo/a.py", content_hash=compute_content_hash(data), last_modified=0, file_size=4),
        [],
    )

    assert ChangeDetector(memory_storage).check("/repo/a.py", data, force=True).should_reindex
