"""
Tests for shared helpers.
"""

import pytest
from repodex.exceptions import FileReadError
from repodex.utils import detect_language, retry_on_failure


def test_retry_succeeds_after_failures():
    calls = []
    delays = []

    @retry_on_failure(max_attempts=3, delay=0.1, backoff=3.0, exceptions=(ValueError,), sleep=delays.append)
    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ValueError("not yet")
        return "ok"

    assert flaky() == "ok"
    assert len(calls) == 3
    assert delays == pytest.approx([0.1, 0.3])


def test_retry_reraises_last_error():
    @retry_on_failure(max_attempts=2, delay=0, exceptions=(ValueError,))
    def always_fails():
        raise ValueError("broken")

    with pytest.raises(ValueError, match="broken"):
        always_fails()


def test_retry_ignores_other_exceptions():
    calls = []

    @retry_on_failure(max_attempts=5, delay=0, exceptions=(ValueError,))
    def wrong_type():
        calls.append(1)
        raise KeyError("nope")

    with pytest.raises(KeyError):
        wrong_type()
    assert len(calls) == 1


def test_retry_requires_an_attempt():
    with pytest.raises(ValueError):
        retry_on_failure(max_attempts=0)


@pytest.mark.parametrize("path,language", [
    ("src/app.tsx", "typescript"),
    ("lib/main.PY", "python"),
    ("README.md", "markdown"),
    ("schema.gql", "graphql"),
    ("notes.txt", "text"),
    ("Makefile", None),
])
def test_detect_language(path, language):
    assert detect_language(path) == language


def test_file_read_error_message():
    error = FileReadError("/repo/a.py", "No such file or directory")

    assert str(error) == "Cannot read /repo/a.py: No such file or directory"
    assert error.path == "/repo/a.py"
