from __future__ import annotations

import pytest

from codethread.code.diff import compute_diff
from codethread.code.naming import infer_contextual_name


@pytest.mark.parametrize(
    "language,code,expected",
    [
        ("html", "<!DOCTYPE html><html><body></body></html>", "Main HTML document"),
        ("html", "<nav><a href='/'>Home</a></nav>", "Navigation component"),
        ("html", "<form><input/></form>", "Form component"),
        ("js", "function Header() { return <h1>Hi</h1>; }", "Header component"),
        ("js", "function add(a, b) { return a + b; }", "Utility functions"),
        ("css", "body { margin: 0; }", "Stylesheet"),
        ("python", "def run():\n    pass\n", "Python functions"),
        ("python", "class Runner:\n    def run(self):\n        pass\n", "Python class definition"),
        ("sql", "SELECT 1", "Database query"),
        ("rust", "fn main() {}", "rust code"),
    ],
)
def test_infer_contextual_name(language: str, code: str, expected: str) -> None:
    assert infer_contextual_name(language, code) == expected


def test_filename_wins_over_heuristics() -> None:
    assert infer_contextual_name("css", "body {}", "site.css") == "site.css"


def test_compute_diff_is_empty_for_identical_text() -> None:
    assert compute_diff("a\n", "a\n") == ""
    assert compute_diff("a\n", "b\n").startswith("--- parent")
