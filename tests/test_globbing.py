"""Tests for bounded glob enumeration."""

from __future__ import annotations

from pathlib import Path

from repodex.scanning import GlobEntry, GlobMatcher
from repodex.scanning.detectors import ReadmeFinder
from repodex.scanning.globbing import compile_pattern, expand_braces


def _touch(path: Path, content: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def _tree(root: Path) -> None:
    _touch(root / "README.md")
    _touch(root / "src" / "main.py")
    _touch(root / "src" / "pkg" / "util.py")
    _touch(root / "node_modules" / "dep" / "index.js")
    _touch(root / "docs" / "Guide.MD")


def test_expand_braces_handles_multiple_groups() -> None:
    assert expand_braces("a.{md,txt}") == ["a.md", "a.txt"]
    assert expand_braces("{x,y}/{1,2}") == ["x/1", "x/2", "y/1", "y/2"]
    assert expand_braces("plain") == ["plain"]


def test_double_star_matches_root_level_and_nested_files(tmp_path: Path) -> None:
    _tree(tmp_path)

    matches = GlobMatcher().match("**/*.py", cwd=tmp_path)

    assert matches == ["src/main.py", "src/pkg/util.py"]


def test_deep_limits_path_components(tmp_path: Path) -> None:
    _tree(tmp_path)

    matches = GlobMatcher().match("**/*.py", cwd=tmp_path, deep=2)

    assert matches == ["src/main.py"]


def test_ignore_prunes_directories(tmp_path: Path) -> None:
    _tree(tmp_path)

    matches = GlobMatcher().match("**/*", cwd=tmp_path, ignore=["**/node_modules/**"])

    assert not any(match.startswith("node_modules") for match in matches)
    assert "README.md" in matches


def test_bare_ignore_pattern_matches_any_component(tmp_path: Path) -> None:
    _tree(tmp_path)

    matches = GlobMatcher().match("**/*", cwd=tmp_path, ignore=["pkg"])

    assert "src/pkg/util.py" not in matches
    assert "src/main.py" in matches


def test_case_insensitive_matching_with_braces(tmp_path: Path) -> None:
    _tree(tmp_path)

    matches = GlobMatcher().match(
        "**/*.{md,rst}", cwd=tmp_path, case_sensitive=False, ignore=["**/node_modules/**"]
    )

    assert matches == ["README.md", "docs/Guide.MD"]


def test_directories_only_when_requested(tmp_path: Path) -> None:
    _tree(tmp_path)

    files_only = GlobMatcher().match("src", cwd=tmp_path)
    with_dirs = GlobMatcher().match("src", cwd=tmp_path, only_files=False)

    assert files_only == []
    assert with_dirs == ["src"]


def test_absolute_and_stats_results(tmp_path: Path) -> None:
    _touch(tmp_path / "data.bin", "12345")

    (entry,) = GlobMatcher().match("*.bin", cwd=tmp_path, absolute=True, stats=True)

    assert isinstance(entry, GlobEntry)
    assert entry.path == str(tmp_path / "data.bin")
    assert entry.stats.st_size == 5


def test_missing_directory_yields_nothing(tmp_path: Path) -> None:
    assert GlobMatcher().match("**/*", cwd=tmp_path / "absent") == []


def test_single_star_stays_within_one_segment(tmp_path: Path) -> None:
    _tree(tmp_path)
    _touch(tmp_path / "setup.py")

    assert GlobMatcher().match("*.py", cwd=tmp_path) == ["setup.py"]
    assert GlobMatcher().match("src/*.py", cwd=tmp_path) == ["src/main.py"]
    assert GlobMatcher().match("src/**/*.py", cwd=tmp_path) == ["src/main.py", "src/pkg/util.py"]


def test_question_mark_and_classes_do_not_cross_segments() -> None:
    assert compile_pattern("a?b").match("a/b") is None
    assert compile_pattern("a?b").match("axb") is not None
    assert compile_pattern("[!x]*.md").match("readme.md") is not None
    assert compile_pattern("[!x]*.md").match("xray.md") is None
    assert compile_pattern("**/.git/?*").match("nested/.git/HEAD") is not None
    assert compile_pattern("**/.git/?*").match("nested/.git") is None


def test_readme_pattern_ignores_lookalike_directories(tmp_path: Path) -> None:
    _touch(tmp_path / "README.md")
    _touch(tmp_path / "readme_assets" / "diagram.md")
    _touch(tmp_path / "docs" / "readme.rst")

    found = ReadmeFinder().find(tmp_path)

    assert found == ["README.md", "docs/readme.rst"]
