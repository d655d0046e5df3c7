"""Tests for repository discovery."""

from pathlib import Path
from unittest.mock import patch

import pytest

from phabricator_mirror.mirror.discovery import find_repos


def _fake_is_git_repo():
    """Treat directories containing a ``.git`` entry as repositories."""

    def _check(path: str) -> bool:
        return (Path(path) / ".git").exists()

    return _check


class TestFindRepos:
    def test_finds_nested_repositories(self, tmp_path):
        for name in ("b/ONE", "a/TWO", "c"):
            (tmp_path / name / ".git").mkdir(parents=True)
        (tmp_path / "c" / "vendored" / ".git").mkdir(parents=True)
        (tmp_path / "empty").mkdir()

        with patch(
            "phabricator_mirror.mirror.discovery.is_git_repo",
            side_effect=_fake_is_git_repo(),
        ):
            repos = find_repos(str(tmp_path), remote="upstream")

        assert [Path(r.path).relative_to(tmp_path) for r in repos] == [
            Path("a/TWO"),
            Path("b/ONE"),
            Path("c"),
        ]
        assert all(r.remote == "upstream" for r in repos)

    def test_search_dir_is_a_repository(self, tmp_path):
        (tmp_path / ".git").mkdir()
        with patch(
            "phabricator_mirror.mirror.discovery.is_git_repo",
            side_effect=_fake_is_git_repo(),
        ):
            repos = find_repos(str(tmp_path))
        assert [r.path for r in repos] == [str(tmp_path)]

    def test_missing_search_dir(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            find_repos(str(tmp_path / "missing"))
