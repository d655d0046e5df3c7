"""Discovery of the repositories to mirror."""

from __future__ import annotations

import logging
import os

from ..repository.git import GitRepo, is_git_repo

logger = logging.getLogger(__name__)


def find_repos(search_dir: str, **repo_options) -> list[GitRepo]:
    """Return every git repository at or below *search_dir*.

    The walk does not descend into a repository once one is found, so
    nested repositories (submodules, vendored checkouts) are not
    mirrored separately.

    Args:
        search_dir: Directory to search.
        **repo_options: Passed on to each ``GitRepo``.

    Raises:
        FileNotFoundError: If *search_dir* does not exist.
    """
    if not os.path.isdir(search_dir):
        raise FileNotFoundError(f"Search directory not found: {search_dir}")

    repos: list[GitRepo] = []
    for dirpath, dirnames, _filenames in os.walk(search_dir):
        if is_git_repo(dirpath):
            repos.append(GitRepo(dirpath, **repo_options))
            dirnames[:] = []
            continue
        dirnames.sort()
    logger.debug("Found %d repositories under %s", len(repos), search_dir)
    return repos
