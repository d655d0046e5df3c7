"""Local repositories: the ``Repo`` protocol and its git implementation."""

from .base import CommitDetails, Note, Repo, RepositoryError
from .git import GitCommandError, GitRepo, is_git_repo

__all__ = [
    "CommitDetails",
    "GitCommandError",
    "GitRepo",
    "Note",
    "Repo",
    "RepositoryError",
    "is_git_repo",
]
