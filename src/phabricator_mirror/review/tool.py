"""Protocols for the remote code review service.

The controller talks to the review service only through ``ReviewTool``
and the ``RemoteReview`` objects it returns. ``PhabricatorTool`` is the
production implementation.
"""

from __future__ import annotations

from typing import Protocol

from ..repository.base import Repo
from .comment import Comment
from .request import Request


class RemoteReview(Protocol):
    """A review held by the remote service."""

    def get_first_commit(self, repo: Repo) -> str | None:
        """Return the oldest commit of the review known to *repo*."""
        ...  # pragma: no cover

    def load_comments(self) -> list[Comment]:
        """Return the review's comments in the git-notes model."""
        ...  # pragma: no cover


class ReviewTool(Protocol):
    """The review side of the mirror."""

    def ensure_request_exists(
        self,
        repo: Repo,
        revision: str,
        request: Request,
        comments: dict[str, Comment],
    ) -> None:
        """Create or update the remote review for a local request.

        Args:
            repo: Repository holding the request.
            revision: Revision annotated by the request.
            request: The review request.
            comments: Every local comment on the revision, keyed by hash,
                so the remote side can skip those it already shows.
        """
        ...  # pragma: no cover

    def list_open_reviews(self, repo: Repo) -> list[RemoteReview]:
        """Return the reviews that have not been closed yet."""
        ...  # pragma: no cover

    def refresh(self, repo: Repo) -> None:
        """Tell the service that the repository has changed."""
        ...  # pragma: no cover
