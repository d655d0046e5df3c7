"""Reviews recorded locally in git-notes.

A local review is a revision annotated with at least one review request,
together with the comment threads attached to that revision.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from ..repository.base import Repo
from . import comment as comment_notes
from . import request as request_notes
from .comment import Comment
from .request import Request
from .threads import CommentThread, build_comment_threads, flatten

logger = logging.getLogger(__name__)


class LocalReview(BaseModel):
    """A review request and its discussion, read from git-notes."""

    revision: str
    request: Request
    comments: list[CommentThread] = []

    model_config = {"frozen": True}

    def comment_map(self) -> dict[str, Comment]:
        """Every comment in the review, keyed by hash."""
        return flatten(self.comments)


def get_summary(repo: Repo, revision: str) -> LocalReview | None:
    """Read the review for *revision*, or ``None`` if none was requested."""
    requests = request_notes.parse_all_valid(
        repo.get_notes(request_notes.REQUEST_REF, revision)
    )
    request = request_notes.latest(requests)
    if request is None:
        return None
    comments = comment_notes.parse_all_valid(
        repo.get_notes(comment_notes.DISCUSS_REF, revision)
    )
    return LocalReview(
        revision=revision,
        request=request,
        comments=build_comment_threads(comments),
    )


def list_all(repo: Repo) -> list[LocalReview]:
    """Return every review requested in *repo*."""
    reviews: list[LocalReview] = []
    for revision in repo.list_annotated_revisions(request_notes.REQUEST_REF):
        review = get_summary(repo, revision)
        if review is not None:
            reviews.append(review)
    logger.debug(
        "Found %d review requests in %s", len(reviews), repo.get_path()
    )
    return reviews
