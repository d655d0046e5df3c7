"""In-memory state kept between mirroring passes.

``MirrorState`` holds what the controller learned about each repository
on earlier ticks:

* the fingerprint of the repository's refs at the last request pass, so
  unchanged repositories skip straight to harvesting,
* the local comment threads of every reviewed revision, used to
  recognise remote comments that are already in git-notes,
* the open remote reviews found at the last request pass,
* whether the repository is currently being mirrored.

State is owned by one controller and lives as long as it does; nothing
is persisted. A restart simply re-mirrors every repository once.
"""

from __future__ import annotations

from collections import defaultdict
from enum import Enum

from ..review.comment import Comment
from ..review.threads import CommentThread
from ..review.tool import RemoteReview


class RepoStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"


class MirrorState:
    """Per-repository caches, keyed by repository path."""

    def __init__(self) -> None:
        self._fingerprints: dict[str, str] = {}
        self._threads: dict[str, dict[str, list[CommentThread]]] = (
            defaultdict(dict)
        )
        self._open_reviews: dict[str, list[RemoteReview]] = {}
        self._status: dict[str, RepoStatus] = {}

    # ------------------------------------------------------------------
    # Fingerprints
    # ------------------------------------------------------------------

    def fingerprint_changed(self, repo_path: str, fingerprint: str) -> bool:
        return self._fingerprints.get(repo_path) != fingerprint

    def record_fingerprint(self, repo_path: str, fingerprint: str) -> None:
        self._fingerprints[repo_path] = fingerprint

    # ------------------------------------------------------------------
    # Known comments
    # ------------------------------------------------------------------

    def set_comment_threads(
        self, repo_path: str, revision: str, threads: list[CommentThread]
    ) -> None:
        self._threads[repo_path][revision] = list(threads)

    def get_comment_threads(
        self, repo_path: str, revision: str
    ) -> list[CommentThread]:
        return list(self._threads.get(repo_path, {}).get(revision, []))

    def add_comments(
        self, repo_path: str, revision: str, comments: list[Comment]
    ) -> None:
        """Record comments just written to git-notes as known."""
        threads = self._threads[repo_path].setdefault(revision, [])
        for comment in comments:
            threads.append(CommentThread(hash=comment.hash(), comment=comment))

    # ------------------------------------------------------------------
    # Open reviews
    # ------------------------------------------------------------------

    def set_open_reviews(
        self, repo_path: str, reviews: list[RemoteReview]
    ) -> None:
        self._open_reviews[repo_path] = list(reviews)

    def get_open_reviews(self, repo_path: str) -> list[RemoteReview]:
        return list(self._open_reviews.get(repo_path, []))

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def set_status(self, repo_path: str, status: RepoStatus) -> None:
        self._status[repo_path] = status

    def get_status(self, repo_path: str) -> RepoStatus:
        return self._status.get(repo_path, RepoStatus.IDLE)
