"""Pydantic models describing the outcome of mirroring passes.

- ``SyncOutcome``: whether a repository's pass ran to completion.
- ``RepoSyncResult``: outcome of one pass over one repository.
- ``TickReport``: aggregate results for one pass over every repository.

All models are frozen (immutable).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class SyncOutcome(str, Enum):
    """How a repository's pass ended."""

    SYNCED = "synced"
    ABORTED = "aborted"


class RepoSyncResult(BaseModel):
    """Result of mirroring one repository.

    Attributes:
        repo_path: Path of the repository.
        outcome: Whether the pass completed.
        requests_mirrored: True if the repository had changed and its
            review requests were mirrored to the review service.
        reviews_checked: Number of open remote reviews inspected.
        comments_written: Number of comments appended to git-notes.
        pushed: Result of pushing to the remote; ``None`` when remote
            sync is disabled or the pass was aborted.
        error: Error message if the pass was aborted or the push failed.
    """

    repo_path: str
    outcome: SyncOutcome = SyncOutcome.SYNCED
    requests_mirrored: bool = False
    reviews_checked: int = 0
    comments_written: int = 0
    pushed: bool | None = None
    error: str | None = None

    model_config = {"frozen": True}


class TickReport(BaseModel):
    """Aggregate report for one pass over all repositories.

    Attributes:
        results: Per-repository results, in processing order.
        started_at: ISO 8601 timestamp when the tick started.
        completed_at: ISO 8601 timestamp when the tick completed.
    """

    results: list[RepoSyncResult] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def synced(self) -> list[RepoSyncResult]:
        return [r for r in self.results if r.outcome == SyncOutcome.SYNCED]

    @property
    def aborted(self) -> list[RepoSyncResult]:
        return [r for r in self.results if r.outcome == SyncOutcome.ABORTED]

    @property
    def comments_written(self) -> int:
        return sum(r.comments_written for r in self.results)

    @property
    def push_failures(self) -> list[RepoSyncResult]:
        return [r for r in self.results if r.pushed is False]
