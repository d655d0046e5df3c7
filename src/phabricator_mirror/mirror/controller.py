"""Repeated two-way mirroring of review metadata.

A *tick* mirrors every repository once:

1. With remote sync enabled, pull the remote's refs and notes.
2. If the repository's refs changed since the last request pass, mirror
   each local review request to the review tool, remember the local
   comment threads of each reviewed revision, refresh the list of open
   remote reviews and ask the tool to re-read the repository.
3. For every open remote review whose commits the repository knows,
   load the remote discussion and append the comments git-notes does not
   have yet.
4. With remote sync enabled, push the notes back.

Every step is idempotent, so a pass interrupted half-way is completed by
the next tick. A repository whose pull fails is skipped for this tick; a
failed push is logged and retried implicitly on the next tick. Anything
else that fails propagates out of the tick.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from ..repository.base import Repo, RepositoryError
from ..review import local
from ..review.comment import DISCUSS_REF
from ..review.threads import filter_overlapping
from ..review.tool import ReviewTool
from .models import RepoSyncResult, SyncOutcome, TickReport
from .reporter import format_tick_report, report_to_json
from .state import MirrorState, RepoStatus

logger = logging.getLogger(__name__)


class SyncController:
    """Mirror git-notes reviews to and from a review tool.

    Args:
        tool: The remote review tool.
        sync_to_remote: Pull from and push to each repository's remote.
        state: Caches carried between ticks; a fresh ``MirrorState`` by
            default.
        match_resolved_timestamps: Forwarded to ``filter_overlapping()``.
    """

    def __init__(
        self,
        tool: ReviewTool,
        *,
        sync_to_remote: bool = False,
        state: MirrorState | None = None,
        match_resolved_timestamps: bool = True,
    ) -> None:
        self.tool = tool
        self.sync_to_remote = sync_to_remote
        self.state = state or MirrorState()
        self.match_resolved_timestamps = match_resolved_timestamps

    # ------------------------------------------------------------------
    # Main entry points
    # ------------------------------------------------------------------

    def run(
        self,
        discover: Callable[[], Iterable[Repo]],
        period: float,
        *,
        max_ticks: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Run ticks every *period* seconds.

        Repositories are re-discovered on every tick so new ones are
        picked up without a restart.

        Args:
            discover: Returns the repositories to mirror.
            period: Target number of seconds between tick starts.
            max_ticks: Stop after this many ticks; run forever if ``None``.
            sleep: Sleep function, replaceable in tests.
            clock: Monotonic clock, replaceable in tests.
        """
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            started = clock()
            self.tick(discover())
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            remaining = period - (clock() - started)
            if remaining > 0:
                sleep(remaining)

    def tick(self, repos: Iterable[Repo]) -> TickReport:
        """Mirror every repository in *repos* once."""
        started_at = datetime.now(timezone.utc).isoformat()
        results = [self.mirror_repo(repo) for repo in repos]
        report = TickReport(
            results=results,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info(
            format_tick_report(report),
            extra={"tick_report": report_to_json(report)},
        )
        return report

    def mirror_repo(self, repo: Repo) -> RepoSyncResult:
        """Run one mirroring pass over *repo*."""
        repo_path = repo.get_path()
        self.state.set_status(repo_path, RepoStatus.SYNCING)
        try:
            return self._mirror_repo(repo, repo_path)
        finally:
            self.state.set_status(repo_path, RepoStatus.IDLE)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _mirror_repo(self, repo: Repo, repo_path: str) -> RepoSyncResult:
        if self.sync_to_remote:
            try:
                repo.pull()
            except RepositoryError as exc:
                logger.error(
                    "Failed to pull updates for %s: %s", repo_path, exc
                )
                return RepoSyncResult(
                    repo_path=repo_path,
                    outcome=SyncOutcome.ABORTED,
                    error=str(exc),
                )

        requests_mirrored = False
        fingerprint = repo.get_state_fingerprint()
        if self.state.fingerprint_changed(repo_path, fingerprint):
            self._mirror_requests(repo, repo_path)
            self.state.record_fingerprint(repo_path, fingerprint)
            self.tool.refresh(repo)
            requests_mirrored = True

        reviews_checked, comments_written = self._harvest_comments(
            repo, repo_path
        )

        pushed: bool | None = None
        error: str | None = None
        if self.sync_to_remote:
            try:
                repo.push()
                pushed = True
            except RepositoryError as exc:
                logger.error(
                    "Failed to push updates to %s: %s", repo_path, exc
                )
                pushed = False
                error = str(exc)

        return RepoSyncResult(
            repo_path=repo_path,
            requests_mirrored=requests_mirrored,
            reviews_checked=reviews_checked,
            comments_written=comments_written,
            pushed=pushed,
            error=error,
        )

    def _mirror_requests(self, repo: Repo, repo_path: str) -> None:
        logger.info("Mirroring repo: %s", repo_path)
        for review in local.list_all(repo):
            self.state.set_comment_threads(
                repo_path, review.revision, review.comments
            )
            self.tool.ensure_request_exists(
                repo, review.revision, review.request, review.comment_map()
            )
        self.state.set_open_reviews(
            repo_path, self.tool.list_open_reviews(repo)
        )

    def _harvest_comments(
        self, repo: Repo, repo_path: str
    ) -> tuple[int, int]:
        """Append remote comments missing from git-notes.

        Returns:
            Tuple of (reviews checked, comments written).
        """
        reviews_checked = 0
        comments_written = 0
        for review in self.state.get_open_reviews(repo_path):
            revision = review.get_first_commit(repo)
            if not revision:
                continue
            reviews_checked += 1
            known = self.state.get_comment_threads(repo_path, revision)
            logger.debug(
                "Processing review of %s with %d known threads",
                revision,
                len(known),
            )
            new_comments = filter_overlapping(
                review.load_comments(),
                known,
                match_resolved_timestamps=self.match_resolved_timestamps,
            )
            for comment in new_comments:
                note = comment.write()
                logger.info("Appending a comment to %s: %s", revision, note)
                repo.append_note(DISCUSS_REF, revision, note, comment.author)
            self.state.add_comments(repo_path, revision, new_comments)
            comments_written += len(new_comments)
        return reviews_checked, comments_written
