"""Phabricator Differential as a ``ReviewTool``.

Review requests found in git-notes become Differential revisions, and the
local discussion is posted to them as inline comments. In the other
direction, ``PhabricatorReview.load_comments()`` rebuilds Differential's
discussion as git-notes comments so the mirror can write it back.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from pydantic import BaseModel, Field

from ..core.conduit import ConduitClient, ConduitError
from ..core.database import DifferentialDatabase
from ..repository.base import Repo, RepositoryError
from ..review import ci
from ..review.comment import Comment
from ..review.request import Request
from ..review.threads import filter_overlapping
from .diffs import (
    abbreviate_ref_name,
    create_differential_diff,
    find_commit_for_diff,
)
from .transactions import (
    TransactionComment,
    TransactionReconstructor,
)
from .users import UserDirectory

logger = logging.getLogger(__name__)

# Phabricator's type tag for commit hashes, as opposed to tree or blob
# hashes.
COMMIT_HASH_TYPE = "gtcm"

TITLE_LENGTH_LIMIT = 256

NEEDS_REVIEW_STATUS = "0"
CLOSED_STATUS = "3"
ABANDONED_STATUS = "4"

DEFAULT_REPO_DIR_PREFIX = "/var/repo/"

# Inline comments are always posted on the right-hand side of the diff.
_RIGHT_HAND_SIDE = 1

_PUBLISH_ERRORS = (ConduitError, requests.RequestException)


# ---------------------------------------------------------------------------
# Review data
# ---------------------------------------------------------------------------


class DifferentialReview(BaseModel):
    """A revision as returned by ``differential.query``."""

    id: str = ""
    phid: str = ""
    title: str = ""
    branch: str | None = ""
    status: str = ""
    status_name: str = Field(default="", alias="statusName")
    author_phid: str = Field(default="", alias="authorPHID")
    reviewers: list[str] | dict[str, str] = []
    hashes: list[list[str]] = []
    diffs: list[str] = []

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "coerce_numbers_to_str": True,
    }

    def commit_hashes(self) -> list[str]:
        """The commit hashes included in the revision, in listed order."""
        return [
            pair[1]
            for pair in self.hashes
            if len(pair) == 2 and pair[0] == COMMIT_HASH_TYPE
        ]

    def is_closed(self) -> bool:
        return self.status in (CLOSED_STATUS, ABANDONED_STATUS)


class PhabricatorReview:
    """A Differential revision as a ``RemoteReview``."""

    def __init__(self, data: DifferentialReview, tool: PhabricatorTool):
        self.data = data
        self.tool = tool

    def __repr__(self) -> str:
        return f"PhabricatorReview(D{self.data.id})"

    def get_first_commit(self, repo: Repo) -> str | None:
        """Return the oldest commit of the revision that *repo* knows.

        When several commits share the oldest timestamp, the last one
        listed wins. Commits missing from *repo* are skipped.
        """
        first_commit: str | None = None
        first_time: int | None = None
        for commit in self.data.commit_hashes():
            try:
                details = repo.get_commit_details(commit)
                timestamp = int(details.time)
            except (RepositoryError, ValueError):
                continue
            if first_time is None or timestamp <= first_time:
                first_commit = commit
                first_time = timestamp
        return first_commit

    def load_comments(self) -> list[Comment]:
        return self.tool.load_comments(self.data)

    def is_closed(self) -> bool:
        return self.data.is_closed()


# ---------------------------------------------------------------------------
# Review tool
# ---------------------------------------------------------------------------


class PhabricatorTool:
    """Mirrors git-notes reviews into Differential.

    Args:
        conduit: Conduit API client.
        users: Directory used to map identities to PHIDs and back.
        database: Source of Differential's transaction log.
        repo_dir_prefix: Directory Phabricator keeps its repositories in.
            A repository below it is refreshed by callsign.
        match_resolved_timestamps: Forwarded to ``filter_overlapping()``.
    """

    def __init__(
        self,
        conduit: ConduitClient,
        users: UserDirectory,
        database: DifferentialDatabase,
        *,
        repo_dir_prefix: str = DEFAULT_REPO_DIR_PREFIX,
        match_resolved_timestamps: bool = True,
    ) -> None:
        self.conduit = conduit
        self.users = users
        self.database = database
        self.repo_dir_prefix = repo_dir_prefix
        self.match_resolved_timestamps = match_resolved_timestamps

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _read_comment(self, transaction_phid: str) -> TransactionComment:
        body = self.database.read_transaction_comment(transaction_phid)
        if body.diff_id is None:
            return body
        return body.model_copy(
            update={"commit": find_commit_for_diff(self.conduit, body.diff_id)}
        )

    def load_comments(self, review: DifferentialReview) -> list[Comment]:
        """Rebuild the discussion on *review* as git-notes comments."""
        reconstructor = TransactionReconstructor(
            self._read_comment, self.users.lookup_user
        )
        return reconstructor.reconstruct(
            self.database.read_transactions(review.phid)
        )

    def list_differential_reviews(
        self, review_ref: str, revision: str
    ) -> list[DifferentialReview]:
        """Return the revisions containing *revision* on *review_ref*.

        Differential mishandles its own branch filter, so the results are
        filtered here instead.
        """
        result = self.conduit.call(
            "differential.query",
            {"commitHashes": [[COMMIT_HASH_TYPE, revision]]},
        )
        reviews = [DifferentialReview.model_validate(r) for r in result or []]
        short_ref = abbreviate_ref_name(review_ref)
        return [r for r in reviews if r.branch in (review_ref, short_ref)]

    def list_open_reviews(self, repo: Repo) -> list[PhabricatorReview]:
        """Return every open revision.

        Revisions are not filtered by repository here; reviews of other
        repositories have no commits *repo* knows, so
        ``get_first_commit()`` rules them out.
        """
        result = self.conduit.call(
            "differential.query", {"status": "status-open"}
        )
        return [
            PhabricatorReview(DifferentialReview.model_validate(r), self)
            for r in result or []
        ]

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def ensure_request_exists(
        self,
        repo: Repo,
        revision: str,
        request: Request,
        comments: dict[str, Comment],
    ) -> None:
        """Create or update the Differential revision for a request."""
        try:
            merge_base = repo.get_merge_base(request.target_ref, revision)
        except RepositoryError:
            # Merged and deleted, or garbage collected: the request is
            # no longer valid either way.
            logger.info(
                "Ignoring review request for %s: no merge base with %r",
                revision,
                request.target_ref,
            )
            return

        existing = self.list_differential_reviews(request.review_ref, revision)
        if merge_base == revision:
            for review in existing:
                if not review.is_closed():
                    self.close(review)
            return

        try:
            head = repo.get_commit_details(request.review_ref)
        except RepositoryError:
            logger.info(
                "Ignoring review of %s: review ref %r does not exist",
                revision,
                request.review_ref,
            )
            return

        if existing:
            for review in existing:
                self.update_review_diffs(
                    repo, review, head.commit, request, comments
                )
            return

        diff = create_differential_diff(
            self.conduit, repo, merge_base, revision, request, []
        )
        if diff is None:
            return
        created = self.create_differential_revision(
            int(diff["diffid"]), request
        )
        logger.info(
            "Created diff %s and revision %s for the review of %s",
            diff.get("diffid"),
            created.get("revisionid"),
            revision,
        )

        # The review may already span several commits; make sure the
        # newest one is in the revision too.
        for review in self.list_differential_reviews(
            request.review_ref, revision
        ):
            self.update_review_diffs(
                repo, review, head.commit, request, comments
            )

    def update_review_diffs(
        self,
        repo: Repo,
        review: DifferentialReview,
        head_commit: str,
        request: Request,
        comments: dict[str, Comment],
    ) -> None:
        """Bring a revision up to date with the head of its review ref."""
        if review.is_closed():
            return
        try:
            merge_base = repo.get_merge_base(request.target_ref, head_commit)
        except RepositoryError:
            # The target ref was deleted while we were working.
            return

        if head_commit in review.commit_hashes():
            self.mirror_comments_into_review(repo, review, comments)
            return

        diff = create_differential_diff(
            self.conduit,
            repo,
            merge_base,
            head_commit,
            request,
            list(review.diffs),
        )
        if diff is None:
            return
        self.conduit.call(
            "differential.updaterevision",
            {"id": review.id, "diffid": str(diff["diffid"])},
        )

    def create_differential_revision(
        self, diff_id: int, request: Request
    ) -> dict[str, Any]:
        """Create a revision for *diff_id* described by *request*.

        The first line of the description is the title. When the title
        differs from the description, the full description becomes the
        summary.
        """
        title = request.description.split("\n")[0]
        if len(title) > TITLE_LENGTH_LIMIT:
            title = title[: TITLE_LENGTH_LIMIT - 4] + "..."
        fields: dict[str, Any] = {"title": title}
        if title != request.description:
            fields["summary"] = request.description

        reviewers = self._user_phids(request.reviewers)
        if reviewers:
            fields["reviewerPHIDs"] = reviewers
        if request.requester:
            ccs = self._user_phids([request.requester])
            if ccs:
                fields["ccPHIDs"] = ccs

        return self.conduit.call(
            "differential.createrevision",
            {"diffid": diff_id, "fields": fields},
        )

    def _user_phids(self, names: list[str]) -> list[str]:
        phids: list[str] = []
        for name in names:
            try:
                user = self.users.query_user(name)
            except ConduitError as exc:
                logger.warning("Could not look up user %r: %s", name, exc)
                continue
            if user is not None:
                phids.append(user.phid)
        return phids

    def close(self, review: DifferentialReview) -> None:
        """Close a merged revision.

        Differential refuses when the revision was never accepted or is
        not owned by the mirror's account; that is logged and ignored.
        """
        try:
            self.conduit.call(
                "differential.close", {"revisionID": int(review.id)}
            )
        except ConduitError as exc:
            logger.warning("Could not close D%s: %s", review.id, exc)

    def build_comment_requests(
        self,
        review: DifferentialReview,
        new_comments: list[Comment],
        commit_to_diff: dict[str, str],
    ) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        """Build the Conduit requests that post *new_comments*.

        Only comments on a file of a commit that has a diff in the review
        can be posted. They become inline drafts, published by a single
        ``createcomment`` request.

        Returns:
            Tuple of (inline requests, comment requests).
        """
        inline_requests: list[dict[str, Any]] = []
        for comment in new_comments:
            location = comment.location
            if location is None or not location.path:
                continue
            diff_id = commit_to_diff.get(location.commit, "")
            if not diff_id:
                continue
            line_number = 1
            if location.range is not None:
                line_number = location.range.start_line
            inline_requests.append(
                {
                    "revisionID": review.id,
                    "diffID": diff_id,
                    "filePath": location.path,
                    "lineNumber": line_number,
                    "content": comment.quote_description(),
                    "isNewFile": _RIGHT_HAND_SIDE,
                }
            )

        comment_requests: list[dict[str, Any]] = []
        if inline_requests:
            comment_requests.append(
                {
                    "revision_id": review.id,
                    "action": "comment",
                    "attach_inlines": True,
                }
            )
        return inline_requests, comment_requests

    def mirror_comments_into_review(
        self,
        repo: Repo,
        review: DifferentialReview,
        comments: dict[str, Comment],
    ) -> None:
        """Post local comments and build status that the revision lacks."""
        existing = self.load_comments(review)
        new_comments = filter_overlapping(
            comments,
            existing,
            match_resolved_timestamps=self.match_resolved_timestamps,
        )

        commit_to_diff: dict[str, str] = {}
        last_commit = ""
        for diff_id in review.diffs:
            last_commit = find_commit_for_diff(self.conduit, diff_id)
            commit_to_diff[last_commit] = diff_id

        if last_commit:
            self._publish_ci_report(
                repo, last_commit, commit_to_diff[last_commit]
            )

        inline_requests, comment_requests = self.build_comment_requests(
            review, new_comments, commit_to_diff
        )
        for params in inline_requests:
            self._publish("differential.createinline", params)
        for params in comment_requests:
            self._publish("differential.createcomment", params)

    def _publish_ci_report(
        self, repo: Repo, commit: str, diff_id: str
    ) -> None:
        report = ci.get_latest_report(repo.get_notes(ci.CI_REF, commit))
        logger.debug("Latest CI report for diff %s: %s", diff_id, report)
        if not report.url:
            return
        self._publish(
            "differential.updateunitresults",
            {
                "diff_id": int(diff_id),
                "name": report.agent or "ci",
                "result": report.unit_result,
                "link": report.url,
            },
        )

    def _publish(self, method: str, params: dict[str, Any]) -> None:
        try:
            self.conduit.call(method, params)
        except _PUBLISH_ERRORS as exc:
            logger.warning("%s failed: %s", method, exc)

    # ------------------------------------------------------------------
    # Repository notifications
    # ------------------------------------------------------------------

    def refresh(self, repo: Repo) -> None:
        """Ask Diffusion to re-read *repo* soon.

        Only repositories under ``repo_dir_prefix`` have a callsign that
        can be derived from their path; others are left alone.
        """
        path = repo.get_path()
        if not path.startswith(self.repo_dir_prefix):
            return
        callsign = path[len(self.repo_dir_prefix) :].strip("/")
        if not callsign:
            return
        self.conduit.call("diffusion.looksoon", {"callsigns": [callsign]})
