"""Tests for the in-memory mirror state.

Covers:
- fingerprint change detection per repository
- comment threads: replace, read copies, record new comments
- open reviews and repository status defaults
"""

from __future__ import annotations

from phabricator_mirror.mirror.state import MirrorState, RepoStatus
from phabricator_mirror.review.threads import CommentThread


class TestFingerprints:
    def test_unknown_repository_has_changed(self):
        assert MirrorState().fingerprint_changed("/r", "abc")

    def test_recorded_fingerprint(self):
        state = MirrorState()
        state.record_fingerprint("/r", "abc")
        assert not state.fingerprint_changed("/r", "abc")
        assert state.fingerprint_changed("/r", "def")
        assert state.fingerprint_changed("/other", "abc")


class TestCommentThreads:
    def test_missing_revision_is_empty(self):
        assert MirrorState().get_comment_threads("/r", "rev") == []

    def test_set_replaces(self, make_comment):
        state = MirrorState()
        first, second = make_comment("first"), make_comment("second")
        state.set_comment_threads(
            "/r", "rev", [CommentThread(hash=first.hash(), comment=first)]
        )
        state.set_comment_threads(
            "/r", "rev", [CommentThread(hash=second.hash(), comment=second)]
        )
        (thread,) = state.get_comment_threads("/r", "rev")
        assert thread.comment == second

    def test_add_comments_appends_roots(self, make_comment):
        state = MirrorState()
        comment = make_comment("new")
        state.add_comments("/r", "rev", [comment])
        (thread,) = state.get_comment_threads("/r", "rev")
        assert thread.hash == comment.hash()
        assert thread.children == []

    def test_returned_list_is_a_copy(self, make_comment):
        state = MirrorState()
        state.add_comments("/r", "rev", [make_comment("x")])
        state.get_comment_threads("/r", "rev").clear()
        assert len(state.get_comment_threads("/r", "rev")) == 1


class TestOpenReviewsAndStatus:
    def test_open_reviews(self):
        state = MirrorState()
        assert state.get_open_reviews("/r") == []
        review = object()
        state.set_open_reviews("/r", [review])
        assert state.get_open_reviews("/r") == [review]

    def test_status_defaults_to_idle(self):
        state = MirrorState()
        assert state.get_status("/r") == RepoStatus.IDLE
        state.set_status("/r", RepoStatus.SYNCING)
        assert state.get_status("/r") == RepoStatus.SYNCING
