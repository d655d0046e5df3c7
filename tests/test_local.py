"""Tests for phabricator_mirror.review.local."""

from phabricator_mirror.review import local
from phabricator_mirror.review.comment import DISCUSS_REF
from phabricator_mirror.review.request import REQUEST_REF, Request


def _request(timestamp: str, description: str) -> bytes:
    return Request(
        timestamp=timestamp,
        review_ref="refs/heads/feature",
        target_ref="refs/heads/master",
        description=description,
    ).write()


class TestGetSummary:
    def test_no_request(self, fake_repo):
        assert local.get_summary(fake_repo, "abc123") is None

    def test_latest_request_and_threads(self, fake_repo, make_comment):
        root = make_comment("root", timestamp="1")
        reply = make_comment("reply", timestamp="2", parent=root.hash())
        fake_repo.add_note(REQUEST_REF, "abc123", _request("1", "first"))
        fake_repo.add_note(REQUEST_REF, "abc123", _request("2", "second"))
        fake_repo.add_note(DISCUSS_REF, "abc123", reply.write())
        fake_repo.add_note(DISCUSS_REF, "abc123", root.write())
        fake_repo.add_note(DISCUSS_REF, "abc123", b"not a comment")

        review = local.get_summary(fake_repo, "abc123")

        assert review.request.description == "second"
        assert len(review.comments) == 1
        assert review.comments[0].children[0].comment == reply
        assert review.comment_map() == {
            root.hash(): root,
            reply.hash(): reply,
        }


class TestListAll:
    def test_lists_requested_revisions(self, fake_repo):
        fake_repo.add_note(REQUEST_REF, "aaa111", _request("1", "one"))
        fake_repo.add_note(REQUEST_REF, "bbb222", b"garbage")
        fake_repo.add_note(DISCUSS_REF, "ccc333", b"{}")

        reviews = local.list_all(fake_repo)

        assert [r.revision for r in reviews] == ["aaa111"]
