"""Tests for review request and CI report notes.

Covers:
- request.parse() / parse_all_valid() / latest()
- Request.write() field names and elision
- ci.get_latest_report(): newest report wins, malformed timestamps
"""

import pytest

from phabricator_mirror.review import ci, request
from phabricator_mirror.review.request import Request, RequestParseError

_REQUEST_NOTE = (
    b'{"timestamp":"1700000000","reviewRef":"refs/heads/feature",'
    b'"targetRef":"refs/heads/master","requester":"alice@example.com",'
    b'"reviewers":["bob@example.com"],"description":"Add a feature",'
    b'"baseCommit":"abc123"}'
)


class TestRequestParse:
    def test_parse_fields(self):
        parsed = request.parse(_REQUEST_NOTE)
        assert parsed.review_ref == "refs/heads/feature"
        assert parsed.target_ref == "refs/heads/master"
        assert parsed.requester == "alice@example.com"
        assert parsed.reviewers == ["bob@example.com"]
        assert parsed.base_commit == "abc123"

    def test_write_uses_note_field_names(self):
        assert request.parse(_REQUEST_NOTE).write() == _REQUEST_NOTE

    def test_target_ref_always_written(self):
        assert Request().write() == b'{"targetRef":""}'

    def test_invalid_note_raises(self):
        with pytest.raises(RequestParseError):
            request.parse(b"nope")

    def test_parse_all_valid_skips_garbage(self):
        parsed = request.parse_all_valid([b"nope", _REQUEST_NOTE])
        assert len(parsed) == 1


class TestLatest:
    def test_newest_wins(self):
        old = Request(timestamp="5", description="old")
        new = Request(timestamp="0000000010", description="new")
        assert request.latest([new, old]).description == "new"

    def test_later_entry_wins_ties(self):
        first = Request(timestamp="5", description="first")
        second = Request(timestamp="5", description="second")
        assert request.latest([first, second]).description == "second"

    def test_no_requests(self):
        assert request.latest([]) is None


class TestLatestReport:
    def test_newest_report_wins(self):
        notes = [
            b'{"timestamp":"2","url":"https://ci/2","status":"failure"}',
            b'{"timestamp":"3","url":"https://ci/3","status":"success"}',
            b'{"timestamp":"1","url":"https://ci/1","status":"failure"}',
        ]
        report = ci.get_latest_report(notes)
        assert report.url == "https://ci/3"
        assert report.unit_result == "pass"

    def test_failure_maps_to_fail(self):
        report = ci.Report(status="failure")
        assert report.unit_result == "fail"

    def test_unknown_status_passes_through(self):
        assert ci.Report(status="skip").unit_result == "skip"

    def test_no_reports(self):
        assert ci.get_latest_report([b"junk"]) == ci.Report()

    def test_malformed_timestamp_raises(self):
        with pytest.raises(ValueError, match="timestamp"):
            ci.get_latest_report([b'{"timestamp":"soon","url":"u"}'])
