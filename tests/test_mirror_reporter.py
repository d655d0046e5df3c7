"""Tests for tick report models and formatting.

Covers:
- TickReport aggregate properties
- format_tick_report with various result combinations
- report_to_json structure and completeness
- Empty report produces a single summary line
"""

from __future__ import annotations

from phabricator_mirror.mirror.models import (
    RepoSyncResult,
    SyncOutcome,
    TickReport,
)
from phabricator_mirror.mirror.reporter import (
    format_tick_report,
    report_to_json,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_report(results: list[RepoSyncResult] | None = None) -> TickReport:
    """Build a TickReport with sensible defaults."""
    return TickReport(
        results=results or [],
        started_at="2026-02-07T10:00:00+00:00",
        completed_at="2026-02-07T10:00:05+00:00",
    )


def _mixed_results() -> list[RepoSyncResult]:
    return [
        RepoSyncResult(
            repo_path="/var/repo/A",
            requests_mirrored=True,
            reviews_checked=2,
            comments_written=3,
            pushed=True,
        ),
        RepoSyncResult(
            repo_path="/var/repo/B",
            outcome=SyncOutcome.ABORTED,
            error="pull failed",
        ),
        RepoSyncResult(
            repo_path="/var/repo/C",
            pushed=False,
            error="push rejected",
        ),
    ]


class TestTickReport:
    def test_aggregates(self):
        report = _make_report(_mixed_results())
        assert [r.repo_path for r in report.synced] == [
            "/var/repo/A",
            "/var/repo/C",
        ]
        assert [r.repo_path for r in report.aborted] == ["/var/repo/B"]
        assert report.comments_written == 3
        assert [r.repo_path for r in report.push_failures] == ["/var/repo/C"]


class TestFormatTickReport:
    def test_empty_report(self):
        text = format_tick_report(_make_report())
        assert text == (
            "Mirrored 0 repositories: 0 synced, 0 aborted, "
            "0 comments written"
        )

    def test_sections(self):
        text = format_tick_report(_make_report(_mixed_results()))
        lines = text.split("\n")
        assert lines[0] == (
            "Mirrored 3 repositories: 2 synced, 1 aborted, "
            "3 comments written"
        )
        assert "Requests mirrored:" in lines
        assert "  /var/repo/A: 3" in lines
        assert "  /var/repo/B: pull failed" in lines
        assert "  /var/repo/C: push rejected" in lines

    def test_sections_omitted_when_empty(self):
        text = format_tick_report(
            _make_report([RepoSyncResult(repo_path="/var/repo/A")])
        )
        assert "Aborted:" not in text
        assert "Push failed:" not in text
        assert "Comments written:" not in text


class TestReportToJson:
    def test_structure(self):
        data = report_to_json(_make_report(_mixed_results()))

        assert data["started_at"] == "2026-02-07T10:00:00+00:00"
        assert data["counts"] == {
            "total": 3,
            "synced": 2,
            "aborted": 1,
            "comments_written": 3,
            "push_failures": 1,
        }
        first, second, third = data["results"]
        assert first == {
            "repo_path": "/var/repo/A",
            "outcome": "synced",
            "requests_mirrored": True,
            "reviews_checked": 2,
            "comments_written": 3,
            "pushed": True,
        }
        assert second["outcome"] == "aborted"
        assert "pushed" not in second
        assert third["error"] == "push rejected"
