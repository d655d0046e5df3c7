"""Continuous-integration reports as stored in git-notes.

Build bots annotate revisions on ``refs/notes/devtools/ci`` with the
outcome of a build. Only the most recent report for a revision matters
when publishing unit-test status to Differential.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, ValidationError

CI_REF = "refs/notes/devtools/ci"

# git-appraise status values mapped onto Differential unit result values.
_UNIT_RESULTS = {
    "success": "pass",
    "failure": "fail",
}


class Report(BaseModel):
    """A single build report.

    Attributes:
        timestamp: Decimal epoch seconds, as a string.
        url: Link to the build results.
        status: ``"success"`` or ``"failure"``.
        agent: Name of the reporting build agent.
    """

    timestamp: str = ""
    url: str = ""
    status: str = ""
    agent: str = ""

    model_config = {"frozen": True}

    @property
    def unit_result(self) -> str:
        """The Differential unit-test result for this report's status."""
        return _UNIT_RESULTS.get(self.status, self.status)


def parse_all_valid(notes: Iterable[bytes | str]) -> list[Report]:
    reports: list[Report] = []
    for note in notes:
        try:
            reports.append(Report.model_validate_json(note))
        except ValidationError:
            continue
    return reports


def get_latest_report(notes: Iterable[bytes | str]) -> Report:
    """Return the newest report among *notes*.

    Returns an empty ``Report`` when there are none.

    Raises:
        ValueError: If a report carries a non-numeric timestamp.
    """
    latest: Report | None = None
    latest_timestamp = 0
    for report in parse_all_valid(notes):
        try:
            timestamp = int(report.timestamp)
        except ValueError as exc:
            raise ValueError(
                f"Malformed CI report timestamp {report.timestamp!r}"
            ) from exc
        if latest is None or timestamp > latest_timestamp:
            latest = report
            latest_timestamp = timestamp
    return latest or Report()
