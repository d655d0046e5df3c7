"""Tick report formatting.

- ``format_tick_report`` -- human-readable summary for the log.
- ``report_to_json`` -- structured dict for JSON log lines.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import TickReport


def format_tick_report(report: TickReport) -> str:
    """Format a tick report as human-readable text.

    Sections are only included when they contain at least one result.
    """
    lines: list[str] = []
    lines.append(
        f"Mirrored {len(report.results)} repositories: "
        f"{len(report.synced)} synced, {len(report.aborted)} aborted, "
        f"{report.comments_written} comments written"
    )

    changed = [r for r in report.results if r.requests_mirrored]
    if changed:
        lines.append("Requests mirrored:")
        for r in changed:
            lines.append(f"  {r.repo_path}")

    written = [r for r in report.results if r.comments_written]
    if written:
        lines.append("Comments written:")
        for r in written:
            lines.append(f"  {r.repo_path}: {r.comments_written}")

    if report.aborted:
        lines.append("Aborted:")
        for r in report.aborted:
            lines.append(f"  {r.repo_path}: {r.error}")

    if report.push_failures:
        lines.append("Push failed:")
        for r in report.push_failures:
            lines.append(f"  {r.repo_path}: {r.error}")

    return "\n".join(lines)


def report_to_json(report: TickReport) -> dict:
    """Convert a tick report to a dict for JSON serialisation."""
    results_list = []
    for r in report.results:
        entry: dict = {
            "repo_path": r.repo_path,
            "outcome": r.outcome.value,
            "requests_mirrored": r.requests_mirrored,
            "reviews_checked": r.reviews_checked,
            "comments_written": r.comments_written,
        }
        if r.pushed is not None:
            entry["pushed"] = r.pushed
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "synced": len(report.synced),
            "aborted": len(report.aborted),
            "comments_written": report.comments_written,
            "push_failures": len(report.push_failures),
        },
        "results": results_list,
    }
