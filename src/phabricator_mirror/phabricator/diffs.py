"""Differential diffs.

A Differential revision is a series of *diffs*. Differential does not
record which commit produced the right-hand side of a diff; the closest
thing is the ``local:commits`` diff property, a map of commit hash to
commit details. The commit with the latest ``time`` is the one the diff
was generated from.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..core.conduit import ConduitClient
from ..repository.base import Repo
from ..review.request import Request

logger = logging.getLogger(__name__)

LOCAL_COMMITS_PROPERTY = "local:commits"
UNIT_PROPERTY = "arc:unit"

# Lint and unit status code meaning "postponed".
POSTPONED_STATUS = "5"

_HEADS_PREFIX = "refs/heads/"


def abbreviate_ref_name(ref: str) -> str:
    """Strip ``refs/heads/`` from a branch ref."""
    return ref.removeprefix(_HEADS_PREFIX)


def find_last_commit(local_commits: dict[str, Any]) -> str:
    """Return the commit with the latest ``time`` in a ``local:commits`` map.

    Entries without a string ``time`` are ignored. Returns an empty string
    when no entry qualifies.

    Raises:
        ValueError: If a ``time`` value is not an integer.
    """
    last_commit = ""
    last_time: int | None = None
    for commit, details in local_commits.items():
        if not isinstance(details, dict):
            continue
        time_value = details.get("time")
        if not isinstance(time_value, str):
            continue
        timestamp = int(time_value)
        if last_time is None or timestamp >= last_time:
            last_commit = commit
            last_time = timestamp
    return last_commit


def diff_last_commit(diff: dict[str, Any] | None) -> str:
    """Return the last commit recorded in a ``querydiffs`` entry."""
    if not diff:
        return ""
    properties = diff.get("properties")
    if not isinstance(properties, dict):
        return ""
    local_commits = properties.get(LOCAL_COMMITS_PROPERTY)
    if not isinstance(local_commits, dict):
        return ""
    return find_last_commit(local_commits)


def read_diff(conduit: ConduitClient, diff_id: int) -> dict[str, Any] | None:
    """Return the ``querydiffs`` entry for *diff_id*, or ``None``."""
    result = conduit.call("differential.querydiffs", {"ids": [diff_id]})
    if not result:
        return None
    return result.get(str(diff_id))


def find_commit_for_diff(conduit: ConduitClient, diff_id: str | int) -> str:
    """Return the commit a diff was generated from, or ``""``."""
    try:
        numeric_id = int(diff_id)
    except ValueError:
        return ""
    return diff_last_commit(read_diff(conduit, numeric_id))


def get_diff_changes(
    conduit: ConduitClient,
    repo: Repo,
    from_revision: str,
    to_revision: str,
) -> list[Any]:
    """Return Differential's parsed form of the diff between two revisions.

    Differential expects diffs as a list of parsed "changes". The parse is
    done server-side by uploading the raw diff and reading it back.

    Raises:
        ValueError: If the uploaded diff cannot be read back.
    """
    raw_diff = repo.get_raw_diff(from_revision, to_revision)
    created = conduit.call("differential.createrawdiff", {"diff": raw_diff})
    diff = read_diff(conduit, int(created["id"]))
    if diff is None:
        raise ValueError(
            f"Failed to retrieve the raw diff for "
            f"{from_revision}..{to_revision}"
        )
    return diff.get("changes") or []


def set_diff_property(
    conduit: ConduitClient, diff_id: int, name: str, value: str
) -> None:
    conduit.call(
        "differential.setdiffproperty",
        {"diff_id": diff_id, "name": name, "data": value},
    )


def create_differential_diff(
    conduit: ConduitClient,
    repo: Repo,
    merge_base: str,
    revision: str,
    request: Request,
    prior_diffs: list[str],
) -> dict[str, Any] | None:
    """Create a Differential diff for ``merge_base..revision``.

    The new diff's ``local:commits`` carries the commits of every prior
    diff plus *revision*, so the review keeps its full commit history.

    Returns:
        The ``creatediff`` result (``diffid`` and ``uri``), or ``None`` if
        Differential declined to create a diff.
    """
    details = repo.get_commit_details(revision)
    changes = get_diff_changes(conduit, repo, merge_base, revision)
    params: dict[str, Any] = {
        "branch": abbreviate_ref_name(request.review_ref),
        "sourceControlSystem": "git",
        "sourceControlBaseRevision": merge_base,
        "sourcePath": repo.get_path(),
        "lintStatus": POSTPONED_STATUS,
        "unitStatus": POSTPONED_STATUS,
    }
    if changes:
        params["changes"] = changes
    created = conduit.call("differential.creatediff", params)
    if not created or not created.get("diffid"):
        logger.info(
            "Differential did not create a diff for %s..%s",
            merge_base,
            revision,
        )
        return None
    diff_id = int(created["diffid"])

    local_commits: dict[str, Any] = {}
    for prior in prior_diffs:
        prior_diff = read_diff(conduit, int(prior))
        properties = (prior_diff or {}).get("properties")
        if isinstance(properties, dict):
            prior_commits = properties.get(LOCAL_COMMITS_PROPERTY)
            if isinstance(prior_commits, dict):
                local_commits.update(prior_commits)
    local_commits[revision] = details.to_property()

    set_diff_property(
        conduit,
        diff_id,
        LOCAL_COMMITS_PROPERTY,
        json.dumps(local_commits, separators=(",", ":")),
    )
    set_diff_property(conduit, diff_id, UNIT_PROPERTY, "{}")
    return created
