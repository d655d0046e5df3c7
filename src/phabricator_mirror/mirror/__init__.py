"""Two-way mirroring of review metadata between git-notes and a review tool.

Modules:

- ``controller`` -- ``SyncController``: runs mirroring ticks.
- ``state``      -- ``MirrorState``: caches carried between ticks.
- ``models``     -- ``SyncOutcome``, ``RepoSyncResult``, ``TickReport``.
- ``reporter``   -- text and JSON renderings of a ``TickReport``.
- ``discovery``  -- ``find_repos()``: repositories under a directory.
"""

from .controller import SyncController
from .discovery import find_repos
from .models import RepoSyncResult, SyncOutcome, TickReport
from .reporter import format_tick_report, report_to_json
from .state import MirrorState, RepoStatus

__all__ = [
    "MirrorState",
    "RepoStatus",
    "RepoSyncResult",
    "SyncController",
    "SyncOutcome",
    "TickReport",
    "find_repos",
    "format_tick_report",
    "report_to_json",
]
