"""Shared pytest fixtures for git-phabricator-mirror tests."""

from __future__ import annotations

import hashlib
from collections import defaultdict
from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from phabricator_mirror.config import Config
from phabricator_mirror.repository.base import (
    CommitDetails,
    Note,
    RepositoryError,
)
from phabricator_mirror.review.comment import Comment, Location, Range

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Phabricator instance",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Phabricator instance"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# In-memory repository
# ---------------------------------------------------------------------------


class FakeRepo:
    """Minimal Repo replacement for testing.

    Notes are kept in a ``{ref: {revision: [note, ...]}}`` dict. The
    fingerprint covers both refs and notes, as ``git show-ref`` would.
    """

    def __init__(self, path: str = "/var/repo/TEST") -> None:
        self.path = path
        self.notes: dict[str, dict[str, list[Note]]] = defaultdict(
            lambda: defaultdict(list)
        )
        self.refs: dict[str, str] = {}
        self.commits: dict[str, CommitDetails] = {}
        self.merge_bases: dict[tuple[str, str], str] = {}
        self.raw_diffs: dict[tuple[str, str], str] = {}
        self.appended: list[tuple[str, str, Note, str]] = []
        self.pull_calls = 0
        self.push_calls = 0
        self.pull_error: Exception | None = None
        self.push_error: Exception | None = None

    # -- setup helpers --

    def add_commit(self, commit: str, time: int, **fields) -> CommitDetails:
        details = CommitDetails(commit=commit, time=str(time), **fields)
        self.commits[commit] = details
        return details

    def add_note(self, ref: str, revision: str, note: Note) -> None:
        self.notes[ref][revision].append(note)

    def _resolve(self, name: str) -> str:
        return self.refs.get(name, name)

    # -- Repo interface --

    def get_path(self) -> str:
        return self.path

    def get_state_fingerprint(self) -> str:
        parts = [f"{ref} {commit}" for ref, commit in sorted(self.refs.items())]
        for ref, by_revision in sorted(self.notes.items()):
            for revision, notes in sorted(by_revision.items()):
                parts.append(f"{ref} {revision} {b'|'.join(notes)!r}")
        return hashlib.sha1("\n".join(parts).encode()).hexdigest()

    def get_notes(self, ref: str, revision: str) -> list[Note]:
        return list(self.notes.get(ref, {}).get(revision, []))

    def append_note(
        self, ref: str, revision: str, note: Note, author_email: str
    ) -> None:
        self.notes[ref][revision].append(note)
        self.appended.append((ref, revision, note, author_email))

    def list_annotated_revisions(self, ref: str) -> list[str]:
        return sorted(
            revision
            for revision, notes in self.notes.get(ref, {}).items()
            if notes
        )

    def get_merge_base(self, from_revision: str, to_revision: str) -> str:
        key = (self._resolve(from_revision), self._resolve(to_revision))
        if key not in self.merge_bases:
            raise RepositoryError(f"no merge base for {key}")
        return self.merge_bases[key]

    def get_raw_diff(self, from_revision: str, to_revision: str) -> str:
        return self.raw_diffs.get((from_revision, to_revision), "")

    def get_commit_details(self, revision: str) -> CommitDetails:
        commit = self._resolve(revision)
        if commit not in self.commits:
            raise RepositoryError(f"unknown revision {revision}")
        return self.commits[commit]

    def pull(self) -> None:
        self.pull_calls += 1
        if self.pull_error is not None:
            raise self.pull_error

    def push(self) -> None:
        self.push_calls += 1
        if self.push_error is not None:
            raise self.push_error


class ConduitStub:
    """Conduit client replacement routing ``call()`` to per-method handlers.

    A handler is either a fixed result, a callable taking the params, or
    an exception instance to raise. Every call is recorded.
    """

    def __init__(self, handlers: dict | None = None) -> None:
        self.handlers = handlers or {}
        self.calls: list[tuple[str, dict]] = []

    def call(self, method, params=None):
        self.calls.append((method, params))
        handler = self.handlers.get(method)
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            return handler(params)
        return handler

    def calls_to(self, method):
        return [params for name, params in self.calls if name == method]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        phabricator_url="https://phabricator.example.com",
        api_token="api-testtoken",
        insecure=False,
    )


@pytest.fixture
def mock_conduit(mock_config):
    """Create a mock ConduitClient instance for testing."""
    from phabricator_mirror.core.conduit import ConduitClient

    conduit = MagicMock(spec=ConduitClient)
    conduit.config = mock_config
    return conduit


@pytest.fixture
def make_conduit():
    """Factory fixture for Conduit stubs: ``make_conduit({method: result})``."""
    return ConduitStub


@pytest.fixture
def fake_repo():
    """An empty in-memory repository."""
    return FakeRepo()


@pytest.fixture
def make_repo():
    """Factory fixture for in-memory repositories at a given path."""
    return FakeRepo


@pytest.fixture
def make_comment():
    """Factory fixture for review comments.

    ``path`` and ``line`` build a location on ``commit``; everything else
    is passed to ``Comment``.
    """

    def _create_comment(
        description: str = "",
        author: str = "alice@example.com",
        timestamp: str = "1700000000",
        path: str | None = None,
        line: int | None = None,
        commit: str = "abc123",
        **fields,
    ) -> Comment:
        location = None
        if path is not None:
            location = Location(
                commit=commit,
                path=path,
                range=Range(start_line=line) if line is not None else None,
            )
        return Comment(
            description=description,
            author=author,
            timestamp=timestamp,
            location=location,
            **fields,
        )

    return _create_comment
