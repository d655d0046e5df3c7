"""Interface to a local source code repository.

The mirror only needs a narrow slice of version-control functionality:
reading and appending notes, computing merge bases and diffs, reading
commit metadata, and syncing with the remote. ``Repo`` captures that
slice so the controller can be driven by ``GitRepo`` in production and
by in-memory fakes in tests.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

# A note is an opaque byte payload annotating a revision.
Note = bytes


class RepositoryError(RuntimeError):
    """Base class for failures reported by a repository backend."""


class CommitDetails(BaseModel):
    """Metadata for a single commit.

    Serialized into Differential's ``local:commits`` diff property, so the
    field names follow that format.
    """

    commit: str = ""
    author: str = ""
    author_email: str = Field(default="", alias="authorEmail")
    tree: str = ""
    time: str = ""
    parents: list[str] = []
    summary: str = ""

    model_config = {"frozen": True, "populate_by_name": True}

    def to_property(self) -> dict:
        return self.model_dump(by_alias=True, exclude_defaults=True)


@runtime_checkable
class Repo(Protocol):
    """A source code repository with git-notes style annotations."""

    def get_path(self) -> str:
        """Return the path to the repository."""
        ...  # pragma: no cover

    def get_state_fingerprint(self) -> str:
        """Return a hash of the state of every ref in the repository."""
        ...  # pragma: no cover

    def get_notes(self, ref: str, revision: str) -> list[Note]:
        """Return the notes under *ref* annotating *revision*.

        Returns an empty list when the revision has no notes.
        """
        ...  # pragma: no cover

    def append_note(
        self, ref: str, revision: str, note: Note, author_email: str
    ) -> None:
        """Append *note* to *revision* under *ref*, written as the author."""
        ...  # pragma: no cover

    def list_annotated_revisions(self, ref: str) -> list[str]:
        """Return the commits annotated by notes under *ref*."""
        ...  # pragma: no cover

    def get_merge_base(self, from_revision: str, to_revision: str) -> str:
        """Return the best common ancestor of two revisions.

        Raises:
            RepositoryError: If there is no merge base.
        """
        ...  # pragma: no cover

    def get_raw_diff(self, from_revision: str, to_revision: str) -> str:
        """Return the raw diff between two revisions."""
        ...  # pragma: no cover

    def get_commit_details(self, revision: str) -> CommitDetails:
        """Return the metadata for *revision*.

        Raises:
            RepositoryError: If the revision does not exist.
        """
        ...  # pragma: no cover

    def pull(self) -> None:
        """Fetch updates, including notes, from the remote."""
        ...  # pragma: no cover

    def push(self) -> None:
        """Merge remote notes and push local notes to the remote."""
        ...  # pragma: no cover
