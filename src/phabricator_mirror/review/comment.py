"""Review comments as stored in git-notes.

Comments live under ``refs/notes/devtools/discuss`` in the git-appraise
JSON format, one comment per note line. A comment can be attached to:

1. a whole revision (no location path),
2. a single file in a revision (path, no range),
3. a single line of a file (path and range),
4. another comment (``parent`` holds the parent's hash).

A comment's identity is the SHA-1 digest of its canonical serialization,
so two structurally identical comments always collapse to one hash.

Key design choices:

* **Canonical bytes** -- ``write()`` emits fields in a fixed order, elides
  empty values and zero-pads short decimal timestamps to ten digits so
  that timestamps sort lexicographically.
* **Encoder compatibility** -- string escaping follows the encoder used by
  git-appraise (HTML-sensitive characters escaped, non-ASCII left raw) so
  hashes agree with notes written by other tools.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Iterable

from pydantic import BaseModel, Field, StrictBool, StrictInt, ValidationError

DISCUSS_REF = "refs/notes/devtools/discuss"

_DECIMAL_PATTERN = re.compile(r"[+-]?[0-9]+")

_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


class CommentParseError(ValueError):
    """Raised when a note payload is not a valid review comment."""


def normalize_timestamp(timestamp: str) -> str:
    """Zero-pad a short decimal timestamp to at least ten digits.

    Timestamps that are not decimal integers are returned unchanged.
    """
    if len(timestamp) < 10 and _DECIMAL_PATTERN.fullmatch(timestamp):
        return f"{int(timestamp):010d}"
    return timestamp


def encode_json(data: dict) -> bytes:
    """Serialize *data* compactly with git-appraise compatible escaping."""
    text = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    for char, escaped in _ESCAPES.items():
        text = text.replace(char, escaped)
    return text.encode("utf-8")


class Range(BaseModel):
    """A line range inside a file. Only the first line is tracked."""

    start_line: StrictInt = Field(
        default=0, ge=0, le=2**32 - 1, alias="startLine"
    )

    model_config = {"frozen": True, "populate_by_name": True}


class Location(BaseModel):
    """Where a comment is anchored.

    Attributes:
        commit: Revision the comment refers to.
        path: File path; empty for whole-revision comments.
        range: Line range; ``None`` for whole-file comments.
    """

    commit: str = ""
    path: str = ""
    range: Range | None = None

    model_config = {"frozen": True}

    def to_dict(self) -> dict:
        data: dict = {}
        if self.commit:
            data["commit"] = self.commit
        if self.path:
            data["path"] = self.path
        if self.range is not None:
            data["range"] = {"startLine": self.range.start_line}
        return data


class Comment(BaseModel):
    """A single review comment.

    Attributes:
        timestamp: Decimal epoch seconds, as a string.
        author: Author identity (usually an email address).
        parent: Hash of the comment this one replies to.
        location: Anchor of the comment, if any.
        description: Free-form comment body.
        resolved: ``True`` accepts the review, ``False`` rejects it and
            ``None`` marks the comment as FYI only.
    """

    timestamp: str = ""
    author: str = ""
    parent: str = ""
    location: Location | None = None
    description: str = ""
    resolved: StrictBool | None = None

    model_config = {"frozen": True}

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Return the canonical field mapping, in serialization order."""
        data: dict = {}
        timestamp = normalize_timestamp(self.timestamp)
        if timestamp:
            data["timestamp"] = timestamp
        if self.author:
            data["author"] = self.author
        if self.parent:
            data["parent"] = self.parent
        if self.location is not None:
            data["location"] = self.location.to_dict()
        if self.description:
            data["description"] = self.description
        if self.resolved is not None:
            data["resolved"] = self.resolved
        return data

    def write(self) -> bytes:
        """Serialize the comment as a git-note payload."""
        return encode_json(self.to_dict())

    def hash(self) -> str:
        """Return the SHA-1 hex digest identifying this comment."""
        return hashlib.sha1(self.write()).hexdigest()

    def quote_description(self) -> str:
        return quote_description(self)


def quote_description(comment: Comment) -> str:
    """Build the description used when re-posting *comment* for its author.

    This is what a mirroring bot posts on behalf of another user: the
    author, a ``:`` and two newlines, then the original description.
    """
    return comment.author + ":\n\n" + comment.description


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse(note: bytes | str) -> Comment:
    """Parse a review comment from a git note.

    Raises:
        CommentParseError: If the note is not a JSON comment object.
    """
    try:
        return Comment.model_validate_json(note)
    except ValidationError as exc:
        raise CommentParseError(
            f"Invalid review comment {note!r}: {exc}"
        ) from exc


def parse_all_valid(notes: Iterable[bytes | str]) -> dict[str, Comment]:
    """Parse every note that holds a comment, keyed by comment hash.

    Notes refs are heterogeneous, so anything that is not a valid comment
    is skipped rather than treated as an error.
    """
    comments: dict[str, Comment] = {}
    for note in notes:
        try:
            comment = parse(note)
        except CommentParseError:
            continue
        comments[comment.hash()] = comment
    return comments
