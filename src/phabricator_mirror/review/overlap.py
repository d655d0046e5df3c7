"""Fuzzy equivalence between comments from git-notes and Phabricator.

The two systems do not share a data model, so a comment mirrored from
one side to the other rarely comes back byte-for-byte identical. The
mirroring bot posts other people's comments as quotes (``author:\\n\\n``
followed by the body), the database export may escape newlines, and
Phabricator has no notion of a reply hash.

``overlaps()`` decides whether two comments represent the same human
action. It is symmetric by construction: every check either compares
fields for equality or tries both argument orders.
"""

from __future__ import annotations

from .comment import (
    Comment,
    Location,
    normalize_timestamp,
    quote_description,
)


def _escape_newlines(text: str) -> str:
    return text.replace("\n", "\\n")


def is_quote(comment: Comment, other: Comment) -> bool:
    """Return ``True`` if *comment*'s description quotes *other*.

    A quote is the other comment's author, a ``:`` and two newlines, then
    the other comment's description. Literal and backslash-escaped
    newlines are treated as equivalent.
    """
    quoted = quote_description(other)
    if comment.description == quoted:
        return True
    if comment.description == _escape_newlines(quoted):
        return True
    return _escape_newlines(comment.description) == quoted


def description_overlaps(comment: Comment, other: Comment) -> bool:
    """Descriptions are identical, or one quotes the other."""
    if comment.description == other.description:
        return True
    if is_quote(comment, other):
        return True
    return is_quote(other, comment)


def resolved_overlaps(
    comment: Comment,
    other: Comment,
    match_timestamps: bool = True,
) -> bool:
    """Compare the accept/reject bits of two comments.

    Two FYI comments are compatible. An FYI comment never matches an
    accept or reject. Two resolved comments match when they agree and,
    with *match_timestamps*, were made at the same second. Timestamps are
    compared zero-padded, as they are written to git-notes.
    """
    if comment.resolved is None and other.resolved is None:
        return True
    if comment.resolved is None or other.resolved is None:
        return False
    if comment.resolved != other.resolved:
        return False
    if match_timestamps and normalize_timestamp(
        comment.timestamp
    ) != normalize_timestamp(other.timestamp):
        return False
    return True


def location_overlaps(location: Location, other: Location) -> bool:
    """Two locations match only on the same commit, path and line.

    A whole-file location never matches a single-line one.
    """
    if location.commit != other.commit:
        return False
    if location.path != other.path:
        return False
    if location.range is None and other.range is None:
        return True
    if location.range is None or other.range is None:
        return False
    return location.range.start_line == other.range.start_line


def overlaps(
    comment: Comment,
    other: Comment,
    *,
    match_resolved_timestamps: bool = True,
) -> bool:
    """Return ``True`` if two comments are roughly the same.

    Overlap requires all of:

    * the descriptions overlap (equal, or one quotes the other),
    * the resolved bits are compatible,
    * the comments are anchored at the same location (or both have none).

    Whole-revision comments carry the accept/reject actions, so for them
    the resolved check is what tells two otherwise empty comments apart.

    Args:
        comment: First comment.
        other: Second comment.
        match_resolved_timestamps: Require resolved comments to share a
            timestamp. Disabling this lets an accept made on a later tick
            match an earlier one with the same anchor and description.
    """
    if not description_overlaps(comment, other):
        return False
    if not resolved_overlaps(
        comment, other, match_timestamps=match_resolved_timestamps
    ):
        return False
    if comment.location is None and other.location is None:
        return True
    if comment.location is None or other.location is None:
        return False
    return location_overlaps(comment.location, other.location)
