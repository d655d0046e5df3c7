"""Comment threads and overlap-based de-duplication.

Comments reference their parent by hash, so a flat set of comments forms
a forest. ``build_comment_threads()`` rebuilds that forest and
``filter_overlapping()`` picks, out of a set of candidate comments, those
that overlap none of a set of already-known comments.

Candidates and exclusions may be given as any of:

- an iterable of ``Comment``,
- an iterable of ``CommentThread`` (children are included),
- a mapping of comment hash to ``Comment``.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from typing import Union

from pydantic import BaseModel

from .comment import Comment, normalize_timestamp
from .overlap import overlaps


class CommentThread(BaseModel):
    """A comment together with the replies made to it."""

    hash: str
    comment: Comment
    children: list[CommentThread] = []

    model_config = {"frozen": True}


CommentCollection = Union[
    Mapping[str, Comment], Iterable[Union[Comment, CommentThread]]
]


def build_comment_threads(
    comments: Mapping[str, Comment],
) -> list[CommentThread]:
    """Arrange comments keyed by hash into threads.

    Roots and replies are ordered by timestamp. A reply whose parent is not
    among *comments* is promoted to a root so it is never lost.
    """
    children: dict[str, list[str]] = defaultdict(list)
    roots: list[str] = []
    for comment_hash, comment in comments.items():
        if comment.parent and comment.parent in comments:
            children[comment.parent].append(comment_hash)
        else:
            roots.append(comment_hash)

    def _order(hashes: list[str]) -> list[str]:
        return sorted(
            hashes,
            key=lambda h: (normalize_timestamp(comments[h].timestamp), h),
        )

    def _build(comment_hash: str) -> CommentThread:
        return CommentThread(
            hash=comment_hash,
            comment=comments[comment_hash],
            children=[_build(h) for h in _order(children[comment_hash])],
        )

    return [_build(h) for h in _order(roots)]


def _add_threads(
    comments: dict[str, Comment], threads: Iterable[CommentThread]
) -> None:
    for thread in threads:
        comments[thread.hash] = thread.comment
        _add_threads(comments, thread.children)


def flatten(collection: CommentCollection) -> dict[str, Comment]:
    """Collapse a comment collection into a ``{hash: Comment}`` mapping.

    Exact duplicates share a hash and therefore appear once.
    """
    if isinstance(collection, Mapping):
        return dict(collection)
    comments: dict[str, Comment] = {}
    for item in collection:
        if isinstance(item, CommentThread):
            _add_threads(comments, [item])
        else:
            comments[item.hash()] = item
    return comments


def has_overlap(
    comment: Comment,
    known: Iterable[Comment | CommentThread],
    *,
    match_resolved_timestamps: bool = True,
) -> bool:
    """Return ``True`` if *comment* overlaps anything in *known*.

    Threads are searched recursively, so a reply is found even when only
    its root is listed.
    """
    for existing in known:
        if isinstance(existing, CommentThread):
            if has_overlap(
                comment,
                [existing.comment],
                match_resolved_timestamps=match_resolved_timestamps,
            ) or has_overlap(
                comment,
                existing.children,
                match_resolved_timestamps=match_resolved_timestamps,
            ):
                return True
            continue
        if overlaps(
            existing,
            comment,
            match_resolved_timestamps=match_resolved_timestamps,
        ) or overlaps(
            comment,
            existing,
            match_resolved_timestamps=match_resolved_timestamps,
        ):
            return True
    return False


def filter_overlapping(
    candidates: CommentCollection,
    exclusions: CommentCollection,
    *,
    match_resolved_timestamps: bool = True,
) -> list[Comment]:
    """Return the candidates that overlap none of the exclusions.

    Every thread member is tested on its own, so a reply can be new even
    when its parent is already known. Each surviving comment appears once;
    the result is not guaranteed to follow the input order.

    Args:
        candidates: Comments that might need to be written.
        exclusions: Comments already recorded on the other side.
        match_resolved_timestamps: Forwarded to ``overlaps()``.

    Returns:
        List of candidate comments that are genuinely new.
    """
    known = list(flatten(exclusions).values())
    return [
        comment
        for comment in flatten(candidates).values()
        if not has_overlap(
            comment,
            known,
            match_resolved_timestamps=match_resolved_timestamps,
        )
    ]
