"""Review data stored in git-notes and the rules for matching it.

Modules:

- ``comment``  -- ``Comment``, ``Location``, ``Range``: serialization and
  hashing of discussion notes.
- ``request``  -- review request notes.
- ``ci``       -- build report notes.
- ``overlap``  -- ``overlaps()``: fuzzy comment equivalence.
- ``threads``  -- ``CommentThread`` and ``filter_overlapping()``.
- ``local``    -- ``LocalReview`` and ``list_all()``.
- ``tool``     -- ``ReviewTool`` / ``RemoteReview`` protocols.
"""

from .comment import DISCUSS_REF, Comment, Location, Range, quote_description
from .overlap import overlaps
from .threads import CommentThread, filter_overlapping

__all__ = [
    "DISCUSS_REF",
    "Comment",
    "CommentThread",
    "Location",
    "Range",
    "filter_overlapping",
    "overlaps",
    "quote_description",
]
