"""Rebuild git-notes comments from Differential's transaction log.

Differential stores every review action as a *transaction*: a comment, an
inline comment, an accept or a reject. The text of a comment lives in a
separate *transaction comment* row. This module turns an ordered log of
those transactions into a list of ``Comment`` objects.

Two aspects of the conversion are not one-to-one:

* Phabricator publishes inline comments together with an (often empty)
  top-level comment. Transactions that carry no content, location, parent
  or accept/reject state produce nothing.
* Accepting a revision implicitly resolves the actor's earlier rejections.
  For every rejection the actor has made so far in the log, an accept
  emits a synthetic child comment ``{resolved: true}`` under it, followed
  by the accept itself. The rejection history is never cleared, so a
  second accept re-resolves every earlier rejection as well.

Replies are resolved to their parent's hash through the comments emitted
so far, which is only correct when the log is processed in ascending
sequence order; ``TransactionLog`` enforces that ordering.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Iterator
from typing import Protocol

from pydantic import BaseModel

from ..review.comment import Comment, Location, Range

logger = logging.getLogger(__name__)

ACTION_TRANSACTION = "differential:action"
INLINE_TRANSACTION = "differential:inline"
COMMENT_TRANSACTION = "core:comment"

ACCEPT_ACTION = "accept"
REJECT_ACTION = "reject"


class TransactionOrderError(ValueError):
    """Raised when a transaction log is not in ascending sequence order."""


class Transaction(BaseModel):
    """One atomic action recorded against a review."""

    sequence_id: int
    phid: str
    author_phid: str
    date_created: int
    transaction_type: str
    new_value: str | None = None
    comment_phid: str | None = None

    model_config = {"frozen": True}


class TransactionComment(BaseModel):
    """The body and anchor of a commenting transaction.

    Attributes:
        phid: PHID of the comment row itself.
        commit: Commit of the diff the comment was made against.
        filename: File the comment is attached to; empty for top-level
            comments.
        line_number: Line the comment is attached to; 0 for whole-file.
        reply_to_comment_phid: PHID of the comment this one replies to.
        content: Comment text.
        diff_id: Differential diff the changeset belongs to.
    """

    phid: str
    commit: str = ""
    filename: str = ""
    line_number: int = 0
    reply_to_comment_phid: str | None = None
    content: str = ""
    diff_id: int | None = None

    model_config = {"frozen": True}


class TransactionLog:
    """An immutable sequence of transactions in ascending id order.

    Raises:
        TransactionOrderError: If the ids are not strictly ascending.
    """

    def __init__(self, transactions: Iterable[Transaction] = ()) -> None:
        self._transactions = tuple(transactions)
        previous: Transaction | None = None
        for transaction in self._transactions:
            if (
                previous is not None
                and transaction.sequence_id <= previous.sequence_id
            ):
                raise TransactionOrderError(
                    f"Transaction {transaction.phid} (id "
                    f"{transaction.sequence_id}) follows id "
                    f"{previous.sequence_id}"
                )
            previous = transaction

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self._transactions)

    def __len__(self) -> int:
        return len(self._transactions)

    def __repr__(self) -> str:
        return f"TransactionLog({len(self._transactions)} transactions)"


class UserRecord(Protocol):
    """The parts of a Phabricator user the reconstructor needs."""

    identity: str


ReadComment = Callable[[str], TransactionComment]
LookupUser = Callable[[str], UserRecord | None]


def decode_action(new_value: str | None) -> str | None:
    """Decode the new value of an action transaction.

    Differential stores it JSON-encoded (``"accept"``, quotes included),
    but bare values are accepted as well.
    """
    if new_value is None:
        return None
    try:
        value = json.loads(new_value)
    except ValueError:
        return new_value
    return value if isinstance(value, str) else None


class TransactionReconstructor:
    """Converts a ``TransactionLog`` into git-notes comments.

    Args:
        read_comment: Returns the transaction comment for a transaction
            PHID.
        lookup_user: Returns the user for a user PHID, or ``None``.
    """

    def __init__(
        self, read_comment: ReadComment, lookup_user: LookupUser
    ) -> None:
        self.read_comment = read_comment
        self.lookup_user = lookup_user

    def _author(self, author_phid: str) -> str:
        user = self.lookup_user(author_phid)
        if user is None or not user.identity:
            logger.warning(
                "Unknown Phabricator user %s; using the PHID as author",
                author_phid,
            )
            return author_phid
        return user.identity

    def reconstruct(self, log: TransactionLog) -> list[Comment]:
        """Return the comments described by *log*, in emission order."""
        comments: list[Comment] = []
        hashes_by_phid: dict[str, str] = {}
        rejections_by_actor: dict[str, list[str]] = defaultdict(list)

        for transaction in log:
            author = self._author(transaction.author_phid)
            timestamp = str(transaction.date_created)
            parent = ""
            location: Location | None = None
            description = ""
            resolved: bool | None = None

            body: TransactionComment | None = None
            if transaction.comment_phid is not None:
                body = self.read_comment(transaction.phid)
                if body.filename:
                    location = Location(
                        commit=body.commit,
                        path=body.filename,
                        range=(
                            Range(start_line=body.line_number)
                            if body.line_number
                            else None
                        ),
                    )
                description = body.content
                if body.reply_to_comment_phid is not None:
                    parent = hashes_by_phid.get(
                        body.reply_to_comment_phid, ""
                    )

            if transaction.transaction_type == ACTION_TRANSACTION:
                action = decode_action(transaction.new_value)
                if action == ACCEPT_ACTION:
                    resolved = True
                    for rejection in rejections_by_actor[
                        transaction.author_phid
                    ]:
                        approval = Comment(
                            author=author,
                            timestamp=timestamp,
                            resolved=True,
                            parent=rejection,
                        )
                        logger.debug(
                            "Accept by %s resolves rejection %s",
                            author,
                            rejection,
                        )
                        comments.append(approval)
                elif action == REJECT_ACTION:
                    resolved = False

            if not (parent or location or description) and resolved is None:
                continue

            comment = Comment(
                timestamp=timestamp,
                author=author,
                parent=parent,
                location=location,
                description=description,
                resolved=resolved,
            )
            comments.append(comment)
            comment_hash = comment.hash()
            hashes_by_phid[transaction.phid] = comment_hash
            if body is not None:
                hashes_by_phid[body.phid] = comment_hash
            if resolved is False:
                rejections_by_actor[transaction.author_phid].append(
                    comment_hash
                )

        logger.debug(
            "Rebuilt %d comments from %d transactions",
            len(comments),
            len(log),
        )
        return comments
