"""Read access to Differential's review history.

Phabricator offers no API for reading review comments, so they are read
straight from the ``phabricator_differential`` schema:

- ``differential_transaction`` holds the review actions,
- ``differential_transaction_comment`` holds the text of comments,
- ``differential_changeset`` maps an inline comment to its file and diff.

Queries run through the ``mysql`` command line client in batch mode, so
the client's own option files supply the host and credentials.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence

from ..phabricator.transactions import (
    ACTION_TRANSACTION,
    COMMENT_TRANSACTION,
    INLINE_TRANSACTION,
    Transaction,
    TransactionComment,
    TransactionLog,
)
from ..validators import validate_phid

logger = logging.getLogger(__name__)

_SCHEMA = "phabricator_differential"

_SELECT_TRANSACTIONS = (
    "select id, phid, authorPHID, dateCreated, transactionType, newValue, "
    "commentPHID from {schema}.differential_transaction "
    'where objectPHID="{review_phid}" and viewPolicy="public" '
    'and (transactionType = "{action}" or transactionType = "{inline}" '
    'or transactionType = "{comment}") '
    "order by id;"
)
_SELECT_TRANSACTION_COMMENT = (
    "select phid, changesetID, lineNumber, replyToCommentPHID "
    "from {schema}.differential_transaction_comment "
    'where viewPolicy = "public" and transactionPHID = "{transaction_phid}";'
)
# Read on its own so that tabs in the content cannot be confused with the
# column separator.
_SELECT_COMMENT_CONTENT = (
    "select content from {schema}.differential_transaction_comment "
    'where phid = "{comment_phid}";'
)
_SELECT_CHANGESET = (
    "select filename, diffID from {schema}.differential_changeset "
    'where id = "{changeset_id}";'
)

_NULL = "NULL"


class DatabaseError(RuntimeError):
    """Raised when a query cannot be run."""


class DatabaseSchemaError(DatabaseError):
    """Raised when a query returns rows of an unexpected shape."""


def _nullable(value: str) -> str | None:
    return None if value == _NULL else value


def _to_int(value: str, column: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise DatabaseSchemaError(
            f"Unexpected {column} value {value!r}"
        ) from None


def _checked_phid(phid: str) -> str:
    valid, error = validate_phid(phid)
    if not valid:
        raise DatabaseError(error)
    return phid


class DifferentialDatabase:
    """Runs the Differential queries through the mysql client.

    Args:
        command: The client command, with any connection options.
        timeout: Seconds allowed for each query.
    """

    def __init__(
        self,
        command: Sequence[str] = ("mysql",),
        timeout: float = 60.0,
    ) -> None:
        self.command = list(command)
        self.timeout = timeout

    def _query(self, sql: str, raw: bool = False) -> str:
        args = [*self.command, "-Ns"]
        if raw:
            args.append("-r")
        args.extend(["-e", sql])
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            logger.error("SQL query timed out: %s", sql)
            raise DatabaseError(f"Query timed out: {sql}") from exc

        if result.returncode != 0:
            logger.error("Ran SQL command: %s", sql)
            raise DatabaseError(
                f"Query failed with exit status {result.returncode}: "
                f"{result.stderr.strip()}"
            )
        if raw:
            return result.stdout.removesuffix("\n")
        return result.stdout.strip("\n")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def read_transactions(self, review_phid: str) -> TransactionLog:
        """Return the public actions on a review, oldest first."""
        output = self._query(
            _SELECT_TRANSACTIONS.format(
                schema=_SCHEMA,
                review_phid=_checked_phid(review_phid),
                action=ACTION_TRANSACTION,
                inline=INLINE_TRANSACTION,
                comment=COMMENT_TRANSACTION,
            )
        )
        if not output.strip(" "):
            return TransactionLog()

        transactions: list[Transaction] = []
        for line in output.split("\n"):
            parts = line.split("\t")
            if len(parts) != 7:
                raise DatabaseSchemaError(
                    f"Unexpected number of transaction parts: {parts}"
                )
            transactions.append(
                Transaction(
                    sequence_id=_to_int(parts[0], "id"),
                    phid=parts[1],
                    author_phid=parts[2],
                    date_created=_to_int(parts[3], "dateCreated"),
                    transaction_type=parts[4],
                    new_value=_nullable(parts[5]),
                    comment_phid=_nullable(parts[6]),
                )
            )
        return TransactionLog(transactions)

    def read_changeset(self, changeset_id: int) -> tuple[str, int]:
        """Return the filename and diff ID of a changeset."""
        output = self._query(
            _SELECT_CHANGESET.format(
                schema=_SCHEMA, changeset_id=int(changeset_id)
            )
        )
        parts = output.split("\t")
        if len(parts) != 2:
            raise DatabaseSchemaError(
                f"Unexpected changeset row for {changeset_id}: {parts}"
            )
        return parts[0], _to_int(parts[1], "diffID")

    def read_comment_content(self, comment_phid: str) -> str:
        return self._query(
            _SELECT_COMMENT_CONTENT.format(
                schema=_SCHEMA, comment_phid=_checked_phid(comment_phid)
            ),
            raw=True,
        )

    def read_transaction_comment(
        self, transaction_phid: str
    ) -> TransactionComment:
        """Return the comment attached to a transaction.

        The ``commit`` field is left empty; it depends on the diff, which
        only the Conduit API can describe.
        """
        output = self._query(
            _SELECT_TRANSACTION_COMMENT.format(
                schema=_SCHEMA,
                transaction_phid=_checked_phid(transaction_phid),
            )
        )
        lines = output.split("\n")
        if len(lines) != 1:
            raise DatabaseSchemaError(
                f"Unexpected number of query results: {lines}"
            )
        parts = lines[0].split("\t")
        if len(parts) != 4:
            raise DatabaseSchemaError(
                f"Unexpected size of query results: {parts}"
            )

        comment_phid = parts[0]
        filename = ""
        diff_id: int | None = None
        changeset_id = _nullable(parts[1])
        if changeset_id is not None:
            filename, diff_id = self.read_changeset(
                _to_int(changeset_id, "changesetID")
            )

        return TransactionComment(
            phid=comment_phid,
            filename=filename,
            line_number=_to_int(parts[2], "lineNumber"),
            reply_to_comment_phid=_nullable(parts[3]),
            content=self.read_comment_content(comment_phid),
            diff_id=diff_id,
        )
