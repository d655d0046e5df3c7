"""Review requests as stored in git-notes.

A request note on ``refs/notes/devtools/reviews`` asks for the changes
on ``reviewRef`` to be reviewed for merging into ``targetRef``. Several
requests may annotate the same revision; the newest one wins.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, Field, ValidationError

from .comment import encode_json, normalize_timestamp

REQUEST_REF = "refs/notes/devtools/reviews"


class RequestParseError(ValueError):
    """Raised when a note payload is not a valid review request."""


class Request(BaseModel):
    """A code review request.

    Attributes:
        timestamp: Decimal epoch seconds, as a string.
        review_ref: Ref holding the changes under review.
        target_ref: Ref the changes should be merged into.
        requester: Identity of the person asking for review.
        reviewers: Identities asked to review.
        description: Free-form description; the first line is the title.
        base_commit: Commit the review was started from.
    """

    timestamp: str = ""
    review_ref: str = Field(default="", alias="reviewRef")
    target_ref: str = Field(default="", alias="targetRef")
    requester: str = ""
    reviewers: list[str] = []
    description: str = ""
    version: int = Field(default=0, alias="v")
    base_commit: str = Field(default="", alias="baseCommit")

    model_config = {"frozen": True, "populate_by_name": True}

    def write(self) -> bytes:
        data: dict = {}
        timestamp = normalize_timestamp(self.timestamp)
        if timestamp:
            data["timestamp"] = timestamp
        if self.review_ref:
            data["reviewRef"] = self.review_ref
        data["targetRef"] = self.target_ref
        if self.requester:
            data["requester"] = self.requester
        if self.reviewers:
            data["reviewers"] = list(self.reviewers)
        if self.description:
            data["description"] = self.description
        if self.version:
            data["v"] = self.version
        if self.base_commit:
            data["baseCommit"] = self.base_commit
        return encode_json(data)


def parse(note: bytes | str) -> Request:
    """Parse a review request from a git note.

    Raises:
        RequestParseError: If the note is not a JSON request object.
    """
    try:
        return Request.model_validate_json(note)
    except ValidationError as exc:
        raise RequestParseError(
            f"Invalid review request {note!r}: {exc}"
        ) from exc


def parse_all_valid(notes: Iterable[bytes | str]) -> list[Request]:
    """Parse every note that holds a request, skipping anything else."""
    requests: list[Request] = []
    for note in notes:
        try:
            requests.append(parse(note))
        except RequestParseError:
            continue
    return requests


def latest(requests: Iterable[Request]) -> Request | None:
    """Return the most recent request, or ``None`` if there is none."""
    newest: Request | None = None
    for request in requests:
        if newest is None or normalize_timestamp(
            request.timestamp
        ) >= normalize_timestamp(newest.timestamp):
            newest = request
    return newest
