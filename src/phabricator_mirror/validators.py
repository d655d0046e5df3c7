"""
Input validation for values passed to external tools.

Identifiers read from notes or from the review service end up on git
command lines and inside SQL queries, so they are checked before use.
"""

import re

_PHID_PATTERN = re.compile(r"^PHID-[A-Z]{4}(-[A-Za-z0-9]+)+$")
_REVISION_PATTERN = re.compile(r"^[0-9a-fA-F]{4,64}$")


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Review ref")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_phid(phid: str) -> tuple[bool, str]:
    """
    Validate a Phabricator object identifier.

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.
    """
    if not phid:
        return (False, format_validation_error("PHID", "cannot be empty"))
    if not _PHID_PATTERN.match(phid):
        return (
            False,
            format_validation_error(
                "PHID", f"'{phid}' is not of the form PHID-TYPE-id"
            ),
        )
    return (True, "")


def validate_revision(revision: str) -> tuple[bool, str]:
    """
    Validate a full or abbreviated commit hash.
    """
    if not revision:
        return (
            False,
            format_validation_error("Revision", "cannot be empty"),
        )
    if not _REVISION_PATTERN.match(revision):
        return (
            False,
            format_validation_error(
                "Revision", f"'{revision}' is not a commit hash"
            ),
        )
    return (True, "")


def validate_ref(ref: str) -> tuple[bool, str]:
    """
    Validate a git ref name or revision expression.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot start with '-' (would be read as an option)
        - Cannot contain whitespace, '..' or control characters
    """
    if not ref or not ref.strip():
        return (False, format_validation_error("Ref", "cannot be empty"))
    if ref.startswith("-"):
        return (
            False,
            format_validation_error("Ref", f"'{ref}' cannot start with '-'"),
        )
    if ".." in ref:
        return (
            False,
            format_validation_error("Ref", f"'{ref}' cannot contain '..'"),
        )
    if any(ch.isspace() or ord(ch) < 0x20 for ch in ref):
        return (
            False,
            format_validation_error(
                "Ref", f"'{ref}' cannot contain whitespace"
            ),
        )
    return (True, "")
