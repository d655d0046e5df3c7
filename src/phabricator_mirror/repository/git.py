"""``Repo`` implementation backed by the ``git`` command line tool.

Every command runs through ``subprocess.run`` with a timeout, so a hung
git process is killed rather than stalling the mirror. Failures raise
``GitCommandError``; callers decide which of those are expected (a
revision without notes, a missing merge base) and which are fatal.
"""

from __future__ import annotations

import hashlib
import logging
import os
import subprocess

from ..validators import validate_ref, validate_revision
from .base import CommitDetails, Note, RepositoryError

logger = logging.getLogger(__name__)

NOTES_NAMESPACE = "refs/notes/devtools"
REMOTE_NOTES_NAMESPACE = "refs/notes/origin/devtools"

# Differential only shows the surrounding context of a change when the
# diff carries the whole file, so every change goes into a single hunk.
_FULL_CONTEXT_LINES = 0x7FFF

_DETAILS_SEPARATOR = "%x00"
_DETAILS_FIELDS = ("%H", "%T", "%at", "%an", "%ae", "%P", "%s")


class GitCommandError(RepositoryError):
    """A git command exited with an error or timed out."""

    def __init__(
        self,
        args: list[str],
        message: str,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(f"git {' '.join(args)}: {message}")
        self.args_list = args
        self.stdout = stdout
        self.stderr = stderr


def _checked_ref(ref: str) -> str:
    valid, error = validate_ref(ref)
    if not valid:
        raise RepositoryError(error)
    return ref


def _checked_revision(revision: str) -> str:
    valid, error = validate_revision(revision)
    if not valid:
        raise RepositoryError(error)
    return revision


def is_git_repo(path: str) -> bool:
    """Return ``True`` if *path* is inside a git repository."""
    result = subprocess.run(
        ["git", "rev-parse"],
        cwd=path,
        capture_output=True,
        text=True,
        timeout=30,
    )
    return result.returncode == 0


class GitRepo:
    """A local git repository.

    Args:
        path: Path to the repository (work tree or bare directory).
        remote: Name of the remote used for pull and push.
        timeout: Seconds allowed for local commands.
        remote_timeout: Seconds allowed for commands that talk to the
            remote.
    """

    def __init__(
        self,
        path: str,
        remote: str = "origin",
        timeout: float = 300.0,
        remote_timeout: float = 60.0,
    ) -> None:
        self.path = path
        self.remote = remote
        self.timeout = timeout
        self.remote_timeout = remote_timeout

    def __repr__(self) -> str:
        return f"GitRepo({self.path!r})"

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------

    def _run(
        self,
        *args: str,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> str:
        """Run a git command and return its output without trailing newlines.

        Raises:
            GitCommandError: On a non-zero exit status or a timeout.
        """
        cmd = list(args)
        try:
            result = subprocess.run(
                ["git", *cmd],
                cwd=self.path,
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            logger.error("git %s timed out in %s", cmd, self.path)
            raise GitCommandError(cmd, "timed out") from exc

        if result.returncode != 0:
            logger.debug(
                "A git command failed: %s, exit %d, %r, %r",
                cmd,
                result.returncode,
                result.stdout,
                result.stderr,
            )
            raise GitCommandError(
                cmd,
                f"exit status {result.returncode}",
                result.stdout,
                result.stderr,
            )
        return result.stdout.strip("\n")

    def _run_as_user(self, user_email: str, *args: str) -> str:
        env = dict(os.environ)
        env.update(
            {
                "GIT_AUTHOR_NAME": user_email,
                "GIT_AUTHOR_EMAIL": user_email,
                "GIT_COMMITTER_NAME": user_email,
                "GIT_COMMITTER_EMAIL": user_email,
            }
        )
        return self._run(*args, env=env)

    # ------------------------------------------------------------------
    # Repo interface
    # ------------------------------------------------------------------

    def get_path(self) -> str:
        return self.path

    def get_state_fingerprint(self) -> str:
        """Hash the output of ``git show-ref``.

        An empty repository has no refs and makes ``show-ref`` fail; that
        is hashed as an empty summary.
        """
        try:
            summary = self._run("show-ref")
        except GitCommandError:
            summary = ""
        return hashlib.sha1(summary.encode("utf-8")).hexdigest()

    def get_notes(self, ref: str, revision: str) -> list[Note]:
        try:
            raw = self._run(
                "notes",
                "--ref",
                _checked_ref(ref),
                "show",
                _checked_revision(revision),
            )
        except GitCommandError:
            # Expected when the revision has no notes.
            return []
        return [line.encode("utf-8") for line in raw.split("\n")]

    def append_note(
        self, ref: str, revision: str, note: Note, author_email: str
    ) -> None:
        self._run_as_user(
            author_email,
            "notes",
            "--ref",
            _checked_ref(ref),
            "append",
            "-m",
            note.decode("utf-8"),
            _checked_revision(revision),
        )

    def list_annotated_revisions(self, ref: str) -> list[str]:
        """Return the commits annotated under *ref*.

        Notes attached to objects that are not (yet) known locally, or to
        anything other than commits, are ignored.
        """
        revisions: list[str] = []
        listing = self._run("notes", "--ref", _checked_ref(ref), "list")
        for line in listing.split("\n"):
            parts = line.split(" ", 1)
            if len(parts) != 2:
                continue
            obj = parts[1]
            try:
                obj_type = self._run("cat-file", "-t", obj)
            except GitCommandError:
                continue
            if obj_type == "commit":
                revisions.append(obj)
        return revisions

    def get_merge_base(self, from_revision: str, to_revision: str) -> str:
        return self._run(
            "merge-base",
            _checked_ref(from_revision),
            _checked_ref(to_revision),
        )

    def get_raw_diff(self, from_revision: str, to_revision: str) -> str:
        return self._run(
            "diff",
            "-M",
            "--no-ext-diff",
            "--no-textconv",
            "--src-prefix=a/",
            "--dst-prefix=b/",
            f"-U{_FULL_CONTEXT_LINES}",
            "--no-color",
            f"{_checked_ref(from_revision)}..{_checked_ref(to_revision)}",
        )

    def get_commit_details(self, revision: str) -> CommitDetails:
        fmt = _DETAILS_SEPARATOR.join(_DETAILS_FIELDS)
        output = self._run(
            "show",
            "-s",
            f"--format=tformat:{fmt}",
            _checked_ref(revision),
            "--",
        )
        fields = output.split("\x00")
        if len(fields) != len(_DETAILS_FIELDS):
            raise GitCommandError(
                ["show", revision], f"unexpected output {output!r}"
            )
        commit, tree, time, author, email, parents, summary = fields
        return CommitDetails(
            commit=commit,
            tree=tree,
            time=time,
            author=author,
            author_email=email,
            parents=parents.split() if parents else [],
            summary=summary,
        )

    def pull(self) -> None:
        """Mirror every ref of the remote, notes included."""
        self._run(
            "fetch",
            self.remote,
            "+refs/*:refs/*",
            timeout=self.remote_timeout,
        )

    def push(self) -> None:
        """Merge the remote's notes, then push the local notes refs."""
        self._merge_remote_notes()
        self._run(
            "push",
            self.remote,
            f"{NOTES_NAMESPACE}/*:{NOTES_NAMESPACE}/*",
            timeout=self.remote_timeout,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _merge_remote_notes(self) -> None:
        self._run(
            "fetch",
            self.remote,
            f"+{NOTES_NAMESPACE}/*:{REMOTE_NOTES_NAMESPACE}/*",
            timeout=self.remote_timeout,
        )
        remote_notes = self._run(
            "ls-remote",
            self.remote,
            f"{NOTES_NAMESPACE}/*",
            timeout=self.remote_timeout,
        )
        # One "<commit>\t<ref>" pair per line.
        for line in remote_notes.split("\n"):
            parts = line.split("\t")
            if len(parts) != 2:
                continue
            notes_ref = parts[1]
            remote_ref = notes_ref.replace(
                NOTES_NAMESPACE, REMOTE_NOTES_NAMESPACE, 1
            )
            self._run(
                "notes",
                "--ref",
                notes_ref,
                "merge",
                remote_ref,
                "-s",
                "cat_sort_uniq",
            )
