# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Local git repository operations consumed by the review actions.

Everything here shells out to ``git`` with an explicit argument vector.
Fetches block until complete, since callers read FETCH_HEAD right after.
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from typing import Sequence

log = logging.getLogger("gerrit_review.git")

# Seconds between deadline/cancel checks while waiting on git
POLL_INTERVAL = 0.2


class GitError(RuntimeError):
    """Raised when a git command fails."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


def _kill(sp: subprocess.Popen[bytes]) -> None:
    sp.kill()
    try:
        sp.communicate(timeout=POLL_INTERVAL * 5)
    except subprocess.TimeoutExpired:
        pass


def _run_command(
    cmdargs: Sequence[str],
    cwd: str | None = None,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> tuple[int, bytes, bytes]:
    """
    Run a command, waiting at most ``timeout`` seconds (None = no limit).

    The wait is polled so that setting ``cancel_event`` kills the child.
    """
    cmdline = " ".join(cmdargs)
    log.debug("Running %s", cmdline)
    try:
        sp = subprocess.Popen(
            list(cmdargs),
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as exc:
        raise GitError(f"Failed to run {cmdargs[0]}: {exc}") from exc

    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        if cancel_event is not None and cancel_event.is_set():
            _kill(sp)
            raise GitError(f"{cmdline} cancelled")
        try:
            output, error = sp.communicate(timeout=POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            if deadline is not None and time.monotonic() >= deadline:
                _kill(sp)
                raise GitError(f"{cmdline} timed out after {timeout:.0f}s") from None
    return sp.returncode, output, error


class GitRepository:
    """A git working tree, addressed by path (None = current directory)."""

    def __init__(self, path: str | None = None) -> None:
        self.path = path

    def run(
        self,
        args: Sequence[str],
        check: bool = True,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """
        Run ``git <args>`` and return decoded stdout.

        Raises:
            GitError: If ``check`` is set and git exits non-zero, or the
                command times out or is cancelled.
        """
        cmdargs = ["git", "--no-pager", *args]
        ecode, out, err = _run_command(
            cmdargs, cwd=self.path, timeout=timeout, cancel_event=cancel_event
        )
        if check and ecode != 0:
            stderr = err.decode(errors="replace").strip()
            raise GitError(
                f"git {args[0]} failed: {stderr or f'exit code {ecode}'}",
                returncode=ecode,
                stderr=stderr,
            )
        return out.decode(errors="replace")

    def get_config(self, key: str) -> str | None:
        out = self.run(["config", "--get", key], check=False).strip()
        return out or None

    def current_branch(self) -> str | None:
        """Name of the checked out branch, None when HEAD is detached."""
        out = self.run(["symbolic-ref", "--quiet", "--short", "HEAD"], check=False)
        return out.strip() or None

    def remote_url(self, remote_name: str) -> str | None:
        return self.get_config(f"remote.{remote_name}.url")

    def tracking_remote(self, branch: str) -> str | None:
        return self.get_config(f"branch.{branch}.remote")

    def tracking_merge_ref(self, branch: str) -> str | None:
        """The ``branch.<name>.merge`` ref, e.g. ``refs/heads/main``."""
        return self.get_config(f"branch.{branch}.merge")

    def list_remote_branches(self) -> list[str]:
        out = self.run(["branch", "-r", "--format=%(refname:short)"])
        return [line.strip() for line in out.splitlines() if line.strip()]

    def fetch(
        self,
        remote: str,
        ref: str,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Fetch a ref from a remote; FETCH_HEAD is valid on return."""
        log.info("Fetching %s from %s", ref, remote)
        self.run(["fetch", remote, ref], timeout=timeout, cancel_event=cancel_event)

    def fetch_from_upstream(
        self,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Fetch the current branch's upstream remote (or the default)."""
        branch = self.current_branch()
        remote = self.tracking_remote(branch) if branch else None
        self.run(
            ["fetch", remote] if remote else ["fetch"],
            timeout=timeout,
            cancel_event=cancel_event,
        )

    def create_or_reset_branch(self, name: str, at_ref: str) -> None:
        """Create ``name`` at ``at_ref``, or force it there if it exists."""
        self.run(["branch", "--force", name, at_ref])

    def push_async(self, remote: str, refspec: str) -> subprocess.Popen[bytes]:
        """
        Start ``git push -v`` without waiting for it.

        Returns:
            The running process; call ``wait()``/``communicate()`` on it.
        """
        cmdargs = ["git", "push", "-v", remote, refspec]
        log.debug("Running %s", " ".join(cmdargs))
        try:
            return subprocess.Popen(
                cmdargs,
                cwd=self.path,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise GitError(f"Failed to run git push: {exc}") from exc

    def diff(self, revision_range: str) -> str:
        return self.run(["diff", revision_range])

    def resolve_revision(self, rev: str) -> str | None:
        out = self.run(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"], check=False)
        return out.strip() or None

    def __repr__(self) -> str:
        return f"GitRepository(path={self.path!r})"


__all__ = [
    "GitError",
    "GitRepository",
]
