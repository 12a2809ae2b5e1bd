# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
SSH argument vector construction for Gerrit commands.

Gerrit's SSH daemon receives the remote command as a single line and
splits it again on whitespace, honouring shell-style quotes. Every
free-text value is therefore quoted on its own and kept as a separate
argv element; nothing is ever joined into a local shell string.

Usage:
    from gerrit_review.gerrit.commands import build_query_command

    argv = build_query_command(creds, "releng/tool", "open")
    # ['ssh', '-x', '-T', '-p', '29418', 'alice@gerrit.example.org',
    #  'gerrit', 'query', '--format=JSON', ...]
"""

from __future__ import annotations

import shlex
from typing import Final, Sequence

from gerrit_review.gerrit.errors import ConfigError
from gerrit_review.gerrit.models import ApprovalType, Credentials

GERRIT_SSH_PORT: Final[int] = 29418

# -x: no X11 forwarding, -T: no pseudo-terminal
_SSH_FLAGS: Final[tuple[str, ...]] = ("-x", "-T", "-p", str(GERRIT_SSH_PORT))

QUERY_OPTIONS: Final[tuple[str, ...]] = (
    "--format=JSON",
    "--all-approvals",
    "--comments",
    "--current-patch-set",
)

MIN_SCORE: Final[int] = -2
MAX_SCORE: Final[int] = 2

_SCORE_FLAGS: Final[dict[ApprovalType, str]] = {
    ApprovalType.CODE_REVIEW: "--code-review",
    ApprovalType.VERIFIED: "--verified",
}


def quote_arg(value: str) -> str:
    """Quote one value for Gerrit's remote command-line splitter."""
    return shlex.quote(str(value))


def _require(credentials: Credentials | None) -> Credentials:
    if credentials is None:
        raise ConfigError(
            "No Gerrit ssh credentials resolved; cannot build command"
        )
    return credentials


def ssh_prefix(credentials: Credentials | None) -> list[str]:
    """
    Fixed transport prefix for every Gerrit command.

    Raises:
        ConfigError: If no credentials are resolved.
    """
    creds = _require(credentials)
    return ["ssh", *_SSH_FLAGS, str(creds), "gerrit"]


def format_score(value: int) -> str:
    """Render a score the way Gerrit expects it ("+2", "0", "-1")."""
    return f"+{value}" if value > 0 else str(value)


def validate_score(value: int) -> int:
    """
    Check a score lies within [-2, 2].

    Raises:
        ValueError: If the score is out of range or not an integer.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Score must be an integer, got {value!r}")
    if not MIN_SCORE <= value <= MAX_SCORE:
        raise ValueError(
            f"Score {value} outside allowed range [{MIN_SCORE}, {MAX_SCORE}]"
        )
    return value


def score_flags(category: ApprovalType, value: int) -> list[str]:
    """
    Review flags for a category vote, e.g. ``["--code-review", "+2"]``.

    Raises:
        ValueError: For an unsupported category or out of range value.
    """
    if category not in _SCORE_FLAGS:
        raise ValueError(f"Cannot score category {category.value!r}")
    return [_SCORE_FLAGS[category], format_score(validate_score(value))]


def code_review_flags(value: int) -> list[str]:
    return score_flags(ApprovalType.CODE_REVIEW, value)


def verified_flags(value: int) -> list[str]:
    return score_flags(ApprovalType.VERIFIED, value)


def build_query_command(
    credentials: Credentials | None,
    project: str,
    status: str = "open",
) -> list[str]:
    """
    Build the ``gerrit query`` argv for a project's reviews.

    Args:
        credentials: Resolved ssh credentials.
        project: Gerrit project name.
        status: Change status to filter on (e.g. "open").

    Returns:
        The argument vector.

    Raises:
        ConfigError: If no credentials are resolved.
    """
    argv = ssh_prefix(credentials)
    argv += ["query", *QUERY_OPTIONS]
    argv.append(quote_arg(f"project:{project}"))
    if status:
        argv.append(quote_arg(f"status:{status}"))
    return argv


def build_review_command(
    credentials: Credentials | None,
    project: str,
    revision: str,
    flags: Sequence[str] = (),
    message: str | None = None,
) -> list[str]:
    """
    Build a ``gerrit review`` argv acting on one revision.

    Args:
        credentials: Resolved ssh credentials.
        project: Gerrit project name.
        revision: Commit hash of the patchset.
        flags: Action flags (``--submit``, ``--code-review +1`` ...).
        message: Optional review message, passed as one quoted element.

    Returns:
        The argument vector.

    Raises:
        ConfigError: If no credentials are resolved.
        ValueError: If the revision is empty.
    """
    argv = ssh_prefix(credentials)
    if not revision:
        raise ValueError("A revision is required for gerrit review")
    argv += ["review", "--project", quote_arg(project), *flags]
    if message:
        argv += ["--message", quote_arg(message)]
    argv.append(revision)
    return argv


def build_set_reviewers_command(
    credentials: Credentials | None,
    project: str,
    review_id: str,
    identifier: str,
) -> list[str]:
    """
    Build a ``gerrit set-reviewers`` argv adding one reviewer.

    Raises:
        ConfigError: If no credentials are resolved.
        ValueError: If the reviewer identifier is blank.
    """
    argv = ssh_prefix(credentials)
    if not identifier or not identifier.strip():
        raise ValueError("A reviewer name or email is required")
    argv += [
        "set-reviewers",
        "--project",
        quote_arg(project),
        "--add",
        quote_arg(identifier.strip()),
        quote_arg(review_id),
    ]
    return argv


__all__ = [
    "GERRIT_SSH_PORT",
    "MAX_SCORE",
    "MIN_SCORE",
    "QUERY_OPTIONS",
    "build_query_command",
    "build_review_command",
    "build_set_reviewers_command",
    "code_review_flags",
    "format_score",
    "quote_arg",
    "score_flags",
    "ssh_prefix",
    "validate_score",
    "verified_flags",
]
