# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Remote URL parsing for Gerrit-hosted repositories.

This module derives the Gerrit project name and SSH credentials from a
git remote URL.

Supported URL formats:

    ssh://alice@gerrit.example.org:29418/releng/tool.git
    https://gerrit.example.org/releng/tool
    alice@gerrit.example.org:releng/tool.git   (scp-like, project only)

Only an ``ssh://`` URL on port 29418 is taken to be a Gerrit remote for
credential detection; anything else leaves credentials unset.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from gerrit_review.gerrit.commands import GERRIT_SSH_PORT
from gerrit_review.gerrit.models import Credentials

# user@host:path, with no scheme
_SCP_LIKE = re.compile(r"^(?:(?P<user>[^@/]+)@)?(?P<host>[^:/]+):(?P<path>[^/].*)$")


class RemoteUrlError(ValueError):
    """Raised when a remote URL has no usable project path."""


@dataclass(frozen=True)
class ParsedRemote:
    """
    Components of a git remote URL.

    Attributes:
        scheme: URL scheme, "" for scp-like remotes.
        user: Login name, if present.
        host: Hostname, lowercased.
        port: Explicit port, if present.
        project: Project path with any ``.git`` suffix removed.
    """

    scheme: str
    user: str | None
    host: str
    port: int | None
    project: str

    @property
    def is_gerrit_ssh(self) -> bool:
        return self.scheme == "ssh" and self.port == GERRIT_SSH_PORT


def _clean_project(path: str) -> str:
    project = path.strip().strip("/")
    if project.endswith(".git"):
        project = project[: -len(".git")]
    return project.rstrip("/")


def parse_remote_url(remote_url: str) -> ParsedRemote:
    """
    Split a remote URL into its components.

    Raises:
        RemoteUrlError: If the URL is empty or has no project path.
    """
    url = (remote_url or "").strip()
    if not url:
        raise RemoteUrlError("Remote URL cannot be empty")

    if "://" not in url:
        match = _SCP_LIKE.match(url)
        if not match:
            raise RemoteUrlError(f"Unrecognized remote URL: {url}")
        project = _clean_project(match.group("path"))
        if not project:
            raise RemoteUrlError(f"Remote URL has no project path: {url}")
        return ParsedRemote(
            scheme="",
            user=match.group("user"),
            host=match.group("host").lower(),
            port=None,
            project=project,
        )

    parsed = urlparse(url)
    try:
        port = parsed.port
    except ValueError as exc:
        raise RemoteUrlError(f"Invalid port in remote URL: {url}") from exc
    project = _clean_project(parsed.path)
    if not parsed.hostname or not project:
        raise RemoteUrlError(f"Remote URL has no project path: {url}")
    return ParsedRemote(
        scheme=parsed.scheme.lower(),
        user=parsed.username,
        host=parsed.hostname.lower(),
        port=port,
        project=project,
    )


def resolve_project(remote_url: str) -> str:
    """
    Extract the Gerrit project name from a remote URL.

    ``ssh://u@h:29418/top/sub.git`` yields ``top/sub``.

    Raises:
        RemoteUrlError: If the URL has no project path.
    """
    return parse_remote_url(remote_url).project


def detect_credentials(remote_url: str) -> Credentials | None:
    """
    Derive ssh credentials from a Gerrit remote URL.

    Returns:
        Credentials for ``ssh://user@host:29418/...`` URLs; None for any
        other scheme, port, or a URL without a user.
    """
    try:
        remote = parse_remote_url(remote_url)
    except RemoteUrlError:
        return None
    if not remote.is_gerrit_ssh or not remote.user:
        return None
    return Credentials(user=remote.user, host=remote.host)


def is_gerrit_remote(remote_url: str) -> bool:
    """Check if a remote URL points at a Gerrit ssh endpoint."""
    return detect_credentials(remote_url) is not None


__all__ = [
    "ParsedRemote",
    "RemoteUrlError",
    "detect_credentials",
    "is_gerrit_remote",
    "parse_remote_url",
    "resolve_project",
]
