# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Resolution of the per-repository Gerrit context.

Settings are resolved in this order:

1. Explicit arguments (``--ssh-creds``, ``--remote``, ``--project``)
2. Environment variables (``GERRIT_SSH_CREDENTIALS``, ``GERRIT_REMOTE``)
3. Detection from the remote URL (``ssh://user@host:29418/project``)

Nothing is stored process-wide; each call returns a fresh
RepositoryContext.
"""

from __future__ import annotations

import logging
import os
from typing import Final

from gerrit_review.gerrit.client import DEFAULT_TIMEOUT
from gerrit_review.gerrit.errors import ConfigError
from gerrit_review.gerrit.models import Credentials, RepositoryContext
from gerrit_review.git import GitRepository
from gerrit_review.remotes import RemoteUrlError, detect_credentials, resolve_project

log = logging.getLogger("gerrit_review.config")

DEFAULT_REMOTE: Final[str] = "origin"

ENV_SSH_CREDENTIALS: Final[str] = "GERRIT_SSH_CREDENTIALS"
ENV_REMOTE: Final[str] = "GERRIT_REMOTE"
ENV_TIMEOUT: Final[str] = "GERRIT_SSH_TIMEOUT"


def resolve_timeout(timeout: float | None = None) -> float:
    """
    Resolve the transport timeout from argument or environment.

    Raises:
        ConfigError: If GERRIT_SSH_TIMEOUT is not a positive number.
    """
    if timeout is not None:
        return float(timeout)
    raw = os.getenv(ENV_TIMEOUT, "").strip()
    if not raw:
        return DEFAULT_TIMEOUT
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{ENV_TIMEOUT} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{ENV_TIMEOUT} must be positive, got {raw!r}")
    return value


def load_repository_context(
    repo: GitRepository,
    remote_name: str | None = None,
    ssh_credentials: str | None = None,
    project_name: str | None = None,
) -> RepositoryContext:
    """
    Build the RepositoryContext for a working tree.

    Missing credentials or project are left unset here; actions raise
    ConfigError when they need them.

    Args:
        repo: The local git repository.
        remote_name: Gerrit remote; falls back to GERRIT_REMOTE, then "origin".
        ssh_credentials: ``user@host``; falls back to GERRIT_SSH_CREDENTIALS,
            then to detection from the remote URL.
        project_name: Gerrit project; derived from the remote URL if omitted.

    Raises:
        ConfigError: If explicit or environment credentials are malformed.
    """
    remote = (
        (remote_name or "").strip()
        or os.getenv(ENV_REMOTE, "").strip()
        or DEFAULT_REMOTE
    )
    creds_text = (ssh_credentials or "").strip() or os.getenv(
        ENV_SSH_CREDENTIALS, ""
    ).strip()

    remote_url = repo.remote_url(remote)
    if remote_url is None:
        log.debug("Remote '%s' has no url configured", remote)

    credentials: Credentials | None = None
    if creds_text:
        credentials = Credentials.parse(creds_text)
    elif remote_url:
        credentials = detect_credentials(remote_url)

    project = (project_name or "").strip() or None
    if project is None and remote_url:
        try:
            project = resolve_project(remote_url)
        except RemoteUrlError as exc:
            log.debug("Cannot derive project from %s: %s", remote_url, exc)

    context = RepositoryContext(
        remote_name=remote,
        credentials=credentials,
        project_name=project,
    )
    log.debug(
        "Repository context: remote=%s, creds=%s, project=%s",
        context.remote_name,
        "yes" if context.credentials else "no",
        context.project_name,
    )
    return context


__all__ = [
    "DEFAULT_REMOTE",
    "ENV_REMOTE",
    "ENV_SSH_CREDENTIALS",
    "ENV_TIMEOUT",
    "load_repository_context",
    "resolve_timeout",
]
