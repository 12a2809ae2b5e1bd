# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit service layer for gerrit_review.

This module ties the command builder, ssh transport, parser and store
together for one repository context. It provides methods for:

- Querying reviews of the context's project
- Refreshing the review store (coalescing overlapping requests)
- Resolving the review an action should target
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from gerrit_review.gerrit.client import CommandResult, GerritSshClient, build_client
from gerrit_review.gerrit.commands import build_query_command
from gerrit_review.gerrit.errors import NoSelectionError
from gerrit_review.gerrit.models import QueryResult, RepositoryContext, Review
from gerrit_review.gerrit.parser import parse_query_result
from gerrit_review.gerrit.store import ReviewStore

if TYPE_CHECKING:
    from gerrit_review.git import GitRepository


log = logging.getLogger("gerrit_review.gerrit.service")


DEFAULT_QUERY_STATUS = "open"


@dataclass(frozen=True)
class Selection:
    """
    What the user pointed at when invoking an action.

    Attributes:
        review_id: Change-Id or change number, if given.
        commit: A commit-ish whose current patchset should be targeted.
            When both are None the commit at HEAD is used.
    """

    review_id: str | None = None
    commit: str | None = None


class GerritReviewService:
    """
    Query and selection service for one repository context.

    Holds the context's ReviewStore; every refresh replaces it wholesale.
    """

    def __init__(
        self,
        context: RepositoryContext,
        client: GerritSshClient | None = None,
        store: ReviewStore | None = None,
        status: str = DEFAULT_QUERY_STATUS,
    ) -> None:
        """
        Initialize the service.

        Args:
            context: Remote, credentials and project for this repository.
            client: SSH transport; a default one is built if omitted.
            store: Review store; a fresh one is created if omitted.
            status: Status filter used by refresh().
        """
        self.context = context
        self.status = status
        self._client = client if client is not None else build_client()
        self._store = store if store is not None else ReviewStore()

        log.debug(
            "GerritReviewService initialized: remote=%s, project=%s, creds=%s",
            context.remote_name,
            context.project_name,
            "yes" if context.credentials else "no",
        )

    @property
    def store(self) -> ReviewStore:
        return self._store

    @property
    def client(self) -> GerritSshClient:
        return self._client

    def query_reviews(
        self,
        status: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> QueryResult:
        """
        Run ``gerrit query`` for the context's project.

        Args:
            status: Status filter; defaults to the service's status.
            cancel_event: Optional event to abort the query.

        Returns:
            The parsed QueryResult.

        Raises:
            ConfigError: If credentials or project are unresolved.
            TransportError: If the ssh query fails.
        """
        credentials = self.context.require_credentials()
        project = self.context.require_project()
        argv = build_query_command(credentials, project, status or self.status)

        log.debug("Querying %s reviews for %s", status or self.status, project)
        lines = self._client.execute_streamed(argv, cancel_event=cancel_event)
        result = parse_query_result(lines)

        if result.stats and result.stats.more_changes:
            log.warning(
                "Gerrit reported more changes than returned for %s", project
            )
        return result

    def refresh(self, status: str | None = None) -> bool:
        """
        Replace the store's reviews with a fresh query.

        Returns:
            True if this call performed the refresh, False if it was
            coalesced into one already in flight.
        """
        if status:
            self.status = status
        wanted = self.status
        return self._store.refresh(lambda: self.query_reviews(wanted))

    def run(
        self,
        argv: list[str],
        cancel_event: threading.Event | None = None,
    ) -> CommandResult:
        """Execute a mutating Gerrit command."""
        return self._client.execute(argv, cancel_event=cancel_event)

    def resolve_review(
        self,
        selection: Selection,
        repo: GitRepository | None = None,
    ) -> Review:
        """
        Resolve a selection to a review in the store.

        The store is refreshed once if it is empty. A review id is looked
        up by identity; otherwise the selected commit (default HEAD) is
        matched against current patchset revisions.

        Raises:
            NoSelectionError: If nothing matches the selection.
            ReviewNotFoundError: If a review id is not in the store.
        """
        if len(self._store) == 0:
            self.refresh()

        if selection.review_id:
            return self._store.find(selection.review_id)

        commit = selection.commit or "HEAD"
        revision = commit
        if repo is not None:
            revision = repo.resolve_revision(commit) or ""
        if not revision:
            raise NoSelectionError(f"Cannot resolve commit '{commit}'")

        review = self._store.find_by_revision(revision)
        if review is None:
            raise NoSelectionError(
                f"No open review has {commit} ({revision[:12]}) "
                "as its current patchset"
            )
        return review


def create_review_service(
    context: RepositoryContext,
    timeout: float | None = None,
) -> GerritReviewService:
    """
    Factory function to create a GerritReviewService instance.

    Args:
        context: The resolved repository context.
        timeout: Optional ssh timeout in seconds.

    Returns:
        Configured GerritReviewService instance.
    """
    return GerritReviewService(
        context=context,
        client=build_client(timeout=timeout),
    )


__all__ = [
    "DEFAULT_QUERY_STATUS",
    "GerritReviewService",
    "Selection",
    "create_review_service",
]
