# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
In-memory cache of the most recent review query.

One ReviewStore belongs to one repository context. A refresh replaces
the held reviews wholesale; selections taken before a refresh must be
re-resolved by identity (Change-Id, number or revision), never by
position.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable

from gerrit_review.gerrit.errors import ReviewNotFoundError
from gerrit_review.gerrit.models import QueryResult, QueryStats, Review

log = logging.getLogger("gerrit_review.gerrit.store")

# Shortest commit prefix accepted for revision lookups
MIN_REVISION_PREFIX = 7


class ReviewStore:
    """
    Holds the reviews of the latest query in Gerrit's order.

    Reads always see a complete result set: replace() swaps an immutable
    snapshot under a lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reviews: tuple[Review, ...] = ()
        self._by_id: dict[str, Review] = {}
        self._by_number: dict[int, Review] = {}
        self._stats: QueryStats | None = None
        self._generation = 0

        # Refresh coalescing state
        self._refreshing = False
        self._pending: Callable[[], QueryResult] | None = None

    def replace(
        self,
        reviews: Iterable[Review],
        stats: QueryStats | None = None,
    ) -> None:
        """Atomically swap the held reviews for a new set."""
        snapshot = tuple(reviews)
        by_id = {r.id: r for r in snapshot if r.id}
        by_number = {r.number: r for r in snapshot}
        with self._lock:
            self._reviews = snapshot
            self._by_id = by_id
            self._by_number = by_number
            self._stats = stats
            self._generation += 1
            generation = self._generation
        log.debug("Store generation %d holds %d reviews", generation, len(snapshot))

    def all(self) -> tuple[Review, ...]:
        """All reviews, in the order Gerrit returned them."""
        return self._reviews

    def find(self, review_id: str | int) -> Review:
        """
        Look up a review by Change-Id or change number.

        Raises:
            ReviewNotFoundError: If the review is not in the store.
        """
        with self._lock:
            by_id, by_number = self._by_id, self._by_number
        key = str(review_id).strip()
        if key in by_id:
            return by_id[key]
        if key.isdigit() and int(key) in by_number:
            return by_number[int(key)]
        # Gerrit also accepts the "project~branch~Change-Id" triplet
        if "~" in key:
            change_id = key.rsplit("~", 1)[-1]
            if change_id in by_id:
                return by_id[change_id]
        raise ReviewNotFoundError(f"No review matching '{review_id}'")

    def find_by_revision(self, revision: str) -> Review | None:
        """Find the review whose current patchset is the given commit."""
        rev = revision.strip().lower()
        if len(rev) < MIN_REVISION_PREFIX:
            return None
        for review in self._reviews:
            current = (review.revision or "").lower()
            if current and current.startswith(rev):
                return review
        return None

    @property
    def stats(self) -> QueryStats | None:
        return self._stats

    @property
    def generation(self) -> int:
        """Incremented on every replace()."""
        return self._generation

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    def __len__(self) -> int:
        return len(self._reviews)

    def refresh(self, loader: Callable[[], QueryResult]) -> bool:
        """
        Reload the store from ``loader``, coalescing concurrent requests.

        A call arriving while another refresh is in flight only records
        its loader as the pending request and returns False. The caller
        running the refresh picks up the latest pending loader once its
        own finishes, and a result is stored only if no newer request
        arrived in the meantime.

        Returns:
            True if this call ran the refresh, False if it was coalesced.

        Raises:
            Whatever the last loader raises; the store keeps its prior
            contents. A failure followed by a pending request runs that
            request instead of raising.
        """
        with self._lock:
            self._pending = loader
            if self._refreshing:
                log.debug("Refresh in flight; coalescing request")
                return False
            self._refreshing = True

        try:
            while True:
                with self._lock:
                    current = self._pending
                    self._pending = None
                    # Cleared under the same lock so no request slips between
                    if current is None:
                        self._refreshing = False
                        return True
                try:
                    result = current()
                except Exception:
                    with self._lock:
                        superseded = self._pending is not None
                    if not superseded:
                        raise
                    # A coalesced caller is still waiting on the newer loader
                    log.warning("Refresh failed; running the pending request")
                    continue
                with self._lock:
                    superseded = self._pending is not None
                if superseded:
                    log.debug("Discarding superseded refresh result")
                    continue
                self.replace(result.reviews, result.stats)
        except Exception:
            with self._lock:
                self._pending = None
                self._refreshing = False
            raise


__all__ = [
    "MIN_REVISION_PREFIX",
    "ReviewStore",
]
