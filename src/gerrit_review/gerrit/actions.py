# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Mutating review operations for gerrit_review.

This module provides the GerritReviewActions class. Each action:

1. resolves credentials and project (ConfigError if unresolved)
2. resolves the target review (NoSelectionError if none)
3. builds the ssh argv and runs it through the transport
4. refreshes the review store on success

Transport failures propagate to the caller and leave local state alone.
"""

from __future__ import annotations

import logging
import subprocess
import threading
import webbrowser
from typing import TYPE_CHECKING, Mapping

from pydantic import BaseModel, Field

from gerrit_review.gerrit.commands import (
    build_review_command,
    build_set_reviewers_command,
    score_flags,
)
from gerrit_review.gerrit.errors import ConfigError, NoSelectionError, TransportError
from gerrit_review.gerrit.models import ApprovalType, RepositoryContext, Review
from gerrit_review.gerrit.service import GerritReviewService, Selection
from gerrit_review.git import GitError

if TYPE_CHECKING:
    from gerrit_review.git import GitRepository


log = logging.getLogger("gerrit_review.gerrit.actions")


HEADS_PREFIX = "refs/heads/"
LOCAL_REMOTE = "."

# Range diffed by view_patchset_diff. Only correct for single-commit
# patchsets: the patchset's real parent is not part of the query model.
PATCHSET_DIFF_RANGE = "FETCH_HEAD~1..FETCH_HEAD"


class ActionResult(BaseModel):
    """Outcome of a completed review action."""

    action: str = Field(..., description="Action name, e.g. 'submit'")
    change_number: int | None = Field(None, description="Target change")
    project: str = Field("", description="Gerrit project")
    argv: list[str] = Field(default_factory=list, description="Command run")
    output: str = Field("", description="Command output, diff text, or URL")
    branch: str | None = Field(None, description="Local branch touched")
    refreshed: bool = Field(False, description="Whether the store was refreshed")


def _strip_heads(ref: str) -> str:
    if ref.startswith(HEADS_PREFIX):
        return ref[len(HEADS_PREFIX):]
    return ref


class GerritReviewActions:
    """
    Review workflow operations for one repository context.

    All arguments arrive fully resolved; prompting and rendering belong
    to the caller.
    """

    def __init__(
        self,
        service: GerritReviewService,
        repo: GitRepository,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """
        Initialize the actions.

        Args:
            service: Query/selection service for the context.
            repo: The local git repository.
            cancel_event: Optional event that aborts in-flight ssh and git calls.
        """
        self.service = service
        self.repo = repo
        self._cancel_event = cancel_event

    @property
    def context(self) -> RepositoryContext:
        return self.service.context

    def _refresh(self) -> bool:
        try:
            self.service.refresh()
        except (TransportError, ConfigError) as exc:
            log.warning("Action succeeded but review refresh failed: %s", exc)
            return False
        return True

    def _target(self, selection: Selection) -> tuple[str, Review, str]:
        """Resolve project, review and revision for an action."""
        self.context.require_credentials()
        project = self.context.require_project()
        review = self.service.resolve_review(selection, self.repo)
        if not review.revision:
            raise NoSelectionError(
                f"Review {review.number} has no current patchset"
            )
        return project, review, review.revision

    def _review(
        self,
        action: str,
        selection: Selection,
        flags: list[str],
        message: str | None = None,
    ) -> ActionResult:
        project, review, revision = self._target(selection)
        argv = build_review_command(
            self.context.credentials, project, revision, flags, message=message
        )
        result = self.service.run(argv, cancel_event=self._cancel_event)
        log.info("%s: %s #%d (%s)", action, project, review.number, revision[:12])
        return ActionResult(
            action=action,
            change_number=review.number,
            project=project,
            argv=argv,
            output=result.output,
        )

    def score(
        self,
        selection: Selection,
        category: ApprovalType,
        value: int,
        message: str | None = None,
    ) -> ActionResult:
        """
        Vote on the selected review's current patchset.

        Raises:
            ValueError: If the category is not Code-Review/Verified or the
                value is outside [-2, 2]; raised before anything runs.
        """
        return self.vote(selection, {category: value}, message)

    def vote(
        self,
        selection: Selection,
        scores: Mapping[ApprovalType, int],
        message: str | None = None,
    ) -> ActionResult:
        """
        Cast one or more category votes in a single ``gerrit review`` call.

        Raises:
            ValueError: If no score is given or any score is invalid;
                raised before anything runs.
        """
        if not scores:
            raise ValueError("At least one score is required")
        flags: list[str] = []
        for category, value in scores.items():
            flags += score_flags(category, value)
        labels = ", ".join(category.value for category in scores)
        result = self._review(f"score {labels}", selection, flags, message)
        result.refreshed = self._refresh()
        return result

    def code_review(
        self, selection: Selection, value: int, message: str | None = None
    ) -> ActionResult:
        return self.score(selection, ApprovalType.CODE_REVIEW, value, message)

    def verify(
        self, selection: Selection, value: int, message: str | None = None
    ) -> ActionResult:
        return self.score(selection, ApprovalType.VERIFIED, value, message)

    def submit(
        self, selection: Selection, message: str | None = None
    ) -> ActionResult:
        """Submit the selected review, then fetch the upstream."""
        result = self._review("submit", selection, ["--submit"], message)
        try:
            self.repo.fetch_from_upstream(
                timeout=self.service.client.timeout,
                cancel_event=self._cancel_event,
            )
        except GitError as exc:
            log.warning("Submitted, but fetching upstream failed: %s", exc)
        result.refreshed = self._refresh()
        return result

    def abandon(
        self, selection: Selection, message: str | None = None
    ) -> ActionResult:
        result = self._review("abandon", selection, ["--abandon"], message)
        result.refreshed = self._refresh()
        return result

    def publish_draft(self, selection: Selection) -> ActionResult:
        return self._draft_action("publish", selection, "--publish")

    def delete_draft(self, selection: Selection) -> ActionResult:
        return self._draft_action("delete draft", selection, "--delete")

    def _draft_action(
        self, action: str, selection: Selection, flag: str
    ) -> ActionResult:
        project, review, revision = self._target(selection)
        if not review.is_draft:
            # Gerrit has the final say; it rejects non-draft patchsets
            log.warning("Review %d is not marked as a draft", review.number)
        argv = build_review_command(
            self.context.credentials, project, revision, [flag]
        )
        output = self.service.run(argv, cancel_event=self._cancel_event).output
        log.info("%s: %s #%d", action, project, review.number)
        return ActionResult(
            action=action,
            change_number=review.number,
            project=project,
            argv=argv,
            output=output,
            refreshed=self._refresh(),
        )

    def add_reviewer(self, selection: Selection, identifier: str) -> ActionResult:
        """
        Add a reviewer (name or email) to the selected review.

        Raises:
            ValueError: If the identifier is blank.
        """
        if not identifier or not identifier.strip():
            raise ValueError("A reviewer name or email is required")
        self.context.require_credentials()
        project = self.context.require_project()
        review = self.service.resolve_review(selection, self.repo)
        review_id = review.id or str(review.number)
        argv = build_set_reviewers_command(
            self.context.credentials, project, review_id, identifier
        )
        output = self.service.run(argv, cancel_event=self._cancel_event).output
        log.info("Added reviewer %s to %s #%d", identifier, project, review.number)
        return ActionResult(
            action="add reviewer",
            change_number=review.number,
            project=project,
            argv=argv,
            output=output,
            refreshed=self._refresh(),
        )

    def push_refspec(
        self,
        local_ref: str | None = None,
        remote_branch: str | None = None,
        draft: bool = False,
    ) -> tuple[str, str, str]:
        """
        Compute where a push for review goes.

        The target branch comes from ``remote_branch`` if given, else
        from the local branch's tracking merge ref with ``refs/heads/``
        stripped.

        Returns:
            (remote, refspec, local branch) for ``git push``.

        Raises:
            NoSelectionError: If HEAD is detached.
            ConfigError: If no target branch can be determined.
        """
        branch = self.repo.current_branch()
        if not branch:
            raise NoSelectionError("Cannot push for review from a detached HEAD")
        tracking = self.repo.tracking_remote(branch)
        # "." marks a branch tracking another local branch
        if tracking and tracking != LOCAL_REMOTE:
            remote = tracking
        else:
            remote = self.context.remote_name

        if remote_branch:
            target = remote_branch.strip()
            for prefix in dict.fromkeys((remote, self.context.remote_name)):
                if target.startswith(f"{prefix}/"):
                    target = target[len(prefix) + 1:]
                    break
            target = _strip_heads(target)
        else:
            merge_ref = self.repo.tracking_merge_ref(branch)
            if not merge_ref:
                raise ConfigError(
                    f"Branch '{branch}' has no upstream; pass a target branch"
                )
            target = _strip_heads(merge_ref)
        if not target:
            raise ConfigError("Empty target branch for push")

        status = "drafts" if draft else "publish"
        refspec = f"{local_ref or branch}:refs/{status}/{target}/{branch}"
        return remote, refspec, branch

    def push_for_review(
        self,
        local_ref: str | None = None,
        remote_branch: str | None = None,
        draft: bool = False,
    ) -> ActionResult:
        """
        Push a local ref to Gerrit for review (or as a draft).

        Raises:
            ConfigError: If credentials or target branch are unresolved.
            NoSelectionError: If HEAD is detached.
            GitError: If the push fails or times out.
        """
        self.context.require_credentials()
        project = self.context.require_project()
        remote, refspec, branch = self.push_refspec(local_ref, remote_branch, draft)

        proc = self.repo.push_async(remote, refspec)
        try:
            out, err = proc.communicate(timeout=self.service.client.timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            raise GitError(f"git push to {remote} timed out") from None
        stderr = (err or b"").decode(errors="replace").strip()
        if proc.returncode != 0:
            raise GitError(
                f"git push {remote} {refspec} failed: {stderr}",
                returncode=proc.returncode,
                stderr=stderr,
            )
        log.info("Pushed %s to %s", refspec, remote)
        output = "\n".join(
            part for part in ((out or b"").decode(errors="replace").strip(), stderr)
            if part
        )
        return ActionResult(
            action="push draft" if draft else "push",
            project=project,
            argv=["git", "push", "-v", remote, refspec],
            output=output,
            branch=branch,
            refreshed=self._refresh(),
        )

    def _fetch_patchset(self, selection: Selection) -> tuple[str, Review]:
        self.context.require_credentials()
        project = self.context.require_project()
        review = self.service.resolve_review(selection, self.repo)
        if review.current_patch_set is None or not review.current_patch_set.ref:
            raise NoSelectionError(
                f"Review {review.number} has no fetchable patchset"
            )
        # Blocks until complete or timed out; callers read FETCH_HEAD next
        self.repo.fetch(
            self.context.remote_name,
            review.current_patch_set.ref,
            timeout=self.service.client.timeout,
            cancel_event=self._cancel_event,
        )
        return project, review

    def download_patchset(self, selection: Selection) -> ActionResult:
        """
        Fetch the current patchset into ``review/<owner>/<topic|number>``.

        The branch is created, or force-reset to the fetched tip.
        """
        project, review = self._fetch_patchset(selection)
        branch = review.local_branch_name
        self.repo.create_or_reset_branch(branch, "FETCH_HEAD")
        log.info("Downloaded %s #%d into %s", project, review.number, branch)
        return ActionResult(
            action="download",
            change_number=review.number,
            project=project,
            branch=branch,
        )

    def view_patchset_diff(self, selection: Selection) -> ActionResult:
        """
        Fetch the current patchset and diff it against its parent.

        Only the tip commit is shown; a multi-commit patchset's diff is
        incomplete.
        """
        project, review = self._fetch_patchset(selection)
        diff = self.repo.diff(PATCHSET_DIFF_RANGE)
        return ActionResult(
            action="diff",
            change_number=review.number,
            project=project,
            output=diff,
        )

    def browse_review(self, selection: Selection, open_browser: bool = True) -> ActionResult:
        """Open the selected review's web page."""
        self.context.require_credentials()
        project = self.context.require_project()
        review = self.service.resolve_review(selection, self.repo)
        if not review.url:
            raise NoSelectionError(f"Review {review.number} has no URL")
        if open_browser:
            webbrowser.open(review.url)
        return ActionResult(
            action="browse",
            change_number=review.number,
            project=project,
            output=review.url,
        )


__all__ = [
    "ActionResult",
    "GerritReviewActions",
    "PATCHSET_DIFF_RANGE",
]
