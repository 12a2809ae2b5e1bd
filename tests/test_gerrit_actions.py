# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Tests for Gerrit review actions.

This module tests GerritReviewActions: argument validation, command
construction, refresh after success, error propagation without local
changes, push refspecs, and patchset download/diff sequencing.
"""

import json
import subprocess
import threading
from unittest.mock import MagicMock, call, patch

import pytest

from gerrit_review.gerrit.actions import (
    PATCHSET_DIFF_RANGE,
    ActionResult,
    GerritReviewActions,
)
from gerrit_review.gerrit.client import CommandResult
from gerrit_review.gerrit.errors import (
    ConfigError,
    NoSelectionError,
    TransportError,
)
from gerrit_review.gerrit.models import ApprovalType, Credentials, RepositoryContext
from gerrit_review.gerrit.service import GerritReviewService, Selection
from gerrit_review.git import GitError

REVISION = "0123456789abcdef0123456789abcdef01234567"
DRAFT_REVISION = "fedcba9876543210fedcba9876543210fedcba98"

QUERY_LINES = [
    json.dumps(
        {
            "id": "I1111111111111111111111111111111111111111",
            "number": 12345,
            "subject": "Fix logging setup",
            "topic": "logging",
            "owner": {"name": "Alice", "username": "alice"},
            "url": "https://gerrit.example.org/12345",
            "currentPatchSet": {
                "number": "2",
                "revision": REVISION,
                "ref": "refs/changes/45/12345/2",
            },
        }
    ),
    json.dumps(
        {
            "id": "I2222222222222222222222222222222222222222",
            "number": 12346,
            "subject": "Draft work",
            "owner": {"name": "Bob", "email": "bob@example.org"},
            "currentPatchSet": {
                "number": "1",
                "revision": DRAFT_REVISION,
                "ref": "refs/changes/46/12346/1",
                "isDraft": True,
            },
        }
    ),
    json.dumps({"type": "stats", "rowCount": 2}),
]


def _tail(argv, start):
    return argv[argv.index(start):]


@pytest.fixture
def mock_client():
    """Create a mock SSH transport."""
    client = MagicMock()
    client.timeout = 30.0
    client.execute_streamed.side_effect = lambda argv, cancel_event=None: iter(QUERY_LINES)
    client.execute.side_effect = lambda argv, cancel_event=None: CommandResult(
        argv=tuple(argv), returncode=0, stdout=b"", stderr=b""
    )
    return client


@pytest.fixture
def mock_repo():
    """Create a mock git repository on branch 'feature' tracking main."""
    repo = MagicMock()
    repo.current_branch.return_value = "feature"
    repo.tracking_remote.return_value = "gerrit"
    repo.tracking_merge_ref.return_value = "refs/heads/main"
    repo.resolve_revision.return_value = REVISION
    push_proc = MagicMock()
    push_proc.communicate.return_value = (b"", b"remote: New Changes\n")
    push_proc.returncode = 0
    repo.push_async.return_value = push_proc
    return repo


@pytest.fixture
def context():
    return RepositoryContext(
        remote_name="origin",
        credentials=Credentials(user="alice", host="gerrit.example.org"),
        project_name="releng/tool",
    )


@pytest.fixture
def actions(context, mock_client, mock_repo):
    service = GerritReviewService(context, client=mock_client)
    return GerritReviewActions(service, mock_repo)


class TestScore:
    """Tests for score / code_review / verify."""

    def test_code_review(self, actions, mock_client):
        """Test a Code-Review vote with a message."""
        result = actions.code_review(Selection(review_id="12345"), 2, "Ship it")

        argv = mock_client.execute.call_args[0][0]
        assert _tail(argv, "review") == [
            "review",
            "--project",
            "releng/tool",
            "--code-review",
            "+2",
            "--message",
            "'Ship it'",
            REVISION,
        ]
        assert isinstance(result, ActionResult)
        assert result.change_number == 12345
        assert result.refreshed is True

    def test_verify_negative(self, actions, mock_client):
        """Test a negative Verified vote."""
        actions.verify(Selection(review_id="12345"), -1)
        argv = mock_client.execute.call_args[0][0]
        assert "--verified" in argv
        assert argv[argv.index("--verified") + 1] == "-1"

    @pytest.mark.parametrize("value", [-3, 3, 5])
    def test_out_of_range_rejected_first(self, actions, mock_client, value):
        """Test out-of-range scores fail before any ssh command."""
        with pytest.raises(ValueError):
            actions.score(Selection(review_id="12345"), ApprovalType.CODE_REVIEW, value)
        mock_client.execute.assert_not_called()
        mock_client.execute_streamed.assert_not_called()

    def test_other_category_rejected(self, actions, mock_client):
        """Test OTHER cannot be voted on."""
        with pytest.raises(ValueError):
            actions.score(Selection(review_id="12345"), ApprovalType.OTHER, 1)
        mock_client.execute.assert_not_called()

    def test_selection_by_head(self, actions, mock_client, mock_repo):
        """Test the default selection uses the review at HEAD."""
        result = actions.code_review(Selection(), 1)
        mock_repo.resolve_revision.assert_called_with("HEAD")
        assert result.change_number == 12345

    def test_vote_combines_categories(self, actions, mock_client):
        """Test several votes go out in a single review command."""
        result = actions.vote(
            Selection(review_id="12345"),
            {ApprovalType.CODE_REVIEW: -1, ApprovalType.VERIFIED: 1},
            "Needs work",
        )

        mock_client.execute.assert_called_once()
        argv = mock_client.execute.call_args[0][0]
        assert _tail(argv, "--code-review") == [
            "--code-review",
            "-1",
            "--verified",
            "+1",
            "--message",
            "'Needs work'",
            REVISION,
        ]
        assert result.action == "score Code-Review, Verified"
        # One refresh for the combined vote
        assert mock_client.execute_streamed.call_count == 2

    def test_vote_invalid_score_rejected_first(self, actions, mock_client):
        """Test one bad score in a combined vote stops the whole vote."""
        with pytest.raises(ValueError):
            actions.vote(
                Selection(review_id="12345"),
                {ApprovalType.CODE_REVIEW: 2, ApprovalType.VERIFIED: 4},
            )
        mock_client.execute.assert_not_called()

    def test_vote_requires_scores(self, actions, mock_client):
        """Test an empty vote is rejected."""
        with pytest.raises(ValueError):
            actions.vote(Selection(review_id="12345"), {})
        mock_client.execute.assert_not_called()


class TestErrors:
    """Tests for error propagation."""

    def test_missing_credentials(self, mock_client, mock_repo):
        """Test ConfigError before anything runs."""
        service = GerritReviewService(
            RepositoryContext(project_name="releng/tool"), client=mock_client
        )
        actions = GerritReviewActions(service, mock_repo)

        with pytest.raises(ConfigError):
            actions.submit(Selection(review_id="12345"))
        mock_client.execute.assert_not_called()
        mock_client.execute_streamed.assert_not_called()

    def test_no_selection(self, actions, mock_client, mock_repo):
        """Test NoSelectionError when HEAD is no review's patchset."""
        mock_repo.resolve_revision.return_value = "9" * 40
        with pytest.raises(NoSelectionError):
            actions.abandon(Selection())
        mock_client.execute.assert_not_called()

    def test_transport_error_no_side_effects(self, actions, mock_client, mock_repo):
        """Test a failed submit neither fetches nor refreshes."""
        mock_client.execute.side_effect = TransportError(
            "gerrit review failed", returncode=1, stderr="not permitted"
        )

        with pytest.raises(TransportError):
            actions.submit(Selection(review_id="12345"))

        mock_repo.fetch_from_upstream.assert_not_called()
        # Only the initial query used to resolve the selection
        assert mock_client.execute_streamed.call_count == 1

    def test_refresh_failure_reported(self, actions, mock_client):
        """Test a failed refresh after success is flagged, not raised."""
        actions.service.refresh()
        mock_client.execute_streamed.side_effect = TransportError("down")

        result = actions.abandon(Selection(review_id="12345"))

        assert result.refreshed is False


class TestSubmitAbandon:
    """Tests for submit and abandon."""

    def test_submit_fetches_upstream(self, actions, mock_client, mock_repo):
        """Test submit runs --submit then fetches the upstream."""
        result = actions.submit(Selection(review_id="12345"))

        argv = mock_client.execute.call_args[0][0]
        assert "--submit" in argv
        assert argv[-1] == REVISION
        mock_repo.fetch_from_upstream.assert_called_once_with(
            timeout=30.0, cancel_event=None
        )
        assert result.action == "submit"

    def test_submit_fetch_failure_is_not_fatal(self, actions, mock_repo):
        """Test a failed upstream fetch after submit is only logged."""
        mock_repo.fetch_from_upstream.side_effect = GitError("offline")
        result = actions.submit(Selection(review_id="12345"))
        assert result.change_number == 12345

    def test_abandon_with_message(self, actions, mock_client):
        """Test abandon with a message containing quotes."""
        actions.abandon(Selection(review_id="12345"), "won't fix")
        argv = mock_client.execute.call_args[0][0]
        assert "--abandon" in argv
        assert argv[argv.index("--message") + 1] == "'won'\"'\"'t fix'"


class TestDrafts:
    """Tests for publish_draft and delete_draft."""

    def test_publish(self, actions, mock_client):
        """Test publishing a draft patchset."""
        result = actions.publish_draft(Selection(review_id="12346"))
        argv = mock_client.execute.call_args[0][0]
        assert _tail(argv, "review")[-2:] == ["--publish", DRAFT_REVISION]
        assert result.action == "publish"

    def test_delete(self, actions, mock_client):
        """Test deleting a draft patchset."""
        actions.delete_draft(Selection(review_id="12346"))
        argv = mock_client.execute.call_args[0][0]
        assert _tail(argv, "review")[-2:] == ["--delete", DRAFT_REVISION]

    def test_publish_non_draft_still_sent(self, actions, mock_client):
        """Test a non-draft review is still sent; Gerrit decides."""
        actions.publish_draft(Selection(review_id="12345"))
        mock_client.execute.assert_called_once()


class TestAddReviewer:
    """Tests for add_reviewer."""

    def test_add_reviewer(self, actions, mock_client):
        """Test set-reviewers targets the Change-Id."""
        actions.add_reviewer(Selection(review_id="12345"), "Carol Jones")
        argv = mock_client.execute.call_args[0][0]
        assert _tail(argv, "set-reviewers") == [
            "set-reviewers",
            "--project",
            "releng/tool",
            "--add",
            "'Carol Jones'",
            "I1111111111111111111111111111111111111111",
        ]

    def test_blank_reviewer(self, actions, mock_client):
        """Test a blank identifier is rejected."""
        with pytest.raises(ValueError):
            actions.add_reviewer(Selection(review_id="12345"), " ")
        mock_client.execute.assert_not_called()


class TestPushForReview:
    """Tests for push_for_review / push_refspec."""

    def test_publish_refspec(self, actions, mock_repo):
        """Test the refspec is built from the tracking merge ref."""
        result = actions.push_for_review()

        mock_repo.push_async.assert_called_once_with(
            "gerrit", "feature:refs/publish/main/feature"
        )
        assert result.branch == "feature"
        assert "New Changes" in result.output

    def test_draft_refspec(self, actions, mock_repo):
        """Test a draft push targets refs/drafts."""
        actions.push_for_review(draft=True)
        mock_repo.push_async.assert_called_once_with(
            "gerrit", "feature:refs/drafts/main/feature"
        )

    def test_nested_target_branch(self, actions, mock_repo):
        """Test target branch names with slashes."""
        mock_repo.tracking_merge_ref.return_value = "refs/heads/release/1.0"
        _remote, refspec, _branch = actions.push_refspec()
        assert refspec == "feature:refs/publish/release/1.0/feature"

    def test_explicit_remote_branch(self, actions):
        """Test an explicit remote/branch target."""
        _remote, refspec, _branch = actions.push_refspec(
            local_ref="HEAD~1", remote_branch="gerrit/stable"
        )
        assert refspec == "HEAD~1:refs/publish/stable/feature"

    def test_no_upstream(self, actions, mock_repo):
        """Test a branch without upstream needs an explicit target."""
        mock_repo.tracking_merge_ref.return_value = None
        with pytest.raises(ConfigError):
            actions.push_for_review()
        mock_repo.push_async.assert_not_called()

    def test_detached_head(self, actions, mock_repo):
        """Test pushing from a detached HEAD."""
        mock_repo.current_branch.return_value = None
        with pytest.raises(NoSelectionError):
            actions.push_for_review()

    def test_default_remote(self, actions, mock_repo):
        """Test the context remote is used without a tracking remote."""
        mock_repo.tracking_remote.return_value = None
        remote, _refspec, _branch = actions.push_refspec()
        assert remote == "origin"

    def test_local_tracking_remote(self, actions, mock_repo):
        """Test a branch tracking a local branch pushes to the context remote."""
        mock_repo.tracking_remote.return_value = "."
        remote, refspec, _branch = actions.push_refspec()
        assert remote == "origin"
        assert refspec == "feature:refs/publish/main/feature"

    def test_explicit_branch_with_context_remote_prefix(self, actions):
        """Test the context remote prefix is stripped from an explicit target."""
        remote, refspec, _branch = actions.push_refspec(remote_branch="origin/main")
        assert remote == "gerrit"
        assert refspec == "feature:refs/publish/main/feature"

    def test_push_failure(self, actions, mock_repo):
        """Test a failing push raises GitError."""
        mock_repo.push_async.return_value.returncode = 1
        mock_repo.push_async.return_value.communicate.return_value = (b"", b"rejected")
        with pytest.raises(GitError, match="rejected"):
            actions.push_for_review()

    def test_push_timeout(self, actions, mock_repo):
        """Test a push that outlives the timeout is killed."""
        proc = mock_repo.push_async.return_value
        proc.communicate.side_effect = [
            subprocess.TimeoutExpired(cmd="git", timeout=30),
            (b"", b""),
        ]
        with pytest.raises(GitError, match="timed out"):
            actions.push_for_review()
        proc.kill.assert_called_once()


class TestDownloadAndDiff:
    """Tests for download_patchset and view_patchset_diff."""

    def test_download_sequence(self, actions, mock_repo):
        """Test fetch completes before the branch is reset."""
        result = actions.download_patchset(Selection(review_id="12345"))

        calls = [c for c in mock_repo.mock_calls if c[0] in ("fetch", "create_or_reset_branch")]
        assert calls == [
            call.fetch(
                "origin", "refs/changes/45/12345/2", timeout=30.0, cancel_event=None
            ),
            call.create_or_reset_branch("review/alice/logging", "FETCH_HEAD"),
        ]
        assert result.branch == "review/alice/logging"

    def test_download_branch_without_topic(self, actions, mock_repo):
        """Test the branch name falls back to the change number."""
        result = actions.download_patchset(Selection(review_id="12346"))
        assert result.branch == "review/bob/12346"

    def test_diff(self, actions, mock_repo):
        """Test the diff covers the patchset's tip commit."""
        mock_repo.diff.return_value = "diff --git a/x b/x\n"
        result = actions.view_patchset_diff(Selection(review_id="12345"))

        mock_repo.fetch.assert_called_once_with(
            "origin", "refs/changes/45/12345/2", timeout=30.0, cancel_event=None
        )
        mock_repo.diff.assert_called_once_with(PATCHSET_DIFF_RANGE)
        assert PATCHSET_DIFF_RANGE == "FETCH_HEAD~1..FETCH_HEAD"
        assert result.output == "diff --git a/x b/x\n"

    def test_fetch_is_bounded_and_cancellable(self, context, mock_client, mock_repo):
        """Test the fetch gets the transport timeout and the cancel event."""
        cancel = threading.Event()
        service = GerritReviewService(context, client=mock_client)
        actions = GerritReviewActions(service, mock_repo, cancel_event=cancel)

        actions.download_patchset(Selection(review_id="12345"))

        mock_repo.fetch.assert_called_once_with(
            "origin", "refs/changes/45/12345/2", timeout=30.0, cancel_event=cancel
        )

    def test_fetch_failure_stops_diff(self, actions, mock_repo):
        """Test a failed fetch never diffs a stale FETCH_HEAD."""
        mock_repo.fetch.side_effect = GitError("no such ref")
        with pytest.raises(GitError):
            actions.view_patchset_diff(Selection(review_id="12345"))
        mock_repo.diff.assert_not_called()


class TestBrowse:
    """Tests for browse_review."""

    @patch("gerrit_review.gerrit.actions.webbrowser.open")
    def test_browse(self, mock_open, actions):
        """Test the review URL is opened."""
        result = actions.browse_review(Selection(review_id="12345"))
        mock_open.assert_called_once_with("https://gerrit.example.org/12345")
        assert result.output == "https://gerrit.example.org/12345"

    def test_no_url(self, actions):
        """Test a review without URL."""
        with pytest.raises(NoSelectionError):
            actions.browse_review(Selection(review_id="12346"), open_browser=False)
