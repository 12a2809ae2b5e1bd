# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import load_repository_context, resolve_timeout
from .gerrit.actions import ActionResult, GerritReviewActions
from .gerrit.commands import format_score
from .gerrit.errors import GerritError, TransportError
from .gerrit.models import ApprovalType, Review
from .gerrit.service import Selection, create_review_service
from .git import GitError, GitRepository

app = typer.Typer(
    help="Drive Gerrit code review (push, vote, submit, download) over ssh"
)
console = Console(markup=False)
err_console = Console(stderr=True, markup=False)


@dataclass
class CliOptions:
    remote: Optional[str] = None
    ssh_creds: Optional[str] = None
    project: Optional[str] = None
    timeout: Optional[float] = None
    repo_path: Optional[str] = None


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"gerrit-review version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    remote: Optional[str] = typer.Option(
        None, "--remote", help="Gerrit remote name (or set GERRIT_REMOTE; default origin)"
    ),
    ssh_creds: Optional[str] = typer.Option(
        None, "--ssh-creds", help="user@host (or set GERRIT_SSH_CREDENTIALS)"
    ),
    project: Optional[str] = typer.Option(
        None, "--project", help="Gerrit project (default: derived from the remote URL)"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for each ssh command (or GERRIT_SSH_TIMEOUT)"
    ),
    repo_path: Optional[str] = typer.Option(
        None, "--repo", "-C", help="Path to the git working tree"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
):
    """Gerrit review workflows for the current git repository."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = CliOptions(
        remote=remote,
        ssh_creds=ssh_creds,
        project=project,
        timeout=timeout,
        repo_path=repo_path,
    )


def _build_actions(options: CliOptions) -> GerritReviewActions:
    """Resolve the repository context and wire up service and actions."""
    repo = GitRepository(options.repo_path)
    context = load_repository_context(
        repo,
        remote_name=options.remote,
        ssh_credentials=options.ssh_creds,
        project_name=options.project,
    )
    service = create_review_service(context, timeout=resolve_timeout(options.timeout))
    return GerritReviewActions(service, repo)


@contextmanager
def _reported_errors() -> Iterator[None]:
    """Report errors at the command boundary and exit non-zero."""
    try:
        yield
    except TransportError as e:
        err_console.print(f"Error: {e}")
        if e.stderr and e.stderr not in str(e):
            err_console.print(e.stderr)
        raise typer.Exit(1) from e
    except (GerritError, GitError, ValueError) as e:
        err_console.print(f"Error: {e}")
        raise typer.Exit(1) from e


def _selection(review: Optional[str], commit: Optional[str]) -> Selection:
    return Selection(review_id=review, commit=commit)


def _score_text(value: Optional[int]) -> str:
    # Blank means no vote yet; "0" is a real vote
    return "" if value is None else format_score(value)


def _print_result(result: ActionResult) -> None:
    target = f" #{result.change_number}" if result.change_number else ""
    console.print(f"✅ {result.action}{target} ({result.project})")
    if not result.refreshed and result.argv:
        console.print("Warning: review list was not refreshed")


def _review_table(reviews: tuple[Review, ...], title: str) -> Table:
    table = Table(title=title)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Subject", style="white", max_width=60)
    table.add_column("Owner", style="yellow")
    table.add_column("CR", justify="right")
    table.add_column("V", justify="right")
    table.add_column("Draft", style="magenta")

    for review in reviews:
        table.add_row(
            str(review.number),
            review.subject,
            review.owner.name,
            _score_text(review.score(ApprovalType.CODE_REVIEW)),
            _score_text(review.score(ApprovalType.VERIFIED)),
            "draft" if review.is_draft else "",
        )
    return table


@app.command()
def status(
    ctx: typer.Context,
    change_status: str = typer.Option("open", "--status", help="Gerrit change status to list"),
):
    """List reviews of the project, in Gerrit's order."""
    with _reported_errors():
        actions = _build_actions(ctx.obj)
        actions.service.refresh(change_status)
        store = actions.service.store
        reviews = store.all()

    project = actions.context.project_name or ""
    if not reviews:
        console.print(f"No {change_status} reviews for {project}")
        return
    console.print(_review_table(reviews, f"Reviews: {project} ({change_status})"))
    if store.stats and store.stats.more_changes:
        console.print("Warning: Gerrit has more changes than were returned")


@app.command()
def show(
    ctx: typer.Context,
    review: Optional[str] = typer.Argument(None, help="Change number or Change-Id (default: HEAD's review)"),
    commit: Optional[str] = typer.Option(None, "--commit", help="Select the review by commit"),
):
    """Show one review with its approvals and comments."""
    with _reported_errors():
        actions = _build_actions(ctx.obj)
        target = actions.service.resolve_review(_selection(review, commit), actions.repo)

    console.print(f"#{target.number} {target.subject}")
    console.print(f"Owner:    {target.owner.name}" + (f" <{target.owner.email}>" if target.owner.email else ""))
    console.print(f"Change:   {target.id}")
    if target.topic:
        console.print(f"Topic:    {target.topic}")
    if target.url:
        console.print(f"URL:      {target.url}")
    if target.is_draft:
        console.print("Status:   draft")
    patch_set = target.current_patch_set
    if patch_set is not None:
        console.print(f"Revision: {patch_set.revision} ({patch_set.ref})")
        if patch_set.approvals:
            table = Table(title="Approvals")
            table.add_column("Label")
            table.add_column("Value", justify="right")
            table.add_column("By", style="yellow")
            for approval in patch_set.approvals:
                table.add_row(
                    approval.label or approval.type.value,
                    _score_text(approval.value),
                    approval.by.name if approval.by else "",
                )
            console.print(table)
    if target.comments:
        console.print("\nComments:")
        for comment in target.comments:
            who = comment.reviewer.name if comment.reviewer else "unknown"
            console.print(f"  {who}: {comment.message.strip()}")


@app.command()
def push(
    ctx: typer.Context,
    draft: bool = typer.Option(False, "--draft", help="Push as a draft (refs/drafts/...)"),
    branch: Optional[str] = typer.Option(
        None, "--branch", help="Target branch (default: the tracking branch)"
    ),
    ref: Optional[str] = typer.Option(None, "--ref", help="Local ref to push (default: current branch)"),
):
    """Push the current branch to Gerrit for review."""
    with _reported_errors():
        actions = _build_actions(ctx.obj)
        result = actions.push_for_review(ref, branch, draft=draft)
    console.print(f"✅ {result.action}: {result.argv[-1]}")
    if result.output:
        console.print(result.output)


@app.command("add-reviewer")
def add_reviewer(
    ctx: typer.Context,
    reviewer: str = typer.Argument(..., help="Reviewer name or email"),
    review: Optional[str] = typer.Argument(None, help="Change number or Change-Id"),
    commit: Optional[str] = typer.Option(None, "--commit", help="Select the review by commit"),
):
    """Add a reviewer to a review."""
    with _reported_errors():
        actions = _build_actions(ctx.obj)
        result = actions.add_reviewer(_selection(review, commit), reviewer)
    _print_result(result)


@app.command()
def review(
    ctx: typer.Context,
    review_id: Optional[str] = typer.Argument(None, metavar="REVIEW", help="Change number or Change-Id"),
    code_review: Optional[int] = typer.Option(None, "--code-review", help="Code-Review score (-2..2)"),
    verified: Optional[int] = typer.Option(None, "--verified", help="Verified score (-2..2)"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Review message"),
    commit: Optional[str] = typer.Option(None, "--commit", help="Select the review by commit"),
):
    """Vote Code-Review and/or Verified on a review."""
    if code_review is None and verified is None:
        err_console.print("Error: pass --code-review and/or --verified")
        raise typer.Exit(1)
    scores: dict[ApprovalType, int] = {}
    if code_review is not None:
        scores[ApprovalType.CODE_REVIEW] = code_review
    if verified is not None:
        scores[ApprovalType.VERIFIED] = verified
    with _reported_errors():
        actions = _build_actions(ctx.obj)
        result = actions.vote(_selection(review_id, commit), scores, message)
    _print_result(result)


@app.command()
def submit(
    ctx: typer.Context,
    review: Optional[str] = typer.Argument(None, help="Change number or Change-Id"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Submit message"),
    commit: Optional[str] = typer.Option(None, "--commit", help="Select the review by commit"),
):
    """Submit a review and fetch the upstream."""
    with _reported_errors():
        result = _build_actions(ctx.obj).submit(_selection(review, commit), message)
    _print_result(result)


@app.command()
def abandon(
    ctx: typer.Context,
    review: Optional[str] = typer.Argument(None, help="Change number or Change-Id"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Abandon message"),
    commit: Optional[str] = typer.Option(None, "--commit", help="Select the review by commit"),
):
    """Abandon a review."""
    with _reported_errors():
        result = _build_actions(ctx.obj).abandon(_selection(review, commit), message)
    _print_result(result)


@app.command()
def publish(
    ctx: typer.Context,
    review: Optional[str] = typer.Argument(None, help="Change number or Change-Id"),
    commit: Optional[str] = typer.Option(None, "--commit", help="Select the review by commit"),
):
    """Publish a draft review."""
    with _reported_errors():
        result = _build_actions(ctx.obj).publish_draft(_selection(review, commit))
    _print_result(result)


@app.command("delete-draft")
def delete_draft(
    ctx: typer.Context,
    review: Optional[str] = typer.Argument(None, help="Change number or Change-Id"),
    commit: Optional[str] = typer.Option(None, "--commit", help="Select the review by commit"),
):
    """Delete a draft review."""
    with _reported_errors():
        result = _build_actions(ctx.obj).delete_draft(_selection(review, commit))
    _print_result(result)


@app.command()
def download(
    ctx: typer.Context,
    review: Optional[str] = typer.Argument(None, help="Change number or Change-Id"),
):
    """Fetch a review's current patchset into a local branch."""
    with _reported_errors():
        result = _build_actions(ctx.obj).download_patchset(_selection(review, None))
    console.print(f"✅ Downloaded #{result.change_number} into {result.branch}")


@app.command()
def diff(
    ctx: typer.Context,
    review: Optional[str] = typer.Argument(None, help="Change number or Change-Id"),
):
    """Show the diff of a review's current patchset (tip commit only)."""
    with _reported_errors():
        result = _build_actions(ctx.obj).view_patchset_diff(_selection(review, None))
    console.print(result.output, end="", highlight=False, soft_wrap=True)


@app.command()
def browse(
    ctx: typer.Context,
    review: Optional[str] = typer.Argument(None, help="Change number or Change-Id"),
    print_only: bool = typer.Option(False, "--print", help="Print the URL instead of opening it"),
    commit: Optional[str] = typer.Option(None, "--commit", help="Select the review by commit"),
):
    """Open a review in the web browser."""
    with _reported_errors():
        result = _build_actions(ctx.obj).browse_review(
            _selection(review, commit), open_browser=not print_only
        )
    console.print(result.output)


if __name__ == "__main__":
    app()
