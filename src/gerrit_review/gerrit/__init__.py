# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit SSH integration package for gerrit_review.

This package drives review workflows through Gerrit's SSH command
interface and keeps the latest query results in memory.

Modules:
    errors: Error taxonomy (config, transport, parse, selection)
    commands: SSH argument vector construction
    client: SSH transport with bounded, polled waits
    models: Pydantic models for query records and repository context
    parser: Decoder for newline-delimited JSON query output
    store: Per-context review cache with coalesced refresh
    service: Query, refresh and selection for one context
    actions: Mutating review operations

Usage:
    from gerrit_review.gerrit import GerritReviewService, RepositoryContext

    service = GerritReviewService(context)
    service.refresh()
    for review in service.store.all():
        print(review.number, review.subject)
"""

from gerrit_review.gerrit.actions import (
    PATCHSET_DIFF_RANGE,
    ActionResult,
    GerritReviewActions,
)
from gerrit_review.gerrit.client import (
    CommandResult,
    GerritSshClient,
    build_client,
)
from gerrit_review.gerrit.commands import (
    GERRIT_SSH_PORT,
    build_query_command,
    build_review_command,
    build_set_reviewers_command,
)
from gerrit_review.gerrit.errors import (
    ConfigError,
    GerritError,
    NoSelectionError,
    ParseError,
    ReviewNotFoundError,
    TransportCancelledError,
    TransportError,
    TransportTimeoutError,
)
from gerrit_review.gerrit.models import (
    Approval,
    ApprovalType,
    Comment,
    Credentials,
    PatchSet,
    Person,
    QueryResult,
    QueryStats,
    RepositoryContext,
    Review,
)
from gerrit_review.gerrit.parser import (
    parse_query_line,
    parse_query_output,
    parse_query_result,
)
from gerrit_review.gerrit.service import (
    GerritReviewService,
    Selection,
    create_review_service,
)
from gerrit_review.gerrit.store import ReviewStore

__all__ = [
    # Errors
    "ConfigError",
    "GerritError",
    "NoSelectionError",
    "ParseError",
    "ReviewNotFoundError",
    "TransportCancelledError",
    "TransportError",
    "TransportTimeoutError",
    # Commands
    "GERRIT_SSH_PORT",
    "build_query_command",
    "build_review_command",
    "build_set_reviewers_command",
    # Client
    "CommandResult",
    "GerritSshClient",
    "build_client",
    # Models
    "Approval",
    "ApprovalType",
    "Comment",
    "Credentials",
    "PatchSet",
    "Person",
    "QueryResult",
    "QueryStats",
    "RepositoryContext",
    "Review",
    # Parser
    "parse_query_line",
    "parse_query_output",
    "parse_query_result",
    # Store
    "ReviewStore",
    # Service
    "GerritReviewService",
    "Selection",
    "create_review_service",
    # Actions
    "PATCHSET_DIFF_RANGE",
    "ActionResult",
    "GerritReviewActions",
]
