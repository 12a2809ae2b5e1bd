# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit data models for gerrit_review.

This module defines Pydantic models for the records returned by
``gerrit query --format=JSON`` over SSH, plus the per-repository context
used to address a Gerrit server.

These models provide:
- Type-safe representations of SSH query records
- Factory methods for parsing raw query data
- Explicit optional fields where the wire format is tri-state
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from gerrit_review.gerrit.errors import ConfigError


class ApprovalType(str, Enum):
    """Approval categories tracked by the review view."""

    CODE_REVIEW = "Code-Review"
    VERIFIED = "Verified"
    OTHER = "Other"

    @classmethod
    def from_label(cls, label: str) -> ApprovalType:
        """Map a raw Gerrit label to a category, unknown labels to OTHER."""
        for member in (cls.CODE_REVIEW, cls.VERIFIED):
            if member.value.lower() == label.lower():
                return member
        return cls.OTHER


def _parse_score(raw: Any) -> int | None:
    """
    Parse an approval value such as "+2", "-1" or "0".

    Returns None when the value is absent or not an integer, so that a
    missing vote stays distinguishable from a zero vote.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def _parse_optional_bool(raw: Any) -> bool | None:
    if raw is None:
        return None
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() == "true"


def _as_list(raw: Any) -> list[Any]:
    return raw if isinstance(raw, list) else []


def _parse_optional_int(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class Person(BaseModel):
    """A Gerrit account as it appears in query output."""

    name: str
    email: str | None = None
    username: str | None = None

    @classmethod
    def from_query_response(cls, data: Any) -> Person | None:
        """
        Create a Person from a query account object.

        Args:
            data: The account dict (``owner``, ``by``, ``reviewer``).

        Returns:
            A Person, or None if the account has no usable name.
        """
        if not isinstance(data, dict):
            return None
        name = data.get("name")
        username = data.get("username")
        email = data.get("email")
        # Service accounts may only carry a username or email
        if not name:
            name = username or email
        if not name:
            return None
        return cls(name=str(name), email=email, username=username)

    @property
    def identifier(self) -> str:
        """Short identifier used in branch names."""
        if self.username:
            return self.username
        if self.email:
            return self.email.split("@", 1)[0]
        return self.name.replace(" ", "_")


class Approval(BaseModel):
    """A scored verdict on a patchset."""

    type: ApprovalType = ApprovalType.OTHER
    label: str = ""
    value: int | None = Field(None, description="Score, None if unparseable")
    by: Person | None = None
    granted_on: int | None = None

    @classmethod
    def from_query_response(cls, data: dict[str, Any]) -> Approval:
        """
        Create an Approval from a query approval object.

        Args:
            data: The approval dict; ``value`` arrives as a string.

        Returns:
            An Approval instance.
        """
        label = str(data.get("type") or data.get("description") or "")
        return cls(
            type=ApprovalType.from_label(label),
            label=label,
            value=_parse_score(data.get("value")),
            by=Person.from_query_response(data.get("by")),
            granted_on=_parse_optional_int(data.get("grantedOn")),
        )


class PatchSet(BaseModel):
    """A revision of a change uploaded to Gerrit."""

    number: int | None = None
    revision: str = ""
    ref: str = ""
    approvals: list[Approval] = Field(default_factory=list)
    is_draft: bool | None = None

    @classmethod
    def from_query_response(cls, data: Any) -> PatchSet | None:
        """
        Create a PatchSet from ``currentPatchSet``.

        The field may be a single object or a one-element list; both
        forms normalize to a single PatchSet.
        """
        if isinstance(data, list):
            data = data[-1] if data else None
        if not isinstance(data, dict):
            return None
        approvals = [
            Approval.from_query_response(item)
            for item in _as_list(data.get("approvals"))
            if isinstance(item, dict)
        ]
        return cls(
            number=_parse_optional_int(data.get("number")),
            revision=str(data.get("revision") or ""),
            ref=str(data.get("ref") or ""),
            approvals=approvals,
            is_draft=_parse_optional_bool(data.get("isDraft")),
        )

    def approvals_for(self, approval_type: ApprovalType) -> list[Approval]:
        """Approvals of one category, in the order Gerrit returned them."""
        return [a for a in self.approvals if a.type == approval_type]

    def score(self, approval_type: ApprovalType) -> int | None:
        """
        Get the summary score for a category.

        A negative vote dominates; otherwise the highest vote wins.

        Returns:
            The score, or None if nobody has voted in this category.
        """
        values = [
            a.value for a in self.approvals_for(approval_type)
            if a.value is not None
        ]
        if not values:
            return None
        lowest = min(values)
        return lowest if lowest < 0 else max(values)


class Comment(BaseModel):
    """A review message attached to a change."""

    reviewer: Person | None = None
    message: str = ""
    timestamp: int | None = None

    @classmethod
    def from_query_response(cls, data: dict[str, Any]) -> Comment:
        return cls(
            reviewer=Person.from_query_response(data.get("reviewer")),
            message=str(data.get("message") or ""),
            timestamp=_parse_optional_int(data.get("timestamp")),
        )


class Review(BaseModel):
    """
    Represents a Gerrit change as returned by ``gerrit query``.

    Only records with a number, a subject and an owner name are
    constructed; the parser drops anything else.
    """

    # Core identifiers
    id: str = Field("", description="Gerrit Change-Id (I-prefixed)")
    number: int = Field(..., description="Gerrit change number")

    # Content
    subject: str = Field(..., description="First line of commit message")
    commit_message: str = Field("", description="Full commit message")
    topic: str | None = Field(None, description="Change topic (if set)")

    owner: Person

    is_draft: bool = Field(False, description="Draft change or patchset")
    current_patch_set: PatchSet | None = None

    url: str = Field("", description="Web URL for the change")

    project: str = ""
    branch: str = ""
    status: str = ""
    comments: list[Comment] = Field(default_factory=list)

    @classmethod
    def from_query_response(cls, data: dict[str, Any]) -> Review | None:
        """
        Create a Review from one query record.

        Args:
            data: A decoded JSON object from the query stream.

        Returns:
            A Review, or None when number, subject or owner name is missing.
        """
        number = _parse_optional_int(data.get("number"))
        subject = data.get("subject")
        owner = Person.from_query_response(data.get("owner"))
        if number is None or not subject or owner is None:
            return None
        if not (data.get("owner") or {}).get("name"):
            return None

        patch_set = PatchSet.from_query_response(data.get("currentPatchSet"))

        # isDraft is tri-state on the wire; absent means not a draft
        is_draft = bool(
            _parse_optional_bool(data.get("isDraft"))
            or (patch_set is not None and patch_set.is_draft)
            or data.get("status") == "DRAFT"
        )

        comments = [
            Comment.from_query_response(item)
            for item in _as_list(data.get("comments"))
            if isinstance(item, dict)
        ]

        return cls(
            id=str(data.get("id") or ""),
            number=number,
            subject=str(subject),
            commit_message=str(data.get("commitMessage") or ""),
            topic=data.get("topic") or None,
            owner=owner,
            is_draft=is_draft,
            current_patch_set=patch_set,
            url=str(data.get("url") or ""),
            project=str(data.get("project") or ""),
            branch=str(data.get("branch") or ""),
            status=str(data.get("status") or ""),
            comments=comments,
        )

    @property
    def revision(self) -> str | None:
        """Commit hash of the current patchset."""
        if self.current_patch_set and self.current_patch_set.revision:
            return self.current_patch_set.revision
        return None

    def score(self, approval_type: ApprovalType) -> int | None:
        """Summary score of the current patchset for a category."""
        if self.current_patch_set is None:
            return None
        return self.current_patch_set.score(approval_type)

    @property
    def local_branch_name(self) -> str:
        """Deterministic branch name for a downloaded patchset."""
        return f"review/{self.owner.identifier}/{self.topic or self.number}"


class QueryStats(BaseModel):
    """The ``{"type": "stats"}`` trailer of a query stream."""

    row_count: int = 0
    more_changes: bool = False
    run_time_ms: int | None = None

    @classmethod
    def from_query_response(cls, data: dict[str, Any]) -> QueryStats:
        return cls(
            row_count=_parse_optional_int(data.get("rowCount")) or 0,
            more_changes=bool(_parse_optional_bool(data.get("moreChanges"))),
            run_time_ms=_parse_optional_int(data.get("runTimeMilliseconds")),
        )


class QueryResult(BaseModel):
    """Reviews parsed from one query, with its trailer."""

    reviews: list[Review] = Field(default_factory=list)
    stats: QueryStats | None = None
    skipped: int = Field(0, description="Lines dropped while parsing")


class Credentials(BaseModel):
    """SSH login for a Gerrit server, rendered as ``user@host``."""

    model_config = ConfigDict(frozen=True)

    user: str
    host: str

    @classmethod
    def parse(cls, value: str) -> Credentials:
        """
        Parse a ``user@host`` string.

        Raises:
            ConfigError: If either side of the ``@`` is empty.
        """
        user, sep, host = value.strip().rpartition("@")
        if not sep or not user or not host:
            raise ConfigError(
                f"Invalid ssh credentials {value!r}: expected user@host"
            )
        return cls(user=user, host=host)

    def __str__(self) -> str:
        return f"{self.user}@{self.host}"


class RepositoryContext(BaseModel):
    """
    Per-repository Gerrit settings.

    Passed explicitly to every operation; one process may talk to
    several Gerrit hosts at once.
    """

    remote_name: str = "origin"
    credentials: Credentials | None = None
    project_name: str | None = None

    def require_credentials(self) -> Credentials:
        if self.credentials is None:
            raise ConfigError(
                f"No Gerrit ssh credentials for remote '{self.remote_name}'; "
                "set GERRIT_SSH_CREDENTIALS or pass --ssh-creds user@host"
            )
        return self.credentials

    def require_project(self) -> str:
        if not self.project_name:
            raise ConfigError(
                f"Cannot determine Gerrit project from remote "
                f"'{self.remote_name}'; pass --project"
            )
        return self.project_name


__all__ = [
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
]
