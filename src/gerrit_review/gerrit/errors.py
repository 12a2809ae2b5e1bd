# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Error taxonomy for Gerrit review operations.

- ConfigError: missing credentials, remote or project
- TransportError: ssh failures, carrying captured stderr
- ParseError: a malformed line of query output
- NoSelectionError: an action invoked without a resolvable target
"""

from __future__ import annotations


class GerritError(Exception):
    """Base class for all gerrit_review errors."""


class ConfigError(GerritError):
    """Raised when credentials, remote or project cannot be resolved."""


class TransportError(GerritError):
    """Raised when an ssh command fails or exits non-zero."""

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class TransportTimeoutError(TransportError):
    """Raised when an ssh command exceeds its bounded wait."""


class TransportCancelledError(TransportError):
    """Raised when the caller aborts an ssh command."""


class ParseError(GerritError):
    """Raised for a query output line that cannot be decoded."""

    def __init__(self, message: str, line: str | None = None) -> None:
        super().__init__(message)
        self.line = line


class NoSelectionError(GerritError):
    """Raised when no review or patchset is selected for an action."""


class ReviewNotFoundError(NoSelectionError):
    """Raised when a review identity is not in the current store."""


__all__ = [
    "ConfigError",
    "GerritError",
    "NoSelectionError",
    "ParseError",
    "ReviewNotFoundError",
    "TransportCancelledError",
    "TransportError",
    "TransportTimeoutError",
]
