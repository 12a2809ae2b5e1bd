# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Decoder for ``gerrit query --format=JSON`` output.

Gerrit writes one JSON object per line: one per change, followed by a
``{"type": "stats", ...}`` trailer. A line that fails to decode costs
only its own record; the rest of the batch is kept.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable

from pydantic import ValidationError

from gerrit_review.gerrit.errors import ParseError
from gerrit_review.gerrit.models import QueryResult, QueryStats, Review

log = logging.getLogger("gerrit_review.gerrit.parser")


def parse_query_line(line: str) -> Review | QueryStats | None:
    """
    Decode one line of query output.

    Args:
        line: A single line from the query stream.

    Returns:
        A Review, the QueryStats trailer, or None for blank lines and
        records that lack a number, subject or owner name.

    Raises:
        ParseError: If the line is not a JSON object, is a Gerrit error
            record, or carries fields of the wrong type.
    """
    text = line.strip()
    if not text:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON in query output: {exc}", line) from exc
    if not isinstance(data, dict):
        raise ParseError("Query record is not a JSON object", line)

    record_type = data.get("type")
    if record_type == "error":
        raise ParseError(
            f"Gerrit query error: {data.get('message', 'unknown error')}", line
        )
    try:
        if record_type == "stats":
            return QueryStats.from_query_response(data)
        return Review.from_query_response(data)
    except ValidationError as exc:
        raise ParseError(
            f"Query record has invalid fields: {exc.error_count()} error(s)", line
        ) from exc


def parse_query_result(lines: Iterable[str]) -> QueryResult:
    """
    Decode a whole query stream.

    Args:
        lines: Lines of query output, in the order Gerrit sent them.

    Returns:
        A QueryResult holding the renderable reviews in Gerrit's order,
        the stats trailer (if seen) and the number of dropped lines.
    """
    result = QueryResult()
    for lineno, line in enumerate(lines, start=1):
        try:
            record = parse_query_line(line)
        except ParseError as exc:
            result.skipped += 1
            log.warning("Skipping query line %d: %s", lineno, exc)
            continue
        if record is None:
            if line.strip():
                result.skipped += 1
                log.debug(
                    "Skipping query line %d: missing number, subject or owner",
                    lineno,
                )
            continue
        if isinstance(record, QueryStats):
            result.stats = record
            continue
        result.reviews.append(record)

    log.debug(
        "Parsed %d reviews (%d skipped, stats=%s)",
        len(result.reviews),
        result.skipped,
        "yes" if result.stats else "no",
    )
    return result


def parse_query_output(lines: Iterable[str]) -> list[Review]:
    """Decode a query stream into its reviews only."""
    return parse_query_result(lines).reviews


__all__ = [
    "parse_query_line",
    "parse_query_output",
    "parse_query_result",
]
