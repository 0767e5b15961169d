"""
KB Patch Locators - Find where a directive applies inside a document.

This module provides:
1. Breadcrumb parsing ("# Chapter 1 > ## Scene > Notes")
2. Range matching for replace/delete directives (find_match_range)
3. Insertion point lookup for append directives (find_insertion_line)
4. Backward context verification for range candidates (verify_context)

Matching is done on normalized text (see normalizer.py) so full-width
punctuation, whitespace and heading hashes never prevent a match.

Breadcrumb walks are lenient by default: a crumb that cannot be found is
skipped and the walk continues with the next one from the same position,
which tolerates sections that were renamed or flattened. Pass strict=True to
require every crumb to resolve.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .models import MatchRange
from .normalizer import (
    NormalizedText,
    line_index_at,
    normalize_for_comparison,
    split_lines,
    strip_heading,
)

logger = logging.getLogger(__name__)

BREADCRUMB_SEPARATOR = ">"

# Characters absorbed when a target starts/ends with '#'
_HEADING_PAD_RE = re.compile(r"[#\t ]")


# =============================================================================
# BREADCRUMBS
# =============================================================================


@dataclass(frozen=True)
class Crumb:
    """
    One breadcrumb segment.

    strict_header is True when the segment was written with leading hashes,
    in which case it only matches heading lines (any level).
    """

    raw: str
    text: str
    normalized: str
    strict_header: bool

    def matches(self, line: str) -> bool:
        is_heading, _, line_text = strip_heading(line.strip())
        if self.normalized not in normalize_for_comparison(line_text):
            return False
        return is_heading or not self.strict_header


def parse_breadcrumb(context: Optional[str]) -> List[Crumb]:
    """
    Split a context string into crumbs, outer section first.

    Segments that are empty after trimming or normalization are dropped.
    """
    if not context:
        return []

    crumbs: List[Crumb] = []
    for segment in context.split(BREADCRUMB_SEPARATOR):
        segment = segment.strip()
        is_heading, _, text = strip_heading(segment)
        normalized = normalize_for_comparison(text)
        if not normalized:
            continue
        crumbs.append(
            Crumb(raw=segment, text=text, normalized=normalized, strict_header=is_heading)
        )
    return crumbs


# =============================================================================
# CONTEXT VERIFICATION (backward walk)
# =============================================================================


def verify_context(
    lines: Sequence[str],
    line_index: int,
    context: Optional[str],
    strict: bool = False,
) -> bool:
    """
    Check that the line at line_index sits under the breadcrumb path.

    Crumbs are matched innermost first, each searched upward from just above
    the previous match (starting above line_index itself).

    Args:
        lines: Document lines
        line_index: Line of the candidate match
        context: Breadcrumb string
        strict: Require every crumb to be found

    Returns:
        True if at least one crumb matched (all crumbs when strict)
    """
    crumbs = parse_breadcrumb(context)
    if not crumbs:
        return False

    cursor = line_index
    any_found = False

    for crumb in reversed(crumbs):
        found = -1
        for i in range(cursor - 1, -1, -1):
            if crumb.matches(lines[i]):
                found = i
                break

        if found == -1:
            if strict:
                return False
            # Skipped layer: keep looking for the next parent from the same line
            continue

        any_found = True
        cursor = found

    return any_found


# =============================================================================
# RANGE MATCHING (replace / delete)
# =============================================================================


def expand_range(content: str, target: str, start: int, end: int) -> MatchRange:
    """
    Widen a match over hashes and horizontal whitespace.

    Only applies on the sides where the raw target itself starts or ends with
    '#', so "## Old heading" removes the whole heading marker regardless of
    how many hashes the document uses.
    """
    if target.startswith("#"):
        while start > 0 and _HEADING_PAD_RE.match(content[start - 1]):
            start -= 1

    if target.endswith("#"):
        while end < len(content) and _HEADING_PAD_RE.match(content[end]):
            end += 1

    return MatchRange(start=start, end=end)


def find_match_range(
    content: str,
    target: str,
    context: Optional[str] = None,
    strict: bool = False,
) -> Optional[MatchRange]:
    """
    Locate the original-text span matching target.

    Occurrences of the normalized target are tried left to right; with a
    context, the first occurrence whose line passes verify_context wins.

    Args:
        content: Document text
        target: Excerpt to find (raw, as written by the model)
        context: Optional breadcrumb the occurrence must sit under
        strict: Require every crumb when verifying context

    Returns:
        MatchRange such that content[start:end] is the span to replace,
        or None if no occurrence qualifies
    """
    needle = normalize_for_comparison(target)
    if not needle:
        return None

    haystack = NormalizedText.from_text(content)
    lines: Optional[List[str]] = None
    cursor = 0

    while True:
        position = haystack.find(needle, cursor)
        if position == -1:
            return None

        start, end = haystack.original_span(position, position + len(needle))

        if context:
            if lines is None:
                lines = split_lines(content)
            if not verify_context(lines, line_index_at(content, start), context, strict=strict):
                logger.debug(
                    "Occurrence at %d rejected: not under context %r", start, context
                )
                cursor = position + 1
                continue

        return expand_range(content, target, start, end)


def find_all_match_ranges(content: str, target: str) -> List[MatchRange]:
    """Every non-overlapping occurrence of target, ignoring context."""
    needle = normalize_for_comparison(target)
    if not needle:
        return []

    haystack = NormalizedText.from_text(content)
    ranges: List[MatchRange] = []
    cursor = 0
    while True:
        position = haystack.find(needle, cursor)
        if position == -1:
            return ranges
        start, end = haystack.original_span(position, position + len(needle))
        ranges.append(expand_range(content, target, start, end))
        cursor = position + len(needle)


# =============================================================================
# INSERTION POINT (append)
# =============================================================================


def _heading_level(line: str) -> int:
    is_heading, level, _ = strip_heading(line.strip())
    return level if is_heading else 0


def find_insertion_line(
    lines: Sequence[str],
    context: Optional[str] = None,
    strict: bool = False,
) -> int:
    """
    Find the line index at which appended content should be inserted.

    Crumbs are matched outer to inner, each searched forward from just after
    the previous match. The insertion point is the end of the last matched
    section: the next heading of the same or a higher level, or end of file.

    Args:
        lines: Document lines
        context: Breadcrumb string; None appends at end of file
        strict: Require every crumb to be found

    Returns:
        Line index to insert before, len(lines) for end of file, or -1 when a
        context was given but could not be resolved
    """
    if not context:
        return len(lines)

    crumbs = parse_breadcrumb(context)
    cursor = 0
    any_found = False

    for crumb in crumbs:
        found = -1
        for i in range(cursor, len(lines)):
            if crumb.matches(lines[i]):
                found = i
                break

        if found == -1:
            if strict:
                logger.debug("Crumb %r not found (strict mode)", crumb.raw)
                return -1
            # Skipped layer: try the next crumb from the same cursor
            continue

        any_found = True
        cursor = found + 1

    if not any_found:
        return -1

    section_level = _heading_level(lines[cursor - 1])

    for i in range(cursor, len(lines)):
        level = _heading_level(lines[i])
        if level and level <= section_level:
            return i

    return len(lines)
