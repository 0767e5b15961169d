"""
KB Patch Operations - Apply, validate and preview directives on document strings.

This module provides the PatchApplier class with:
- apply(): one directive, returns the new document string
- apply_with_result(): same, with change details and warnings as data
- apply_batch(): several directives in order against one document
- preview(): apply only a selection of directives (combined view for review)
- validate_content(): dry run producing a MatchOutcome with preview lines

Nothing here touches the filesystem; see engine.py for file-level batches.
"""

from __future__ import annotations

import difflib
import logging
import time
from typing import Iterable, List, Optional, Sequence

from .locators import find_insertion_line, find_match_range
from .models import (
    ChangeDetail,
    DirectiveMode,
    EditDirective,
    FailReason,
    MatchOutcome,
    PatchResult,
)
from .normalizer import line_index_at, normalize_for_comparison, split_lines

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_LINES = 5


class PatchApplier:
    """
    Deterministic applier for parsed edit directives.

    Replace/delete directives are located with find_match_range and spliced
    by character offsets. Append directives are located with
    find_insertion_line and spliced in as whole lines.

    Example:
        applier = PatchApplier()
        new_content = applier.apply(content, directive)

        outcome = applier.validate_content(content, directive)
        if not outcome.matched:
            print(outcome.fail_reason)
    """

    def __init__(
        self,
        strict_breadcrumbs: bool = False,
        preview_lines: int = DEFAULT_PREVIEW_LINES,
    ):
        """
        Initialize the applier.

        Args:
            strict_breadcrumbs: Require every breadcrumb segment to resolve
            preview_lines: Lines of context kept before/after a match
        """
        self.strict_breadcrumbs = strict_breadcrumbs
        self.preview_lines = preview_lines

    # =========================================================================
    # SINGLE DIRECTIVE
    # =========================================================================

    def apply(self, content: str, directive: EditDirective) -> str:
        """
        Apply one directive and return the new content.

        Directives that cannot be located leave the content unchanged; the
        problem is logged as a warning, never raised.
        """
        return self.apply_with_result(content, directive).content_after

    def apply_with_result(self, content: str, directive: EditDirective) -> PatchResult:
        """
        Apply one directive, reporting the change or the reason it was skipped.

        Args:
            content: Document text
            directive: Directive to apply

        Returns:
            PatchResult; success is False and content is unchanged when the
            target or context could not be found
        """
        start_time = time.perf_counter()
        mode = directive.mode

        if mode in (DirectiveMode.REPLACE, DirectiveMode.DELETE):
            match = find_match_range(
                content,
                directive.target,
                directive.context,
                strict=self.strict_breadcrumbs,
            )
            if match is None:
                return self._skipped(
                    content,
                    f"Target content not found in {directive.file_path}",
                    start_time,
                )

            inserted = directive.replacement or ""
            new_content = content[: match.start] + inserted + content[match.end :]
            change = ChangeDetail(
                position_start=match.start,
                position_end=match.end,
                removed_text=content[match.start : match.end],
                inserted_text=inserted,
                mode=mode,
                label=directive.label,
            )
            return self._applied(content, new_content, [change], start_time)

        if mode == DirectiveMode.APPEND:
            lines = split_lines(content)
            insertion_index = find_insertion_line(
                lines, directive.context, strict=self.strict_breadcrumbs
            )
            if insertion_index == -1:
                return self._skipped(
                    content,
                    f"Context not found in {directive.file_path}: {directive.context}",
                    start_time,
                )

            new_lines = split_lines(directive.replacement)
            lines[insertion_index:insertion_index] = new_lines
            new_content = "\n".join(lines)

            position = sum(len(line) + 1 for line in lines[:insertion_index])
            change = ChangeDetail(
                position_start=position,
                position_end=position,
                removed_text="",
                inserted_text="\n".join(new_lines),
                mode=mode,
                label=directive.label,
            )
            return self._applied(content, new_content, [change], start_time)

        return PatchResult(
            success=True,
            content_before=content,
            content_after=content,
            execution_time_ms=int((time.perf_counter() - start_time) * 1000),
        )

    # =========================================================================
    # BATCHES
    # =========================================================================

    def apply_batch(self, content: str, directives: Iterable[EditDirective]) -> PatchResult:
        """
        Apply directives in order; each one sees the result of the previous.

        Returns:
            PatchResult with cumulative changes and warnings. success is True
            when no directive was skipped or at least one change was made.
        """
        start_time = time.perf_counter()
        current = content
        changes: List[ChangeDetail] = []
        warnings: List[str] = []

        for directive in directives:
            result = self.apply_with_result(current, directive)
            current = result.content_after
            changes.extend(result.changes)
            warnings.extend(result.warnings)

        return PatchResult(
            success=not warnings or bool(changes),
            content_before=content,
            content_after=current,
            changes=changes,
            warnings=warnings,
            diff=self._generate_diff(content, current),
            execution_time_ms=int((time.perf_counter() - start_time) * 1000),
        )

    def preview(
        self,
        content: str,
        directives: Sequence[EditDirective],
        selected: Optional[Iterable[int]] = None,
    ) -> PatchResult:
        """
        Combined view of a batch where only some directives are selected.

        Args:
            content: Original document
            directives: Full directive list for the document
            selected: Indexes into directives to apply (None = all)
        """
        if selected is None:
            chosen = list(directives)
        else:
            keep = set(selected)
            chosen = [d for i, d in enumerate(directives) if i in keep]
        return self.apply_batch(content, chosen)

    # =========================================================================
    # VALIDATION (dry run)
    # =========================================================================

    def validate_content(self, content: str, directive: EditDirective) -> MatchOutcome:
        """
        Check whether a directive would apply cleanly, without modifying anything.

        Args:
            content: Current document text
            directive: Directive to check

        Returns:
            MatchOutcome with the match position, surrounding lines for
            preview, duplicate detection for appends and a fail_reason
        """
        lines = split_lines(content)
        window = self.preview_lines
        mode = directive.mode

        if mode in (DirectiveMode.REPLACE, DirectiveMode.DELETE):
            match = find_match_range(
                content,
                directive.target,
                directive.context,
                strict=self.strict_breadcrumbs,
            )
            if match is not None:
                line_index = line_index_at(content, match.start)
                target_line_count = len(split_lines(directive.target))
                after_start = line_index + target_line_count
                return MatchOutcome(
                    exists=True,
                    matched=True,
                    match_index=match.start,
                    match_line=line_index,
                    before_lines=lines[max(0, line_index - window) : line_index],
                    after_lines=lines[after_start : after_start + window],
                )

            exists_without_context = (
                bool(directive.context)
                and find_match_range(content, directive.target) is not None
            )
            return MatchOutcome(
                exists=True,
                matched=False,
                fail_reason=(
                    FailReason.CONTEXT_MISMATCH
                    if exists_without_context
                    else FailReason.TARGET_NOT_FOUND
                ),
            )

        if mode == DirectiveMode.APPEND:
            insertion_index = find_insertion_line(
                lines, directive.context, strict=self.strict_breadcrumbs
            )
            if insertion_index == -1:
                return MatchOutcome(
                    exists=True,
                    matched=False,
                    fail_reason=FailReason.CONTEXT_MISMATCH,
                )

            already_exists = False
            if directive.context:
                normalized_replacement = normalize_for_comparison(directive.replacement)
                already_exists = bool(normalized_replacement) and (
                    normalized_replacement in normalize_for_comparison(content)
                )

            return MatchOutcome(
                exists=True,
                matched=True,
                match_index=insertion_index,
                match_line=insertion_index,
                already_exists=already_exists,
                before_lines=lines[max(0, insertion_index - window) : insertion_index],
                after_lines=lines[insertion_index : insertion_index + window],
            )

        return MatchOutcome(exists=True, matched=True)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _applied(
        self,
        content: str,
        new_content: str,
        changes: List[ChangeDetail],
        start_time: float,
    ) -> PatchResult:
        return PatchResult(
            success=True,
            content_before=content,
            content_after=new_content,
            changes=changes,
            diff=self._generate_diff(content, new_content),
            execution_time_ms=int((time.perf_counter() - start_time) * 1000),
        )

    def _skipped(self, content: str, warning: str, start_time: float) -> PatchResult:
        logger.warning(warning)
        return PatchResult(
            success=False,
            content_before=content,
            content_after=content,
            warnings=[warning],
            execution_time_ms=int((time.perf_counter() - start_time) * 1000),
        )

    def _generate_diff(self, before: str, after: str) -> str:
        """Generate unified diff between two texts."""
        diff = difflib.unified_diff(
            before.splitlines(),
            after.splitlines(),
            fromfile="before",
            tofile="after",
            lineterm="",
        )

        return "\n".join(diff)
