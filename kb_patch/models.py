"""
KB Patch Models - Data structures for knowledge-base patch directives.

This module defines the core data models used throughout the kb_patch system:

Core Types:
- DirectiveMode: What a directive does (replace, delete, append)
- EditDirective: One parsed edit instruction (immutable value)
- MatchRange: Original-string span located for a replace/delete
- ChangeDetail: One change made to a document
- PatchResult: The result of applying one or more directives to a string

Validation / Batch Types:
- FailReason: Why a directive did not match (target vs. context)
- MatchOutcome: Dry-run validation result with preview lines
- FileWriteStatus / FileWriteResult: Per-file outcome of a batch
- BatchApplyResult: Aggregated outcome of PatchEngine.apply_all
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field


class DirectiveMode(str, Enum):
    """Edit modes derived from which fields a directive carries."""

    REPLACE = "replace"  # target + replacement
    DELETE = "delete"  # target only
    APPEND = "append"  # replacement only, placed by breadcrumb context
    NOOP = "noop"  # neither (dropped by the parser)


class FailReason(str, Enum):
    """Reasons a directive could not be matched against a document."""

    TARGET_NOT_FOUND = "target_not_found"
    CONTEXT_MISMATCH = "context_mismatch"


@dataclass(frozen=True)
class EditDirective:
    """
    One parsed edit instruction.

    Directives are values: transformations such as header prefixing build a
    new directive through with_changes() instead of mutating this one.

    Examples:
        # Replace an excerpt inside a section
        EditDirective(
            file_path="3.Character_Status.md",
            target="HP: 10",
            replacement="HP: 7",
            context="# Alice > ## Stats",
        )

        # Delete an excerpt
        EditDirective(file_path="9.Inventory.md", target="- Rusty key")

        # Append at the end of a section
        EditDirective(
            file_path="9.Inventory.md",
            replacement="- Silver key",
            context="# Items",
        )
    """

    file_path: str
    target: Optional[str] = None
    replacement: Optional[str] = None
    context: Optional[str] = None
    label: Optional[str] = None

    def __post_init__(self):
        if not self.file_path:
            raise ValueError("EditDirective requires a non-empty file_path")

    @property
    def mode(self) -> DirectiveMode:
        if self.target:
            return DirectiveMode.REPLACE if self.replacement else DirectiveMode.DELETE
        if self.replacement:
            return DirectiveMode.APPEND
        return DirectiveMode.NOOP

    @property
    def is_noop(self) -> bool:
        return self.mode == DirectiveMode.NOOP

    def with_changes(self, **changes: Any) -> "EditDirective":
        """Return a copy of this directive with the given fields replaced."""
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "file_path": self.file_path,
            "target": self.target,
            "replacement": self.replacement,
            "context": self.context,
            "label": self.label,
            "mode": self.mode.value,
        }


@dataclass(frozen=True)
class MatchRange:
    """Original-string offsets such that content[start:end] is the span to remove."""

    start: int
    end: int


@dataclass
class ChangeDetail:
    """Details about a single change made to a document."""

    position_start: int
    position_end: int
    removed_text: str
    inserted_text: str
    mode: DirectiveMode = DirectiveMode.REPLACE
    label: Optional[str] = None

    @property
    def char_delta(self) -> int:
        """Net change in character count."""
        return len(self.inserted_text) - len(self.removed_text)


@dataclass
class PatchResult:
    """
    Result of applying one or more directives to a document string.

    Attributes:
        success: True when every directive applied (or when at least one
            change was made in a batch)
        content_before: Document before the directives
        content_after: Document after the directives
        changes: Individual changes made, in application order
        warnings: Non-fatal problems (target not found, context mismatch)
        diff: Unified diff between content_before and content_after
        execution_time_ms: Time taken in milliseconds
    """

    success: bool
    content_before: str
    content_after: str
    changes: List[ChangeDetail] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    diff: str = ""
    execution_time_ms: int = 0

    @property
    def changed(self) -> bool:
        return self.content_after != self.content_before

    @property
    def char_delta(self) -> int:
        """Total net change in character count."""
        return len(self.content_after) - len(self.content_before)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "content_before": self.content_before,
            "content_after": self.content_after,
            "changes": [
                {
                    "position": {
                        "start": c.position_start,
                        "end": c.position_end,
                    },
                    "removed": c.removed_text,
                    "inserted": c.inserted_text,
                    "mode": c.mode.value,
                    "label": c.label,
                }
                for c in self.changes
            ],
            "warnings": self.warnings,
            "diff": self.diff,
            "execution_time_ms": self.execution_time_ms,
            "stats": {
                "char_delta": self.char_delta,
            },
        }


# =============================================================================
# VALIDATION AND BATCH MODELS
# =============================================================================


class EditBaseModel(BaseModel):
    """Base model enabling population by field name."""
    model_config = {"populate_by_name": True}


class MatchOutcome(EditBaseModel):
    """
    Dry-run validation result for a single directive.

    match_index is a character offset for replace/delete directives and a
    line index for append directives; match_line is always a line index.
    """

    exists: bool = Field(
        default=False,
        description="Whether the target file could be read"
    )
    matched: bool = Field(
        default=False,
        description="Whether the directive would apply"
    )
    match_index: Optional[int] = Field(
        default=None,
        description="Char offset (replace/delete) or line index (append) of the match"
    )
    match_line: Optional[int] = Field(
        default=None,
        description="Line index of the match or insertion point"
    )
    before_lines: List[str] = Field(
        default_factory=list,
        description="Up to N lines preceding the match"
    )
    after_lines: List[str] = Field(
        default_factory=list,
        description="Up to N lines following the match"
    )
    already_exists: bool = Field(
        default=False,
        description="Append content already present in the document (probable duplicate)"
    )
    fail_reason: Optional[FailReason] = Field(
        default=None,
        description="target_not_found or context_mismatch when matched is False"
    )


class FileWriteStatus(str, Enum):
    """Per-file outcome of a batch."""

    UPDATED = "updated"
    UNCHANGED = "unchanged"
    ERROR = "error"


class FileWriteResult(EditBaseModel):
    """Outcome of applying a group of directives to one file."""

    file_path: str
    status: FileWriteStatus
    message: str = ""
    applied: int = Field(default=0, ge=0, description="Directives that changed the file")
    skipped: int = Field(default=0, ge=0, description="Directives left as no-ops")
    warnings: List[str] = Field(default_factory=list)


class BatchApplyResult(EditBaseModel):
    """Aggregated outcome of applying a directive batch across files."""

    results: List[FileWriteResult] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def files_written(self) -> int:
        return sum(1 for r in self.results if r.status == FileWriteStatus.UPDATED)

    @property
    def errors(self) -> List[FileWriteResult]:
        return [r for r in self.results if r.status == FileWriteStatus.ERROR]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def messages(self) -> List[str]:
        """Per-file result strings; files left unchanged produce none."""
        return [r.message for r in self.results if r.status != FileWriteStatus.UNCHANGED]
