"""
KB Patch Engine - File-level entry point for parsed directives.

PatchEngine ties the pieces together for the host application:
- parse(): LLM output -> directives
- validate(): dry run of one directive against its file
- apply_all(): group by file, preprocess, apply in order, write once

File groups are independent: each is processed in its own coroutine and a
failure in one file never stops the others. No exception leaves apply_all.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Dict, Iterable, List, Optional, Sequence

from logging_utils import Phase, PhaseLogger

from .last_scene import DEFAULT_STORY_OUTLINE_FILENAMES, preprocess_directives
from .models import (
    BatchApplyResult,
    EditDirective,
    FileWriteResult,
    FileWriteStatus,
    MatchOutcome,
)
from .errors import FileReadError, PatchEngineError
from .operations import PatchApplier
from .parser import DirectiveParser
from .storage import TextFileStore

logger = logging.getLogger(__name__)


def group_by_file(directives: Iterable[EditDirective]) -> Dict[str, List[EditDirective]]:
    """Group directives by file_path, keeping first-seen file order and in-file order."""
    groups: Dict[str, List[EditDirective]] = {}
    for directive in directives:
        groups.setdefault(directive.file_path, []).append(directive)
    return groups


class PatchEngine:
    """
    Parse, validate and apply knowledge-base patches through a file store.

    Example:
        engine = PatchEngine(LocalTextFileStore("data/knowledge_base"))
        directives = engine.parse(llm_output)
        outcome = await engine.validate(directives[0])
        result = await engine.apply_all(directives)
        print(result.messages)
    """

    def __init__(
        self,
        store: TextFileStore,
        applier: Optional[PatchApplier] = None,
        parser: Optional[DirectiveParser] = None,
        story_outline_filenames: Sequence[str] = DEFAULT_STORY_OUTLINE_FILENAMES,
        preprocess_last_scene: bool = True,
        verbose: bool = False,
    ):
        self.store = store
        self.applier = applier or PatchApplier()
        self.parser = parser or DirectiveParser()
        self.story_outline_filenames = tuple(story_outline_filenames)
        self.preprocess_last_scene = preprocess_last_scene
        self.verbose = verbose

    @classmethod
    def from_config(cls, store: TextFileStore, settings=None, verbose: bool = False) -> "PatchEngine":
        """Build an engine from the global (or a given) Config."""
        if settings is None:
            from config import config as settings

        return cls(
            store=store,
            applier=PatchApplier(
                strict_breadcrumbs=settings.PATCH.strict_breadcrumbs,
                preview_lines=settings.PATCH.preview_context_lines,
            ),
            story_outline_filenames=settings.KNOWLEDGE_BASE.story_outline_filenames,
            preprocess_last_scene=settings.PATCH.preprocess_last_scene,
            verbose=verbose,
        )

    # =========================================================================
    # PARSING
    # =========================================================================

    def parse(self, text: str) -> List[EditDirective]:
        """Extract directives from raw LLM output."""
        phase_logger = self._phase_logger()
        with phase_logger.phase(Phase.PARSE):
            directives = self.parser.parse(text)
            phase_logger.debug(f"{len(directives)} directive(s) found")
        return directives

    def _phase_logger(self, batch_id: Optional[str] = None) -> PhaseLogger:
        return PhaseLogger(
            batch_id=batch_id or f"batch-{uuid.uuid4().hex[:8]}",
            verbose=self.verbose,
            logger=logger,
        )

    def prepare(
        self,
        directives: Sequence[EditDirective],
        file_path: str,
        content: str,
    ) -> List[EditDirective]:
        """Directives for one file as they will be applied (after preprocessing)."""
        if not self.preprocess_last_scene:
            return list(directives)
        return preprocess_directives(
            directives, file_path, content, self.story_outline_filenames
        )

    # =========================================================================
    # VALIDATION
    # =========================================================================

    async def validate(self, directive: EditDirective) -> MatchOutcome:
        """
        Dry-run one directive against the current content of its file.

        Returns:
            MatchOutcome; exists is False when the file cannot be read
        """
        try:
            content = await self.store.read_text_file(directive.file_path)
        except (OSError, PatchEngineError) as exc:
            logger.debug("Validation read failed for %s: %s", directive.file_path, exc)
            return MatchOutcome(exists=False, matched=False)
        return self.applier.validate_content(content, directive)

    async def validate_all(self, directives: Sequence[EditDirective]) -> List[MatchOutcome]:
        """Validate each directive independently against the unmodified files."""
        phase_logger = self._phase_logger()
        with phase_logger.phase(Phase.VALIDATE, sub_label=f"{len(directives)} directive(s)"):
            outcomes = list(await asyncio.gather(*(self.validate(d) for d in directives)))
        phase_logger.log_timing_summary()
        return outcomes

    # =========================================================================
    # APPLY
    # =========================================================================

    async def apply_all(
        self,
        directives: Sequence[EditDirective],
        preprocess: bool = True,
        batch_id: Optional[str] = None,
    ) -> BatchApplyResult:
        """
        Apply a directive batch, writing each changed file exactly once.

        Args:
            directives: Parsed directives, possibly for several files
            preprocess: Run the last_scene preprocessor per file
            batch_id: Label used in log output

        Returns:
            BatchApplyResult with one FileWriteResult per file, in the order
            files first appear in directives
        """
        phase_logger = self._phase_logger(batch_id)
        groups = group_by_file(d for d in directives if not d.is_noop)

        with phase_logger.phase(Phase.APPLY, sub_label=f"{len(groups)} file(s)"):
            results = await asyncio.gather(
                *(
                    self._apply_file(file_path, file_directives, preprocess, phase_logger)
                    for file_path, file_directives in groups.items()
                )
            )

        phase_logger.log_timing_summary()
        return BatchApplyResult(results=list(results))

    async def _apply_file(
        self,
        file_path: str,
        directives: List[EditDirective],
        preprocess: bool,
        phase_logger: PhaseLogger,
    ) -> FileWriteResult:
        try:
            try:
                content = await self.store.read_text_file(file_path)
            except FileNotFoundError:
                phase_logger.warning(f"File {file_path} not found, creating new.")
                content = ""
            except (FileReadError, OSError) as exc:
                phase_logger.warning(f"File {file_path} could not be read ({exc}), treating as new.")
                content = ""

            to_apply = self.prepare(directives, file_path, content) if preprocess else directives
            if len(to_apply) != len(directives):
                phase_logger.step(
                    Phase.PREPROCESS,
                    f"{file_path}: last_scene cleanup scheduled ({len(to_apply)} directive(s))",
                )

            current = content
            applied = 0
            warnings: List[str] = []
            for directive in to_apply:
                result = self.applier.apply_with_result(current, directive)
                if result.changed:
                    applied += 1
                warnings.extend(result.warnings)
                current = result.content_after

            skipped = len(to_apply) - applied
            if current == content:
                phase_logger.log_file_result(file_path, FileWriteStatus.UNCHANGED.value, applied, skipped)
                return FileWriteResult(
                    file_path=file_path,
                    status=FileWriteStatus.UNCHANGED,
                    applied=applied,
                    skipped=skipped,
                    warnings=warnings,
                )

            phase_logger.step(Phase.WRITE, f"{file_path}: {len(content)} -> {len(current)} chars")
            await self.store.write_text_file(file_path, current)
            phase_logger.log_file_result(file_path, FileWriteStatus.UPDATED.value, applied, skipped)
            return FileWriteResult(
                file_path=file_path,
                status=FileWriteStatus.UPDATED,
                message=f"Updated {file_path}",
                applied=applied,
                skipped=skipped,
                warnings=warnings,
            )
        except Exception as exc:
            logger.exception("Failed to update %s", file_path)
            phase_logger.log_file_result(file_path, FileWriteStatus.ERROR.value, 0, len(directives))
            return FileWriteResult(
                file_path=file_path,
                status=FileWriteStatus.ERROR,
                message=f"Error updating {file_path}: {exc}",
                skipped=len(directives),
            )
