"""
KB Patch Router - FastAPI endpoints for the patch engine.

Endpoints:
- GET  /kb-patch/health    - Liveness and effective settings
- POST /kb-patch/parse     - Extract directives from LLM output
- POST /kb-patch/validate  - Dry-run directives against the knowledge base
- POST /kb-patch/apply     - Apply directives and write changed files
- POST /kb-patch/preview   - Apply directives to a given text (no file IO)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from config import config

from .engine import PatchEngine, group_by_file
from .models import EditDirective, MatchOutcome
from .storage import LocalTextFileStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["KB Patch"])

_engine: Optional[PatchEngine] = None


def get_patch_engine() -> PatchEngine:
    """Resolve or initialize the shared PatchEngine instance."""
    global _engine
    if _engine is None:
        store = LocalTextFileStore(
            config.KNOWLEDGE_BASE.root_path,
            encoding=config.KNOWLEDGE_BASE.encoding,
        )
        _engine = PatchEngine.from_config(store, config)
    return _engine


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================


class DirectivePayload(BaseModel):
    """Wire form of an EditDirective."""

    file_path: str = Field(min_length=1, description="Target document")
    target: Optional[str] = Field(default=None, description="Excerpt to replace or delete")
    replacement: Optional[str] = Field(default=None, description="New text")
    context: Optional[str] = Field(default=None, description="Breadcrumb, e.g. '# A > ## B'")
    label: Optional[str] = Field(default=None, description="Annotation for display only")

    def to_directive(self) -> EditDirective:
        return EditDirective(
            file_path=self.file_path,
            target=self.target,
            replacement=self.replacement,
            context=self.context or None,
            label=self.label,
        )

    @classmethod
    def from_directive(cls, directive: EditDirective) -> "DirectivePayload":
        return cls(
            file_path=directive.file_path,
            target=directive.target,
            replacement=directive.replacement,
            context=directive.context,
            label=directive.label,
        )


class ParseRequest(BaseModel):
    text: str = Field(description="Raw LLM output", max_length=500000)


class ParseResponse(BaseModel):
    directives: List[DirectivePayload]
    count: int


class DirectivesRequest(BaseModel):
    directives: List[DirectivePayload] = Field(description="Directives in application order")


class ValidateResponse(BaseModel):
    outcomes: List[MatchOutcome]


class ApplyRequest(DirectivesRequest):
    preprocess: bool = Field(default=True, description="Roll the last_scene trailer")


class ApplyResponse(BaseModel):
    results: List[Dict[str, Any]]
    messages: List[str]
    files_written: int


class PreviewRequest(BaseModel):
    text: str = Field(description="Current document content", max_length=500000)
    directives: List[DirectivePayload]
    selected: Optional[List[int]] = Field(
        default=None,
        description="Indexes of directives to apply (all when omitted)",
    )


class PreviewResponse(BaseModel):
    success: bool
    text_before: str
    text_after: str
    diff: str
    warnings: List[str]
    execution_time_ms: int


# =============================================================================
# ENDPOINTS
# =============================================================================


@router.get("/health")
async def kb_patch_health():
    return {
        "status": "ok",
        "knowledge_base": config.KNOWLEDGE_BASE.root_path,
        "strict_breadcrumbs": config.PATCH.strict_breadcrumbs,
    }


@router.post("/parse", response_model=ParseResponse)
async def parse_directives_endpoint(
    request: ParseRequest,
    engine: PatchEngine = Depends(get_patch_engine),
):
    """Extract <save> directives from LLM output."""
    directives = engine.parse(request.text)
    return ParseResponse(
        directives=[DirectivePayload.from_directive(d) for d in directives],
        count=len(directives),
    )


@router.post("/validate", response_model=ValidateResponse)
async def validate_directives(
    request: DirectivesRequest,
    engine: PatchEngine = Depends(get_patch_engine),
):
    """Check each directive against its file without writing anything."""
    outcomes = await engine.validate_all([d.to_directive() for d in request.directives])
    return ValidateResponse(outcomes=outcomes)


@router.post("/apply", response_model=ApplyResponse)
async def apply_directives(
    request: ApplyRequest,
    engine: PatchEngine = Depends(get_patch_engine),
):
    """Apply directives to the knowledge base; per-file failures are reported, not raised."""
    batch = await engine.apply_all(
        [d.to_directive() for d in request.directives],
        preprocess=request.preprocess,
    )
    if batch.errors:
        logger.warning("KB patch batch finished with %d file error(s)", len(batch.errors))
    return ApplyResponse(
        results=[r.model_dump(mode="json") for r in batch.results],
        messages=batch.messages,
        files_written=batch.files_written,
    )


@router.post("/preview", response_model=PreviewResponse)
async def preview_directives(
    request: PreviewRequest,
    engine: PatchEngine = Depends(get_patch_engine),
):
    """Apply directives to the supplied text only; all must target the same file."""
    directives = [d.to_directive() for d in request.directives]
    if len(group_by_file(directives)) > 1:
        raise HTTPException(status_code=400, detail="Preview directives must target a single file")

    if directives:
        directives = engine.prepare(directives, directives[0].file_path, request.text)
    result = engine.applier.preview(request.text, directives, request.selected)
    return PreviewResponse(
        success=result.success,
        text_before=result.content_before,
        text_after=result.content_after,
        diff=result.diff,
        warnings=result.warnings,
        execution_time_ms=result.execution_time_ms,
    )
