"""
KB Patch - Structured patch engine for knowledge-base documents.

Turns the <save> directives an LLM emits at the end of a turn into surgical
edits of markdown knowledge-base files:

1. **Parsing**: tolerant extraction of <save>/<update>/<target>/<replacement>
2. **Matching**: whitespace, '#' and full-width punctuation insensitive search,
   disambiguated by a heading breadcrumb ("# A > ## B")
3. **Applying**: replace, delete or append under the breadcrumb's section
4. **Batching**: per-file grouping, one write per changed file, failures
   reported per file

Usage:
    from kb_patch import PatchEngine, LocalTextFileStore

    engine = PatchEngine(LocalTextFileStore("data/knowledge_base"))
    directives = engine.parse(llm_output)
    outcomes = await engine.validate_all(directives)
    result = await engine.apply_all(directives)
    print(result.messages)

Pure text operations (no IO):
    from kb_patch import PatchApplier, EditDirective

    applier = PatchApplier()
    new_text = applier.apply(text, EditDirective("9.Inventory.md", target="Sword", replacement="Axe"))
"""

from .models import (
    DirectiveMode,
    FailReason,
    EditDirective,
    MatchRange,
    ChangeDetail,
    PatchResult,
    MatchOutcome,
    FileWriteStatus,
    FileWriteResult,
    BatchApplyResult,
)
from .normalizer import (
    normalize_for_comparison,
    map_normalized_index,
    NormalizedText,
)
from .parser import DirectiveParser, parse_directives
from .locators import (
    parse_breadcrumb,
    verify_context,
    find_match_range,
    find_all_match_ranges,
    find_insertion_line,
)
from .operations import PatchApplier
from .last_scene import (
    preprocess_directives,
    build_last_scene_directive,
    find_last_scene,
)
from .storage import TextFileStore, LocalTextFileStore, InMemoryTextFileStore
from .errors import PatchEngineError, FileReadError, FileWriteError, PathOutsideRootError
from .engine import PatchEngine, group_by_file

__all__ = [
    # Models
    "DirectiveMode",
    "FailReason",
    "EditDirective",
    "MatchRange",
    "ChangeDetail",
    "PatchResult",
    "MatchOutcome",
    "FileWriteStatus",
    "FileWriteResult",
    "BatchApplyResult",
    # Normalization
    "normalize_for_comparison",
    "map_normalized_index",
    "NormalizedText",
    # Parsing
    "DirectiveParser",
    "parse_directives",
    # Location
    "parse_breadcrumb",
    "verify_context",
    "find_match_range",
    "find_all_match_ranges",
    "find_insertion_line",
    # Application
    "PatchApplier",
    # last_scene handling
    "preprocess_directives",
    "build_last_scene_directive",
    "find_last_scene",
    # File stores
    "TextFileStore",
    "LocalTextFileStore",
    "InMemoryTextFileStore",
    # Errors
    "PatchEngineError",
    "FileReadError",
    "FileWriteError",
    "PathOutsideRootError",
    # Engine
    "PatchEngine",
    "group_by_file",
]

__version__ = "1.0.0"
