"""
KB Patch last_scene handling for the story outline document.

The story outline keeps one rolling trailer section, starting at a
"last_scene" heading and running to end of file, that records where the story
currently stands. Each batch of edits to that file must drop the old trailer
and append a fresh one after the new narrative content:

1. A synthetic delete directive for the current trailer is put first
2. Directives aimed at last_scene get a "# last_scene" heading if missing and
   are appended at end of file
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePath
from typing import Iterable, List, Optional, Sequence

from .models import EditDirective

logger = logging.getLogger(__name__)

LAST_SCENE_HEADING = "# last_scene"
CLEANUP_LABEL = "Cleanup old last_scene"
AUTO_LABEL = "Auto-generated last_scene"

DEFAULT_STORY_OUTLINE_FILENAMES = ("2.Story_Outline.md", "2.劇情綱要.md")

_MARKER_RE = re.compile(r"[#*_\s]*last[_-]?scene[#*_\s]*[:：]?", re.IGNORECASE)
_CONTEXT_RE = re.compile(r"last[_-]?scene", re.IGNORECASE)
_HEADER_PRESENT_RE = re.compile(r"^[#*_\s]*last[_-]?scene", re.IGNORECASE | re.MULTILINE)
_SAVE_POINT_RE = re.compile(r"<possible save point>", re.IGNORECASE)


def is_story_outline(
    file_path: str,
    filenames: Iterable[str] = DEFAULT_STORY_OUTLINE_FILENAMES,
) -> bool:
    """True when file_path contains the stem of any story outline filename."""
    return any(PurePath(name).stem in file_path for name in filenames)


def find_last_scene(content: str) -> Optional[str]:
    """
    Return the current last_scene trailer exactly as it appears in content.

    The trailer runs from the first marker to end of file, with surrounding
    whitespace stripped.
    """
    if not content:
        return None
    match = _MARKER_RE.search(content)
    if match is None:
        return None
    trailer = content[match.start():].strip()
    return trailer or None


def ensure_last_scene_heading(text: str) -> str:
    """Prefix a '# last_scene' heading unless a line already starts with the marker."""
    if _HEADER_PRESENT_RE.search(text):
        return text
    return f"{LAST_SCENE_HEADING}\n\n{text}"


def preprocess_directives(
    directives: Sequence[EditDirective],
    file_path: str,
    content: str,
    filenames: Iterable[str] = DEFAULT_STORY_OUTLINE_FILENAMES,
) -> List[EditDirective]:
    """
    Rewrite a story outline batch so the last_scene trailer rolls forward.

    Args:
        directives: Directives for file_path, in parsed order
        file_path: Target file of the batch
        content: Current file content (the trailer is read from here)
        filenames: Story outline filenames to recognize

    Returns:
        New directive list; directives for other files are returned as-is
    """
    if not is_story_outline(file_path, filenames):
        return list(directives)

    processed: List[EditDirective] = []
    for directive in directives:
        if directive.context and _CONTEXT_RE.search(directive.context) and directive.replacement:
            # last_scene content always lands at end of file
            directive = directive.with_changes(
                replacement=ensure_last_scene_heading(directive.replacement),
                context=None,
            )
        processed.append(directive)

    old_trailer = find_last_scene(content)
    if old_trailer is None:
        return processed

    logger.debug("Scheduling removal of last_scene trailer (%d chars) in %s", len(old_trailer), file_path)
    cleanup = EditDirective(
        file_path=file_path,
        target=old_trailer,
        replacement="",
        context=None,
        label=CLEANUP_LABEL,
    )
    return [cleanup] + processed


def build_last_scene_directive(story_content: str, file_path: str) -> EditDirective:
    """
    Build an append directive recording story_content as the new last_scene.

    Args:
        story_content: Narrative text of the latest story turn
        file_path: Story outline file to append to

    Returns:
        EditDirective appending "# last_scene" plus the cleaned content
    """
    cleaned = _SAVE_POINT_RE.sub("", story_content or "").strip()
    return EditDirective(
        file_path=file_path,
        replacement=f"{LAST_SCENE_HEADING}\n\n{cleaned}",
        context=None,
        label=AUTO_LABEL,
    )
