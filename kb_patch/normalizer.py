"""
KB Patch Normalizer - Canonical text form for fuzzy, locale-insensitive matching.

All searching happens on normalized text while every mutation happens on the
original text, so the normalized-to-original offset mapping must be exact.

Normalization:
1. Fold full-width CJK punctuation to ASCII (1:1 replacements)
2. Drop every whitespace character and every '#'

Because step 1 never produces whitespace or '#', the characters that survive
step 2 are exactly the non-whitespace, non-'#' characters of the original.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

# Full-width punctuation -> ASCII equivalents
PUNCTUATION_FOLDS = {
    "：": ":",   # full-width colon
    "（": "(",   # full-width left parenthesis
    "）": ")",   # full-width right parenthesis
    "，": ",",   # full-width comma
    "。": ".",   # ideographic full stop
    "！": "!",   # full-width exclamation mark
    "？": "?",   # full-width question mark
    "—": "-",   # em-dash
}

_FOLD_TABLE = str.maketrans(PUNCTUATION_FOLDS)

_HEADING_RE = re.compile(r"^(#+)\s*(.*)")
_LINE_SPLIT_RE = re.compile(r"\r?\n")


def _is_dropped(char: str) -> bool:
    return char == "#" or char.isspace()


def normalize_for_comparison(text: Optional[str]) -> str:
    """
    Normalize text for fuzzy comparison.

    Args:
        text: Text to normalize (None is treated as empty)

    Returns:
        Folded text with all whitespace and '#' removed
    """
    if not text:
        return ""
    folded = text.translate(_FOLD_TABLE)
    return "".join(ch for ch in folded if not _is_dropped(ch))


def map_normalized_index(original: str, normalized_index: int) -> int:
    """
    Map an index in normalize_for_comparison(original) back to original.

    Walks the original string counting surviving characters and returns the
    offset of the normalized_index-th one, or len(original) when out of range.
    Use NormalizedText when mapping many indexes of the same string.
    """
    count = 0
    for i, char in enumerate(original):
        if _is_dropped(char):
            continue
        if count == normalized_index:
            return i
        count += 1
    return len(original)


@dataclass(frozen=True)
class NormalizedText:
    """
    Normalized form of a string plus the original offset of each surviving char.

    offsets[i] is the index in `original` of normalized character i, which
    makes mapping O(1) instead of a walk per lookup.
    """

    original: str
    text: str
    offsets: Tuple[int, ...]

    @classmethod
    def from_text(cls, original: str) -> "NormalizedText":
        folded = (original or "").translate(_FOLD_TABLE)
        chars: List[str] = []
        offsets: List[int] = []
        for i, char in enumerate(folded):
            if _is_dropped(char):
                continue
            chars.append(char)
            offsets.append(i)
        return cls(original=original or "", text="".join(chars), offsets=tuple(offsets))

    def original_index(self, normalized_index: int) -> int:
        """Same contract as map_normalized_index."""
        if 0 <= normalized_index < len(self.offsets):
            return self.offsets[normalized_index]
        return len(self.original)

    def original_span(self, start: int, end: int) -> Tuple[int, int]:
        """
        Map a non-empty normalized span [start, end) to original offsets.

        The end is one past the last surviving character, so whitespace or
        hashes trailing the match are not included.
        """
        return self.original_index(start), self.original_index(end - 1) + 1

    def find(self, needle: str, start: int = 0) -> int:
        return self.text.find(needle, start)


def strip_heading(line: str) -> Tuple[bool, int, str]:
    """
    Split a (trimmed) markdown line into heading flag, level and text.

    Returns:
        (is_heading, level, text); level is 0 and text is the line for
        non-heading lines
    """
    match = _HEADING_RE.match(line)
    if match:
        return True, len(match.group(1)), match.group(2)
    return False, 0, line


def split_lines(content: str) -> List[str]:
    """Split on LF or CRLF, keeping a trailing empty line like str.split."""
    return _LINE_SPLIT_RE.split(content)


def line_index_at(content: str, char_index: int) -> int:
    """0-based line index of the character at char_index."""
    return content.count("\n", 0, char_index)
