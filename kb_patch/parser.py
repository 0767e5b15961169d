"""
KB Patch Directive Parser - Extract <save> edit directives from LLM output.

Wire format (tag names are case-insensitive, whitespace between tags is free):

    <save file="FILENAME" context="OPTIONAL>BREADCRUMB>PATH">
      <update>
        <target>exact excerpt to find</target>
        <replacement>new text</replacement>
      </update>
    </save>

The text is first split into a stream of tag tokens, then a small state
machine walks the stream. Bodies are sliced from the original text between an
opening tag and its closing tag, so nothing inside a body is re-interpreted.

Malformed input never raises:
- a <save> without </save> (another <save> opens first, or input ends) is dropped
- an <update> without </update> is dropped
- a <target>/<replacement> closed by its enclosing block instead of its own
  closing tag is dropped
Directives completed before the malformed region are still returned.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional

from .models import EditDirective

logger = logging.getLogger(__name__)

# Attribute values are quoted so a breadcrumb like "A>B" does not end the tag
_TAG_RE = re.compile(
    r"""<\s*(/?)\s*(save|update|target|replacement)\b((?:[^>"']|"[^"]*"|'[^']*')*)>""",
    re.IGNORECASE,
)
_ATTR_RE = re.compile(r"""([A-Za-z_][\w-]*)\s*=\s*(?:"([^"]*)"|'([^']*)')""")

_BODY_TAGS = ("target", "replacement")


@dataclass(frozen=True)
class TagToken:
    """One opening or closing tag found in the raw text."""

    name: str
    closing: bool
    attrs: Dict[str, str]
    start: int
    end: int


class _State(Enum):
    OUTSIDE = "outside"
    IN_SAVE = "in_save"
    IN_UPDATE = "in_update"
    IN_BODY = "in_body"


@dataclass
class _Fields:
    """Target/replacement captured for one (explicit or implicit) update."""

    target: Optional[str] = None
    replacement: Optional[str] = None
    seen: set = field(default_factory=set)

    def capture(self, name: str, value: str) -> None:
        # First occurrence of each tag wins
        if name in self.seen:
            return
        self.seen.add(name)
        setattr(self, name, _clean_body(value))

    @property
    def empty(self) -> bool:
        return self.target is None and self.replacement is None


@dataclass
class _SaveBlock:
    file_path: str
    context: Optional[str]
    updates: List[_Fields] = field(default_factory=list)
    bare: _Fields = field(default_factory=_Fields)


def _clean_body(value: str) -> Optional[str]:
    value = value.strip()
    return value or None


def _clean_attr(value: Optional[str]) -> str:
    return unicodedata.normalize("NFC", (value or "").strip())


def tokenize(text: str) -> Iterator[TagToken]:
    """Yield every directive tag in text, in order."""
    for match in _TAG_RE.finditer(text):
        attrs = {
            m.group(1).lower(): m.group(2) if m.group(2) is not None else m.group(3)
            for m in _ATTR_RE.finditer(match.group(3))
        }
        yield TagToken(
            name=match.group(2).lower(),
            closing=bool(match.group(1)),
            attrs=attrs,
            start=match.start(),
            end=match.end(),
        )


class DirectiveParser:
    """
    Scanner-based parser for <save> directive blocks.

    The parser holds no state between calls; every parse() builds its own
    cursor and block state, so one instance can be shared freely.

    Example:
        parser = DirectiveParser()
        directives = parser.parse(llm_output)
    """

    def parse(self, text: str) -> List[EditDirective]:
        """
        Extract directives from raw LLM text in document order.

        Args:
            text: Free-form model output

        Returns:
            List of EditDirective; blocks yielding nothing are skipped
        """
        if not text:
            return []

        directives: List[EditDirective] = []
        state = _State.OUTSIDE
        block: Optional[_SaveBlock] = None
        update: Optional[_Fields] = None
        body_name = ""
        body_start = 0
        body_parent = _State.IN_SAVE

        for token in tokenize(text):
            if state == _State.IN_BODY:
                if token.closing and token.name == body_name:
                    owner = update if body_parent == _State.IN_UPDATE else block.bare
                    owner.capture(body_name, text[body_start:token.start])
                    state = body_parent
                    continue
                closes_parent = token.closing and (
                    token.name == "save"
                    or (token.name == "update" and body_parent == _State.IN_UPDATE)
                )
                if not closes_parent and not (token.name == "save" and not token.closing):
                    continue
                logger.debug(
                    "Unterminated <%s> at offset %d dropped", body_name, body_start
                )
                state = body_parent

            if token.name == "save" and not token.closing:
                if state != _State.OUTSIDE:
                    logger.debug(
                        "Unterminated <save> for %r dropped at offset %d",
                        block.file_path,
                        token.start,
                    )
                block = _SaveBlock(
                    file_path=_clean_attr(token.attrs.get("file")),
                    context=_clean_attr(token.attrs.get("context")) or None,
                )
                update = None
                state = _State.IN_SAVE
                continue

            if state == _State.OUTSIDE:
                continue

            if token.name == "save":
                if state == _State.IN_UPDATE:
                    logger.debug("Unterminated <update> in %r dropped", block.file_path)
                directives.extend(self._emit(block))
                block = None
                update = None
                state = _State.OUTSIDE
            elif token.name == "update":
                if token.closing:
                    if state == _State.IN_UPDATE:
                        block.updates.append(update)
                        update = None
                        state = _State.IN_SAVE
                else:
                    if state == _State.IN_UPDATE:
                        logger.debug("Unterminated <update> in %r dropped", block.file_path)
                    update = _Fields()
                    state = _State.IN_UPDATE
            elif token.name in _BODY_TAGS and not token.closing:
                body_parent = state
                body_name = token.name
                body_start = token.end
                state = _State.IN_BODY

        if state != _State.OUTSIDE:
            logger.debug(
                "Input ended inside <save> for %r; block dropped",
                block.file_path if block else "",
            )

        return directives

    def _emit(self, block: _SaveBlock) -> List[EditDirective]:
        if not block.file_path:
            logger.debug("Skipping <save> block without a file attribute")
            return []

        groups = block.updates if block.updates else [block.bare]
        directives = [
            EditDirective(
                file_path=block.file_path,
                target=fields.target,
                replacement=fields.replacement,
                context=block.context,
            )
            for fields in groups
            if not fields.empty
        ]
        if not directives:
            logger.debug("<save> block for %r yielded no directives", block.file_path)
        return directives


_default_parser = DirectiveParser()


def parse_directives(text: str) -> List[EditDirective]:
    """Parse LLM output with a shared DirectiveParser."""
    return _default_parser.parse(text)
