"""
KB Patch file stores - read/write collaborators used by PatchEngine.

A store maps a directive's file_path to text. Reads of missing files raise
FileNotFoundError (the engine treats that as an empty new file); any other
failure is wrapped in FileReadError / FileWriteError.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

from .errors import FileReadError, FileWriteError, PathOutsideRootError

logger = logging.getLogger(__name__)


class TextFileStore(ABC):
    """Interface for the file collaborator consumed by PatchEngine."""

    @abstractmethod
    async def read_text_file(self, path: str) -> str:
        """Return the file's text; raise FileNotFoundError when it is absent."""

    @abstractmethod
    async def write_text_file(self, path: str, content: str) -> None:
        """Replace the file's text, creating it if needed."""


class LocalTextFileStore(TextFileStore):
    """
    Knowledge-base files on the local disk, below a root directory.

    Blocking file IO runs in the default executor. Writes go to a temporary
    sibling file that is then moved over the target.
    """

    def __init__(self, root: Union[str, Path], encoding: str = "utf-8"):
        self.root = Path(root).resolve()
        self.encoding = encoding

    def resolve(self, path: str) -> Path:
        """Resolve path under root, rejecting anything that escapes it."""
        candidate = (self.root / path).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise PathOutsideRootError(f"{path!r} is outside {self.root}") from exc
        return candidate

    async def read_text_file(self, path: str) -> str:
        target = self.resolve(path)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._read, target)
        except FileNotFoundError:
            raise
        except (OSError, UnicodeDecodeError) as exc:
            raise FileReadError(f"Unable to read {path}: {exc}") from exc

    async def write_text_file(self, path: str, content: str) -> None:
        target = self.resolve(path)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, target, content)
        except OSError as exc:
            raise FileWriteError(f"Unable to write {path}: {exc}") from exc

    def _read(self, target: Path) -> str:
        with target.open("r", encoding=self.encoding, newline="") as fh:
            return fh.read()

    def _write(self, target: Path, content: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_file = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            with temp_file.open("w", encoding=self.encoding, newline="") as fh:
                fh.write(content)
            os.replace(temp_file, target)
        finally:
            if temp_file.exists():
                temp_file.unlink()


class InMemoryTextFileStore(TextFileStore):
    """Dict-backed store for previews and tests."""

    def __init__(self, files: Optional[Dict[str, str]] = None):
        self.files: Dict[str, str] = dict(files or {})
        self.writes: Dict[str, int] = {}

    async def read_text_file(self, path: str) -> str:
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    async def write_text_file(self, path: str, content: str) -> None:
        self.files[path] = content
        self.writes[path] = self.writes.get(path, 0) + 1
