"""Exceptions raised by the kb_patch file store layer."""


class PatchEngineError(Exception):
    """Base class for kb_patch errors."""


class FileReadError(PatchEngineError):
    """A knowledge-base file exists but could not be read."""


class FileWriteError(PatchEngineError):
    """A knowledge-base file could not be written."""


class PathOutsideRootError(PatchEngineError):
    """A directive points outside the knowledge-base root."""
