"""
Configuration for the KB Patch Engine
=====================================

Central configuration for the knowledge-base location, patch behavior and the
HTTP service. Values come from defaults overridden by environment variables
(a .env file is loaded first). Invalid overrides raise a clear ValueError.
"""

import os
from typing import List

from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

TRUTHY_ENV_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in TRUTHY_ENV_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class KnowledgeBaseSettings(BaseModel):
    """Where knowledge-base documents live and how they are named."""

    root_path: str = Field(
        default="data/knowledge_base",
        description="Directory holding the knowledge-base markdown files",
    )
    encoding: str = Field(
        default="utf-8",
        description="Text encoding used to read and write documents",
    )
    story_outline_filenames: List[str] = Field(
        default_factory=lambda: ["2.Story_Outline.md", "2.劇情綱要.md"],
        description="Per-locale filenames of the story outline (last_scene owner)",
    )


class PatchSettings(BaseModel):
    """Matching and preview behavior of the patch engine."""

    strict_breadcrumbs: bool = Field(
        default=False,
        description="Require every breadcrumb segment to resolve instead of skipping missing ones",
    )
    preview_context_lines: int = Field(
        default=5,
        ge=0,
        le=50,
        description="Lines of context shown before/after a validated match",
    )
    preprocess_last_scene: bool = Field(
        default=True,
        description="Roll the story outline last_scene trailer on every batch",
    )


class Config(BaseModel):
    """Configuration settings for the KB Patch Engine."""

    model_config = {"populate_by_name": True}

    KNOWLEDGE_BASE: KnowledgeBaseSettings = Field(
        default_factory=KnowledgeBaseSettings,
        description="Knowledge-base location settings",
    )
    PATCH: PatchSettings = Field(
        default_factory=PatchSettings,
        description="Patch engine settings",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")

    # FastAPI Configuration
    APP_HOST: str = Field(default="0.0.0.0", description="FastAPI host")
    APP_PORT: int = Field(default=8000, description="FastAPI port")
    APP_RELOAD: bool = Field(default=False, description="FastAPI reload mode")

    def __init__(self):
        super().__init__()
        self.load_from_environment()

    def load_from_environment(self):
        """Load configuration from environment variables."""
        self.KNOWLEDGE_BASE = KnowledgeBaseSettings(
            root_path=os.getenv("KB_ROOT_PATH", self.KNOWLEDGE_BASE.root_path),
            encoding=os.getenv("KB_ENCODING", self.KNOWLEDGE_BASE.encoding),
            story_outline_filenames=_env_list(
                "KB_STORY_OUTLINE_FILENAMES",
                self.KNOWLEDGE_BASE.story_outline_filenames,
            ),
        )

        preview_lines = _env_int("PATCH_PREVIEW_CONTEXT_LINES", self.PATCH.preview_context_lines)
        if not 0 <= preview_lines <= 50:
            raise ValueError(
                f"PATCH_PREVIEW_CONTEXT_LINES must be between 0 and 50, got {preview_lines}"
            )
        self.PATCH = PatchSettings(
            strict_breadcrumbs=_env_bool("PATCH_STRICT_BREADCRUMBS", self.PATCH.strict_breadcrumbs),
            preview_context_lines=preview_lines,
            preprocess_last_scene=_env_bool(
                "PATCH_PREPROCESS_LAST_SCENE", self.PATCH.preprocess_last_scene
            ),
        )

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", self.LOG_LEVEL).upper()
        self.APP_HOST = os.getenv("APP_HOST", self.APP_HOST)
        self.APP_PORT = _env_int("APP_PORT", self.APP_PORT)
        self.APP_RELOAD = _env_bool("APP_RELOAD", self.APP_RELOAD)


# Global configuration instance
config = Config()
