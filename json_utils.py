"""
JSON utilities for the KB Patch Engine
======================================

Thin orjson wrapper with the standard json interface. Knows how to serialize
the engine's result types (pydantic models, dataclasses, enums) so CLI output
and logs can dump them directly.
"""

import dataclasses
from enum import Enum
from typing import Any, Callable, Optional

import orjson
from pydantic import BaseModel


def _default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def dumps(obj: Any, indent: Optional[int] = None, default: Optional[Callable] = None) -> str:
    """
    Serialize obj to a JSON string using orjson.

    Args:
        obj: Object to serialize
        indent: Any non-None value pretty-prints with two spaces
        default: Fallback for unsupported objects (engine types by default)

    Returns:
        JSON string (orjson returns bytes; this decodes to str)
    """
    option = orjson.OPT_NON_STR_KEYS | orjson.OPT_PASSTHROUGH_DATACLASS
    if indent is not None:
        option |= orjson.OPT_INDENT_2
    return orjson.dumps(obj, default=default or _default, option=option).decode("utf-8")


def loads(s: Any) -> Any:
    """Deserialize a JSON string or bytes."""
    return orjson.loads(s)


def dump(obj: Any, fp, indent: Optional[int] = None) -> None:
    """Serialize obj and write it to a file-like object."""
    fp.write(dumps(obj, indent=indent))


def load(fp) -> Any:
    """Deserialize JSON from a file-like object."""
    return loads(fp.read())


JSONDecodeError = orjson.JSONDecodeError
