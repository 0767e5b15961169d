"""Command line access to the knowledge-base patch engine."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import json_utils as json  # noqa: E402
from config import config  # noqa: E402
from kb_patch import EditDirective, LocalTextFileStore, PatchEngine, parse_directives  # noqa: E402
from logging_utils import setup_logging  # noqa: E402


class CLIError(Exception):
    """Raised when CLI validation fails."""


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    path = Path(source)
    if not path.is_file():
        raise CLIError(f"Input file not found: {source}")
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CLIError(f"Unable to read {source}: {exc}") from exc


def _resolve_engine(args: argparse.Namespace) -> PatchEngine:
    root = Path(args.root or config.KNOWLEDGE_BASE.root_path)
    if not root.is_dir():
        raise CLIError(f"Knowledge base directory does not exist: {root}")
    store = LocalTextFileStore(root, encoding=config.KNOWLEDGE_BASE.encoding)
    return PatchEngine.from_config(store, config, verbose=args.verbose)


def _describe(directive: EditDirective) -> str:
    parts = [f"[{directive.mode.value}] {directive.file_path}"]
    if directive.context:
        parts.append(f"@ {directive.context}")
    if directive.label:
        parts.append(f"({directive.label})")
    return " ".join(parts)


def _command_parse(args: argparse.Namespace) -> int:
    directives = parse_directives(_read_input(args.input))
    if args.as_json:
        print(json.dumps([d.to_dict() for d in directives], indent=2))
        return 0
    if not directives:
        print("(no directives found)")
        return 0
    for directive in directives:
        print(_describe(directive))
    return 0


def _command_validate(args: argparse.Namespace) -> int:
    engine = _resolve_engine(args)
    directives = engine.parse(_read_input(args.input))
    outcomes = asyncio.run(engine.validate_all(directives))

    if args.as_json:
        payload = [
            {"directive": d.to_dict(), "outcome": o.model_dump(mode="json")}
            for d, o in zip(directives, outcomes)
        ]
        print(json.dumps(payload, indent=2))
    else:
        for directive, outcome in zip(directives, outcomes):
            if not outcome.exists:
                status = "MISSING FILE"
            elif outcome.matched:
                status = "DUPLICATE?" if outcome.already_exists else "OK"
            else:
                status = f"FAIL ({outcome.fail_reason.value})" if outcome.fail_reason else "FAIL"
            line = f" line {outcome.match_line}" if outcome.match_line is not None else ""
            print(f"{status:<24} {_describe(directive)}{line}")

    return 0 if all(o.matched for o in outcomes) else 1


def _command_apply(args: argparse.Namespace) -> int:
    engine = _resolve_engine(args)
    directives = engine.parse(_read_input(args.input))
    if not directives:
        print("(no directives found)")
        return 0
    result = asyncio.run(engine.apply_all(directives, preprocess=not args.no_preprocess))

    if args.as_json:
        print(json.dumps(result, indent=2))
    else:
        for message in result.messages:
            print(message)
        print(f"{result.files_written} file(s) written")
    return 1 if result.errors else 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Apply LLM <save> directives to a knowledge base")
    parser.add_argument("--verbose", action="store_true", help="Print phase headers and timings")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_parser = subparsers.add_parser("parse", help="List the directives found in LLM output")
    parse_parser.add_argument("input", help="File containing LLM output, or '-' for stdin")
    parse_parser.add_argument("--json", dest="as_json", action="store_true", help="Emit JSON output")
    parse_parser.set_defaults(func=_command_parse)

    validate_parser = subparsers.add_parser("validate", help="Dry-run directives against the knowledge base")
    validate_parser.add_argument("input", help="File containing LLM output, or '-' for stdin")
    validate_parser.add_argument("--root", help="Knowledge base directory (defaults to KB_ROOT_PATH)")
    validate_parser.add_argument("--json", dest="as_json", action="store_true", help="Emit JSON output")
    validate_parser.set_defaults(func=_command_validate)

    apply_parser = subparsers.add_parser("apply", help="Apply directives and write changed files")
    apply_parser.add_argument("input", help="File containing LLM output, or '-' for stdin")
    apply_parser.add_argument("--root", help="Knowledge base directory (defaults to KB_ROOT_PATH)")
    apply_parser.add_argument(
        "--no-preprocess",
        action="store_true",
        help="Skip the last_scene rollover for the story outline",
    )
    apply_parser.add_argument("--json", dest="as_json", action="store_true", help="Emit JSON output")
    apply_parser.set_defaults(func=_command_apply)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging("DEBUG" if args.verbose else config.LOG_LEVEL)
    try:
        return args.func(args)
    except CLIError as exc:
        parser.error(str(exc))
        return 2


if __name__ == "__main__":  # pragma: no cover - manual invocation only
    raise SystemExit(main())
