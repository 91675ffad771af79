"""
strikectl: CLI for reviewable Markdown annotation.

Commands:
    checks     List the checks available in the current project
    blocks     Show how a document is segmented into numbered blocks
    annotate   Run one check on a document and write the annotated copy
    show       List the pending changes of an annotated file
    validate   Consistency check of an annotated file
    resolve    Accept/reject changes and write the resolved document
    recover    Print the original text of an annotated file
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import logging

logger = logging.getLogger(__name__)

# ANSI color helpers (auto-disabled for non-TTY)
_USE_COLOR = sys.stdout.isatty()


def _c(code: str, text: str) -> str:
    if not _USE_COLOR:
        return text
    return f"\033[{code}m{text}\033[0m"


def _bold(text: str) -> str:
    return _c("1", text)


def _green(text: str) -> str:
    return _c("32", text)


def _yellow(text: str) -> str:
    return _c("33", text)


def _red(text: str) -> str:
    return _c("31", text)


def _cyan(text: str) -> str:
    return _c("36", text)


def _dim(text: str) -> str:
    return _c("2", text)


def _read(path_arg: str) -> Optional[str]:
    path = Path(path_arg)
    if not path.is_file():
        print(_red(f"Error: File not found: {path}"))
        return None
    return path.read_text(encoding="utf-8")


def _annotated_path(doc_path: Path, suffix: str) -> Path:
    return doc_path.with_name(doc_path.stem + suffix)


def _resolved_path(annotated_path: Path) -> Path:
    """doc.annotated.md -> doc.resolved.md, anything else -> <stem>.resolved.md"""
    name = annotated_path.name
    if ".annotated" in name:
        return annotated_path.with_name(name.replace(".annotated", ".resolved", 1))
    return annotated_path.with_name(annotated_path.stem + ".resolved.md")


# ---------------------------------------------------------------------------
# Command: checks
# ---------------------------------------------------------------------------

def cmd_checks(args: argparse.Namespace) -> int:
    """List available checks."""
    from strikemd.checks import load_checks
    from strikemd.config import ConfigError, find_project_root, load_config

    root = find_project_root(args.root)
    try:
        config = load_config(args.config, start=root)
    except ConfigError as e:
        print(_red(f"Error: {e}"))
        return 1
    checks = load_checks(root, config.checks_file)
    print(_bold("Available checks:"))
    for name, check in sorted(checks.items()):
        origin = "" if check.source == "defaults" else _dim(f"  ({check.source})")
        print(f"  {_cyan(name)}{origin}")
    return 0


# ---------------------------------------------------------------------------
# Command: blocks
# ---------------------------------------------------------------------------

def cmd_blocks(args: argparse.Namespace) -> int:
    """Show document segmentation."""
    from strikemd.segmenter import split_into_blocks

    text = _read(args.doc)
    if text is None:
        return 1
    split = split_into_blocks(text)
    if split.header:
        print(_dim(f"header: {len(split.header.splitlines())} line(s)"))
    for block in split.blocks:
        tag = _yellow(" fenced") if block.fenced else ""
        print(_bold(f"[{block.number}]") + tag)
        print(block.text)
        print()
    print(_dim(f"{len(split.blocks)} blocks"))
    return 0


# ---------------------------------------------------------------------------
# Command: annotate
# ---------------------------------------------------------------------------

def _print_event(event) -> None:
    from strikemd.stream_parser import ErrorEvent, ProgressEvent, StatusEvent

    if isinstance(event, StatusEvent):
        print(_dim(event.message))
    elif isinstance(event, ProgressEvent):
        label = _green("lgtm") if event.status.value == "lgtm" else _yellow("changes")
        print(f"  [{event.completed}/{event.total}] block {event.block_number}: {label}")
    elif isinstance(event, ErrorEvent):
        print(_red(f"Error: {event.message}"))


def cmd_annotate(args: argparse.Namespace) -> int:
    """Run one check and write the annotated document."""
    from strikemd.checks import UnknownCheckError
    from strikemd.config import ConfigError, LLMConfig, find_project_root, load_config
    from strikemd.llm_backend import get_backend
    from strikemd.runner import run_annotation
    from strikemd.session import ReviewSession

    doc_path = Path(args.doc).resolve()
    text = _read(str(doc_path))
    if text is None:
        return 1

    try:
        config = load_config(args.config, start=doc_path.parent)
    except ConfigError as e:
        print(_red(f"Error: {e}"))
        return 1

    llm = config.llm
    backend_name = "replay" if args.replay else (args.backend or llm.backend)
    llm = LLMConfig(**{
        **llm.__dict__,
        "backend": backend_name,
        "model": args.model or llm.model,
        "endpoint": args.endpoint or llm.endpoint,
        "think": args.think or llm.think,
    })
    mode = args.mode or config.mode

    replay_answer = None
    if args.replay:
        replay_answer = _read(args.replay)
        if replay_answer is None:
            return 1

    try:
        backend = get_backend(llm, replay_answer=replay_answer)
    except (ImportError, ValueError) as e:
        print(_red(f"Error: {e}"))
        return 1

    root = find_project_root(doc_path.parent)
    session = ReviewSession(text, max_history=config.max_history)

    print(_bold(f"strikemd: {doc_path.name}"))
    print(f"Check: {_cyan(args.check)}  Mode: {mode}  Model: {_dim(backend.model_name)}")

    try:
        outcome = asyncio.run(run_annotation(
            session, backend, args.check, mode=mode,
            project_root=root, on_event=_print_event,
            checks_file=config.checks_file,
        ))
    except UnknownCheckError as e:
        print(_red(f"Error: {e}"))
        return 1
    except (ImportError, ValueError) as e:
        print(_red(f"Error: {e}"))
        return 1

    if not outcome.success:
        print(_red(f"Run failed: {outcome.error}"))
        return 1

    for w in outcome.warnings:
        print(_yellow(f"warning: {w}"))

    out_path = Path(args.output) if args.output else _annotated_path(doc_path, config.annotated_suffix)
    out_path.write_text(outcome.annotated, encoding="utf-8")
    print(f"{_green(str(outcome.pending))} change(s) -> {out_path}")
    return 0


# ---------------------------------------------------------------------------
# Command: show
# ---------------------------------------------------------------------------

def cmd_show(args: argparse.Namespace) -> int:
    """List pending changes."""
    from strikemd.codec import parse_changes

    text = _read(args.annotated)
    if text is None:
        return 1
    changes = parse_changes(text)
    for change in changes:
        print(_bold(f"#{change.index}") + f" {_dim(change.kind)}  {change.rationale}")
        if change.deleted is not None:
            print("  " + _red(f"- {change.deleted}"))
        if change.inserted is not None:
            print("  " + _green(f"+ {change.inserted}"))
    print(_dim(f"{len(changes)} pending change(s)"))
    return 0


# ---------------------------------------------------------------------------
# Command: validate
# ---------------------------------------------------------------------------

def cmd_validate(args: argparse.Namespace) -> int:
    """Report annotation problems."""
    from strikemd.validator import validate

    text = _read(args.annotated)
    if text is None:
        return 1
    problems = validate(text)
    if not problems:
        print(_green("OK"))
        return 0
    for p in problems:
        print(_red(p))
    return 1


# ---------------------------------------------------------------------------
# Command: resolve
# ---------------------------------------------------------------------------

def cmd_resolve(args: argparse.Namespace) -> int:
    """Apply decisions; write plain text to the output and keep the rest annotated."""
    from strikemd.persistence import FileSink
    from strikemd.session import ReviewSession

    annotated_path = Path(args.annotated)
    text = _read(str(annotated_path))
    if text is None:
        return 1

    out_path = Path(args.output) if args.output else _resolved_path(annotated_path)
    session = ReviewSession.from_annotated(text, sink=FileSink(out_path))

    accepted = set(args.accept or [])
    rejected = set(args.reject or [])
    overlap = accepted & rejected
    if overlap:
        print(_red(f"Error: both accepted and rejected: {sorted(overlap)}"))
        return 1

    results = []
    if args.accept_all:
        results.append(session.accept_all())
    elif args.reject_all:
        results.append(session.reject_all())
    else:
        decisions = [(i, True) for i in accepted] + [(i, False) for i in rejected]
        # Highest index first: resolving a change never shifts lower indices
        for index, accept in sorted(decisions, reverse=True):
            results.append(session.accept(index) if accept else session.reject(index))

    failed = 0
    for r in results:
        for e in r.errors:
            print(_red(e))
        if not r.success or r.saved is False:
            failed += 1

    if not results or all(r.saved is None for r in results):
        # Nothing resolved: still materialize the current plain text
        session.sink.save(session.plain)

    annotated_path.write_text(session.annotated or session.plain, encoding="utf-8")
    print(
        f"Resolved: {_green(str(len(results) - failed))}, "
        f"Failed: {_red(str(failed)) if failed else '0'}, "
        f"Pending: {session.pending}"
    )
    print(f"Plain text -> {out_path}")
    return 1 if failed else 0


# ---------------------------------------------------------------------------
# Command: recover
# ---------------------------------------------------------------------------

def cmd_recover(args: argparse.Namespace) -> int:
    """Print the pre-annotation text."""
    from strikemd.codec import recover_original

    text = _read(args.annotated)
    if text is None:
        return 1
    sys.stdout.write(recover_original(text))
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the strikectl argument parser."""
    parser = argparse.ArgumentParser(
        prog="strikectl",
        description="strikemd: reviewable, reversible Markdown annotation",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    # --- checks ---
    p_checks = sub.add_parser("checks", help="List available checks")
    p_checks.add_argument("--root", default=None, help="Project directory (default: cwd)")
    p_checks.add_argument("--config", default=None, help="Configuration file")
    p_checks.set_defaults(func=cmd_checks)

    # --- blocks ---
    p_blocks = sub.add_parser("blocks", help="Show document segmentation")
    p_blocks.add_argument("doc", help="Path to Markdown document")
    p_blocks.set_defaults(func=cmd_blocks)

    # --- annotate ---
    p_ann = sub.add_parser("annotate", help="Run a check on a document")
    p_ann.add_argument("doc", help="Path to Markdown document")
    p_ann.add_argument("-c", "--check", required=True, help="Check name (see 'checks')")
    p_ann.add_argument("--mode", choices=["full", "compact"], default=None,
                       help="Model output convention (default: from config)")
    p_ann.add_argument("--backend", choices=["ollama", "claude"], default=None,
                       help="Generation backend (default: from config)")
    p_ann.add_argument("--model", default=None, help="Model name")
    p_ann.add_argument("--endpoint", default=None, help="Ollama endpoint URL")
    p_ann.add_argument("--think", action="store_true", help="Request a reasoning phase")
    p_ann.add_argument("--replay", default=None,
                       help="Rebuild from a saved model answer instead of calling a backend")
    p_ann.add_argument("--config", default=None, help="Configuration file")
    p_ann.add_argument("-o", "--output", default=None,
                       help="Annotated output (default: <doc>.annotated.md)")
    p_ann.set_defaults(func=cmd_annotate)

    # --- show ---
    p_show = sub.add_parser("show", help="List pending changes")
    p_show.add_argument("annotated", help="Annotated document")
    p_show.set_defaults(func=cmd_show)

    # --- validate ---
    p_val = sub.add_parser("validate", help="Check an annotated document")
    p_val.add_argument("annotated", help="Annotated document")
    p_val.set_defaults(func=cmd_validate)

    # --- resolve ---
    p_res = sub.add_parser("resolve", help="Accept or reject changes")
    p_res.add_argument("annotated", help="Annotated document")
    p_res.add_argument("--accept", type=int, nargs="+", metavar="I", help="Change indices to accept")
    p_res.add_argument("--reject", type=int, nargs="+", metavar="I", help="Change indices to reject")
    group = p_res.add_mutually_exclusive_group()
    group.add_argument("--accept-all", action="store_true", help="Accept every change")
    group.add_argument("--reject-all", action="store_true", help="Reject every change")
    p_res.add_argument("-o", "--output", default=None,
                       help="Plain text output (default: <doc>.resolved.md next to <doc>.annotated.md)")
    p_res.set_defaults(func=cmd_resolve)

    # --- recover ---
    p_rec = sub.add_parser("recover", help="Print the original text")
    p_rec.add_argument("annotated", help="Annotated document")
    p_rec.set_defaults(func=cmd_recover)

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for strikectl."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
