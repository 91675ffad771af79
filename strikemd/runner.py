"""
One annotation run: segment, prompt, stream, parse, reconstruct, commit.

The session's run guard is held for the whole run and always released.
Only a successful terminal event commits anything; errors, cancellation
and exceptions leave the session exactly as it was.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, Union
import inspect

from strikemd.checks import Check, get_check
from strikemd.llm_backend import GenerationBackend
from strikemd.models import MutationResult, OutputMode
from strikemd.prompts import build_messages
from strikemd.segmenter import split_into_blocks
from strikemd.session import ReviewSession
from strikemd.stream_parser import (
    DoneEvent,
    ErrorEvent,
    ParserEvent,
    StreamingOutputParser,
    consume_channel,
)

import logging

logger = logging.getLogger(__name__)

EventCallback = Callable[[ParserEvent], Any]


@dataclass
class RunOutcome:
    """Result of run_annotation()."""
    success: bool
    check: str
    annotated: Optional[str] = None
    pending: int = 0
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    result: Optional[MutationResult] = None


async def _emit(on_event: Optional[EventCallback], event: ParserEvent) -> None:
    if on_event is None:
        return
    ret = on_event(event)
    if inspect.isawaitable(ret):
        await ret


async def run_annotation(
    session: ReviewSession,
    backend: GenerationBackend,
    check: Union[Check, str],
    mode: Union[OutputMode, str] = OutputMode.FULL,
    project_root: Optional[Union[str, Path]] = None,
    on_event: Optional[EventCallback] = None,
    checks_file: Optional[Union[str, Path]] = None,
) -> RunOutcome:
    """
    Annotate the session's current plain text with one check.

    Args:
        session: Target session
        backend: Generation backend
        check: Check object, or a name looked up fresh in project_root
        mode: Output convention requested from the model
        project_root: Where the project checks file is looked up
        on_event: Called (or awaited) with every parser event
        checks_file: Project checks file, relative to project_root

    Returns:
        RunOutcome

    Raises:
        RunInProgressError: If the session already runs an annotation
        UnknownCheckError: If check names no known check
    """
    if isinstance(check, str):
        check = get_check(check, project_root, checks_file)
    mode = OutputMode.parse(mode)

    text = session.begin_run()
    try:
        split = split_into_blocks(text)
        if not split.blocks:
            logger.info("[runner] document has no blocks; nothing to annotate")
            result = session.complete_run(text, ["Document has no blocks to annotate"])
            return RunOutcome(
                success=True, check=check.name, annotated=text,
                warnings=["Document has no blocks to annotate"], result=result,
            )

        system, user = build_messages(check.prompt, split.blocks, mode)
        parser = StreamingOutputParser(split, mode)
        logger.info(
            f"[runner] check {check.name!r}: {len(split.blocks)} blocks, "
            f"mode={mode.value}, model={backend.model_name}"
        )

        outcome = RunOutcome(success=False, check=check.name)
        async for event in consume_channel(backend.stream(system, user), parser):
            await _emit(on_event, event)
            if isinstance(event, DoneEvent):
                result = session.complete_run(event.annotated, event.warnings)
                outcome = RunOutcome(
                    success=True,
                    check=check.name,
                    annotated=event.annotated,
                    pending=result.pending,
                    warnings=list(event.warnings),
                    result=result,
                )
            elif isinstance(event, ErrorEvent):
                outcome = RunOutcome(success=False, check=check.name, error=event.message)
        if not outcome.success and outcome.error is None:
            outcome.error = "Annotation run ended without a result"
        return outcome
    finally:
        session.abort_run()
