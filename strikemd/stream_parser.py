"""
Incremental parser for streamed, line-oriented model answers.

The generation service answers one line per block:

    1 lgtm
    2 The <strike comment="tense"><del>sat</del><ins>sits</ins></strike> cat.
    [3] lgtm

A line starting with a block number (bare and followed by whitespace, or
in brackets) opens a new judgment; any other line continues the open one,
so multi-line bodies such as fenced code survive. Numbers outside 1..N do
not open a judgment. Text before the first judgment is ignored.

StreamingOutputParser is a synchronous state machine: feed() fragments
of any size, signal phases, then finish() or fail(). consume_channel()
drives it from an async channel of ChannelEvent objects.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Union
import re

from strikemd.models import BlockSplit, BlockStatus, Judgment, OutputMode, ReconstructResult
from strikemd.reconstruct import reconstruct

import logging

logger = logging.getLogger(__name__)

_BARE_RE = re.compile(r"^(\d+)[ \t](.*)$")
_BRACKET_RE = re.compile(r"^\[(\d+)\](?:[ \t](.*))?$")

PHASE_REASONING = "reasoning"
PHASE_ANSWER = "answer"

_PHASE_MESSAGES = {
    PHASE_REASONING: "Thinking...",
    PHASE_ANSWER: "Writing annotations...",
}


# ---------------------------------------------------------------------------
# Channel events (consumed)
# ---------------------------------------------------------------------------

@dataclass
class Fragment:
    """A piece of answer text, of arbitrary size."""
    text: str


@dataclass
class Phase:
    """Phase change reported by the generation service."""
    name: str


@dataclass
class Completed:
    """Terminal success."""
    pass


@dataclass
class Failed:
    """Terminal failure."""
    message: str


ChannelEvent = Union[Fragment, Phase, Completed, Failed]


# ---------------------------------------------------------------------------
# Parser events (emitted)
# ---------------------------------------------------------------------------

@dataclass
class StatusEvent:
    phase: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "status", "phase": self.phase, "message": self.message}


@dataclass
class ProgressEvent:
    """One block judgment completed."""
    completed: int
    total: int
    block_number: int
    status: BlockStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "progress",
            "completed": self.completed,
            "total": self.total,
            "block": self.block_number,
            "status": self.status.value,
        }


@dataclass
class DoneEvent:
    result: ReconstructResult

    @property
    def annotated(self) -> str:
        return self.result.annotated

    @property
    def warnings(self) -> List[str]:
        return self.result.warnings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "done",
            "annotated": self.result.annotated,
            "warnings": list(self.result.warnings),
        }


@dataclass
class ErrorEvent:
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "error", "message": self.message}


ParserEvent = Union[StatusEvent, ProgressEvent, DoneEvent, ErrorEvent]


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class StreamingOutputParser:
    """
    Assemble block judgments from streamed fragments.

    States: open -> done | failed | cancelled. Once closed, every call
    returns no events.
    """

    def __init__(self, split: BlockSplit, mode: OutputMode = OutputMode.FULL):
        self.split = split
        self.mode = OutputMode.parse(mode)
        self.state = "open"
        self._buffer = ""
        self._phase: Optional[str] = None
        self._current: Optional[int] = None
        self._lines: List[str] = []
        self._judgments: Dict[int, Judgment] = {}

    @property
    def total(self) -> int:
        return len(self.split.blocks)

    @property
    def closed(self) -> bool:
        return self.state != "open"

    @property
    def judgments(self) -> Dict[int, Judgment]:
        return dict(self._judgments)

    # -- inputs -------------------------------------------------------------

    def phase(self, name: str) -> List[ParserEvent]:
        """Record a phase transition; repeated phases are not re-announced."""
        if self.closed or name == self._phase:
            return []
        self._phase = name
        return [StatusEvent(phase=name, message=_PHASE_MESSAGES.get(name, name))]

    def feed(self, fragment: str) -> List[ParserEvent]:
        """Buffer a fragment and dispatch every complete line."""
        if self.closed or not fragment:
            return []
        self._buffer += fragment
        events: List[ParserEvent] = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            events.extend(self._dispatch(line))
        return events

    def finish(self) -> List[ParserEvent]:
        """Terminal success: flush the partial line and reconstruct."""
        if self.closed:
            return []
        events: List[ParserEvent] = []
        if self._buffer:
            events.extend(self._dispatch(self._buffer))
            self._buffer = ""
        events.extend(self._close_judgment())
        result = reconstruct(self.split, self._judgments, self.mode)
        self.state = "done"
        logger.info(
            f"[stream_parser] done: {len(self._judgments)}/{self.total} judgments, "
            f"{result.change_count} change(s), {len(result.warnings)} warning(s)"
        )
        events.append(DoneEvent(result=result))
        return events

    def fail(self, message: str) -> List[ParserEvent]:
        """Terminal failure: discard everything buffered."""
        if self.closed:
            return []
        self._discard()
        self.state = "failed"
        logger.warning(f"[stream_parser] generation failed: {message}")
        return [ErrorEvent(message=message)]

    def cancel(self) -> None:
        """Stop without a terminal event; nothing is committed."""
        if self.closed:
            return
        self._discard()
        self.state = "cancelled"
        logger.debug("[stream_parser] cancelled")

    # -- internals ----------------------------------------------------------

    def _discard(self) -> None:
        self._buffer = ""
        self._current = None
        self._lines = []

    def _opening(self, line: str):
        m = _BARE_RE.match(line) or _BRACKET_RE.match(line)
        if not m:
            return None
        number = int(m.group(1))
        if not 1 <= number <= self.total:
            return None
        return number, m.group(2) or ""

    def _dispatch(self, line: str) -> List[ParserEvent]:
        line = line.rstrip("\r")
        opening = self._opening(line)
        if opening is None:
            if self._current is None:
                if line.strip():
                    logger.debug(f"[stream_parser] ignoring preamble line: {line[:60]!r}")
                return []
            self._lines.append(line)
            return []
        events = self._close_judgment()
        self._current, first = opening
        self._lines = [first]
        return events

    def _close_judgment(self) -> List[ParserEvent]:
        if self._current is None:
            return []
        number = self._current
        # Leading indentation is content: only blank lines and trailing space go
        content = "\n".join(self._lines).rstrip().lstrip("\r\n")
        judgment = Judgment(block_number=number, content=content)
        if number in self._judgments:
            logger.debug(f"[stream_parser] block {number} judged again; keeping the latest")
        self._judgments[number] = judgment
        self._current = None
        self._lines = []
        return [ProgressEvent(
            completed=len(self._judgments),
            total=self.total,
            block_number=number,
            status=judgment.status,
        )]


# ---------------------------------------------------------------------------
# Async driver
# ---------------------------------------------------------------------------

async def consume_channel(
    channel: AsyncIterator[ChannelEvent],
    parser: StreamingOutputParser,
) -> AsyncIterator[ParserEvent]:
    """
    Drive a parser from a generation channel, yielding its events.

    The channel ending without a terminal event counts as completion.
    If the consumer stops early (cancellation or aclose), the parser is
    cancelled and the channel closed.
    """
    try:
        async for event in channel:
            if isinstance(event, Fragment):
                out = parser.feed(event.text)
            elif isinstance(event, Phase):
                out = parser.phase(event.name)
            elif isinstance(event, Completed):
                out = parser.finish()
            elif isinstance(event, Failed):
                out = parser.fail(event.message)
            else:
                raise TypeError(f"Unknown channel event: {event!r}")
            for item in out:
                yield item
            if parser.closed:
                break
        else:
            for item in parser.finish():
                yield item
    finally:
        parser.cancel()
        aclose = getattr(channel, "aclose", None)
        if aclose is not None:
            await aclose()
