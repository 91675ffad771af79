"""
Fence-aware block segmentation for Markdown documents.

A document is an optional YAML front matter header followed by a body.
The body is cut into blocks at blank lines, except inside fenced code
(``` or ~~~), where blank lines belong to the fence. Blocks are numbered
1..N once and never renumbered; the text between blocks is kept so the
body can be rebuilt exactly.
"""

import re
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from strikemd.models import Block, BlockSplit

import logging

logger = logging.getLogger(__name__)

# Front matter: "---" at offset 0, closing "---" line, newline optional at EOF
_HEADER_RE = re.compile(r"\A---[ \t]*\r?\n(?:.*?\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL)

_FENCE_MARKERS = ("```", "~~~")


# ---------------------------------------------------------------------------
# Header
# ---------------------------------------------------------------------------

def split_header(text: str) -> Tuple[str, str]:
    """
    Split the front matter header from the body.

    Returns (header, body); header is "" when the document has none.
    """
    m = _HEADER_RE.match(text)
    if not m:
        return "", text
    return m.group(0), text[m.end():]


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

def _fence_marker(stripped: str) -> Optional[str]:
    for marker in _FENCE_MARKERS:
        if stripped.startswith(marker):
            return marker
    return None


def _iter_lines(body: str) -> Iterable[Tuple[int, str]]:
    """Yield (offset, line) pairs, lines without their newline."""
    pos = 0
    for line in body.split("\n"):
        yield pos, line
        pos += len(line) + 1


def split_into_blocks(text: str) -> BlockSplit:
    """
    Segment a document into a header and numbered body blocks.

    Blank (whitespace-only) lines separate blocks outside literal regions.
    A fence line toggles the literal region whatever its language tag; a
    closing fence must use the opening marker. An unterminated fence
    simply runs to the end of the document.

    Args:
        text: Full document text

    Returns:
        BlockSplit with header, blocks, separators and trailer
    """
    header, body = split_header(text)

    spans: List[Tuple[int, int, bool]] = []     # (start, raw_end, fenced)
    current_start: Optional[int] = None
    current_end = 0
    current_fenced = False
    blank_run = False
    in_fence = False
    fence_marker = ""

    def flush() -> None:
        if current_start is not None:
            spans.append((current_start, current_end, current_fenced))

    for offset, line in _iter_lines(body):
        stripped = line.strip()
        marker = _fence_marker(stripped)
        if marker is not None:
            if not in_fence:
                in_fence = True
                fence_marker = marker
            elif marker == fence_marker:
                in_fence = False
                fence_marker = ""

        if not in_fence and marker is None and not stripped:
            if current_start is not None:
                blank_run = True
            continue

        if blank_run and current_start is not None:
            flush()
            current_start = None
            current_fenced = False
        blank_run = False

        if current_start is None:
            current_start = offset
        current_end = offset + len(line)
        if marker is not None:
            current_fenced = True

    flush()

    if in_fence:
        logger.debug("[segmenter] unterminated fence at end of document")

    blocks: List[Block] = []
    separators: List[str] = []
    prev_end = 0
    for start, raw_end, fenced in spans:
        block_text = body[start:raw_end].rstrip()
        if not block_text.strip():
            continue
        end = start + len(block_text)
        blocks.append(Block(
            number=len(blocks) + 1,
            text=block_text,
            start=start,
            end=end,
            fenced=fenced,
        ))
        separators.append(body[prev_end:start])
        prev_end = end

    split = BlockSplit(
        header=header,
        blocks=blocks,
        separators=separators,
        trailer=body[prev_end:],
    )
    logger.debug(
        f"[segmenter] {len(blocks)} blocks, header={'yes' if header else 'no'}"
    )
    return split


def join_blocks(
    split: BlockSplit,
    texts: Optional[Union[Mapping[int, str], Sequence[str]]] = None,
) -> str:
    """
    Rebuild the full document from a BlockSplit.

    Args:
        split: Segmentation result
        texts: Optional replacement text per block, either a mapping
            from 1-based block number or a sequence in block order.
            Blocks without a replacement keep their original text.

    Returns:
        header + body with original separators
    """
    if texts is None:
        replacement = {}
    elif isinstance(texts, Mapping):
        replacement = dict(texts)
    else:
        replacement = {i + 1: t for i, t in enumerate(texts)}

    parts = [split.header]
    for sep, block in zip(split.separators, split.blocks):
        parts.append(sep)
        parts.append(replacement.get(block.number, block.text))
    parts.append(split.trailer)
    return "".join(parts)


def format_blocks_for_model(blocks: Sequence[Block]) -> str:
    """Render blocks as "[N] text" paragraphs for the generation service."""
    return "\n\n".join(f"[{b.number}] {b.text}" for b in blocks)
