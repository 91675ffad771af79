"""
Merge per-block model judgments back into the source document.

Full mode: each judgment is the whole block with tags in place; it is used
as-is (normalized) after checking that rejecting its tags gives back the
block. Compact mode: each judgment lists only tag spans, and insertions are
preceded by a short anchor quoted from the block; tags are spliced into
the original block text by exact, first-occurrence search.

Nothing here raises on bad model output. Every problem becomes a warning
and the affected block (or tag) keeps its original text.
"""

from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from strikemd.codec import canonical, normalize, parse_changes, recover_original, serialize_change
from strikemd.models import BlockSplit, Judgment, OutputMode, ReconstructResult
from strikemd.segmenter import join_blocks

import logging

logger = logging.getLogger(__name__)

# Inserted text starting with one of these is glued to its anchor
_NO_SPACE_BEFORE = ",.;:!?)]}'\"”’…"


def _preview(text: str, width: int = 40) -> str:
    text = " ".join(text.split())
    return text if len(text) <= width else text[:width - 3] + "..."


def find_unclaimed(haystack: str, needle: str, claimed: Sequence[Tuple[int, int]]) -> int:
    """
    First case-sensitive occurrence of needle that does not intersect a
    claimed (start, end) range; -1 when there is none.
    """
    if not needle:
        return -1
    start = 0
    while True:
        idx = haystack.find(needle, start)
        if idx < 0:
            return -1
        end = idx + len(needle)
        if not any(idx < c_end and end > c_start for c_start, c_end in claimed):
            return idx
        start = idx + 1


def _separated(inserted: str) -> str:
    if inserted[0].isspace() or inserted[0] in _NO_SPACE_BEFORE:
        return inserted
    return " " + inserted


def splice_compact(block_text: str, content: str, block_number: int) -> Tuple[str, List[str]]:
    """
    Splice compact-mode tags into one block.

    Args:
        block_text: Original block text
        content: Judgment body (tag spans and anchors)
        block_number: For warning messages

    Returns:
        (annotated block text, warnings)
    """
    warnings: List[str] = []
    tags = parse_changes(content)
    if not tags:
        warnings.append(
            f"Block {block_number}: judgment has no annotations and is not lgtm; using original"
        )
        return block_text, warnings

    current = block_text
    cursor = 0
    for tag in tags:
        anchor = content[cursor:tag.start].strip()
        cursor = tag.end
        claimed = [(c.start, c.end) for c in parse_changes(current)]

        if tag.is_empty:
            warnings.append(f"Block {block_number}: change {tag.index} is empty; skipped")
            continue

        if tag.deleted is not None:
            pos = find_unclaimed(current, tag.deleted, claimed)
            if pos < 0:
                warnings.append(
                    f"Block {block_number}: deleted text not found: {_preview(tag.deleted)!r}"
                )
                continue
            current = current[:pos] + canonical(tag) + current[pos + len(tag.deleted):]
            continue

        if not anchor:
            warnings.append(
                f"Block {block_number}: insertion {_preview(tag.inserted)!r} has no anchor; skipped"
            )
            continue
        pos = find_unclaimed(current, anchor, claimed)
        if pos < 0:
            warnings.append(
                f"Block {block_number}: anchor not found: {_preview(anchor)!r}"
            )
            continue
        point = pos + len(anchor)
        spliced = serialize_change(tag.rationale, None, _separated(tag.inserted))
        current = current[:point] + spliced + current[point:]

    return current, warnings


def _full_block(block_text: str, content: str, block_number: int) -> Tuple[str, List[str]]:
    warnings: List[str] = []
    annotated = normalize(content)
    if recover_original(annotated) != block_text:
        warnings.append(
            f"Block {block_number}: recovered text differs from original; keeping model output"
        )
    return annotated, warnings


def reconstruct(
    split: BlockSplit,
    judgments: Mapping[int, Judgment],
    mode: OutputMode = OutputMode.FULL,
) -> ReconstructResult:
    """
    Build the annotated document from block judgments.

    Args:
        split: Segmentation of the source document
        judgments: Judgment per 1-based block number
        mode: Output convention the judgments follow

    Returns:
        ReconstructResult with the annotated document and warnings
    """
    mode = OutputMode.parse(mode)
    warnings: List[str] = []
    texts: Dict[int, str] = {}

    for number in sorted(judgments):
        if split.get(number) is None:
            warnings.append(f"Judgment for unknown block {number} ignored")

    for block in split.blocks:
        judgment: Optional[Judgment] = judgments.get(block.number)
        if judgment is None:
            warnings.append(f"Block {block.number} missing from model output; using original")
            continue
        if judgment.is_lgtm:
            continue
        if not judgment.content.strip():
            warnings.append(f"Block {block.number}: empty judgment; using original")
            continue
        if mode == OutputMode.COMPACT:
            text, block_warnings = splice_compact(block.text, judgment.content, block.number)
        else:
            text, block_warnings = _full_block(block.text, judgment.content, block.number)
        texts[block.number] = text
        warnings.extend(block_warnings)

    for w in warnings:
        logger.warning(f"[reconstruct] {w}")

    return ReconstructResult(
        annotated=join_blocks(split, texts),
        warnings=warnings,
        judgments=dict(judgments),
    )
