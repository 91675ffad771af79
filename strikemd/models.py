"""
Core data models for strikemd.

All models are plain dataclasses shared by the segmenter, the tag codec,
the reconstruction engine and the review session. Offsets stored in a
ChangeRecord are only valid for the exact string it was parsed from.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import hashlib


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Decision(str, Enum):
    """Per-change review state."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class OutputMode(str, Enum):
    """Model output convention for one annotation run."""
    FULL = "full"         # every block echoed with tags embedded in place
    COMPACT = "compact"   # only tag spans plus anchors for insertions

    @classmethod
    def parse(cls, value: "str | OutputMode") -> "OutputMode":
        if isinstance(value, OutputMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown output mode: {value!r}. Use 'full' or 'compact'."
            )


class BlockStatus(str, Enum):
    """Classification of one block judgment."""
    LGTM = "lgtm"
    CHANGES = "changes"


class SessionState(str, Enum):
    """Review session state (run activity is tracked separately)."""
    PLAIN = "plain"
    PENDING = "pending"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def content_hash(text: str) -> str:
    """SHA-256 hash of text content, prefixed with 'sha256:'."""
    return "sha256:" + hashlib.sha256(text.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Block:
    """
    One addressable unit of document body.

    number is 1-based and never reassigned; start/end are character
    offsets into the body (end excludes the trimmed trailing whitespace).
    """
    number: int
    text: str
    start: int
    end: int
    fenced: bool = False    # contains (part of) a literal region

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "fenced": self.fenced,
        }


@dataclass
class BlockSplit:
    """
    Result of segmenting a document.

    separators[i] is the exact text preceding blocks[i] (blank lines and
    trimmed whitespace); trailer is whatever follows the last block.
    """
    header: str
    blocks: List[Block] = field(default_factory=list)
    separators: List[str] = field(default_factory=list)
    trailer: str = ""

    @property
    def body(self) -> str:
        parts: List[str] = []
        for sep, block in zip(self.separators, self.blocks):
            parts.append(sep)
            parts.append(block.text)
        parts.append(self.trailer)
        return "".join(parts)

    def __len__(self) -> int:
        return len(self.blocks)

    def get(self, number: int) -> Optional[Block]:
        """Return block by 1-based number, or None when out of range."""
        if 1 <= number <= len(self.blocks):
            return self.blocks[number - 1]
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header": self.header,
            "blocks": [b.to_dict() for b in self.blocks],
            "separators": list(self.separators),
            "trailer": self.trailer,
        }


# ---------------------------------------------------------------------------
# Changes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChangeRecord:
    """
    One inline change parsed from annotated text.

    deleted/inserted are None when absent (an empty body counts as absent).
    span is the exact matched markup, text[start:end] == span.
    """
    index: int
    rationale: str
    deleted: Optional[str]
    inserted: Optional[str]
    span: str
    start: int
    end: int

    @property
    def is_empty(self) -> bool:
        return self.deleted is None and self.inserted is None

    @property
    def kind(self) -> str:
        if self.deleted is not None and self.inserted is not None:
            return "replace"
        if self.deleted is not None:
            return "delete"
        if self.inserted is not None:
            return "insert"
        return "empty"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "rationale": self.rationale,
            "deleted": self.deleted,
            "inserted": self.inserted,
            "span": self.span,
            "start": self.start,
            "end": self.end,
        }


# ---------------------------------------------------------------------------
# Model output
# ---------------------------------------------------------------------------

@dataclass
class Judgment:
    """Model verdict for one numbered block."""
    block_number: int
    content: str

    @property
    def status(self) -> BlockStatus:
        if self.content.strip().lower() == "lgtm":
            return BlockStatus.LGTM
        return BlockStatus.CHANGES

    @property
    def is_lgtm(self) -> bool:
        return self.status == BlockStatus.LGTM

    def to_dict(self) -> Dict[str, Any]:
        return {
            "block_number": self.block_number,
            "content": self.content,
            "status": self.status.value,
        }


@dataclass
class ReconstructResult:
    """Annotated document plus the non-fatal warnings raised building it."""
    annotated: str
    warnings: List[str] = field(default_factory=list)
    judgments: Dict[int, Judgment] = field(default_factory=dict)

    @property
    def change_count(self) -> int:
        from strikemd.codec import parse_changes
        return len(parse_changes(self.annotated))


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Snapshot:
    """Undo history entry."""
    annotated: Optional[str]
    plain: str
    changes: tuple


@dataclass
class SaveResult:
    """Outcome of one persistence write."""
    ok: bool
    error: Optional[str] = None


@dataclass
class MutationResult:
    """
    Outcome of a session operation.

    saved is None when no write was attempted (failed or no-op operation).
    """
    success: bool
    plain: str
    annotated: Optional[str]
    pending: int
    saved: Optional[bool] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "plain": self.plain,
            "annotated": self.annotated,
            "pending": self.pending,
            "saved": self.saved,
            "errors": list(self.errors),
        }
