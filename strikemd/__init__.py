"""
strikemd: reversible, reviewable Markdown annotation.

A document is split into numbered blocks, sent to a text-generation service
together with a named check, and the streamed answer is turned into inline
change tags that can be accepted or rejected one by one. Rejecting every
change always gives back the exact original text.

Main entry points:
    split_into_blocks()   Block segmentation (segmenter)
    parse_changes()       Tag scanner (codec)
    recover_original()    Round-trip recovery (codec)
    ReviewSession         Accept/reject/undo over one document (session)
    run_annotation()      One streamed annotation run (runner)
"""

__version__ = "0.3.0"

from strikemd.codec import (
    accept_all,
    apply_decisions,
    normalize,
    parse_changes,
    recover_original,
    serialize_change,
)
from strikemd.models import (
    Block,
    BlockSplit,
    ChangeRecord,
    Decision,
    OutputMode,
)
from strikemd.segmenter import join_blocks, split_into_blocks
from strikemd.session import ReviewSession, RunInProgressError
from strikemd.validator import validate

__all__ = [
    "__version__",
    "Block",
    "BlockSplit",
    "ChangeRecord",
    "Decision",
    "OutputMode",
    "ReviewSession",
    "RunInProgressError",
    "accept_all",
    "apply_decisions",
    "join_blocks",
    "normalize",
    "parse_changes",
    "recover_original",
    "serialize_change",
    "split_into_blocks",
    "validate",
]
