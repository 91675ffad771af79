"""
Inline change tags: scanner, resolution and canonical serialization.

Canonical form of one change:

    <strike comment="why"><del>old</del><ins>new</ins></strike>

with either sub-span optional. Also accepted on input:

    - <strike> with <ins> before <del>
    - <del comment="why" replace-with="new">old</del>
    - <del comment="why">old</del><ins comment="why">new</ins>   (adjacent)
    - <ins comment="why">new</ins>

Attribute values escape & and " as entities; bodies are raw text.
The scanner is leftmost-first and non-overlapping: after a span matches,
scanning resumes at its end; a tag that does not complete a span is left
in the text as literal markup.
"""

import re
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from strikemd.models import ChangeRecord, Decision

import logging

logger = logging.getLogger(__name__)


class OverlappingChangesError(Exception):
    """Raised when changes handed to a resolver overlap or are out of order."""
    pass


# ---------------------------------------------------------------------------
# Attribute escaping
# ---------------------------------------------------------------------------

def escape_attr(value: str) -> str:
    """Escape a rationale or replace-with value for a double-quoted attribute."""
    return value.replace("&", "&amp;").replace('"', "&quot;")


def unescape_attr(value: str) -> str:
    """Inverse of escape_attr; other entities are left untouched."""
    return value.replace("&quot;", '"').replace("&amp;", "&")


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

_OPEN_RE = re.compile(r'<(strike|del|ins)((?:\s+[\w-]+="[^"]*")*)\s*>')
_ATTR_RE = re.compile(r'([\w-]+)="([^"]*)"')
_SUB_OPEN_RE = re.compile(r"<(del|ins)\s*>")
_STRIKE_CLOSE_RE = re.compile(r"\s*</strike>")
_WS_RE = re.compile(r"\s*")

# Any tag of the grammar, used to detect leftovers after recovery
RESIDUAL_RE = re.compile(r"</?(?:strike|del|ins)\b[^>]*>")


def _attrs(raw: str) -> Dict[str, str]:
    return {k: unescape_attr(v) for k, v in _ATTR_RE.findall(raw)}


def _body(text: str, start: int, tag: str) -> Optional[Tuple[str, int]]:
    """Raw body from start to the first closing tag; (body, end) or None."""
    close = f"</{tag}>"
    idx = text.find(close, start)
    if idx < 0:
        return None
    return text[start:idx], idx + len(close)


def _present(value: Optional[str]) -> Optional[str]:
    return value if value else None


def _match_strike(text: str, m: "re.Match") -> Optional[Tuple[str, Optional[str], Optional[str], int]]:
    attrs = _attrs(m.group(2))
    if "comment" not in attrs:
        return None
    parts: Dict[str, str] = {}
    pos = _WS_RE.match(text, m.end()).end()
    while len(parts) < 2:
        sub = _SUB_OPEN_RE.match(text, pos)
        if not sub or sub.group(1) in parts:
            break
        found = _body(text, sub.end(), sub.group(1))
        if found is None:
            return None
        parts[sub.group(1)], pos = found
        pos = _WS_RE.match(text, pos).end()
    close = _STRIKE_CLOSE_RE.match(text, pos)
    if not close:
        return None
    return (
        attrs["comment"],
        _present(parts.get("del")),
        _present(parts.get("ins")),
        close.end(),
    )


def _match_ins(text: str, m: "re.Match") -> Optional[Tuple[str, Optional[str], Optional[str], int]]:
    attrs = _attrs(m.group(2))
    if "comment" not in attrs:
        return None
    found = _body(text, m.end(), "ins")
    if found is None:
        return None
    body, end = found
    return attrs["comment"], None, _present(body), end


def _match_del(text: str, m: "re.Match") -> Optional[Tuple[str, Optional[str], Optional[str], int]]:
    attrs = _attrs(m.group(2))
    if "comment" not in attrs:
        return None
    found = _body(text, m.end(), "del")
    if found is None:
        return None
    body, end = found
    rationale = attrs["comment"]
    if "replace-with" in attrs:
        return rationale, _present(body), _present(attrs["replace-with"]), end

    # Adjacent standalone insertion completes a replacement
    sibling = _OPEN_RE.match(text, end)
    if sibling and sibling.group(1) == "ins":
        ins = _match_ins(text, sibling)
        if ins is not None:
            ins_rationale, _, inserted, ins_end = ins
            return rationale or ins_rationale, _present(body), inserted, ins_end
    return rationale, _present(body), None, end


_MATCHERS: Dict[str, Callable] = {
    "strike": _match_strike,
    "del": _match_del,
    "ins": _match_ins,
}


def iter_changes(text: str) -> Iterator[ChangeRecord]:
    """Yield changes in document order with offsets into text."""
    pos = 0
    index = 0
    while True:
        m = _OPEN_RE.search(text, pos)
        if not m:
            return
        matched = _MATCHERS[m.group(1)](text, m)
        if matched is None:
            pos = m.start() + 1
            continue
        rationale, deleted, inserted, end = matched
        yield ChangeRecord(
            index=index,
            rationale=rationale,
            deleted=deleted,
            inserted=inserted,
            span=text[m.start():end],
            start=m.start(),
            end=end,
        )
        index += 1
        pos = end


def parse_changes(text: str) -> List[ChangeRecord]:
    """Parse every change in text; index is the order of appearance."""
    return list(iter_changes(text))


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def serialize_change(
    rationale: str,
    deleted: Optional[str] = None,
    inserted: Optional[str] = None,
) -> str:
    """Render one change in canonical form."""
    inner = ""
    if deleted:
        inner += f"<del>{deleted}</del>"
    if inserted:
        inner += f"<ins>{inserted}</ins>"
    return f'<strike comment="{escape_attr(rationale)}">{inner}</strike>'


def canonical(change: ChangeRecord) -> str:
    return serialize_change(change.rationale, change.deleted, change.inserted)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def _rewrite(
    text: str,
    changes: List[ChangeRecord],
    replace: Callable[[ChangeRecord], str],
) -> str:
    pieces: List[str] = []
    cursor = 0
    for change in changes:
        if change.start < cursor:
            raise OverlappingChangesError(
                f"Change {change.index} starts at {change.start}, "
                f"inside a previous change ending at {cursor}"
            )
        pieces.append(text[cursor:change.start])
        pieces.append(replace(change))
        cursor = change.end
    pieces.append(text[cursor:])
    return "".join(pieces)


def recover_original(text: str) -> str:
    """Reject every change: each span becomes its deleted text."""
    return _rewrite(text, parse_changes(text), lambda c: c.deleted or "")


def accept_all(text: str, overrides: Optional[Mapping[int, str]] = None) -> str:
    """
    Accept every change: each span becomes its inserted text.

    Args:
        text: Annotated text
        overrides: Optional replacement insertion text per change index
    """
    overrides = overrides or {}
    return _rewrite(
        text,
        parse_changes(text),
        lambda c: overrides.get(c.index, c.inserted or ""),
    )


def resolve_change(
    text: str,
    change: ChangeRecord,
    accept: bool,
    inserted: Optional[str] = None,
) -> str:
    """
    Splice one change out of the text it was parsed from.

    Args:
        text: The exact string change was parsed from
        change: Change to resolve
        accept: True keeps the insertion, False keeps the deletion
        inserted: Replacement insertion text (accept only)
    """
    if text[change.start:change.end] != change.span:
        raise OverlappingChangesError(
            f"Change {change.index} offsets do not match the given text"
        )
    if accept:
        value = inserted if inserted is not None else (change.inserted or "")
    else:
        value = change.deleted or ""
    return text[:change.start] + value + text[change.end:]


def apply_decisions(
    text: str,
    decisions: Mapping[int, Union[Decision, str]],
    overrides: Optional[Mapping[int, str]] = None,
) -> str:
    """
    Resolve several changes in one pass.

    Changes absent from decisions, or marked pending, keep their markup.
    """
    overrides = overrides or {}

    def replace(c: ChangeRecord) -> str:
        decision = Decision(decisions.get(c.index, Decision.PENDING))
        if decision == Decision.ACCEPTED:
            return overrides.get(c.index, c.inserted or "")
        if decision == Decision.REJECTED:
            return c.deleted or ""
        return c.span

    return _rewrite(text, parse_changes(text), replace)


def normalize(text: str) -> str:
    """Rewrite every change span in canonical form; recovery is unchanged."""
    return _rewrite(text, parse_changes(text), canonical)
