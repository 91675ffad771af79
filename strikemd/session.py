"""
Review session: the accept/reject/undo engine for one document.

A session owns the annotated text, the plain text derived from it, the
parsed change list and a bounded undo history. Every resolution splices
one or more change spans out of the annotated text, then re-derives plain
text and re-parses the change list; offsets are never patched in place.
After each resolution the plain text is handed to the persistence sink.

Annotation runs are guarded: begin_run() refuses to start a second run,
and resolutions are refused while a run is active.
"""

from collections import deque
from typing import Deque, List, Mapping, Optional

from strikemd.codec import accept_all, parse_changes, recover_original, resolve_change
from strikemd.models import ChangeRecord, MutationResult, SessionState, Snapshot
from strikemd.persistence import PersistenceSink

import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 50


class RunInProgressError(Exception):
    """Raised when an annotation run is requested while one is active."""
    pass


class ReviewSession:
    """
    Evolving plain/annotated text of one document.

    Args:
        text: Plain document text
        sink: Optional persistence sink, called after every resolution
        max_history: Undo depth; the oldest snapshot is evicted first
    """

    def __init__(
        self,
        text: str,
        sink: Optional[PersistenceSink] = None,
        max_history: int = DEFAULT_MAX_HISTORY,
    ):
        self.sink = sink
        self._plain = text
        self._annotated: Optional[str] = None
        self._changes: List[ChangeRecord] = []
        self._history: Deque[Snapshot] = deque(maxlen=max(1, max_history))
        self._running = False
        self.last_warnings: List[str] = []

    @classmethod
    def from_annotated(
        cls,
        annotated: str,
        sink: Optional[PersistenceSink] = None,
        max_history: int = DEFAULT_MAX_HISTORY,
    ) -> "ReviewSession":
        """Open a session on text that already carries change tags."""
        session = cls(recover_original(annotated), sink=sink, max_history=max_history)
        session._annotated = annotated
        session._changes = parse_changes(annotated)
        return session

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def plain(self) -> str:
        return self._plain

    @property
    def annotated(self) -> Optional[str]:
        return self._annotated

    @property
    def changes(self) -> List[ChangeRecord]:
        return list(self._changes)

    @property
    def pending(self) -> int:
        return len(self._changes)

    @property
    def state(self) -> SessionState:
        return SessionState.PENDING if self._changes else SessionState.PLAIN

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def history_depth(self) -> int:
        return len(self._history)

    # ------------------------------------------------------------------
    # Annotation runs
    # ------------------------------------------------------------------

    def begin_run(self) -> str:
        """
        Mark a run as active and return the text to annotate.

        Raises:
            RunInProgressError: If a run is already active
        """
        if self._running:
            raise RunInProgressError("An annotation run is already in progress")
        self._running = True
        logger.debug("[session] run started")
        return self._plain

    def complete_run(self, annotated: str, warnings: Optional[List[str]] = None) -> MutationResult:
        """
        Commit the annotated text of a finished run.

        The previous pending set is replaced, not merged. The pre-run state
        is pushed to history so undo can restore it.
        """
        if not self._running:
            return self._failure("No annotation run in progress")
        self._running = False
        self._push()
        self._set_annotated(annotated)
        self.last_warnings = list(warnings or [])
        logger.info(
            f"[session] run committed: {len(self._changes)} pending change(s), "
            f"{len(self.last_warnings)} warning(s)"
        )
        return self._result(saved=None)

    def abort_run(self) -> None:
        """Release the run guard without committing anything."""
        if self._running:
            logger.debug("[session] run aborted")
        self._running = False

    # ------------------------------------------------------------------
    # Resolutions
    # ------------------------------------------------------------------

    def accept(self, index: int, inserted: Optional[str] = None) -> MutationResult:
        """
        Accept change index, optionally with edited insertion text.
        """
        refused = self._refuse(index)
        if refused:
            return refused
        change = self._changes[index]
        updated = resolve_change(self._annotated, change, accept=True, inserted=inserted)
        logger.debug(f"[session] accept #{index}: {change.rationale!r}")
        return self._commit(updated)

    def reject(self, index: int) -> MutationResult:
        """Reject change index, restoring its deleted text."""
        refused = self._refuse(index)
        if refused:
            return refused
        change = self._changes[index]
        updated = resolve_change(self._annotated, change, accept=False)
        logger.debug(f"[session] reject #{index}: {change.rationale!r}")
        return self._commit(updated)

    def accept_all(self, overrides: Optional[Mapping[int, str]] = None) -> MutationResult:
        """Accept every pending change; overrides maps index to edited text."""
        if self._running:
            return self._failure("Annotation run in progress")
        if not self._changes:
            return self._result(saved=None)
        logger.debug(f"[session] accept all ({len(self._changes)})")
        return self._commit(accept_all(self._annotated, overrides))

    def reject_all(self) -> MutationResult:
        """Reject every pending change."""
        if self._running:
            return self._failure("Annotation run in progress")
        if not self._changes:
            return self._result(saved=None)
        logger.debug(f"[session] reject all ({len(self._changes)})")
        return self._commit(recover_original(self._annotated))

    def undo(self) -> MutationResult:
        """Restore the most recent snapshot; no-op when history is empty."""
        if self._running:
            return self._failure("Annotation run in progress")
        if not self._history:
            return self._result(saved=None)
        snap = self._history.pop()
        self._annotated = snap.annotated
        self._plain = snap.plain
        self._changes = list(snap.changes)
        logger.debug(f"[session] undo ({len(self._history)} snapshot(s) left)")
        return self._persist()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _push(self) -> None:
        self._history.append(Snapshot(
            annotated=self._annotated,
            plain=self._plain,
            changes=tuple(self._changes),
        ))

    def _set_annotated(self, annotated: str) -> None:
        self._annotated = annotated
        self._changes = parse_changes(annotated)
        self._plain = recover_original(annotated)

    def _commit(self, annotated: str) -> MutationResult:
        self._push()
        self._set_annotated(annotated)
        return self._persist()

    def _persist(self) -> MutationResult:
        if self.sink is None:
            return self._result(saved=None)
        outcome = self.sink.save(self._plain)
        if outcome.ok:
            return self._result(saved=True)
        logger.warning(f"[session] save failed: {outcome.error}")
        return self._result(saved=False, errors=[f"Save failed: {outcome.error}"])

    def _refuse(self, index: int) -> Optional[MutationResult]:
        if self._running:
            return self._failure("Annotation run in progress")
        if self._annotated is None or not 0 <= index < len(self._changes):
            return self._failure(f"No pending change with index {index}")
        return None

    def _result(self, saved: Optional[bool], errors: Optional[List[str]] = None) -> MutationResult:
        return MutationResult(
            success=True,
            plain=self._plain,
            annotated=self._annotated,
            pending=len(self._changes),
            saved=saved,
            errors=list(errors or []),
        )

    def _failure(self, message: str) -> MutationResult:
        return MutationResult(
            success=False,
            plain=self._plain,
            annotated=self._annotated,
            pending=len(self._changes),
            errors=[message],
        )
