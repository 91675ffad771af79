"""
Persistence sinks: where the plain text goes after every resolution.

A sink reports failure through SaveResult and never raises for I/O
problems; the session keeps its in-memory state either way.
"""

from pathlib import Path
from typing import List, Protocol, Union

from strikemd.models import SaveResult, content_hash

import logging

logger = logging.getLogger(__name__)


class PersistenceSink(Protocol):
    """Anything with save(text) -> SaveResult."""

    def save(self, text: str) -> SaveResult:
        ...


class FileSink:
    """Write UTF-8 text to a file, replacing it atomically."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def save(self, text: str) -> SaveResult:
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp.write_text(text, encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            logger.error(f"[persistence] failed to write {self.path}: {e}")
            return SaveResult(ok=False, error=str(e))
        logger.debug(f"[persistence] wrote {self.path} ({content_hash(text)[:19]})")
        return SaveResult(ok=True)

    def __repr__(self) -> str:
        return f"FileSink({str(self.path)!r})"


class MemorySink:
    """Keep every saved text in memory (history of writes)."""

    def __init__(self):
        self.saved: List[str] = []

    @property
    def last(self) -> str:
        return self.saved[-1] if self.saved else ""

    def save(self, text: str) -> SaveResult:
        self.saved.append(text)
        return SaveResult(ok=True)
