"""
Named review checks.

A checks file is Markdown: every "# name" heading opens a check and the
text under it is the instruction sent to the generation service. The
built-in defaults live next to this module; a project can add or
override checks in .strikemd/checks.md, or in the file named by the
checks_file setting. Checks are re-read on every call
to load_checks(), so edits apply to the next run.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union
import re

import logging

logger = logging.getLogger(__name__)

DEFAULTS_PATH = Path(__file__).parent / "defaults.md"
PROJECT_CHECKS = Path(".strikemd") / "checks.md"

_SECTION_RE = re.compile(r"^# ", re.MULTILINE)


class UnknownCheckError(KeyError):
    """Raised when a run names a check that does not exist."""

    def __init__(self, name: str, available=()):
        self.name = name
        self.available = sorted(available)
        super().__init__(name)

    def __str__(self) -> str:
        listing = ", ".join(self.available) or "none"
        return f"Unknown check {self.name!r} (available: {listing})"


@dataclass(frozen=True)
class Check:
    """A named instruction for the generation service."""
    name: str
    prompt: str
    source: str = ""


def parse_checks_markdown(content: str, source: str = "") -> Dict[str, Check]:
    """
    Parse a checks file into {name: Check}.

    Sections without a name or without instruction text are skipped.
    """
    checks: Dict[str, Check] = {}
    sections = _SECTION_RE.split(content)
    if not content.startswith("# "):
        sections = sections[1:]     # text before the first heading
    for section in sections:
        if "\n" not in section:
            continue
        name, _, prompt = section.partition("\n")
        name, prompt = name.strip(), prompt.strip()
        if name and prompt:
            checks[name] = Check(name=name, prompt=prompt, source=source)
    return checks


def _project_checks_path(
    project_root: Optional[Union[str, Path]],
    checks_file: Optional[Union[str, Path]],
) -> Optional[Path]:
    path = Path(checks_file) if checks_file is not None else PROJECT_CHECKS
    if path.is_absolute():
        return path
    if project_root is None:
        return None
    return Path(project_root) / path


def load_checks(
    project_root: Optional[Union[str, Path]] = None,
    checks_file: Optional[Union[str, Path]] = None,
) -> Dict[str, Check]:
    """
    Load built-in checks merged with the project's own.

    Args:
        project_root: Directory holding .strikemd/ (None: defaults only)
        checks_file: Project checks file, relative paths resolved against
            project_root (default: .strikemd/checks.md)

    Returns:
        {name: Check}, project checks overriding defaults by name
    """
    checks = parse_checks_markdown(
        DEFAULTS_PATH.read_text(encoding="utf-8"), source="defaults"
    )
    user_path = _project_checks_path(project_root, checks_file)
    if user_path is not None:
        if not user_path.is_file():
            if checks_file is not None and Path(checks_file) != PROJECT_CHECKS:
                logger.warning(f"[checks] checks file not found: {user_path}")
        else:
            user_checks = parse_checks_markdown(
                user_path.read_text(encoding="utf-8"), source=str(user_path)
            )
            logger.debug(f"[checks] {len(user_checks)} project check(s) from {user_path}")
            checks.update(user_checks)
    return checks


def get_check(
    name: str,
    project_root: Optional[Union[str, Path]] = None,
    checks_file: Optional[Union[str, Path]] = None,
) -> Check:
    """Fresh lookup of one check by name."""
    checks = load_checks(project_root, checks_file)
    if name not in checks:
        raise UnknownCheckError(name, checks.keys())
    return checks[name]
