"""
Jinja2 prompt templates for annotation runs.

Provides render_prompt() which loads .j2 templates from this directory,
and build_messages() which assembles the system and user messages for
one run.
"""

from pathlib import Path
from typing import Any, Sequence, Tuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from strikemd.models import Block, OutputMode
from strikemd.segmenter import format_blocks_for_model

import logging

logger = logging.getLogger(__name__)

_TEMPLATE_DIR = Path(__file__).parent

_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    autoescape=False,  # Plain text prompts, not HTML
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
    undefined=StrictUndefined,
)

_SYSTEM_TEMPLATES = {
    OutputMode.FULL: "annotate_full.j2",
    OutputMode.COMPACT: "annotate_compact.j2",
}


def render_prompt(template_name: str, **kwargs: Any) -> str:
    """
    Render a prompt template with the given variables.

    Args:
        template_name: Template filename (e.g. "annotate_full.j2")
        **kwargs: Variables to pass to the template

    Returns:
        Rendered prompt string
    """
    template = _env.get_template(template_name)
    return template.render(**kwargs)


def build_messages(
    check_prompt: str,
    blocks: Sequence[Block],
    mode: OutputMode = OutputMode.FULL,
) -> Tuple[str, str]:
    """Return (system, user) messages for one annotation run."""
    mode = OutputMode.parse(mode)
    system = render_prompt(_SYSTEM_TEMPLATES[mode], check_prompt=check_prompt.strip())
    user = render_prompt(
        "user.j2",
        block_count=len(blocks),
        blocks=format_blocks_for_model(blocks),
    )
    logger.debug(
        f"[prompts] {mode.value} prompt: system={len(system)} chars, user={len(user)} chars"
    )
    return system, user


def list_templates():
    """List available prompt templates."""
    return sorted(p.name for p in _TEMPLATE_DIR.glob("*.j2"))
