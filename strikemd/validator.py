"""
Consistency sweep over annotated text.

Not a grammar checker: it reports changes that carry nothing to apply and
tag markup the scanner could not consume.
"""

from typing import List

from strikemd.codec import RESIDUAL_RE, parse_changes, recover_original

import logging

logger = logging.getLogger(__name__)


def validate(text: str) -> List[str]:
    """
    Check annotated text.

    Returns:
        List of problem descriptions (empty when consistent)
    """
    problems: List[str] = []

    for change in parse_changes(text):
        if change.is_empty:
            problems.append(
                f"Change {change.index}: has neither deletion nor insertion"
            )

    recovered = recover_original(text)
    leftovers = RESIDUAL_RE.findall(recovered)
    if leftovers:
        shown = ", ".join(sorted(set(leftovers))[:5])
        problems.append(
            f"Recovery left annotation artifacts ({shown}); tags may be malformed"
        )

    if problems:
        logger.debug(f"[validator] {len(problems)} problem(s)")
    return problems
