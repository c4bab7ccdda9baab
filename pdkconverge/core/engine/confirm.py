"""
Confirm — operator consent for installing and removing.

Only an explicit ``y`` / ``yes`` approves. Empty input, anything else
and end-of-input all mean no.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pdkconverge.core.engine.planner import PlanEntry

logger = logging.getLogger(__name__)

_YES = frozenset({"y", "yes"})


class Confirmer:
    """Ask before acting, unless the run is non-interactive."""

    def __init__(
        self,
        *,
        assume_yes: bool = False,
        input_fn: Callable[[str], str] = input,
    ):
        self.assume_yes = assume_yes
        self._input = input_fn
        self.asked: list[str] = []

    def approve(self, entry: PlanEntry) -> bool:
        """Whether ``entry`` may run."""
        if not entry.needs_confirm:
            return True
        if self.assume_yes:
            logger.debug("auto-approved: %s", entry.describe())
            return True

        question = f"{entry.describe()}? [y/N] "
        self.asked.append(entry.name)
        try:
            answer = self._input(question)
        except EOFError:
            logger.info("No answer for %s (end of input), treating as no", entry.name)
            return False
        approved = answer.strip().lower() in _YES
        logger.info("confirm %s: %s", entry.name, "yes" if approved else "no")
        return approved
