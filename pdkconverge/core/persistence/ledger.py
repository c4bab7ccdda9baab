"""
Outcome ledger — append-only record of one run.

Every resource outcome is written as a single JSON line (NDJSON) next
to the run log, so the summary of a run can be checked by tools
without parsing log text.

The ledger is append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pdkconverge.core.models.outcome import Outcome

logger = logging.getLogger(__name__)


class OutcomeLedger:
    """Append-only outcome writer.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist.
    """

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, outcome: Outcome, run_id: str = "") -> None:
        """Append an outcome to the ledger."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = outcome.model_dump(mode="json")
        if run_id:
            data["run_id"] = run_id
        line = json.dumps(data, ensure_ascii=False)
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
        logger.debug("Ledger entry: %s → %s", outcome.resource, outcome.state)

    def read_all(self) -> list[dict]:
        """Read all entries from the ledger."""
        if not self._path.is_file():
            return []

        entries: list[dict] = []
        with open(self._path, encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError as e:
                    logger.warning("Corrupt ledger line %d: %s", line_num, e)
        return entries
