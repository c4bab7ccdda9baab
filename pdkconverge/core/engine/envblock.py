"""
Env block text operations (pure).

An env block is the tool-owned region of a shell startup file:

    # BEGIN SKY130 ENV
    export PDK_ROOT="..."
    # END SKY130 ENV

Insertion is strip-then-append: every existing block with the same
markers (and every stray legacy line) is removed, then exactly one
fresh block goes at the end of the file. Inserting the same body
again returns byte-identical text.

No I/O here. Callers read the file, transform the text and decide
whether to write it back.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field


@dataclass
class BlockScan:
    """What a startup file currently holds."""

    bodies: list[str] = field(default_factory=list)
    legacy_lines: list[str] = field(default_factory=list)
    orphans: int = 0

    @property
    def count(self) -> int:
        return len(self.bodies)


def _spans(lines: list[str], begin: str, end: str) -> list[tuple[int, int]]:
    """Inclusive (start, stop) line indexes of every complete block.

    A BEGIN line without a matching END is not a block; only the
    orphan marker line itself is reported, as a one-line span.
    """
    spans: list[tuple[int, int]] = []
    i = 0
    while i < len(lines):
        if lines[i].strip() == begin:
            stop = next((j for j in range(i + 1, len(lines)) if lines[j].strip() == end), None)
            if stop is None:
                spans.append((i, i))
                i += 1
                continue
            spans.append((i, stop))
            i = stop + 1
            continue
        i += 1
    return spans


def _compile(patterns: Sequence[str]) -> list[re.Pattern[str]]:
    return [re.compile(p) for p in patterns]


def scan(text: str, begin: str, end: str, legacy_patterns: Sequence[str] = ()) -> BlockScan:
    """Find block bodies and legacy lines outside any block."""
    lines = text.split("\n")
    spans = _spans(lines, begin, end)
    inside: set[int] = set()
    result = BlockScan()
    for start, stop in spans:
        inside.update(range(start, stop + 1))
        if stop > start:
            result.bodies.append("\n".join(lines[start + 1:stop]))
        else:
            result.orphans += 1
    compiled = _compile(legacy_patterns)
    for idx, line in enumerate(lines):
        if idx in inside:
            continue
        if any(p.search(line) for p in compiled):
            result.legacy_lines.append(line)
    return result


def strip_blocks(
    text: str, begin: str, end: str, legacy_patterns: Sequence[str] = (),
) -> str:
    """Remove every block and legacy line. Trailing blank lines collapse."""
    lines = text.split("\n")
    drop: set[int] = set()
    for start, stop in _spans(lines, begin, end):
        drop.update(range(start, stop + 1))
    compiled = _compile(legacy_patterns)
    kept = [
        line for idx, line in enumerate(lines)
        if idx not in drop and not any(p.search(line) for p in compiled)
    ]
    out = "\n".join(kept).rstrip("\n")
    return out + "\n" if out else ""


def render_block(begin: str, body: str, end: str) -> str:
    return f"{begin}\n{body.strip(chr(10))}\n{end}\n"


def insert_block(
    text: str,
    begin: str,
    end: str,
    body: str,
    legacy_patterns: Sequence[str] = (),
) -> str:
    """Strip, then append exactly one block separated by a blank line."""
    base = strip_blocks(text, begin, end, legacy_patterns)
    block = render_block(begin, body, end)
    if not base:
        return block
    return base + "\n" + block


def is_converged(
    text: str, begin: str, end: str, body: str, legacy_patterns: Sequence[str] = (),
) -> bool:
    """Exactly one block with ``body`` and no legacy lines left."""
    found = scan(text, begin, end, legacy_patterns)
    return (
        found.count == 1
        and found.bodies[0] == body.strip("\n")
        and not found.legacy_lines
        and not found.orphans
    )
