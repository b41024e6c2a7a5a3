"""
PATCHBAY Response Parser

Turns a model's markdown reply into an ordered list of per-file change
instructions. The reply format is:

    --- FILE: src/utils.ts ---
    action: replace
    lines: 10-15
    ```ts
    ...code...
    ```

Parsing is a small line-driven state machine:

    SEEKING_HEADER ──header──▶ SEEKING_FENCE_OR_META ──```──▶ IN_FENCE
          ▲                                                      │
          └──────────────────────── closing ``` ─────────────────┘

Anything that does not fit is skipped, never raised. Partial replies
(cancelled streams, truncated output) yield the complete entries seen so far.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

Action = Literal["replace", "append", "prepend", "insert"]
ACTIONS: tuple[str, ...] = ("replace", "append", "prepend", "insert")

HEADER_RE = re.compile(r"---\s*FILE:\s*(?P<path>.*?)\s*---\s*$")
ACTION_RE = re.compile(r"^\s*action\s*:\s*(?P<action>\S+)\s*$", re.IGNORECASE)
LINES_RE = re.compile(r"^\s*lines\s*:\s*(?P<start>\d+)\s*(?:-\s*(?P<end>\d+))?\s*$", re.IGNORECASE)
FENCE_OPEN_RE = re.compile(r"^\s*(?P<ticks>`{3,})")
FENCE_CLOSE_RE = re.compile(r"^\s*(?P<ticks>`{3,})\s*$")


class ChangeInstruction(BaseModel):
    """One requested mutation to one file. `file_path` is untrusted."""
    model_config = ConfigDict(frozen=True)

    file_path: str
    action: Action = "replace"
    line_start: int | None = None
    line_end: int | None = None
    code: str = ""

    @property
    def has_range(self) -> bool:
        return self.line_start is not None


class ParseReport(BaseModel):
    instructions: list[ChangeInstruction] = Field(default_factory=list)
    incomplete: bool = False  # reply ended inside an entry
    skipped: list[str] = Field(default_factory=list)  # reasons for dropped entries


class _State(Enum):
    SEEKING_HEADER = "seeking_header"
    SEEKING_FENCE_OR_META = "seeking_fence_or_meta"
    IN_FENCE = "in_fence"


class _Pending:
    """Header + metadata collected for the entry currently being parsed."""

    def __init__(self, file_path: str):
        self.file_path = file_path
        self.action: str = "replace"
        self.line_start: int | None = None
        self.line_end: int | None = None
        self.problem: str | None = None
        self.fence_ticks = 0
        self.body: list[str] = []


def _match_header(line: str) -> str | None:
    match = HEADER_RE.search(line)
    if not match:
        return None
    path = match["path"].strip()
    return path or None


def _read_meta(pending: _Pending, line: str) -> None:
    action_match = ACTION_RE.match(line)
    if action_match:
        action = action_match["action"].lower()
        if action in ACTIONS:
            pending.action = action
        else:
            pending.problem = f"unknown action '{action}' for {pending.file_path}"
        return

    lines_match = LINES_RE.match(line)
    if lines_match:
        start = int(lines_match["start"])
        end = int(lines_match["end"]) if lines_match["end"] else start
        if start < 1 or end < start:
            pending.problem = f"invalid line range {start}-{end} for {pending.file_path}"
        else:
            pending.line_start, pending.line_end = start, end


def parse_report(markdown: str) -> ParseReport:
    """Parse `markdown` and report what was dropped along the way."""
    report = ParseReport()
    if not isinstance(markdown, str) or not markdown:
        return report

    state = _State.SEEKING_HEADER
    pending: _Pending | None = None

    for line in markdown.splitlines(keepends=True):
        if state is _State.SEEKING_HEADER:
            path = _match_header(line)
            if path:
                pending = _Pending(path)
                state = _State.SEEKING_FENCE_OR_META

        elif state is _State.SEEKING_FENCE_OR_META:
            path = _match_header(line)
            if path:
                logger.debug(f"[PARSER] Header for {pending.file_path} had no code block")
                report.skipped.append(f"no code block for {pending.file_path}")
                pending = _Pending(path)
                continue

            fence = FENCE_OPEN_RE.match(line)
            if fence:
                pending.fence_ticks = len(fence["ticks"])
                state = _State.IN_FENCE
            else:
                _read_meta(pending, line)

        elif state is _State.IN_FENCE:
            close = FENCE_CLOSE_RE.match(line)
            if close and len(close["ticks"]) >= pending.fence_ticks:
                if pending.problem:
                    logger.warning(f"[PARSER] Skipping entry: {pending.problem}")
                    report.skipped.append(pending.problem)
                else:
                    report.instructions.append(ChangeInstruction(
                        file_path=pending.file_path,
                        action=pending.action,
                        line_start=pending.line_start,
                        line_end=pending.line_end,
                        code="".join(pending.body),
                    ))
                pending = None
                state = _State.SEEKING_HEADER
            else:
                pending.body.append(line)

    if state is not _State.SEEKING_HEADER:
        report.incomplete = True
        logger.warning(f"[PARSER] Reply ended inside the entry for {pending.file_path}")

    logger.debug(
        f"[PARSER] {len(report.instructions)} instructions, "
        f"{len(report.skipped)} skipped, incomplete={report.incomplete}"
    )
    return report


def parse(markdown: str) -> list[ChangeInstruction]:
    """Extract change instructions from a model reply, in document order."""
    return parse_report(markdown).instructions
