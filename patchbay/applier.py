"""
PATCHBAY Patch Applier

Applies parsed ChangeInstructions to files under a workspace root.

  - The path check runs before any file I/O.
  - Each instruction is its own unit of failure; a failed file never stops
    the rest of the batch.
  - Nothing is rolled back automatically. ApplyReport.rollback() restores
    the batch when the caller asks for it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from loguru import logger
from pydantic import BaseModel, Field

from patchbay.errors import (
    FailureReason,
    PatchbayError,
    RangeInvalidError,
    TargetMissingError,
)
from patchbay.parser import ChangeInstruction
from patchbay.workspace import Workspace


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class ApplyResult(BaseModel):
    file_path: str
    action: str
    failure: FailureReason | None = None
    detail: str = ""
    created: bool = False
    # content before the write; None when the file was created
    previous_content: str | None = Field(default=None, repr=False)
    resolved_path: str | None = Field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def outcome(self) -> str:
        return "applied" if self.ok else self.failure.value


class ApplyReport(BaseModel):
    results: list[ApplyResult] = Field(default_factory=list)
    parse_incomplete: bool = False
    skipped: list[str] = Field(default_factory=list)

    @property
    def applied(self) -> list[ApplyResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[ApplyResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return bool(self.results) and not self.failed

    def summary(self) -> dict:
        return {
            "applied": len(self.applied),
            "failed": len(self.failed),
            "parse_incomplete": self.parse_incomplete,
            "skipped": len(self.skipped),
        }

    def rollback(self) -> list[str]:
        """Undo this batch's successful writes, newest first.

        Created files are removed; modified files get their prior content
        back. Returns the restored file paths.
        """
        restored: list[str] = []
        for result in reversed(self.applied):
            if not result.resolved_path:
                continue
            path = Path(result.resolved_path)
            try:
                if result.created:
                    Workspace.remove(path)
                else:
                    Workspace.write_text(path, result.previous_content or "")
                restored.append(result.file_path)
            except OSError as e:
                logger.error(f"[APPLY] Rollback failed for {result.file_path}: {e}")
        logger.info(f"[APPLY] Rolled back {len(restored)} file(s)")
        return restored


# ---------------------------------------------------------------------------
# Line splicing
# ---------------------------------------------------------------------------

def _newline_for(text: str) -> str:
    return "\r\n" if "\r\n" in text else "\n"


def _terminated(code: str, newline: str) -> str:
    """`code` with a trailing line ending, so following lines stay separate."""
    if code and not code.endswith(("\n", "\r")):
        return code + newline
    return code


def _splice(lines: list[str], start: int, end: int, code: str, newline: str) -> str:
    """Replace lines[start:end] (0-based, end exclusive) with `code`."""
    head = "".join(lines[:start])
    tail = "".join(lines[end:])
    if head and not head.endswith(("\n", "\r")):
        head += newline
    if tail:
        code = _terminated(code, newline)
    return head + code + tail


def render(instruction: ChangeInstruction, current: str | None) -> str:
    """Compute the new file content for `instruction`.

    `current` is None when the target does not exist yet.

    Raises:
        TargetMissingError: Range edit against a missing file.
        RangeInvalidError: Line numbers outside the file.
    """
    action = instruction.action
    exists = current is not None
    text = current or ""
    newline = _newline_for(text)
    lines = text.splitlines(keepends=True)
    count = len(lines)

    if action == "replace":
        if not instruction.has_range:
            return instruction.code
        if not exists:
            raise TargetMissingError(f"Cannot replace lines in missing file {instruction.file_path}")
        start, end = instruction.line_start, instruction.line_end or instruction.line_start
        if start > count:
            raise RangeInvalidError(
                f"Line {start} is past the end of {instruction.file_path} ({count} lines)"
            )
        return _splice(lines, start - 1, min(end, count), instruction.code, newline)

    if action == "append":
        return _splice(lines, count, count, instruction.code, newline)

    if action == "prepend":
        return _splice(lines, 0, 0, instruction.code, newline)

    if action == "insert":
        if instruction.line_start is None:
            return _splice(lines, count, count, instruction.code, newline)
        position = instruction.line_start
        if not exists and position > 1:
            raise TargetMissingError(
                f"Cannot insert at line {position} of missing file {instruction.file_path}"
            )
        if position > count + 1:
            raise RangeInvalidError(
                f"Insert point {position} is past the end of {instruction.file_path} ({count} lines)"
            )
        return _splice(lines, position - 1, position - 1, instruction.code, newline)

    raise ValueError(f"Unknown action: {action}")


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------

def apply(instruction: ChangeInstruction, workspace_root: Path | str | Workspace) -> ApplyResult:
    """Apply one instruction. Never raises for path, range or I/O problems."""
    workspace = workspace_root if isinstance(workspace_root, Workspace) else Workspace(workspace_root)
    result = ApplyResult(file_path=instruction.file_path, action=instruction.action)

    try:
        path = workspace.resolve(instruction.file_path)
        result.resolved_path = str(path)

        current = Workspace.read_text(path) if path.exists() else None
        new_content = render(instruction, current)
        Workspace.write_text(path, new_content)

        result.created = current is None
        result.previous_content = current
        result.detail = "created" if result.created else _describe(instruction)
        logger.info(f"[APPLY] {instruction.action.upper()} {instruction.file_path} ({result.detail})")

    except PatchbayError as e:
        result.failure = e.reason
        result.detail = str(e)
        log = logger.error if e.reason is FailureReason.PATH_VIOLATION else logger.warning
        log(f"[APPLY] {e.reason.value}: {e}")

    except (OSError, UnicodeError) as e:
        result.failure = FailureReason.IO_FAILURE
        result.detail = f"{type(e).__name__}: {e}"
        logger.warning(f"[APPLY] I/O failure on {instruction.file_path}: {e}")

    return result


def apply_all(
    instructions: Iterable[ChangeInstruction],
    workspace_root: Path | str | Workspace,
) -> ApplyReport:
    """Apply instructions strictly in order, isolating failures per file."""
    workspace = workspace_root if isinstance(workspace_root, Workspace) else Workspace(workspace_root)
    report = ApplyReport()
    for instruction in instructions:
        report.results.append(apply(instruction, workspace))

    logger.info(f"[APPLY] Batch done: {report.summary()}")
    return report


def _describe(instruction: ChangeInstruction) -> str:
    if instruction.action in ("replace", "insert") and instruction.has_range:
        if instruction.action == "insert":
            return f"at line {instruction.line_start}"
        return f"lines {instruction.line_start}-{instruction.line_end}"
    if instruction.action == "replace":
        return "full content"
    return instruction.action
