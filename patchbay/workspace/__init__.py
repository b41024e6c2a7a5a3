"""
PATCHBAY Workspace Confinement

Every file the applier touches goes through a Workspace. Paths emitted by
the model are untrusted: they are resolved against the workspace root and
rejected before any I/O if they are absolute or escape the root (via `..`
segments or symlinks).
"""

from __future__ import annotations

import os
from pathlib import Path, PureWindowsPath

from loguru import logger

from patchbay.errors import PathViolationError


class Workspace:
    """
    Trusted base directory for a batch of edits.
    """

    def __init__(self, root: Path | str):
        self.root = Path(os.path.abspath(root))

    def resolve(self, file_path: str) -> Path:
        """Map a model-supplied relative path to a concrete path under root.

        Raises:
            PathViolationError: If the path is empty, absolute, or leaves root.
        """
        if not isinstance(file_path, str) or not file_path.strip():
            raise PathViolationError("Empty file path")
        if "\x00" in file_path:
            raise PathViolationError(f"NUL byte in path: {file_path!r}")
        if self._is_absolute(file_path):
            raise PathViolationError(f"Absolute path not allowed: {file_path}")

        joined = os.path.normpath(os.path.join(self.root, file_path))
        if joined == str(self.root) or not self._is_within(joined, str(self.root)):
            raise PathViolationError(f"Path traversal detected: {file_path}")

        # Symlinks inside the tree must not lead out of it either
        real = os.path.realpath(joined)
        if not self._is_within(real, os.path.realpath(self.root)):
            raise PathViolationError(f"Path escapes workspace via symlink: {file_path}")

        return Path(joined)

    # ------------------------------------------------------------------
    # File I/O (UTF-8, newline translation off)
    # ------------------------------------------------------------------

    @staticmethod
    def read_text(path: Path) -> str:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()

    @staticmethod
    def write_text(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        logger.debug(f"[WORKSPACE] Wrote {len(content)} chars to {path}")

    @staticmethod
    def remove(path: Path) -> None:
        path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_absolute(file_path: str) -> bool:
        if os.path.isabs(file_path) or file_path.startswith(("/", "\\")):
            return True
        win = PureWindowsPath(file_path)
        return bool(win.drive) or win.is_absolute()

    @staticmethod
    def _is_within(candidate: str, root: str) -> bool:
        try:
            return os.path.commonpath([candidate, root]) == root
        except ValueError:
            return False
