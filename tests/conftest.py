from __future__ import annotations

from typing import Iterator

import pytest

from patchbay.router import CompletionParams


class FakeBackend:
    """Stands in for the completion service. Records every prompt it sees."""

    def __init__(self, reply: str | list[str] = "ok", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, CompletionParams]] = []

    def complete(self, prompt: str, params: CompletionParams) -> str | Iterator[str]:
        self.calls.append((prompt, params))
        if self.error:
            raise self.error
        if isinstance(self.reply, list):
            return iter(self.reply)
        return self.reply


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "workspace"
    root.mkdir()
    return root
