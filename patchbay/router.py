"""
PATCHBAY Router: Completion Capability

The core only needs `complete(prompt, params) -> text | chunks`. This module
provides that capability through LiteLLM so the provider is a config string,
and tracks usage for reporting. Anything with the same `complete` signature
(e.g. a fake in tests) can stand in for it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Iterator, Protocol

import litellm
from loguru import logger
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential


# ---------------------------------------------------------------------------
# Params + Protocol
# ---------------------------------------------------------------------------

class CompletionParams(BaseModel):
    model: str
    max_tokens: int = 9000
    temperature: float = 0.5
    stream: bool = False


class CompletionBackend(Protocol):
    def complete(self, prompt: str, params: CompletionParams) -> str | Iterator[str]: ...


# ---------------------------------------------------------------------------
# Usage Tracking
# ---------------------------------------------------------------------------

@dataclass
class UsageTracker:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    call_count: int = 0
    last_latency_ms: int = 0

    def record(self, response: Any, latency_ms: int = 0) -> None:
        """Record usage from a LiteLLM response, if the provider reported any."""
        usage = getattr(response, "usage", None)
        if usage:
            self.prompt_tokens += getattr(usage, "prompt_tokens", 0) or 0
            self.completion_tokens += getattr(usage, "completion_tokens", 0) or 0
            self.total_tokens += getattr(usage, "total_tokens", 0) or 0
        self.call_count += 1
        self.last_latency_ms = latency_ms

    def summary(self) -> dict:
        return {
            "total_tokens": self.total_tokens,
            "call_count": self.call_count,
            "last_latency_ms": self.last_latency_ms,
        }


# ---------------------------------------------------------------------------
# Model capability helpers
# ---------------------------------------------------------------------------

def _is_o_series_model(model: str) -> bool:
    """OpenAI o-series reasoning models don't support temperature."""
    normalized = model.lower().replace("openai/", "")
    return normalized.startswith(("o1", "o3", "o4"))


def _build_kwargs(prompt: str, params: CompletionParams) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "model": params.model,
        "messages": [{"role": "user", "content": prompt}],
        "max_tokens": params.max_tokens,
    }
    if not _is_o_series_model(params.model):
        kwargs["temperature"] = params.temperature
    if params.stream:
        kwargs["stream"] = True
    return kwargs


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class Router:
    """LiteLLM-backed CompletionBackend."""

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout
        self.usage = UsageTracker()
        litellm.suppress_debug_info = True

    def complete(self, prompt: str, params: CompletionParams) -> str | Iterator[str]:
        """Send `prompt` to the configured model.

        Returns the full reply text, or an iterator of text chunks when
        `params.stream` is set.
        """
        logger.debug(f"[ROUTER] → {params.model} (stream={params.stream}, {len(prompt)} chars)")
        if params.stream:
            return self._stream(prompt, params)
        return self._complete_text(prompt, params)

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(min=1, max=10), reraise=True)
    def _complete_text(self, prompt: str, params: CompletionParams) -> str:
        start = time.monotonic()
        response = litellm.completion(timeout=self.timeout, **_build_kwargs(prompt, params))
        elapsed_ms = int((time.monotonic() - start) * 1000)
        self.usage.record(response, elapsed_ms)

        content = response.choices[0].message.content or ""
        logger.debug(f"[ROUTER] {params.model} complete, {len(content)} chars, {elapsed_ms}ms")
        return content

    def _stream(self, prompt: str, params: CompletionParams) -> Iterator[str]:
        start = time.monotonic()
        response = litellm.completion(timeout=self.timeout, **_build_kwargs(prompt, params))
        chunks = 0
        try:
            for chunk in response:
                choices = getattr(chunk, "choices", None) or []
                delta = getattr(choices[0], "delta", None) if choices else None
                content = getattr(delta, "content", None) if delta else None
                if content:
                    chunks += 1
                    yield content
        finally:
            self.usage.record(None, int((time.monotonic() - start) * 1000))
            logger.debug(f"[ROUTER] Stream from {params.model} closed after {chunks} chunks")
