"""
PATCHBAY Controller

It is NOT smart. It is deterministic. It never edits code itself; it only
decides whether a request may go out and hands replies to the parser and
applier.

Request path:
  redact → cache key → cache (hit returns) → token budget → governor
  → completion → cache store

Apply path:
  parse_report → apply_all (document order, per-file isolation)

Budget and rate-limit refusals happen before the cache is touched for
writing, and a cache hit never consumes a governor admission.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Iterable

from loguru import logger
from pydantic import BaseModel

from patchbay.applier import ApplyReport, apply_all
from patchbay.cache import ResponseCache, cache_key
from patchbay.config_loader import PatchbayConfig
from patchbay.errors import FailureReason
from patchbay.event_bus import EventBus
from patchbay.governor import DEFAULT_CONTEXT, RequestGovernor
from patchbay.parser import parse_report
from patchbay.prompts import build_prompt
from patchbay.redact import redact
from patchbay.router import CompletionBackend, CompletionParams
from patchbay.tokens import estimate_tokens_sync


class RequestResult(BaseModel):
    text: str = ""
    failure: FailureReason | None = None
    detail: str = ""
    cached: bool = False
    cancelled: bool = False
    estimated_tokens: int = 0
    key: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None


class Controller:
    """
    Owns one request/apply pipeline. Cache and governor are shared services
    passed in, so several controllers (editor windows) can share them.
    """

    def __init__(
        self,
        config: PatchbayConfig,
        backend: CompletionBackend,
        cache: ResponseCache | None = None,
        governor: RequestGovernor | None = None,
        bus: EventBus | None = None,
    ):
        self.config = config
        self.backend = backend
        self.cache = cache if cache is not None else build_cache(config)
        self.governor = governor if governor is not None else build_governor(config)
        self.bus = bus if bus is not None else EventBus()

    # -----------------------------------------------------------------------
    # Request
    # -----------------------------------------------------------------------

    def request(
        self,
        code: str,
        language: str,
        action: str,
        context: str = DEFAULT_CONTEXT,
        aux_files: Iterable[str | Path] = (),
        agent_mode: bool = False,
        cancel: threading.Event | None = None,
    ) -> RequestResult:
        """Get a model reply for (code, language, action), from cache if possible."""
        redacted = redact(code)
        mode = f"{action}+agent" if agent_mode else action
        key = cache_key(redacted, language, mode)

        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"[CONTROLLER] Cache hit {key[:12]}")
            return self._finish(RequestResult(text=cached, cached=True, key=key))

        prompt = build_prompt(redacted, language, action, agent_mode=agent_mode)
        limits = self.config.limits
        tokens = estimate_tokens_sync(prompt, aux_files, limits.token_multiplier)
        if tokens > limits.max_tokens:
            return self._finish(RequestResult(
                failure=FailureReason.TOKEN_BUDGET_EXCEEDED,
                detail=f"Estimated {tokens} tokens exceeds the limit of {limits.max_tokens}",
                estimated_tokens=tokens,
                key=key,
            ))

        if not self.governor.try_admit(context):
            wait_ms = self.governor.retry_after_ms(context)
            return self._finish(RequestResult(
                failure=FailureReason.RATE_LIMITED,
                detail=f"Rate limit reached; retry in {wait_ms / 1000:.1f}s",
                estimated_tokens=tokens,
                key=key,
            ))

        params = CompletionParams(
            model=self.config.completion.model,
            max_tokens=limits.max_tokens,
            temperature=self.config.completion.temperature,
            stream=self.config.completion.stream,
        )

        try:
            reply = self.backend.complete(prompt, params)
            if isinstance(reply, str):
                text, cancelled = reply, bool(cancel and cancel.is_set())
            else:
                text, cancelled = self._drain(reply, cancel)
        except Exception as e:
            logger.error(f"[CONTROLLER] Completion failed: {redact(str(e))}")
            return self._finish(RequestResult(
                failure=FailureReason.COMPLETION_FAILED,
                detail=redact(str(e)),
                estimated_tokens=tokens,
                key=key,
            ))

        if not cancelled:
            self.cache.set(key, text)
        else:
            logger.info(f"[CONTROLLER] Cancelled after {len(text)} chars; not cached")

        return self._finish(RequestResult(
            text=text, cancelled=cancelled, estimated_tokens=tokens, key=key,
        ))

    @staticmethod
    def _drain(chunks: Iterable[str], cancel: threading.Event | None) -> tuple[str, bool]:
        """Accumulate streamed chunks until done or cancelled."""
        parts: list[str] = []
        iterator = iter(chunks)
        try:
            for chunk in iterator:
                if cancel is not None and cancel.is_set():
                    return "".join(parts), True
                parts.append(chunk)
        finally:
            close = getattr(iterator, "close", None)
            if close:
                close()
        return "".join(parts), bool(cancel and cancel.is_set())

    def _finish(self, result: RequestResult) -> RequestResult:
        outcome = "ok" if result.ok else result.failure.value
        if not result.ok:
            logger.warning(f"[CONTROLLER] Request refused: {outcome} ({result.detail})")
        self.bus.emit("request", "controller", {
            "outcome": outcome,
            "cached": result.cached,
            "cancelled": result.cancelled,
            "estimated_tokens": result.estimated_tokens,
            "chars": len(result.text),
            "detail": result.detail,
        })
        return result

    # -----------------------------------------------------------------------
    # Apply
    # -----------------------------------------------------------------------

    def apply_response(self, text: str, workspace_root: Path | str) -> ApplyReport:
        """Parse a reply and apply its instructions under `workspace_root`."""
        parsed = parse_report(text)
        report = apply_all(parsed.instructions, workspace_root)
        report.parse_incomplete = parsed.incomplete or bool(parsed.skipped)
        report.skipped = parsed.skipped

        for result in report.results:
            self.bus.emit("apply", "applier", {
                "file_path": result.file_path,
                "action": result.action,
                "outcome": result.outcome,
                "detail": result.detail,
            })
        if report.parse_incomplete:
            self.bus.emit("apply", "parser", {
                "outcome": FailureReason.PARSE_INCOMPLETE.value,
                "skipped": report.skipped,
            })
        return report

    # -----------------------------------------------------------------------
    # Reporting
    # -----------------------------------------------------------------------

    def stats(self) -> dict:
        return {
            "cache": self.cache.stats().model_dump(),
            "governor": self.governor.stats().model_dump(),
        }


def build_cache(config: PatchbayConfig) -> ResponseCache:
    return ResponseCache(
        max_items=config.cache.max_items,
        ttl_minutes=config.cache.ttl_minutes,
        enabled=config.cache.enable_cache,
    )


def build_governor(config: PatchbayConfig) -> RequestGovernor:
    return RequestGovernor(
        max_requests_per_window=config.limits.max_requests_per_window,
        window_ms=config.limits.window_ms,
    )
