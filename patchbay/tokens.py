"""
Token Estimator

Word-count approximation of how many model tokens a prompt will use.
Good enough to decide whether a request fits the configured ceiling
without pulling in a tokenizer for every provider.
"""

from __future__ import annotations

import asyncio
import math
import re
from pathlib import Path
from typing import Iterable

from loguru import logger

DEFAULT_MULTIPLIER = 1.1
MIN_MULTIPLIER = 1.0
MAX_MULTIPLIER = 2.0

# weight of one punctuation/symbol character relative to a word
PUNCTUATION_WEIGHT = 0.1

_PUNCTUATION = re.compile(r"[^\w\s]")


def clamp_multiplier(multiplier: float | None) -> float:
    if multiplier is None:
        return DEFAULT_MULTIPLIER
    return max(MIN_MULTIPLIER, min(MAX_MULTIPLIER, float(multiplier)))


def _word_estimate(text: str, multiplier: float) -> int:
    words = text.split()
    total = math.ceil(len(words) * multiplier)
    punctuation = len(_PUNCTUATION.findall(text))
    total += math.ceil(punctuation * PUNCTUATION_WEIGHT * multiplier)
    return total


def _fallback_estimate(text: str, multiplier: float) -> int:
    collapsed = " ".join(text.split())
    return max(1, math.ceil(len(collapsed) / 4 * multiplier))


def _read_text(path: str | Path) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _read_aux(path: str | Path) -> str | None:
    """Contents of one aux file, or None when it cannot be counted."""
    if not path:
        return None
    try:
        return _read_text(path)
    except (OSError, TypeError, ValueError) as e:
        logger.warning(f"[TOKENS] Skipping {path} for estimation: {e}")
        return None


def _estimate(text: str, aux_contents: Iterable[str | None], multiplier: float) -> int:
    try:
        total = _word_estimate(text, multiplier)
        for content in aux_contents:
            if content:
                total += _word_estimate(content, multiplier)
    except Exception as e:
        logger.warning(f"[TOKENS] Estimation failed, falling back to character count: {e}")
        return _fallback_estimate(text, multiplier)
    return max(1, total)


async def estimate_tokens(
    text: str,
    aux_files: Iterable[str | Path] = (),
    multiplier: float | None = DEFAULT_MULTIPLIER,
) -> int:
    """Estimate tokens for `text` plus the contents of `aux_files`.

    Unreadable aux files are skipped with a warning. Returns 0 only for
    empty text; any other string counts as at least 1.
    """
    if not isinstance(text, str) or text == "":
        return 0

    contents = [await asyncio.to_thread(_read_aux, path) for path in aux_files or ()]
    return _estimate(text, contents, clamp_multiplier(multiplier))


def estimate_tokens_sync(
    text: str,
    aux_files: Iterable[str | Path] = (),
    multiplier: float | None = DEFAULT_MULTIPLIER,
) -> int:
    """Blocking estimate for synchronous callers.

    asyncio.run cannot nest, so inside a running event loop the aux files
    are read inline instead.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(estimate_tokens(text, aux_files, multiplier))

    if not isinstance(text, str) or text == "":
        return 0
    contents = [_read_aux(path) for path in aux_files or ()]
    return _estimate(text, contents, clamp_multiplier(multiplier))
