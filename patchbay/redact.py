"""
Secret Redactor

Scrubs credential-shaped values out of text before it is cached, logged,
or sent to the completion service. Key names are kept so the model still
sees the shape of the code.
"""

from __future__ import annotations

import re

from loguru import logger

REDACTED = "REDACTED"

SECRET_KEYS = ("api_key", "password", "secret", "token", "jwt", "bearer", "env")

# key=value / key:value with the value glued to the separator
_PLAIN_PATTERN = re.compile(
    r"(?P<key>" + "|".join(SECRET_KEYS) + r")(?P<sep>[=:])(?P<value>[^\s&\"',;]+)",
    re.IGNORECASE,
)

# "apiKey": "value" style JSON members
_QUOTED_PATTERN = re.compile(
    r"(?P<key>\"(?:apiKey|api_key|token|secret|password)\"\s*:\s*\")(?P<value>[^\"\n]*)(?P<end>\")",
    re.IGNORECASE,
)


def redact(text: str) -> str:
    """Replace secret values with REDACTED. Identity on text with no secrets."""
    if not isinstance(text, str) or not text:
        return text
    try:
        scrubbed = _QUOTED_PATTERN.sub(lambda m: f"{m['key']}{REDACTED}{m['end']}", text)
        return _PLAIN_PATTERN.sub(lambda m: f"{m['key']}{m['sep']}{REDACTED}", scrubbed)
    except Exception as e:
        logger.warning(f"[REDACT] Redaction failed, passing text through: {e}")
        return text
