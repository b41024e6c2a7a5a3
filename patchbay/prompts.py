"""Prompt text sent to the completion service."""

from __future__ import annotations

AGENT_MODE_FORMAT = """
Respond with file edits only, one block per change, in this exact format:

--- FILE: relative/path/to/file.ext ---
action: replace|append|prepend|insert
lines: START-END
```language
code
```

Rules:
- Paths are relative to the workspace root. Never use absolute paths or `..`.
- `action` defaults to replace. Omit `lines` to replace the whole file.
- For `insert`, `lines: N` inserts the code before line N.
- Line numbers are 1-based and refer to the file as it is now.
"""


def build_prompt(code: str, language: str, action: str, agent_mode: bool = False) -> str:
    """Build the user prompt. `code` must already be redacted."""
    prompt = f"{action} this {language} code:\n\n{code}"
    if agent_mode:
        prompt += "\n\n" + AGENT_MODE_FORMAT.strip()
    return prompt
