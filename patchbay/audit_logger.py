import json
import os
from typing import Any

from patchbay.event_bus import EventBus, PatchEvent
from patchbay.redact import redact


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return redact(value)
    if isinstance(value, dict):
        return {k: _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return value


class AuditLogger:
    """
    Subscribes to an EventBus and appends every event, with secrets
    redacted, to an append-only JSONL file.
    """

    def __init__(self, file_path: str, event_bus: EventBus):
        self.file_path = file_path
        self.event_bus = event_bus

        os.makedirs(os.path.dirname(os.path.abspath(self.file_path)), exist_ok=True)
        self.event_bus.subscribe(self.log_event)

    def log_event(self, event: PatchEvent) -> None:
        with open(self.file_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(_scrub(event.model_dump())) + "\n")

    def close(self) -> None:
        self.event_bus.unsubscribe(self.log_event)

    def read_events(self) -> list[dict]:
        if not os.path.exists(self.file_path):
            return []
        with open(self.file_path, "r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
