from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from typing import Any


def now_iso() -> str:
    # Fixed-format UTC timestamp for lexicographic ordering.
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def emit(event: dict[str, Any]) -> None:
    print(json.dumps(event, separators=(",", ":"), sort_keys=True, default=str))


class WideEvent:
    """One structured log line per invocation, flushed by ``finish``."""

    def __init__(self, name: str, *, schema_version: str, request_id: str) -> None:
        self._start = time.time()
        self.fields: dict[str, Any] = {
            "event": name,
            "schema_version": schema_version,
            "request_id": request_id,
            "ts": now_iso(),
        }

    def set(self, **fields: Any) -> None:
        self.fields.update(fields)

    def error(self, exc: BaseException) -> None:
        self.fields["error"] = {"type": type(exc).__name__, "message": str(exc)}

    def finish(self) -> None:
        self.fields["duration_ms"] = int((time.time() - self._start) * 1000)
        emit(self.fields)
