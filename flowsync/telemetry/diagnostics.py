from __future__ import annotations

import contextlib
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

logger = logging.getLogger(__name__)


class DiagnosticsLog:
    """
    Append-only JSONL record of updates the dashboard had to skip or drop.
    Used for post-hoc debugging of stale/missing visual elements.

    Records written while a correlation id is bound (see `correlate`) share it, so
    everything skipped while handling one stream message or one request groups together.
    """

    def __init__(self, path: str, *, actor: str = "flowsync"):
        self.path = path
        self.actor = actor
        self.correlation_id: Optional[str] = None
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    def new_correlation_id(self) -> str:
        return uuid.uuid4().hex

    def write(
        self,
        event_type: str,
        payload: Dict[str, Any],
        *,
        correlation_id: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> None:
        record = {
            "ts": timestamp or datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "correlation_id": correlation_id or self.correlation_id,
            "actor": self.actor,
            "event_type": event_type,
            "payload": payload,
        }
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")


def open_diagnostics(path: str | None) -> DiagnosticsLog | None:
    if not path:
        return None
    return DiagnosticsLog(path)


@contextlib.contextmanager
def correlate(diagnostics: DiagnosticsLog | None, correlation_id: Optional[str] = None) -> Iterator[Optional[str]]:
    """
    Bind one correlation id to every record written inside the block. Nested blocks
    without an explicit id keep the outer one.
    """
    if diagnostics is None:
        yield correlation_id
        return
    previous = diagnostics.correlation_id
    diagnostics.correlation_id = correlation_id or previous or diagnostics.new_correlation_id()
    try:
        yield diagnostics.correlation_id
    finally:
        diagnostics.correlation_id = previous


def record(diagnostics: DiagnosticsLog | None, event_type: str, payload: Dict[str, Any]) -> None:
    """Write to `diagnostics` when one is configured. A failing write is only logged."""
    if diagnostics is None:
        return
    try:
        diagnostics.write(event_type, payload)
    except OSError as e:
        logger.warning("could not write %s to diagnostics log %s: %s", event_type, diagnostics.path, e)
