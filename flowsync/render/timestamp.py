from __future__ import annotations

from typing import Sequence

from flowsync.models import JobRun, latest_run
from flowsync.surfaces.registry import SurfaceRegistry


class TimestampPanel:
    def __init__(self, registry: SurfaceRegistry, *, label: str = "Last run") -> None:
        self.registry = registry
        self.label = label

    def update(self, runs: Sequence[JobRun]) -> None:
        # No runs yet: keep whatever the panel shows.
        last = latest_run(runs)
        if last is None:
            return
        self.registry.timestamp_panel().replace_text(f"{self.label}: {last.submitted}")
