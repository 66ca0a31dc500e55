from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol

from flowsync.errors import FlowsyncError, SurfaceNotFoundError
from flowsync.models import JobSnapshotEvent, latest_run
from flowsync.render.graph import GraphOverlaySync
from flowsync.render.grids import StatusGridRenderer, job_grid_colors, task_grid_colors
from flowsync.render.timestamp import TimestampPanel
from flowsync.surfaces.registry import SurfaceKey, SurfaceRegistry
from flowsync.telemetry.diagnostics import DiagnosticsLog, record

logger = logging.getLogger(__name__)


class PageView(Protocol):
    """A stream subscriber: decides which jobs it cares about and applies their snapshots."""

    def accepts(self, job_name: str) -> bool:
        ...

    def apply(self, event: JobSnapshotEvent) -> None:
        ...


class _IsolatedEffects:
    def __init__(self, diagnostics: Optional[DiagnosticsLog]) -> None:
        self.diagnostics = diagnostics
        self.failures: List[str] = []

    def _attempt(self, effect: str, fn: Callable[[], object]) -> bool:
        # One failing surface update never stops the remaining ones.
        try:
            fn()
        except SurfaceNotFoundError as e:
            logger.info("%s skipped: %s", effect, e)
            record(self.diagnostics, "surface.missing", {"effect": effect, "surface": str(e.key)})
            self.failures.append(effect)
            return False
        except FlowsyncError as e:
            logger.warning("%s failed: %s", effect, e)
            record(self.diagnostics, "surface.failed", {"effect": effect, "error": str(e)})
            self.failures.append(effect)
            return False
        return True


class JobPageView(_IsolatedEffects):
    """
    The job detail page: task grids, the job grid, the graph overlay and the
    last-run timestamp, all for a single job.
    """

    def __init__(self, job_name: str, registry: SurfaceRegistry, *, diagnostics: Optional[DiagnosticsLog] = None) -> None:
        super().__init__(diagnostics)
        self.job_name = job_name
        self.registry = registry
        self.grids = StatusGridRenderer(registry)
        self.graph = GraphOverlaySync(registry, diagnostics=diagnostics)
        self.timestamp = TimestampPanel(registry)
        self.applied = 0

    def accepts(self, job_name: str) -> bool:
        return job_name == self.job_name

    def apply(self, event: JobSnapshotEvent) -> None:
        runs = event.job_runs
        self._attempt("task grids", lambda: self._render_task_grids(event))
        self._attempt(
            f"job grid {event.job_name}",
            lambda: self.grids.render(SurfaceKey.job_grid(event.job_name), job_grid_colors(runs)),
        )
        self._attempt("graph overlay", lambda: self.graph.sync(latest_run(runs)))
        self._attempt("last run timestamp", lambda: self.timestamp.update(runs))
        self.applied += 1

    def _render_task_grids(self, event: JobSnapshotEvent) -> None:
        for task_name, colors in task_grid_colors(event.job_runs):
            key = SurfaceKey.task_grid(task_name)
            self._attempt(f"task grid {task_name}", lambda: self.grids.render(key, colors))


class JobsOverviewView(_IsolatedEffects):
    """The jobs index page: one job grid per job, fed by every snapshot on the stream."""

    def __init__(self, registry: SurfaceRegistry, *, diagnostics: Optional[DiagnosticsLog] = None) -> None:
        super().__init__(diagnostics)
        self.registry = registry
        self.grids = StatusGridRenderer(registry)
        self.applied = 0

    def accepts(self, job_name: str) -> bool:
        return True

    def apply(self, event: JobSnapshotEvent) -> None:
        self._attempt(
            f"job grid {event.job_name}",
            lambda: self.grids.render(SurfaceKey.job_grid(event.job_name), job_grid_colors(event.job_runs)),
        )
        self.applied += 1
