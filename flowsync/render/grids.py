from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

from flowsync.models import DisplayColor, JobRun
from flowsync.render.colors import color_for
from flowsync.surfaces.registry import Indicator, SurfaceKey, SurfaceRegistry


class StatusGridRenderer:
    def __init__(self, registry: SurfaceRegistry) -> None:
        self.registry = registry

    def render(self, key: SurfaceKey, colors: Sequence[DisplayColor]) -> None:
        """
        Replace the whole grid bound to `key` with one indicator per color, in order.
        Raises SurfaceNotFoundError when nothing is mounted under `key`.
        """
        grid = self.registry.grid(key)
        # Build the full row first, then swap once.
        grid.swap(tuple(Indicator(color=c) for c in colors))


def job_grid_colors(runs: Sequence[JobRun]) -> List[DisplayColor]:
    return [color_for(r.state.job) for r in runs]


def task_grid_colors(runs: Sequence[JobRun]) -> List[Tuple[str, List[DisplayColor]]]:
    """
    One row per task name, in first-seen order across `runs`. A row holds the task's
    colors for the runs that mention it, in run order; runs without the task add nothing.
    """
    order: List[str] = []
    rows: Dict[str, List[DisplayColor]] = {}
    for run in runs:
        tasks = run.state.tasks
        for name in tasks.task_names:
            if name not in rows:
                order.append(name)
                rows[name] = []
            rows[name].append(color_for(tasks.state[name]))
    return [(name, rows[name]) for name in order]
