from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from flowsync.models import JobRun
from flowsync.render.colors import color_for
from flowsync.surfaces.registry import SurfaceRegistry
from flowsync.telemetry.diagnostics import DiagnosticsLog, record

logger = logging.getLogger(__name__)


@dataclass
class GraphSyncResult:
    updated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class GraphOverlaySync:
    """
    Recolors the outline of existing graph nodes by the latest run's task states.
    Nodes that are not rendered yet are skipped one by one.
    """

    def __init__(self, registry: SurfaceRegistry, *, diagnostics: Optional[DiagnosticsLog] = None) -> None:
        self.registry = registry
        self.diagnostics = diagnostics

    def sync(self, latest_run: Optional[JobRun]) -> GraphSyncResult:
        result = GraphSyncResult()
        if latest_run is None:
            return result

        tasks = latest_run.state.tasks
        for task_name in tasks.task_names:
            node = self.registry.find_graph_node(task_name)
            if node is None:
                logger.debug("graph node for task %s not mounted (graph may still be loading); skipping", task_name)
                record(self.diagnostics, "graph.node_missing", {"task": task_name})
                result.skipped.append(task_name)
                continue
            node.set_outline(color_for(tasks.state[task_name]))
            result.updated.append(task_name)
        return result
