from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Type, TypeVar, Union

from flowsync.errors import SurfaceNotFoundError
from flowsync.models import DisplayColor

GRAPH_NODE_PREFIX = "node-"
BADGE_PREFIX = "schedule-badge-"
TIMESTAMP_MOUNT_ID = "last-job-run-ts-wrapper"


class SurfaceKind(str, Enum):
    job_grid = "job_grid"
    task_grid = "task_grid"
    graph_node = "graph_node"
    timestamp = "timestamp"
    badge = "badge"


@dataclass(frozen=True)
class SurfaceKey:
    kind: SurfaceKind
    name: str = ""

    @classmethod
    def job_grid(cls, job_name: str) -> "SurfaceKey":
        return cls(SurfaceKind.job_grid, job_name)

    @classmethod
    def task_grid(cls, task_name: str) -> "SurfaceKey":
        return cls(SurfaceKind.task_grid, task_name)

    @classmethod
    def graph_node(cls, task_name: str) -> "SurfaceKey":
        return cls(SurfaceKind.graph_node, task_name)

    @classmethod
    def timestamp(cls) -> "SurfaceKey":
        return cls(SurfaceKind.timestamp)

    @classmethod
    def badge(cls, job_name: str) -> "SurfaceKey":
        return cls(SurfaceKind.badge, job_name)

    @property
    def mount_id(self) -> str:
        """Mount point name as used by the dashboard markup."""
        if self.kind == SurfaceKind.graph_node:
            return GRAPH_NODE_PREFIX + self.name
        if self.kind == SurfaceKind.badge:
            return BADGE_PREFIX + self.name
        if self.kind == SurfaceKind.timestamp:
            return TIMESTAMP_MOUNT_ID
        return self.name

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.mount_id}"


@dataclass(frozen=True)
class Indicator:
    color: DisplayColor
    css_class: str = "status-indicator"

    @property
    def style(self) -> str:
        return f"background-color:{self.color}"


class StatusGrid:
    """
    A row of status indicators. Contents only ever change by swapping in a whole new tuple.
    """

    def __init__(self, key: SurfaceKey) -> None:
        self.key = key
        self._indicators: Tuple[Indicator, ...] = ()
        self.swaps = 0

    @property
    def indicators(self) -> Tuple[Indicator, ...]:
        return self._indicators

    @property
    def colors(self) -> List[DisplayColor]:
        return [i.color for i in self._indicators]

    def swap(self, indicators: Tuple[Indicator, ...]) -> None:
        self._indicators = indicators
        self.swaps += 1


class GraphNode:
    def __init__(self, key: SurfaceKey) -> None:
        self.key = key
        self.stroke: Optional[DisplayColor] = None
        self.stroke_width: Optional[int] = None

    @property
    def style(self) -> str:
        if self.stroke is None:
            return ""
        return f"stroke-width: {self.stroke_width}; stroke: {self.stroke}"

    def set_outline(self, color: DisplayColor, *, width: int = 2) -> None:
        self.stroke = color
        self.stroke_width = width


class TextPanel:
    def __init__(self, key: SurfaceKey) -> None:
        self.key = key
        self.text = ""

    def replace_text(self, text: str) -> None:
        self.text = text


class Badge:
    def __init__(self, key: SurfaceKey) -> None:
        self.key = key
        self.css_class = ""

    def set_class(self, css_class: str) -> None:
        self.css_class = css_class


Surface = Union[StatusGrid, GraphNode, TextPanel, Badge]
S = TypeVar("S", StatusGrid, GraphNode, TextPanel, Badge)

_SURFACE_TYPES: Dict[SurfaceKind, Type[Surface]] = {
    SurfaceKind.job_grid: StatusGrid,
    SurfaceKind.task_grid: StatusGrid,
    SurfaceKind.graph_node: GraphNode,
    SurfaceKind.timestamp: TextPanel,
    SurfaceKind.badge: Badge,
}


class SurfaceRegistry:
    """
    Maps typed surface keys to mounted surface handles for one page.

    Renderers receive the registry instead of resolving mount points by string, so a
    page decides which surfaces exist (and when) independently of the stream.
    """

    def __init__(self) -> None:
        self._surfaces: Dict[SurfaceKey, Surface] = {}

    def mount(self, key: SurfaceKey) -> Surface:
        existing = self._surfaces.get(key)
        if existing is not None:
            return existing
        surface = _SURFACE_TYPES[key.kind](key)
        self._surfaces[key] = surface
        return surface

    def mount_job_page(self, job_name: str, task_names: Iterable[str]) -> None:
        """
        Mount everything a job page shows except graph nodes, which appear once the
        graph has been laid out (see `mount_graph_nodes`).
        """
        self.mount(SurfaceKey.job_grid(job_name))
        self.mount(SurfaceKey.badge(job_name))
        self.mount(SurfaceKey.timestamp())
        for t in task_names:
            self.mount(SurfaceKey.task_grid(t))

    def mount_graph_nodes(self, task_names: Iterable[str]) -> None:
        for t in task_names:
            self.mount(SurfaceKey.graph_node(t))

    def unmount(self, key: SurfaceKey) -> None:
        self._surfaces.pop(key, None)

    def keys(self) -> List[SurfaceKey]:
        return list(self._surfaces.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._surfaces

    def _get(self, key: SurfaceKey, cls: Type[S]) -> S:
        surface = self._surfaces.get(key)
        if surface is None:
            raise SurfaceNotFoundError(key)
        if not isinstance(surface, cls):
            raise TypeError(f"{key} is a {type(surface).__name__}, not a {cls.__name__}")
        return surface

    def grid(self, key: SurfaceKey) -> StatusGrid:
        if key.kind not in (SurfaceKind.job_grid, SurfaceKind.task_grid):
            raise ValueError(f"{key} is not a grid key")
        return self._get(key, StatusGrid)

    def timestamp_panel(self) -> TextPanel:
        return self._get(SurfaceKey.timestamp(), TextPanel)

    def badge(self, job_name: str) -> Badge:
        return self._get(SurfaceKey.badge(job_name), Badge)

    def find_graph_node(self, task_name: str) -> Optional[GraphNode]:
        """Graph nodes may legitimately be missing (graph not rendered yet)."""
        surface = self._surfaces.get(SurfaceKey.graph_node(task_name))
        return surface if isinstance(surface, GraphNode) else None
