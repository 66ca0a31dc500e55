from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Optional

from flowsync.api.goflow_client import GoflowClient
from flowsync.errors import FlowsyncError, RequestError, SurfaceNotFoundError
from flowsync.surfaces.registry import SurfaceRegistry
from flowsync.telemetry.diagnostics import DiagnosticsLog, correlate, record

logger = logging.getLogger(__name__)


class ActiveState(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"

    @classmethod
    def from_flag(cls, active: bool) -> "ActiveState":
        return cls.ACTIVE if active else cls.INACTIVE

    @property
    def badge_class(self) -> str:
        return "schedule-badge-active-true" if self is ActiveState.ACTIVE else "schedule-badge-active-false"


class ActiveToggleController:
    """
    Keeps each job's schedule badge in line with the server's active flag.

    The badge only ever shows server-confirmed state: a toggle is followed by a fresh
    status query, and a failed query leaves the badge as it was.
    """

    def __init__(
        self,
        api: GoflowClient,
        registry: SurfaceRegistry,
        *,
        diagnostics: Optional[DiagnosticsLog] = None,
    ) -> None:
        self.api = api
        self.registry = registry
        self.diagnostics = diagnostics
        self._known: Dict[str, ActiveState] = {}

    def last_known(self, job_name: str) -> Optional[ActiveState]:
        return self._known.get(job_name)

    async def query_status(self, job_name: str) -> ActiveState:
        with correlate(self.diagnostics):
            try:
                active = await self.api.is_active(job_name)
            except FlowsyncError as e:
                logger.warning("status query for job %s failed: %s", job_name, e)
                record(self.diagnostics, "request.failed", {"op": "status", "job": job_name, "error": str(e)})
                raise
            state = ActiveState.from_flag(active)
            self._known[job_name] = state
            self._show(job_name, state)
        return state

    def _show(self, job_name: str, state: ActiveState) -> None:
        # The server state is already known; a badge that is not mounted yet only skips the display.
        try:
            badge = self.registry.badge(job_name)
        except SurfaceNotFoundError as e:
            logger.info("badge for job %s skipped: %s", job_name, e)
            record(self.diagnostics, "surface.missing", {"effect": "badge", "surface": str(e.key)})
            return
        badge.set_class(state.badge_class)

    async def toggle(self, job_name: str) -> ActiveState:
        with correlate(self.diagnostics):
            try:
                await self.api.toggle_active(job_name)
            except RequestError as e:
                logger.warning("toggle for job %s failed: %s", job_name, e)
                record(self.diagnostics, "request.failed", {"op": "toggle", "job": job_name, "error": str(e)})
                raise
            return await self.query_status(job_name)

    async def submit(self, job_name: str) -> None:
        """Fire-and-forget run submission; failures are only logged."""
        with correlate(self.diagnostics):
            try:
                await self.api.submit(job_name)
            except RequestError as e:
                logger.warning("submit for job %s failed: %s", job_name, e)
                record(self.diagnostics, "request.failed", {"op": "submit", "job": job_name, "error": str(e)})
