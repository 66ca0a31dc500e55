from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from flowsync.api.goflow_client import GoflowClient
from flowsync.controls.toggle import ActiveToggleController
from flowsync.errors import FlowsyncError
from flowsync.models import JobSnapshotEvent
from flowsync.settings import Settings
from flowsync.stream.subscription import StreamSubscription
from flowsync.surfaces.registry import Badge, GraphNode, StatusGrid, SurfaceKey, SurfaceRegistry, TextPanel
from flowsync.telemetry.diagnostics import open_diagnostics
from flowsync.views.pages import JobPageView

logger = logging.getLogger("flowsync.cli")


def format_surfaces(registry: SurfaceRegistry) -> str:
    lines: List[str] = []
    for key in registry.keys():
        surface = registry.mount(key)
        if isinstance(surface, StatusGrid):
            value = " ".join(surface.colors) or "-"
        elif isinstance(surface, GraphNode):
            value = surface.style or "-"
        elif isinstance(surface, TextPanel):
            value = surface.text or "-"
        elif isinstance(surface, Badge):
            value = surface.css_class or "-"
        else:
            continue
        lines.append(f"{key.kind.value:<10} {key.name or key.mount_id:<24} {value}")
    return "\n".join(lines)


class _PrintingJobPageView(JobPageView):
    def apply(self, event: JobSnapshotEvent) -> None:
        super().apply(event)
        print(f"--- {event.job_name}: {len(event.job_runs)} run(s)")
        print(format_surfaces(self.registry))
        sys.stdout.flush()


async def _watch(settings: Settings, job_name: str, *, once: bool) -> int:
    diagnostics = open_diagnostics(settings.diagnostics_log_path)
    api = GoflowClient.from_settings(settings)
    registry = SurfaceRegistry()

    job = await api.get_job(job_name)
    registry.mount_job_page(job.job, job.tasks)
    try:
        registry.mount_graph_nodes((await api.get_dag(job_name)).keys())
    except FlowsyncError as e:
        # The graph overlay simply stays uncolored.
        logger.warning("could not load dag for %s: %s", job_name, e)

    controller = ActiveToggleController(api, registry, diagnostics=diagnostics)
    try:
        await controller.query_status(job_name)
    except FlowsyncError:
        pass  # already logged by the controller; badge stays blank

    sub = StreamSubscription.from_settings(settings, diagnostics=diagnostics)
    sub.reconnect = not once
    sub.attach(_PrintingJobPageView(job_name, registry, diagnostics=diagnostics))
    try:
        await sub.run()
    finally:
        await sub.close()
    return 0


async def _status(settings: Settings, job_name: str, *, toggle: bool) -> int:
    api = GoflowClient.from_settings(settings)
    registry = SurfaceRegistry()
    registry.mount(SurfaceKey.badge(job_name))
    controller = ActiveToggleController(api, registry, diagnostics=open_diagnostics(settings.diagnostics_log_path))
    state = await (controller.toggle(job_name) if toggle else controller.query_status(job_name))
    print(f"{job_name}: {state.value} ({registry.badge(job_name).css_class})")
    return 0


async def _submit(settings: Settings, job_name: str) -> int:
    api = GoflowClient.from_settings(settings)
    controller = ActiveToggleController(api, SurfaceRegistry(), diagnostics=open_diagnostics(settings.diagnostics_log_path))
    await controller.submit(job_name)
    return 0


async def _jobs(settings: Settings) -> int:
    api = GoflowClient.from_settings(settings)
    for name in await api.list_jobs():
        print(name)
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="flowsync", description="Live goflow job status from the command line.")
    ap.add_argument("--base-url", default=None, help="Goflow server URL (default: FLOWSYNC_BASE_URL or http://localhost:8100)")
    ap.add_argument("--log-level", default=None)
    sub = ap.add_subparsers(dest="command", required=True)

    w = sub.add_parser("watch", help="Follow a job's run snapshots and print its surfaces after each update")
    w.add_argument("job")
    w.add_argument("--once", action="store_true", help="Stop when the stream ends instead of reconnecting")

    for name, help_text in (
        ("status", "Show whether a job is active"),
        ("toggle", "Flip a job's active flag and show the confirmed state"),
        ("submit", "Submit a job run"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("job")

    sub.add_parser("jobs", help="List jobs")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    if args.base_url:
        settings.base_url = args.base_url
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "watch":
        coro = _watch(settings, args.job, once=args.once)
    elif args.command in ("status", "toggle"):
        coro = _status(settings, args.job, toggle=args.command == "toggle")
    elif args.command == "submit":
        coro = _submit(settings, args.job)
    else:
        coro = _jobs(settings)

    try:
        return asyncio.run(coro)
    except FlowsyncError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
