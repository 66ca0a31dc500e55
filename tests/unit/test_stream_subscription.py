from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List

import httpx

from flowsync.settings import Settings
from flowsync.stream.subscription import StreamSubscription
from flowsync.surfaces.registry import SurfaceKey, SurfaceRegistry
from flowsync.telemetry.diagnostics import DiagnosticsLog
from flowsync.views.pages import JobPageView, JobsOverviewView


def _event(job_name: str, runs: List[Dict[str, Any]]) -> str:
    return json.dumps({"jobName": job_name, "jobRuns": runs})


def _run(submitted: str, job: str, tasks: Dict[str, str]) -> Dict[str, Any]:
    return {"submitted": submitted, "state": {"job": job, "tasks": {"state": tasks}}}


BUILD = _event(
    "build-job",
    [
        _run("2024-01-01T00:00:00Z", "failed", {"compile": "successful", "test": "failed"}),
        _run("2024-01-01T00:05:00Z", "successful", {"compile": "successful"}),
    ],
)


def _page(job_name: str = "build-job") -> tuple[JobPageView, SurfaceRegistry]:
    reg = SurfaceRegistry()
    reg.mount_job_page(job_name, ["compile", "test"])
    reg.mount_graph_nodes(["compile", "test"])
    return JobPageView(job_name, reg), reg


def _snapshot_state(reg: SurfaceRegistry) -> Dict[str, Any]:
    return {
        "job": reg.grid(SurfaceKey.job_grid("build-job")).colors,
        "compile": reg.grid(SurfaceKey.task_grid("compile")).colors,
        "test": reg.grid(SurfaceKey.task_grid("test")).colors,
        "node_compile": reg.find_graph_node("compile").style,
        "node_test": reg.find_graph_node("test").style,
        "ts": reg.timestamp_panel().text,
    }


def test_dispatch_applies_all_surfaces() -> None:
    view, reg = _page()
    sub = StreamSubscription("http://goflow/stream")
    sub.attach(view)

    assert sub.dispatch(BUILD) == 1

    assert _snapshot_state(reg) == {
        "job": ["#ff4020", "#39c84e"],
        "compile": ["#39c84e", "#39c84e"],
        "test": ["#ff4020"],
        "node_compile": "stroke-width: 2; stroke: #39c84e",
        "node_test": "",
        "ts": "Last run: 2024-01-01T00:05:00Z",
    }


def test_dispatch_twice_renders_the_same_state() -> None:
    view, reg = _page()
    sub = StreamSubscription("http://goflow/stream")
    sub.attach(view)
    sub.dispatch(BUILD)
    first = _snapshot_state(reg)
    sub.dispatch(BUILD)
    assert _snapshot_state(reg) == first
    assert reg.grid(SurfaceKey.job_grid("build-job")).swaps == 2


def test_other_jobs_do_not_touch_surfaces() -> None:
    view, reg = _page()
    sub = StreamSubscription("http://goflow/stream")
    sub.attach(view)

    other = _event("deploy-job", [_run("t", "failed", {"compile": "failed"})])
    assert sub.dispatch(other) == 0

    assert reg.grid(SurfaceKey.job_grid("build-job")).swaps == 0
    assert reg.grid(SurfaceKey.task_grid("compile")).swaps == 0
    assert reg.find_graph_node("compile").stroke is None
    assert reg.timestamp_panel().text == ""
    assert view.applied == 0


def test_malformed_message_is_dropped(tmp_path) -> None:
    view, reg = _page()
    diag_path = tmp_path / "diag.jsonl"
    sub = StreamSubscription("http://goflow/stream", diagnostics=DiagnosticsLog(str(diag_path)))
    sub.attach(view)

    assert sub.dispatch("{not json") == 0
    assert sub.dispatch(json.dumps({"jobName": "build-job"})) == 0
    assert sub.dispatch(BUILD) == 1

    assert (sub.received, sub.dropped, sub.delivered) == (3, 2, 1)
    events = [json.loads(ln)["event_type"] for ln in diag_path.read_text(encoding="utf-8").splitlines()]
    assert events.count("stream.decode_failed") == 2


def test_missing_surfaces_do_not_block_other_effects() -> None:
    reg = SurfaceRegistry()
    # Only the timestamp and one task grid exist (page still loading).
    reg.mount(SurfaceKey.timestamp())
    reg.mount(SurfaceKey.task_grid("test"))
    view = JobPageView("build-job", reg)
    sub = StreamSubscription("http://goflow/stream")
    sub.attach(view)

    sub.dispatch(BUILD)

    assert reg.grid(SurfaceKey.task_grid("test")).colors == ["#ff4020"]
    assert reg.timestamp_panel().text == "Last run: 2024-01-01T00:05:00Z"
    assert "task grid compile" in view.failures
    assert "job grid build-job" in view.failures


def test_one_connection_feeds_several_views() -> None:
    view, reg = _page()
    overview_reg = SurfaceRegistry()
    overview_reg.mount(SurfaceKey.job_grid("build-job"))
    overview_reg.mount(SurfaceKey.job_grid("deploy-job"))
    overview = JobsOverviewView(overview_reg)

    sub = StreamSubscription("http://goflow/stream")
    sub.attach(view)
    sub.attach(overview)
    sub.attach(overview)

    sub.dispatch(BUILD)
    sub.dispatch(_event("deploy-job", [_run("t", "skipped", {})]))

    assert overview_reg.grid(SurfaceKey.job_grid("build-job")).colors == ["#ff4020", "#39c84e"]
    assert overview_reg.grid(SurfaceKey.job_grid("deploy-job")).colors == ["#abbefb"]
    assert overview.applied == 2
    assert view.applied == 1

    sub.detach(overview)
    sub.dispatch(_event("deploy-job", [_run("t", "failed", {})]))
    assert overview_reg.grid(SurfaceKey.job_grid("deploy-job")).colors == ["#abbefb"]


def test_no_renders_after_close() -> None:
    view, reg = _page()
    sub = StreamSubscription("http://goflow/stream")
    sub.attach(view)
    asyncio.run(sub.close())
    assert sub.closed
    assert sub.dispatch(BUILD) == 0
    assert view.applied == 0


def test_run_reads_sse_stream_in_order() -> None:
    later = _event("build-job", [_run("2024-01-02T00:00:00Z", "running", {"compile": "running"})])
    body = "".join(
        [
            ": hello\n\n",
            f"data: {BUILD}\n\n",
            "event: heartbeat\ndata: {}\n\n",
            "data: garbage\n\n",
            ": ping\n\n",
            f"id: 2\nretry: 50\ndata: {later}\n\n",
        ]
    )
    seen_accept: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_accept.append(request.headers.get("accept", ""))
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body.encode("utf-8"))

    view, reg = _page()
    sub = StreamSubscription("http://goflow/stream", transport=httpx.MockTransport(handler), reconnect=False)
    sub.attach(view)

    asyncio.run(sub.run())

    assert sub.connections == 1
    assert (sub.received, sub.dropped, sub.delivered) == (3, 1, 2)
    assert reg.grid(SurfaceKey.job_grid("build-job")).colors == ["#dffbe3"]
    assert reg.timestamp_panel().text == "Last run: 2024-01-02T00:00:00Z"
    assert seen_accept == ["text/event-stream"]
    assert sub.reconnect_delay_s == 0.05


def test_run_reconnects_after_transport_error() -> None:
    attempts: List[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            raise httpx.ConnectError("refused", request=request)
        if len(attempts) == 2:
            return httpx.Response(200, content=f"id: 9\ndata: {BUILD}\n\n".encode("utf-8"))
        assert request.headers.get("last-event-id") == "9"
        return httpx.Response(503)

    view, reg = _page()
    sub = StreamSubscription("http://goflow/stream", transport=httpx.MockTransport(handler), reconnect_delay_s=0.0)
    sub.attach(view)

    async def scenario() -> None:
        task = sub.start()
        for _ in range(200):
            if len(attempts) >= 3:
                break
            await asyncio.sleep(0.01)
        await sub.close()
        assert task.done()

    asyncio.run(scenario())

    assert len(attempts) >= 3
    assert view.applied == 1
    assert reg.grid(SurfaceKey.job_grid("build-job")).colors == ["#ff4020", "#39c84e"]


class _BrokenView:
    def accepts(self, job_name: str) -> bool:
        return True

    def apply(self, event) -> None:
        raise RuntimeError("view bug")


def test_raising_view_does_not_block_other_views(tmp_path) -> None:
    view, reg = _page()
    diag_path = tmp_path / "diag.jsonl"
    sub = StreamSubscription("http://goflow/stream", diagnostics=DiagnosticsLog(str(diag_path)))
    sub.attach(_BrokenView())
    sub.attach(view)

    assert sub.dispatch(BUILD) == 1
    assert sub.dispatch(BUILD) == 1

    assert reg.grid(SurfaceKey.job_grid("build-job")).colors == ["#ff4020", "#39c84e"]
    assert view.applied == 2
    rows = [json.loads(ln) for ln in diag_path.read_text(encoding="utf-8").splitlines()]
    assert [r["event_type"] for r in rows] == ["view.failed", "view.failed"]
    assert "view bug" in rows[0]["payload"]["error"]
    # One correlation id per handled message.
    assert rows[0]["correlation_id"] and rows[0]["correlation_id"] != rows[1]["correlation_id"]


def test_records_for_one_message_share_a_correlation_id(tmp_path) -> None:
    reg = SurfaceRegistry()
    reg.mount(SurfaceKey.timestamp())
    diag_path = tmp_path / "diag.jsonl"
    diag = DiagnosticsLog(str(diag_path))
    sub = StreamSubscription("http://goflow/stream", diagnostics=diag)
    sub.attach(JobPageView("build-job", reg, diagnostics=diag))

    sub.dispatch(BUILD)

    rows = [json.loads(ln) for ln in diag_path.read_text(encoding="utf-8").splitlines()]
    assert len(rows) > 2
    assert len({r["correlation_id"] for r in rows}) == 1
    assert diag.correlation_id is None


def test_unwritable_diagnostics_does_not_end_the_stream(tmp_path) -> None:
    diag_path = tmp_path / "diag.jsonl"
    diag = DiagnosticsLog(str(diag_path))
    diag_path.mkdir()  # every append now fails with an OSError

    body = f"data: garbage\n\ndata: {BUILD}\n\n"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body.encode("utf-8"))

    reg = SurfaceRegistry()
    reg.mount(SurfaceKey.job_grid("build-job"))  # everything else missing -> more failed writes
    sub = StreamSubscription(
        "http://goflow/stream", transport=httpx.MockTransport(handler), reconnect=False, diagnostics=diag
    )
    sub.attach(JobPageView("build-job", reg, diagnostics=diag))

    asyncio.run(sub.run())

    assert (sub.received, sub.dropped, sub.delivered) == (2, 1, 1)
    assert reg.grid(SurfaceKey.job_grid("build-job")).colors == ["#ff4020", "#39c84e"]


def test_connect_timeout_comes_from_settings() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.extensions.get("timeout"))
        return httpx.Response(200, content=b"")

    s = Settings(request_timeout_s=2.5, reconnect_delay_s=0.25)
    sub = StreamSubscription.from_settings(s, transport=httpx.MockTransport(handler))
    sub.reconnect = False
    assert sub.connect_timeout_s == 2.5
    assert sub.reconnect_delay_s == 0.25

    asyncio.run(sub.run())
    assert seen[0]["connect"] == 2.5
    assert seen[0]["read"] is None
