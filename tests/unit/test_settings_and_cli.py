from __future__ import annotations

import pytest

from flowsync.cli import build_parser, format_surfaces
from flowsync.models import DisplayColor
from flowsync.settings import Settings
from flowsync.surfaces.registry import SurfaceKey, SurfaceRegistry


def test_settings_defaults_and_env(monkeypatch: pytest.MonkeyPatch) -> None:
    s = Settings()
    assert s.stream_url == "http://localhost:8100/stream"
    assert s.api_base_url == "http://localhost:8100/api"
    assert s.diagnostics_log_path is None

    monkeypatch.setenv("FLOWSYNC_BASE_URL", "http://goflow:9000/")
    monkeypatch.setenv("FLOWSYNC_RECONNECT_DELAY_S", "0.5")
    s = Settings()
    assert s.stream_url == "http://goflow:9000/stream"
    assert s.reconnect_delay_s == 0.5


def test_parser_commands() -> None:
    ap = build_parser()
    args = ap.parse_args(["--base-url", "http://x", "watch", "build-job", "--once"])
    assert (args.command, args.job, args.once, args.base_url) == ("watch", "build-job", True, "http://x")
    assert ap.parse_args(["toggle", "build-job"]).command == "toggle"
    assert ap.parse_args(["jobs"]).command == "jobs"
    with pytest.raises(SystemExit):
        ap.parse_args(["status"])


def test_format_surfaces_lists_each_surface() -> None:
    reg = SurfaceRegistry()
    reg.mount_job_page("build-job", ["compile"])
    reg.mount_graph_nodes(["compile"])
    reg.grid(SurfaceKey.job_grid("build-job")).swap(())
    reg.find_graph_node("compile").set_outline(DisplayColor("#ff4020"))
    reg.badge("build-job").set_class("schedule-badge-active-true")

    out = format_surfaces(reg).splitlines()
    assert len(out) == 5
    assert any(ln.startswith("badge") and ln.endswith("schedule-badge-active-true") for ln in out)
    assert any(ln.startswith("graph_node") and ln.endswith("stroke-width: 2; stroke: #ff4020") for ln in out)
    assert any(ln.startswith("job_grid") and ln.endswith("-") for ln in out)
