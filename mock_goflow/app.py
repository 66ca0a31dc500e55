from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Iterable, List, Optional

from fastapi import FastAPI, HTTPException
from starlette.responses import StreamingResponse


@dataclass
class MockJob:
    name: str
    tasks: List[str]
    schedule: str = "* * * * *"
    active: bool = False
    # task -> downstream tasks
    dag: Dict[str, List[str]] = field(default_factory=dict)
    runs: List[Dict[str, Any]] = field(default_factory=list)


class JobStore:
    """
    In-memory goflow job state. Every mutation bumps `version`, which is what the
    stream watches to decide when to re-emit snapshots.
    """

    def __init__(self, jobs: Iterable[MockJob]) -> None:
        self.jobs: Dict[str, MockJob] = {j.name: j for j in jobs}
        self.version = 0

    def get(self, name: str) -> MockJob:
        job = self.jobs.get(name)
        if job is None:
            raise HTTPException(status_code=404, detail="Not found")
        return job

    def snapshot(self, name: str) -> Dict[str, Any]:
        job = self.get(name)
        return {"jobName": job.name, "jobRuns": list(job.runs)}

    def submit(self, name: str, *, submitted: Optional[str] = None) -> Dict[str, Any]:
        job = self.get(name)
        run = {
            "id": f"{job.name}_{len(job.runs) + 1}",
            "submitted": submitted or datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "state": {"job": "running", "tasks": {"state": {t: "notstarted" for t in job.tasks}}},
        }
        job.runs.append(run)
        self.version += 1
        return run

    def set_task_state(self, name: str, task: str, state: str, *, run_index: int = -1) -> None:
        job = self.get(name)
        job.runs[run_index]["state"]["tasks"]["state"][task] = state
        self.version += 1

    def set_job_state(self, name: str, state: str, *, run_index: int = -1) -> None:
        job = self.get(name)
        job.runs[run_index]["state"]["job"] = state
        self.version += 1

    def toggle(self, name: str) -> bool:
        job = self.get(name)
        job.active = not job.active
        self.version += 1
        return job.active


def example_jobs() -> List[MockJob]:
    return [
        MockJob(
            name="ComplexAnalytics",
            tasks=["sleepOne", "addOneOne", "sleepTwo", "addTwoFour", "addThreeFour"],
            dag={
                "sleepOne": ["addOneOne"],
                "addOneOne": ["sleepTwo", "addThreeFour"],
                "sleepTwo": ["addTwoFour"],
                "addTwoFour": [],
                "addThreeFour": [],
            },
        ),
        MockJob(name="MessedUp", tasks=["whoops"], dag={"whoops": []}),
        MockJob(name="CustomOperator", tasks=["posAdd"], dag={"posAdd": []}),
    ]


async def stream_snapshots(
    store: JobStore,
    *,
    follow: bool = True,
    poll_interval_s: float = 0.5,
) -> AsyncGenerator[str, None]:
    """
    SSE stream of full job snapshots. Re-emits every job whenever the store changes.
    With `follow=False` the stream ends after the first round (handy for tests).
    """
    yield ": hello\n\n"
    last_version = -1
    last_ping = time.monotonic()
    while True:
        if store.version != last_version:
            last_version = store.version
            for name in list(store.jobs):
                yield f"data: {json.dumps(store.snapshot(name))}\n\n"
        if not follow:
            return

        now = time.monotonic()
        if now - last_ping >= 2.0:
            last_ping = now
            yield ": ping\n\n"

        await asyncio.sleep(poll_interval_s)


def create_app(
    jobs: Optional[Iterable[MockJob]] = None,
    *,
    follow: bool = True,
    poll_interval_s: float = 0.5,
) -> FastAPI:
    store = JobStore(jobs if jobs is not None else example_jobs())
    app = FastAPI(title="goflow mock", version="0.1.0")
    app.state.store = store

    @app.get("/api/health")
    def health() -> Dict[str, Any]:
        return {"health": "OK"}

    @app.get("/api/jobs")
    def list_jobs() -> Dict[str, Any]:
        return {"jobs": list(store.jobs)}

    @app.get("/api/jobs/{name}")
    def get_job(name: str) -> Dict[str, Any]:
        job = store.get(name)
        return {"job": job.name, "tasks": list(job.tasks), "schedule": job.schedule}

    @app.get("/api/jobs/{name}/dag")
    def get_dag(name: str) -> Dict[str, Any]:
        return dict(store.get(name).dag)

    @app.get("/api/jobs/{name}/isActive")
    def is_active(name: str) -> Dict[str, Any]:
        return {"active": store.get(name).active}

    @app.post("/api/jobs/{name}/submit")
    def submit(name: str) -> str:
        run = store.submit(name)
        return f"submitted job run {run['id']}"

    @app.post("/api/jobs/{name}/toggleActive")
    def toggle_active(name: str) -> str:
        active = store.toggle(name)
        return f"job {name} set to active={str(active).lower()}"

    @app.get("/stream")
    async def stream() -> StreamingResponse:
        return StreamingResponse(
            stream_snapshots(store, follow=follow, poll_interval_s=poll_interval_s),
            media_type="text/event-stream",
        )

    return app


app = create_app()
