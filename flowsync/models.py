from __future__ import annotations

from enum import Enum
from typing import Dict, List, NewType, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

DisplayColor = NewType("DisplayColor", str)


class ExecutionState(str, Enum):
    running = "running"
    upforretry = "upforretry"
    successful = "successful"
    skipped = "skipped"
    failed = "failed"
    notstarted = "notstarted"


class _WireModel(BaseModel):
    # Snapshots are immutable once received; unknown producer fields are ignored.
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class TaskRunStates(_WireModel):
    """
    The `tasks` block of a run snapshot: `{"state": {taskName: ExecutionState}}`.
    """

    state: Dict[str, ExecutionState] = Field(default_factory=dict)

    @property
    def task_names(self) -> List[str]:
        # Wire order, made explicit so rendering never depends on mapping iteration.
        return list(self.state.keys())


class JobRunState(_WireModel):
    job: ExecutionState
    tasks: TaskRunStates = Field(default_factory=TaskRunStates)


class JobRun(_WireModel):
    """
    One execution instance of a job as seen in a stream snapshot.
    `submitted` is kept as the producer's literal text; it is displayed, never parsed.
    """

    submitted: str
    state: JobRunState
    run_id: Optional[str] = Field(default=None, alias="id")

    def task_state(self, task_name: str) -> Optional[ExecutionState]:
        return self.state.tasks.state.get(task_name)


class JobSnapshotEvent(_WireModel):
    """
    One stream message. Cumulative: it replaces everything known about the job's runs.
    """

    job_name: str = Field(..., alias="jobName")
    job_runs: List[JobRun] = Field(..., alias="jobRuns")


def latest_run(runs: Sequence[JobRun]) -> Optional[JobRun]:
    """
    Runs are ordered oldest-first (producer order), so the latest run is the last one.
    Never mutates `runs`.
    """
    if not runs:
        return None
    return runs[-1]


class JobInfo(_WireModel):
    """Job detail as served by `GET /api/jobs/{name}`; `tasks` keeps the job's declared order."""

    job: str
    tasks: List[str] = Field(default_factory=list)
    schedule: str = ""
