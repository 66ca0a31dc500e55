from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from flowsync.errors import DecodingError, RequestError
from flowsync.models import JobInfo
from flowsync.settings import Settings


@dataclass(frozen=True)
class GoflowClient:
    """
    Request/response wrapper around the goflow job API.

    Supports:
    - job status query / active toggle / run submission
    - job listing and job detail (ordered task names, schedule, DAG)

    Transport and HTTP failures surface as RequestError; bodies with an unexpected
    shape surface as DecodingError. The transport is overridable for tests.
    """

    api_base: str  # e.g. http://localhost:8100/api
    timeout_s: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> "GoflowClient":
        return cls(api_base=settings.api_base_url, timeout_s=settings.request_timeout_s, transport=transport)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport)

    def _job_url(self, job_name: str, suffix: str = "") -> str:
        return f"{self.api_base.rstrip('/')}/jobs/{quote(job_name, safe='')}{suffix}"

    async def _request(self, method: str, url: str) -> httpx.Response:
        try:
            async with self._client() as c:
                r = await c.request(method, url)
                r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RequestError(
                f"{method} {url} returned {e.response.status_code}",
                url=url,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise RequestError(f"{method} {url} failed: {e}", url=url) from e
        return r

    @staticmethod
    def _json(r: httpx.Response) -> Any:
        try:
            return r.json()
        except ValueError as e:
            raise DecodingError(f"{r.request.url} returned a non-JSON body") from e

    async def health(self) -> str:
        r = await self._request("GET", f"{self.api_base.rstrip('/')}/health")
        data = self._json(r)
        if not isinstance(data, dict) or not isinstance(data.get("health"), str):
            raise DecodingError(f"unexpected health payload: {data!r}")
        return data["health"]

    async def list_jobs(self) -> List[str]:
        r = await self._request("GET", f"{self.api_base.rstrip('/')}/jobs")
        data = self._json(r)
        jobs = data.get("jobs") if isinstance(data, dict) else None
        if not isinstance(jobs, list) or not all(isinstance(j, str) for j in jobs):
            raise DecodingError(f"unexpected job list payload: {data!r}")
        return jobs

    async def get_job(self, job_name: str) -> JobInfo:
        r = await self._request("GET", self._job_url(job_name))
        try:
            return JobInfo.model_validate(self._json(r))
        except ValidationError as e:
            raise DecodingError(f"unexpected job payload for {job_name}: {e.error_count()} error(s)") from e

    async def get_dag(self, job_name: str) -> Dict[str, Any]:
        r = await self._request("GET", self._job_url(job_name, "/dag"))
        data = self._json(r)
        if not isinstance(data, dict):
            raise DecodingError(f"unexpected dag payload for {job_name}: {data!r}")
        return data

    async def is_active(self, job_name: str) -> bool:
        r = await self._request("GET", self._job_url(job_name, "/isActive"))
        data = self._json(r)
        # `{"active": bool}`; older goflow servers answer with the bare boolean.
        active = data.get("active") if isinstance(data, dict) else data
        if not isinstance(active, bool):
            raise DecodingError(f"unexpected status payload for {job_name}: {data!r}")
        return active

    async def toggle_active(self, job_name: str) -> None:
        # Response body is informational only; callers re-query the status.
        await self._request("POST", self._job_url(job_name, "/toggleActive"))

    async def submit(self, job_name: str) -> None:
        await self._request("POST", self._job_url(job_name, "/submit"))
