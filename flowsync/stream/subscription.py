from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Dict, List, Optional

import httpx

from flowsync.errors import DecodingError
from flowsync.parsers.snapshot import parse_snapshot
from flowsync.parsers.sse import SseDecoder, iter_sse_messages
from flowsync.settings import Settings
from flowsync.telemetry.diagnostics import DiagnosticsLog, correlate, record
from flowsync.views.pages import PageView

logger = logging.getLogger(__name__)


class StreamSubscription:
    """
    Owns the page's single connection to the job run event stream and fans decoded
    snapshots out to the attached views.

    Messages are handled one at a time, in delivery order. A message that fails to
    decode is dropped without touching any surface. Views filter by job name and
    isolate their own surface failures; a view that raises anyway is logged and
    skipped, so nothing raised while handling a message ends the subscription.
    """

    def __init__(
        self,
        stream_url: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        reconnect: bool = True,
        reconnect_delay_s: float = 3.0,
        connect_timeout_s: float = 10.0,
        diagnostics: Optional[DiagnosticsLog] = None,
    ) -> None:
        self.stream_url = stream_url
        self.transport = transport
        self.reconnect = reconnect
        self.reconnect_delay_s = float(reconnect_delay_s)
        self.connect_timeout_s = float(connect_timeout_s)
        self.diagnostics = diagnostics

        self._views: List[PageView] = []
        self._closed = False
        self._task: asyncio.Task[None] | None = None
        self._last_event_id: Optional[str] = None

        self.received = 0
        self.dropped = 0
        self.delivered = 0
        self.connections = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        diagnostics: Optional[DiagnosticsLog] = None,
    ) -> "StreamSubscription":
        return cls(
            settings.stream_url,
            transport=transport,
            reconnect_delay_s=settings.reconnect_delay_s,
            connect_timeout_s=settings.request_timeout_s,
            diagnostics=diagnostics,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self, view: PageView) -> None:
        if view not in self._views:
            self._views.append(view)

    def detach(self, view: PageView) -> None:
        if view in self._views:
            self._views.remove(view)

    def dispatch(self, raw: str) -> int:
        """
        Handle one stream message. Returns how many views it was delivered to.
        """
        if self._closed:
            return 0
        self.received += 1
        with correlate(self.diagnostics):
            try:
                event = parse_snapshot(raw)
            except DecodingError as e:
                self.dropped += 1
                logger.warning("dropping undecodable stream message: %s", e)
                record(self.diagnostics, "stream.decode_failed", {"error": str(e), "raw": raw[:500]})
                return 0

            delivered = 0
            for view in list(self._views):
                # The stream is shared by every job; other jobs' snapshots are ignored silently.
                if not view.accepts(event.job_name):
                    continue
                try:
                    view.apply(event)
                except Exception as e:  # noqa: BLE001
                    # A broken view must not starve the other views or end the stream.
                    logger.exception("view %r failed to apply snapshot for job %s", view, event.job_name)
                    record(
                        self.diagnostics,
                        "view.failed",
                        {"view": type(view).__name__, "job": event.job_name, "error": repr(e)},
                    )
                    continue
                delivered += 1
        self.delivered += delivered
        return delivered

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        if self._last_event_id:
            headers["Last-Event-ID"] = self._last_event_id
        return headers

    async def _consume(self, client: httpx.AsyncClient) -> None:
        decoder = SseDecoder()
        async with client.stream("GET", self.stream_url, headers=self._headers()) as r:
            r.raise_for_status()
            self.connections += 1
            logger.info("connected to %s", self.stream_url)
            try:
                async for msg in iter_sse_messages(r.aiter_lines(), decoder):
                    if self._closed:
                        return
                    if msg.event != "message":
                        continue
                    self.dispatch(msg.data)
            finally:
                self._last_event_id = decoder.last_event_id or self._last_event_id
                if decoder.retry_ms is not None:
                    self.reconnect_delay_s = decoder.retry_ms / 1000.0

    async def run(self) -> None:
        """
        Read the stream until `close()` is called. Dropped connections are reopened after
        `reconnect_delay_s` unless `reconnect` is off, in which case the first end of
        stream (or transport error) ends the run.
        """
        # The stream stays open indefinitely; only connecting is bounded.
        timeout = httpx.Timeout(self.connect_timeout_s, read=None)
        async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
            while not self._closed:
                try:
                    await self._consume(client)
                    logger.info("stream %s ended", self.stream_url)
                except httpx.HTTPError as e:
                    logger.warning("stream %s failed: %s", self.stream_url, e)
                    record(self.diagnostics, "stream.reconnect", {"url": self.stream_url, "error": str(e)})
                if not self.reconnect or self._closed:
                    break
                await asyncio.sleep(self.reconnect_delay_s)

    def start(self) -> "asyncio.Task[None]":
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run(), name="flowsync-stream")
        return self._task

    async def close(self) -> None:
        """Tear down the subscription; no view receives anything afterwards."""
        self._closed = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
