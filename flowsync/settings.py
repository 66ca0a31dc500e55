from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FLOWSYNC_", extra="ignore")

    # Goflow server (stream + job API)
    base_url: str = "http://localhost:8100"
    stream_path: str = "/stream"
    api_prefix: str = "/api"

    # HTTP timeout for status/toggle/submit calls (seconds).
    request_timeout_s: float = 10.0
    # Delay before reopening the stream after a dropped connection (seconds).
    # A `retry:` field sent by the server overrides it.
    reconnect_delay_s: float = 3.0

    # Optional JSONL sink for skipped updates / decode failures / request errors.
    diagnostics_log_path: str | None = None

    log_level: str = "INFO"

    @property
    def stream_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.stream_path}"

    @property
    def api_base_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.api_prefix}"
