from __future__ import annotations

from typing import Any, Optional


class FlowsyncError(Exception):
    pass


class DecodingError(FlowsyncError):
    """
    A stream message or API response did not have the expected structure.
    """


class SurfaceNotFoundError(FlowsyncError):
    def __init__(self, key: Any) -> None:
        super().__init__(f"no surface mounted for {key}")
        self.key = key


class RequestError(FlowsyncError):
    """
    A status/toggle/submit request failed at the transport or HTTP level.
    """

    def __init__(self, message: str, *, url: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
