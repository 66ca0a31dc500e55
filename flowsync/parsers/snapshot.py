from __future__ import annotations

import json
from typing import Union

from pydantic import ValidationError

from flowsync.errors import DecodingError
from flowsync.models import JobSnapshotEvent


def parse_snapshot(raw: Union[str, bytes]) -> JobSnapshotEvent:
    """
    Decode one stream payload into a JobSnapshotEvent.

    Only the structural shape is checked (job name, run list, run fields, known states).
    Extra fields anywhere in the payload are ignored so newer producers keep working.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodingError(f"stream payload is not utf-8: {e}") from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecodingError(f"stream payload is not JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise DecodingError(f"stream payload must be an object, got {type(data).__name__}")
    try:
        return JobSnapshotEvent.model_validate(data)
    except ValidationError as e:
        raise DecodingError(f"malformed job snapshot: {e.error_count()} error(s): {_first_error(e)}") from e


def _first_error(e: ValidationError) -> str:
    errs = e.errors()
    if not errs:
        return "unknown"
    loc = ".".join(str(p) for p in errs[0].get("loc", ()))
    return f"{loc}: {errs[0].get('msg', '')}"
