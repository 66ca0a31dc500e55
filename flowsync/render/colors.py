from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Union

from flowsync.errors import DecodingError
from flowsync.models import DisplayColor, ExecutionState

STATE_COLORS: Mapping[ExecutionState, DisplayColor] = MappingProxyType(
    {
        ExecutionState.running: DisplayColor("#dffbe3"),
        ExecutionState.upforretry: DisplayColor("#ffc620"),
        ExecutionState.successful: DisplayColor("#39c84e"),
        ExecutionState.skipped: DisplayColor("#abbefb"),
        ExecutionState.failed: DisplayColor("#ff4020"),
        ExecutionState.notstarted: DisplayColor("white"),
    }
)


def color_for(state: Union[ExecutionState, str]) -> DisplayColor:
    """
    Map an execution state to its display color. The only place the color taxonomy lives;
    renderers never look at states.
    """
    try:
        key = ExecutionState(state)
    except ValueError as e:
        raise DecodingError(f"unknown execution state: {state!r}") from e
    return STATE_COLORS[key]
