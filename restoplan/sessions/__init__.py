"""Interaction sessions: placement/drag, line merge and pointer gestures."""

from .placement import IDLE, Dragging, Idle, PlacementSession, Placing, normalize_position
from .line_merge import Expanding, LineMergeSession, build_merged_item
from .gestures import (
    AsyncioScheduler,
    GestureDetector,
    InteractionController,
    ManualScheduler,
    TimerScheduler,
)

__all__ = [
    "IDLE",
    "Idle",
    "Placing",
    "Dragging",
    "PlacementSession",
    "normalize_position",
    "Expanding",
    "LineMergeSession",
    "build_merged_item",
    "TimerScheduler",
    "ManualScheduler",
    "AsyncioScheduler",
    "GestureDetector",
    "InteractionController",
]
