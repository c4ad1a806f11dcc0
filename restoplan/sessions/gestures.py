"""Pointer gesture timing and input routing.

Long-press and double-click detection need timers. Rather than reading the
wall clock, the detector is handed a :class:`TimerScheduler`; live views use
:class:`AsyncioScheduler` and tests use :class:`ManualScheduler`, advancing
time explicitly.

:class:`InteractionController` maps raw pointer/key events (pixel coordinates
in a 2D view) onto store operations:

* pointer down on an item arms the gesture detector
* moving past the drag threshold turns the press into a drag
* single click toggles selection, double click or long press starts a line merge
* pointer up confirms a placement or merge in progress, or releases a drag
* ``Escape`` cancels whichever session is active
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Protocol, Tuple

from ..config import Config
from ..logging_utils import log_deterministic

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..store import LayoutStore


class Cancellable(Protocol):
    def cancel(self) -> Any: ...


class TimerScheduler(ABC):
    """Schedules one-shot callbacks ``delay_ms`` milliseconds in the future."""

    @abstractmethod
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> Cancellable:
        """Schedule ``callback``; the returned handle's ``cancel()`` revokes it."""


class AsyncioScheduler(TimerScheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> Cancellable:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000.0, callback)


@dataclass(order=True)
class _ManualTimer:
    due_ms: int
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(TimerScheduler):
    """Deterministic scheduler driven by :meth:`advance`."""

    def __init__(self) -> None:
        self.now_ms = 0
        self._heap: List[_ManualTimer] = []
        self._seq = itertools.count()

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> Cancellable:
        timer = _ManualTimer(self.now_ms + max(0, int(delay_ms)), next(self._seq), callback)
        heapq.heappush(self._heap, timer)
        return timer

    def advance(self, ms: int) -> int:
        """Move time forward, firing due callbacks in order. Returns how many fired."""
        target = self.now_ms + ms
        fired = 0
        while self._heap and self._heap[0].due_ms <= target:
            timer = heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            self.now_ms = timer.due_ms
            timer.callback()
            fired += 1
        self.now_ms = target
        return fired

    @property
    def pending(self) -> int:
        return sum(1 for timer in self._heap if not timer.cancelled)


class GestureDetector:
    """Turns press/release pairs on one target into click, double click or long press."""

    def __init__(
        self,
        scheduler: TimerScheduler,
        *,
        on_single_click: Callable[[str], None],
        on_double_click: Callable[[str], None],
        on_long_press: Callable[[str], None],
        long_press_ms: int = Config.LONG_PRESS_MS,
        double_click_ms: int = Config.DOUBLE_CLICK_MS,
    ):
        self.scheduler = scheduler
        self.on_single_click = on_single_click
        self.on_double_click = on_double_click
        self.on_long_press = on_long_press
        self.long_press_ms = long_press_ms
        self.double_click_ms = double_click_ms

        self._target: Optional[str] = None
        self._long_timer: Optional[Cancellable] = None
        self._click_timer: Optional[Cancellable] = None
        self._click_count = 0
        self.long_pressed = False

    def pointer_down(self, target_id: str) -> None:
        if self._target is not None and self._target != target_id:
            self.reset()
        self._cancel_long()
        self._target = target_id
        self.long_pressed = False
        self._long_timer = self.scheduler.call_later(self.long_press_ms, self._fire_long_press)

    def pointer_up(self, target_id: str) -> None:
        self._cancel_long()
        if self.long_pressed:
            # The press already produced a long press; it is not also a click.
            self.long_pressed = False
            return
        if self._target != target_id:
            self.reset()
            return

        self._click_count += 1
        if self._click_count == 1:
            self._click_timer = self.scheduler.call_later(self.double_click_ms, self._fire_single_click)
        else:
            self._cancel_click()
            self._click_count = 0
            self.on_double_click(target_id)

    def cancel_press(self) -> None:
        """Drop the pending long press (e.g. the press became a drag)."""
        self._cancel_long()
        self._cancel_click()
        self._click_count = 0

    def reset(self) -> None:
        self.cancel_press()
        self._target = None
        self.long_pressed = False

    def _fire_long_press(self) -> None:
        self._long_timer = None
        if self._target is None:
            return
        self.long_pressed = True
        self._cancel_click()
        self._click_count = 0
        self.on_long_press(self._target)

    def _fire_single_click(self) -> None:
        self._click_timer = None
        self._click_count = 0
        if self._target is not None:
            self.on_single_click(self._target)

    def _cancel_long(self) -> None:
        if self._long_timer is not None:
            self._long_timer.cancel()
            self._long_timer = None

    def _cancel_click(self) -> None:
        if self._click_timer is not None:
            self._click_timer.cancel()
            self._click_timer = None


class InteractionController:
    """Routes 2D-view pointer and key events into a :class:`LayoutStore`."""

    def __init__(
        self,
        store: "LayoutStore",
        scheduler: TimerScheduler,
        *,
        center: Tuple[float, float] = (0.0, 0.0),
        drag_threshold_px: int = Config.DRAG_THRESHOLD_PX,
        long_press_ms: int = Config.LONG_PRESS_MS,
        double_click_ms: int = Config.DOUBLE_CLICK_MS,
    ):
        self.store = store
        self.center = center
        self.drag_threshold_px = drag_threshold_px
        self.gestures = GestureDetector(
            scheduler,
            on_single_click=self._toggle_selection,
            on_double_click=self._start_expanding,
            on_long_press=self._start_expanding,
            long_press_ms=long_press_ms,
            double_click_ms=double_click_ms,
        )
        self._press: Optional[Tuple[float, float, str]] = None
        # Release of the press that started an expansion must not confirm it
        self._swallow_release = False

    def _to_grid(self, px: float, py: float):
        return self.store.grid.pixel_to_grid(px, py, *self.center)

    def _toggle_selection(self, item_id: str) -> None:
        self.store.select(None if self.store.selected_id == item_id else item_id)

    def _start_expanding(self, item_id: str) -> None:
        if self.store.start_expanding(item_id) and self._press is not None:
            self._swallow_release = True

    def pointer_down(self, px: float, py: float, item_id: Optional[str] = None) -> None:
        if not self.store.placement.is_idle or self.store.line_merge.is_expanding:
            return
        if item_id is None:
            self.store.select(None)
            return
        self._press = (px, py, item_id)
        self.gestures.pointer_down(item_id)

    def pointer_move(self, px: float, py: float) -> None:
        position = self._to_grid(px, py)

        if self.store.placement.is_placing:
            self.store.update_placing_position(position)
        elif self.store.placement.is_dragging:
            self.store.update_drag(position)
        elif self.store.line_merge.is_expanding:
            self.store.update_expanding(position)
        elif self._press is not None:
            start_x, start_y, item_id = self._press
            if max(abs(px - start_x), abs(py - start_y)) > self.drag_threshold_px:
                self.gestures.cancel_press()
                self._press = None
                if self.store.start_drag(item_id):
                    log_deterministic(f"[Input] Press on {item_id} became a drag")
                    self.store.update_drag(position)

    def pointer_up(self, px: float, py: float) -> None:
        position = self._to_grid(px, py)
        press, self._press = self._press, None

        if self.store.placement.is_placing:
            self.store.confirm_placement()
        elif self.store.placement.is_dragging:
            self.store.release_drag(position)
        elif self.store.line_merge.is_expanding:
            if self._swallow_release:
                self._swallow_release = False
            else:
                self.store.confirm_expanding()
        elif press is not None:
            self.gestures.pointer_up(press[2])

    def pointer_leave(self) -> None:
        self._press = None
        self.gestures.reset()

    def key_down(self, key: str) -> bool:
        """Handle a key press. Only ``Escape`` is bound; returns True if consumed."""
        if key != "Escape":
            return False
        self._press = None
        self._swallow_release = False
        self.gestures.reset()
        return self.store.cancel_active()
