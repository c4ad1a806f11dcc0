"""Tests for gesture timing and pointer routing with a manual scheduler."""

import asyncio

import pytest

from restoplan.catalog import DEFAULT_CATALOG
from restoplan.schemas import CatalogEntry, ObjectType, Position
from restoplan.sessions import AsyncioScheduler, GestureDetector, InteractionController, ManualScheduler
from restoplan.store import InteractionMode, LayoutStore

SEAT = next(entry for entry in DEFAULT_CATALOG if entry.id == "table-with-chairs")
TABLE = CatalogEntry(id="table-square", type=ObjectType.TABLE, name="Square table")

CELL = 40


def make_detector():
    scheduler = ManualScheduler()
    events = []
    detector = GestureDetector(
        scheduler,
        on_single_click=lambda target: events.append(("single", target)),
        on_double_click=lambda target: events.append(("double", target)),
        on_long_press=lambda target: events.append(("long", target)),
        long_press_ms=500,
        double_click_ms=300,
    )
    return scheduler, detector, events


def test_manual_scheduler_fires_in_due_order_and_skips_cancelled():
    scheduler = ManualScheduler()
    fired = []
    scheduler.call_later(200, lambda: fired.append("b"))
    scheduler.call_later(100, lambda: fired.append("a"))
    handle = scheduler.call_later(150, lambda: fired.append("never"))
    handle.cancel()

    assert scheduler.advance(250) == 2
    assert fired == ["a", "b"]
    assert scheduler.now_ms == 250
    assert scheduler.pending == 0


def test_single_click_fires_after_double_click_window():
    scheduler, detector, events = make_detector()

    detector.pointer_down("t1")
    scheduler.advance(50)
    detector.pointer_up("t1")
    scheduler.advance(299)
    assert events == []

    scheduler.advance(1)
    assert events == [("single", "t1")]


def test_two_quick_clicks_make_a_double_click():
    scheduler, detector, events = make_detector()

    detector.pointer_down("t1")
    detector.pointer_up("t1")
    scheduler.advance(100)
    detector.pointer_down("t1")
    detector.pointer_up("t1")
    scheduler.advance(1000)

    assert events == [("double", "t1")]


def test_long_press_fires_once_and_suppresses_click():
    scheduler, detector, events = make_detector()

    detector.pointer_down("t1")
    scheduler.advance(499)
    assert events == []
    scheduler.advance(1)
    detector.pointer_up("t1")
    scheduler.advance(1000)

    assert events == [("long", "t1")]


def test_cancel_press_drops_pending_long_press():
    scheduler, detector, events = make_detector()

    detector.pointer_down("t1")
    detector.cancel_press()
    scheduler.advance(1000)

    assert events == []


def seat_at(store: LayoutStore, x: int, z: int):
    store.start_placing(SEAT)
    store.update_placing_position(Position(x=x, z=z))
    return store.confirm_placement()


def make_controller():
    store = LayoutStore()
    scheduler = ManualScheduler()
    controller = InteractionController(
        store,
        scheduler,
        center=(400.0, 300.0),
        drag_threshold_px=5,
        long_press_ms=500,
        double_click_ms=300,
    )
    return store, scheduler, controller


def px(x: int, z: int):
    return (400.0 + x * CELL, 300.0 + z * CELL)


def test_click_toggles_selection():
    store, scheduler, controller = make_controller()
    seat = seat_at(store, 0, 0)

    controller.pointer_down(*px(0, 0), item_id=seat.id)
    controller.pointer_up(*px(0, 0))
    scheduler.advance(300)
    assert store.selected_id == seat.id

    scheduler.advance(1000)
    controller.pointer_down(*px(0, 0), item_id=seat.id)
    controller.pointer_up(*px(0, 0))
    scheduler.advance(300)
    assert store.selected_id is None


def test_long_press_expands_and_next_release_confirms():
    store, scheduler, controller = make_controller()
    seat = seat_at(store, 0, 0)

    controller.pointer_down(*px(0, 0), item_id=seat.id)
    scheduler.advance(500)
    assert store.mode is InteractionMode.EXPANDING

    controller.pointer_move(*px(2, 0))
    controller.pointer_up(*px(2, 0))
    # The release ending the long press does not confirm
    assert store.mode is InteractionMode.EXPANDING
    assert len(store.snapshot().previews) == 2

    controller.pointer_move(*px(3, 0))
    controller.pointer_up(*px(3, 0))

    assert store.mode is InteractionMode.IDLE
    (merged,) = store.items
    assert merged.kind.length == 4


def test_double_click_expands():
    store, scheduler, controller = make_controller()
    seat = seat_at(store, 0, 0)

    for _ in range(2):
        controller.pointer_down(*px(0, 0), item_id=seat.id)
        controller.pointer_up(*px(0, 0))
        scheduler.advance(50)

    assert store.mode is InteractionMode.EXPANDING
    controller.pointer_move(*px(0, 2))
    controller.pointer_up(*px(0, 2))
    assert store.items[0].kind.length == 3


def test_moving_past_threshold_turns_press_into_drag():
    store, scheduler, controller = make_controller()
    seat = seat_at(store, 0, 0)

    controller.pointer_down(*px(0, 0), item_id=seat.id)
    controller.pointer_move(400.0 + 3, 300.0)
    assert store.mode is InteractionMode.IDLE

    controller.pointer_move(*px(3, -2))
    assert store.mode is InteractionMode.DRAGGING
    scheduler.advance(1000)  # long press was cancelled
    assert store.mode is InteractionMode.DRAGGING

    controller.pointer_up(*px(3, -2))
    assert store.get_item(seat.id).position == Position(x=3, z=-2)


def test_pointer_up_confirms_placement():
    store, scheduler, controller = make_controller()

    store.start_placing(TABLE)
    controller.pointer_move(*px(-4, 2))
    controller.pointer_up(*px(-4, 2))

    assert store.mode is InteractionMode.IDLE
    assert store.items[0].position == Position(x=-4, z=2)


def test_escape_cancels_active_session():
    store, scheduler, controller = make_controller()
    seat = seat_at(store, 0, 0)
    store.start_drag(seat.id)
    store.update_drag(Position(x=5, z=5))

    assert controller.key_down("Escape")
    assert store.mode is InteractionMode.IDLE
    assert store.get_item(seat.id).position == Position()
    assert not controller.key_down("Enter")


@pytest.mark.asyncio
async def test_asyncio_scheduler_runs_callbacks_on_loop():
    fired = asyncio.Event()
    scheduler = AsyncioScheduler()

    scheduler.call_later(1, fired.set)
    await asyncio.wait_for(fired.wait(), timeout=1.0)

    late = []
    handle = scheduler.call_later(1, lambda: late.append(True))
    handle.cancel()
    await asyncio.sleep(0.01)
    assert late == []
