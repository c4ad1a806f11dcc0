"""Tests for LayoutStore mutations, notifications and layout lifecycle."""

import random

import pytest

from restoplan.catalog import DEFAULT_CATALOG, entry_for_table
from restoplan.commands import AssociateTable, CreateItem, UpdateItem
from restoplan.config import Config
from restoplan.persistence import InMemoryPersistence
from restoplan.schemas import (
    CatalogEntry,
    Layout,
    ObjectType,
    PlacedItem,
    Position,
    Size,
    TableStatus,
)
from restoplan.store import ChangeTopic, InteractionMode, LayoutStore

SEAT = next(entry for entry in DEFAULT_CATALOG if entry.id == "table-with-chairs")
TABLE = CatalogEntry(id="table-square", type=ObjectType.TABLE, name="Square table")


def place(store: LayoutStore, entry: CatalogEntry, x: int, z: int):
    store.start_placing(entry)
    store.update_placing_position(Position(x=x, z=z))
    return store.confirm_placement()


def test_place_single_table_at_origin():
    store = LayoutStore()

    item = place(store, TABLE, 0, 0)

    assert item is not None
    assert store.items == (item,)
    assert store.grid.item_cells(item) == {(0, 0)}
    assert store.queue.pending == [CreateItem(store.layout.id, item)]


def test_second_table_on_same_cell_is_rejected():
    store = LayoutStore()
    place(store, TABLE, 0, 0)

    assert place(store, TABLE, 0, 0) is None
    assert len(store.items) == 1
    assert store.mode is InteractionMode.PLACING


def test_move_onto_occupied_cell_is_noop():
    store = LayoutStore()
    first = place(store, TABLE, 0, 0)
    place(store, TABLE, 1, 0)
    queued = len(store.queue)

    assert not store.move_item(first.id, Position(x=1, z=0))
    assert store.get_item(first.id).position == Position()
    assert len(store.queue) == queued


def test_move_out_of_bounds_or_malformed_is_noop():
    store = LayoutStore()
    item = place(store, TABLE, 0, 0)

    assert not store.move_item(item.id, Position(x=11, z=0))
    assert not store.move_item(item.id, None)
    assert not store.move_item("missing", Position(x=1, z=1))
    assert store.get_item(item.id).position == Position()


def test_move_to_same_position_issues_no_command():
    store = LayoutStore()
    item = place(store, TABLE, 0, 0)
    queued = len(store.queue)

    assert store.move_item(item.id, Position())
    assert len(store.queue) == queued


def test_rotate_item_normalizes_and_keeps_footprint():
    store = LayoutStore()
    store.start_placing(CatalogEntry(id="bar", type=ObjectType.BAR, name="Bar", size=Size(width=2)))
    store.update_placing_position(Position(x=0, z=0))
    bar = store.confirm_placement()

    assert store.rotate_item(bar.id, 450)
    rotated = store.get_item(bar.id)
    assert rotated.rotation == 90
    assert store.grid.item_cells(rotated) == {(0, 0), (1, 0)}
    assert store.queue.pending[-1] == UpdateItem(store.layout.id, rotated)

    assert not store.rotate_item(bar.id, 45)
    assert not store.rotate_item(bar.id, float("nan"))
    assert store.get_item(bar.id).rotation == 90


def test_remove_item_clears_selection_and_drag():
    store = LayoutStore()
    item = place(store, TABLE, 0, 0)
    store.start_drag(item.id)
    assert store.selected_id == item.id

    assert store.remove_item(item.id)
    assert store.items == ()
    assert store.selected_id is None
    assert store.mode is InteractionMode.IDLE
    assert not store.remove_item(item.id)


def test_sessions_are_mutually_exclusive():
    store = LayoutStore()
    seat = place(store, SEAT, 0, 0)

    store.start_placing(TABLE)
    assert not store.start_expanding(seat.id)
    store.cancel_placement()

    store.start_expanding(seat.id)
    assert not store.start_placing(TABLE)
    assert not store.start_drag(seat.id)
    assert store.mode is InteractionMode.EXPANDING


def test_cancel_active_cancels_whichever_session_runs():
    store = LayoutStore()
    seat = place(store, SEAT, 0, 0)

    store.start_expanding(seat.id)
    assert store.cancel_active()
    assert store.mode is InteractionMode.IDLE

    store.start_placing(TABLE)
    assert store.cancel_active()
    assert store.mode is InteractionMode.IDLE
    assert not store.cancel_active()


def test_listeners_receive_snapshots_by_topic():
    store = LayoutStore()
    received = []
    unsubscribe = store.subscribe(lambda topic, snap: received.append((topic, snap)))

    store.start_placing(TABLE)
    store.update_placing_position(Position(x=2, z=1))
    item = store.confirm_placement()
    store.select(item.id)

    topics = [topic for topic, _ in received]
    assert topics == [
        ChangeTopic.SESSION,
        ChangeTopic.SESSION,
        ChangeTopic.LAYOUT,
        ChangeTopic.SESSION,
        ChangeTopic.SELECTION,
    ]
    placing_snapshot = received[1][1]
    assert placing_snapshot.mode is InteractionMode.PLACING
    assert placing_snapshot.draft.position == Position(x=2, z=1)
    assert placing_snapshot.feasible is True
    assert received[-1][1].selected_id == item.id

    unsubscribe()
    store.select(None)
    assert len(received) == 5


def test_failing_listener_does_not_break_mutation():
    store = LayoutStore()

    def broken(topic, snapshot):
        raise RuntimeError("renderer crashed")

    store.subscribe(broken)

    assert place(store, TABLE, 0, 0) is not None
    assert len(store.items) == 1


def test_placing_restaurant_table_queues_association():
    store = LayoutStore()
    entry = entry_for_table(TableStatus(external_id="t-12", number=12, name="Window"))

    item = place(store, entry, 3, 3)

    assert item.is_associated
    assert item.kind.external_id == "t-12"
    assert store.queue.pending[-1] == AssociateTable(item.id, "t-12")


def test_load_layout_drops_malformed_items():
    good = PlacedItem(id="good", type=ObjectType.TABLE, name="ok", position=Position(x=1, z=1))
    bad = PlacedItem(id="bad", type=ObjectType.TABLE, name="bad", size=Size(width=0))
    store = LayoutStore()
    store.start_placing(TABLE)

    dropped = store.load_layout(Layout(name="Imported", items=[good, bad]))

    assert dropped == 1
    assert [item.id for item in store.items] == ["good"]
    assert store.mode is InteractionMode.IDLE


@pytest.mark.parametrize("seed", [1, 7, 42])
def test_random_operations_preserve_invariants(seed):
    rng = random.Random(seed)
    store = LayoutStore()

    for _ in range(200):
        roll = rng.random()
        position = Position(x=rng.randint(-12, 12), z=rng.randint(-9, 9))
        if roll < 0.4:
            entry = rng.choice(DEFAULT_CATALOG)
            store.start_placing(entry)
            store.update_placing_position(position)
            if store.confirm_placement() is None:
                store.cancel_placement()
        elif roll < 0.7 and store.items:
            item = rng.choice(store.items)
            store.move_item(item.id, position)
        elif roll < 0.85 and store.items:
            item = rng.choice(store.items)
            store.start_drag(item.id)
            store.update_drag(position)
            store.release_drag()
        elif store.items:
            item = rng.choice(store.items)
            store.rotate_item(item.id, rng.choice([0, 90, 180, 270, 45]))

        assert store.audit() == {"overlaps": [], "out_of_bounds": []}


@pytest.mark.parametrize("seed", [3, 11])
def test_cancel_after_any_updates_restores_layout(seed):
    rng = random.Random(seed)
    store = LayoutStore()
    seat = place(store, SEAT, 0, 0)
    other = place(store, TABLE, 4, 4)
    before = store.snapshot().items

    for start in (
        lambda: store.start_placing(TABLE),
        lambda: store.start_drag(other.id),
        lambda: store.start_expanding(seat.id),
    ):
        assert start()
        for _ in range(rng.randint(1, 15)):
            cursor = Position(x=rng.randint(-10, 10), z=rng.randint(-7, 7))
            store.update_placing_position(cursor)
            store.update_drag(cursor)
            store.update_expanding(cursor)
        assert store.cancel_active()
        assert store.snapshot().items == before


# ---------------------------------------------------------------------------
# Layout lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_load_default_layout_creates_it_when_missing():
    gateway = InMemoryPersistence()
    store = LayoutStore(gateway=gateway)

    assert await store.load_default_layout()

    layouts = await gateway.list_layouts()
    assert [layout.name for layout in layouts] == [Config.DEFAULT_LAYOUT_NAME]
    assert store.layout.id == layouts[0].id


@pytest.mark.asyncio
async def test_default_layout_cannot_be_deleted():
    gateway = InMemoryPersistence()
    store = LayoutStore(gateway=gateway)
    await store.load_default_layout()

    assert not await store.delete_layout(store.layout.id)
    assert store.error is not None
    assert len(await gateway.list_layouts()) == 1

    store.clear_error()
    assert store.error is None


@pytest.mark.asyncio
async def test_deleting_current_layout_falls_back_to_default():
    gateway = InMemoryPersistence()
    store = LayoutStore(gateway=gateway)
    await store.load_default_layout()
    default_id = store.layout.id

    second = await store.create_new_layout("Terrace")
    assert store.layout.id == second.id

    assert await store.delete_layout(second.id)
    assert store.layout.id == default_id


@pytest.mark.asyncio
async def test_rename_updates_current_layout():
    gateway = InMemoryPersistence()
    store = LayoutStore(gateway=gateway)
    layout = await store.create_new_layout("Terrace")

    assert await store.rename_layout(layout.id, "Patio")
    assert store.layout.name == "Patio"
    assert (await gateway.get_layout(layout.id)).name == "Patio"


@pytest.mark.asyncio
async def test_save_layout_creates_unknown_layout_and_syncs_items():
    gateway = InMemoryPersistence()
    store = LayoutStore(gateway=gateway)
    first = place(store, TABLE, 0, 0)
    second = place(store, TABLE, 2, 0)

    assert await store.save_layout("Main room")
    stored = await gateway.get_layout(store.layout.id)
    assert stored.name == "Main room"
    assert {item.id for item in stored.items} == {first.id, second.id}

    store.remove_item(second.id)
    store.move_item(first.id, Position(x=-1, z=-1))
    assert await store.save_layout("Main room")

    stored = await gateway.get_layout(store.layout.id)
    assert [item.position for item in stored.items] == [Position(x=-1, z=-1)]


@pytest.mark.asyncio
async def test_load_layout_from_gateway_reports_unknown_id():
    store = LayoutStore(gateway=InMemoryPersistence())

    assert not await store.load_layout_from_gateway("nope")
    assert "not found" in store.error


@pytest.mark.asyncio
async def test_lifecycle_without_gateway_sets_error():
    store = LayoutStore()

    assert await store.list_layouts() == []
    assert store.error == "No persistence gateway configured"
