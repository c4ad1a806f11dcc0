"""
LayoutStore: the owned aggregate behind a floor-plan designer.

The store holds the committed layout, the current selection and the two
interaction sessions, and is the only place where the layout changes. Every
committed mutation follows the same three steps, in order:

1. Update the in-memory layout synchronously
2. Notify subscribed render consumers with a fresh :class:`RenderSnapshot`
3. Push one persistence command onto the outbound :class:`CommandQueue`

Persistence runs later (see :class:`~restoplan.commands.PersistenceWorker`). A
failed command never rolls the layout back; it only sets ``store.error``.

Rejected operations (malformed input, blocked cells, merged items asked to
move) are no-ops that return ``False``/``None``. Nothing here raises for bad
input.

Threading: the store is single-threaded. Hosts that receive input on several
threads must serialize calls into it (e.g. marshal onto the event loop).

Usage:
    store = LayoutStore(gateway=InMemoryPersistence())
    await store.load_default_layout()
    worker = store.create_worker()
    worker.start()

    store.start_placing(entry)
    store.update_placing_position(Position(x=2, z=1))
    store.confirm_placement()
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

from .commands import (
    AssociateTable,
    CommandQueue,
    CreateItem,
    DeleteItem,
    PersistCommand,
    PersistenceWorker,
    UpdateItem,
    describe,
)
from .config import Config
from .grid import Cell, GridSpace, find_out_of_bounds, find_overlaps, is_valid_position, is_valid_size
from .logging_utils import log_error, log_info, log_success
from .persistence import PersistenceError, PersistenceGateway
from .schemas import CatalogEntry, Layout, PlacedItem, Position, RoomBounds
from .sessions.line_merge import Expanding, LineMergeSession
from .sessions.placement import IDLE, Dragging, Placing, PlacementSession


class ChangeTopic(str, Enum):
    """What changed in a notification."""

    LAYOUT = "layout"          # committed items changed
    SESSION = "session"        # draft, drag candidate or previews changed
    SELECTION = "selection"
    ERROR = "error"


class InteractionMode(str, Enum):
    IDLE = "idle"
    PLACING = "placing"
    DRAGGING = "dragging"
    EXPANDING = "expanding"


@dataclass(frozen=True)
class RenderSnapshot:
    """Read-only projection of the store handed to render consumers."""

    layout_id: str
    layout_name: str
    room: RoomBounds
    items: Tuple[PlacedItem, ...]
    mode: InteractionMode = InteractionMode.IDLE
    draft: Optional[PlacedItem] = None
    drag_item_id: Optional[str] = None
    drag_candidate: Optional[Position] = None
    previews: Tuple[PlacedItem, ...] = ()
    feasible: Optional[bool] = None
    selected_id: Optional[str] = None
    error: Optional[str] = None

    def get_item(self, item_id: str) -> Optional[PlacedItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


Listener = Callable[[ChangeTopic, RenderSnapshot], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LayoutStore:
    """Single owner of the committed layout, the selection and the sessions."""

    def __init__(
        self,
        layout: Optional[Layout] = None,
        *,
        gateway: Optional[PersistenceGateway] = None,
        queue: Optional[CommandQueue] = None,
        cell_size: Optional[int] = None,
    ):
        self.layout = layout or Layout()
        self.grid = GridSpace(bounds=self.layout.room, cell_size=cell_size or Config.CELL_SIZE)
        self.gateway = gateway
        self.queue = queue if queue is not None else CommandQueue()
        self.placement = PlacementSession(self)
        self.line_merge = LineMergeSession(self)
        self.selected_id: Optional[str] = None
        self.error: Optional[str] = None
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def items(self) -> Tuple[PlacedItem, ...]:
        return tuple(self.layout.items)

    def get_item(self, item_id: str) -> Optional[PlacedItem]:
        return self.layout.get_item(item_id)

    @property
    def mode(self) -> InteractionMode:
        if isinstance(self.placement.state, Placing):
            return InteractionMode.PLACING
        if isinstance(self.placement.state, Dragging):
            return InteractionMode.DRAGGING
        if isinstance(self.line_merge.state, Expanding):
            return InteractionMode.EXPANDING
        return InteractionMode.IDLE

    def snapshot(self) -> RenderSnapshot:
        placement = self.placement.state
        merge = self.line_merge.state

        draft = placement.draft if isinstance(placement, Placing) else None
        feasible: Optional[bool] = None
        drag_item_id = drag_candidate = None
        if isinstance(placement, Placing):
            feasible = placement.feasible
        elif isinstance(placement, Dragging):
            feasible = placement.feasible
            drag_item_id = placement.item_id
            drag_candidate = placement.candidate

        return RenderSnapshot(
            layout_id=self.layout.id,
            layout_name=self.layout.name,
            room=self.layout.room,
            items=self.items,
            mode=self.mode,
            draft=draft,
            drag_item_id=drag_item_id,
            drag_candidate=drag_candidate,
            previews=merge.previews if isinstance(merge, Expanding) else (),
            feasible=feasible,
            selected_id=self.selected_id,
            error=self.error,
        )

    def audit(self) -> dict:
        """Report no-overlap and bounds violations in the committed layout."""
        return {
            "overlaps": find_overlaps(self.grid, self.layout.items),
            "out_of_bounds": find_out_of_bounds(self.grid, self.layout.items),
        }

    # ------------------------------------------------------------------
    # Render consumers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, topic: ChangeTopic) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(topic, snapshot)
            except Exception as exc:  # render consumers are foreign code
                log_error(f"[Store] Listener failed on {topic.value}: {exc}")

    # ------------------------------------------------------------------
    # Persistence side
    # ------------------------------------------------------------------

    def _commit(self, *commands: PersistCommand) -> None:
        for command in commands:
            self.queue.push(command)

    def record_persistence_error(self, command: PersistCommand, exc: Exception) -> None:
        """Worker error hook: keep the in-memory layout, surface the failure."""
        self.error = f"{describe(command)} failed: {exc}"
        self._notify(ChangeTopic.ERROR)

    def _fail(self, message: str) -> None:
        log_error(f"[Store] {message}")
        self.error = message
        self._notify(ChangeTopic.ERROR)

    def clear_error(self) -> None:
        if self.error is not None:
            self.error = None
            self._notify(ChangeTopic.ERROR)

    def create_worker(self, gateway: Optional[PersistenceGateway] = None) -> PersistenceWorker:
        """Build a worker draining this store's queue, reporting into ``store.error``."""
        target = gateway if gateway is not None else self.gateway
        if target is None:
            raise ValueError("A persistence gateway is required to create a worker")
        return PersistenceWorker(self.queue, target, on_error=self.record_persistence_error)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _set_items(self, items: List[PlacedItem]) -> None:
        self.layout = self.layout.model_copy(update={"items": items, "updated_at": _utcnow()})

    def _others(self, item_id: str) -> List[PlacedItem]:
        return [item for item in self.layout.items if item.id != item_id]

    def add_item(self, item: PlacedItem) -> bool:
        """Commit a new item if its footprint is valid, free and in bounds."""
        if not is_valid_position(item.position) or not is_valid_size(item.size):
            log_error(f"[Store] Rejected malformed item {item.id}")
            return False
        if self.get_item(item.id) is not None:
            log_error(f"[Store] Duplicate item id {item.id}")
            return False
        if not self.grid.can_place(item.position, item.size, self.layout.items):
            return False

        self._set_items([*self.layout.items, item])
        log_success(f"[Store] Added {item.id} at {item.position.cell}")
        self._notify(ChangeTopic.LAYOUT)

        commands: List[PersistCommand] = [CreateItem(self.layout.id, item)]
        if item.is_associated:
            commands.append(AssociateTable(item.id, item.kind.external_id))
        self._commit(*commands)
        return True

    def remove_item(self, item_id: str) -> bool:
        if self.get_item(item_id) is None:
            return False

        # Sessions must not keep pointing at a removed item
        state = self.placement.state
        if isinstance(state, Dragging) and state.item_id == item_id:
            self.placement.state = IDLE
        merge = self.line_merge.state
        if isinstance(merge, Expanding) and merge.anchor.id == item_id:
            self.line_merge.state = IDLE
        if self.selected_id == item_id:
            self.selected_id = None

        self._set_items(self._others(item_id))
        log_success(f"[Store] Removed {item_id}")
        self._notify(ChangeTopic.LAYOUT)
        self._commit(DeleteItem(self.layout.id, item_id))
        return True

    def move_item(self, item_id: str, position: Optional[Position]) -> bool:
        """Relocate a non-merged item. Blocked or malformed targets are ignored."""
        if not is_valid_position(position):
            log_error(f"[Store] Rejected malformed position for {item_id}: {position!r}")
            return False
        item = self.get_item(item_id)
        if item is None or item.is_merged:
            return False

        target = Position(x=int(position.x), y=int(position.y), z=int(position.z))
        if target == item.position:
            return True
        if not self.grid.can_place(target, item.size, self._others(item_id)):
            return False

        moved = item.model_copy(update={"position": target})
        self._set_items([moved if other.id == item_id else other for other in self.layout.items])
        log_success(f"[Store] Moved {item_id} {item.position.cell} -> {target.cell}")
        self._notify(ChangeTopic.LAYOUT)
        self._commit(UpdateItem(self.layout.id, moved))
        return True

    def rotate_item(self, item_id: str, degrees) -> bool:
        """Set rotation (multiple of 90). The footprint is unaffected."""
        item = self.get_item(item_id)
        if item is None or item.is_merged:
            return False
        if isinstance(degrees, bool) or not isinstance(degrees, (int, float)) or degrees % 90 != 0:
            log_error(f"[Store] Rejected rotation {degrees!r} for {item_id}")
            return False

        rotation = int(degrees) % 360
        if rotation == item.rotation:
            return True

        rotated = item.model_copy(update={"rotation": rotation})
        self._set_items([rotated if other.id == item_id else other for other in self.layout.items])
        self._notify(ChangeTopic.LAYOUT)
        self._commit(UpdateItem(self.layout.id, rotated))
        return True

    def replace_item(
        self, old_id: str, new_item: PlacedItem, *, tolerated: Iterable[Cell] = ()
    ) -> bool:
        """Atomically swap ``old_id`` for ``new_item`` (merge confirmation).

        The new footprint must be in bounds and free. ``tolerated`` names the
        gap cells of a gapped merge run, the only cells a merged replacement
        may share with another item.
        """
        old = self.get_item(old_id)
        if old is None or old.is_merged:
            return False
        if not is_valid_position(new_item.position) or not is_valid_size(new_item.size):
            log_error(f"[Store] Rejected malformed replacement {new_item.id}")
            return False
        if new_item.id != old_id and self.get_item(new_item.id) is not None:
            log_error(f"[Store] Duplicate item id {new_item.id}")
            return False

        others = self._others(old_id)
        allowed = set(tolerated) if new_item.is_merged else set()
        cells = self.grid.item_cells(new_item)
        if not all(self.grid.is_in_bounds(x, z) for x, z in cells):
            return False
        taken = set().union(*(self.grid.item_cells(other) for other in others))
        if not (cells & taken) <= allowed:
            log_error(f"[Store] Replacement {new_item.id} collides outside its gap cells")
            return False

        if self.selected_id == old_id:
            self.selected_id = None
        self._set_items([*others, new_item])
        log_success(f"[Store] Replaced {old_id} with {new_item.id}")
        self._notify(ChangeTopic.LAYOUT)
        self._commit(DeleteItem(self.layout.id, old_id), CreateItem(self.layout.id, new_item))
        return True

    def select(self, item_id: Optional[str]) -> bool:
        if item_id is not None and self.get_item(item_id) is None:
            return False
        if item_id == self.selected_id:
            return True
        self.selected_id = item_id
        self._notify(ChangeTopic.SELECTION)
        return True

    # ------------------------------------------------------------------
    # Session delegation
    # ------------------------------------------------------------------

    def _session_changed(self, changed: bool) -> bool:
        if changed:
            self._notify(ChangeTopic.SESSION)
        return changed

    def start_placing(self, entry: CatalogEntry) -> bool:
        if self.line_merge.is_expanding:
            return False
        return self._session_changed(self.placement.start_placing(entry))

    def update_placing_position(self, position: Optional[Position]) -> bool:
        if not self.placement.is_placing:
            return False
        return self._session_changed(self.placement.update_position(position))

    def confirm_placement(self) -> Optional[PlacedItem]:
        if not self.placement.is_placing:
            return None
        item = self.placement.confirm()
        if item is not None:
            self._notify(ChangeTopic.SESSION)
        return item

    def cancel_placement(self) -> bool:
        if not self.placement.is_placing:
            return False
        return self._session_changed(self.placement.cancel())

    def start_drag(self, item_id: str) -> bool:
        """Begin dragging ``item_id``. Merged items are only selected."""
        if self.line_merge.is_expanding or not self.placement.is_idle:
            return False
        item = self.get_item(item_id)
        if item is None:
            return False

        self.select(item_id)
        if item.is_merged:
            return False
        return self._session_changed(self.placement.start_drag(item_id))

    def update_drag(self, position: Optional[Position]) -> bool:
        if not self.placement.is_dragging:
            return False
        return self._session_changed(self.placement.update_position(position))

    def release_drag(self, position: Optional[Position] = None) -> bool:
        if not self.placement.is_dragging:
            return False
        moved = self.placement.release(position)
        self._notify(ChangeTopic.SESSION)
        return moved

    def cancel_drag(self) -> bool:
        if not self.placement.is_dragging:
            return False
        return self._session_changed(self.placement.cancel())

    def start_expanding(self, item_id: str) -> bool:
        if not self.placement.is_idle:
            return False
        item = self.get_item(item_id)
        if item is None:
            return False
        return self._session_changed(self.line_merge.start(item))

    def update_expanding(self, cursor: Optional[Position]) -> bool:
        return self._session_changed(self.line_merge.update(cursor))

    def confirm_expanding(self) -> Optional[PlacedItem]:
        if not self.line_merge.is_expanding:
            return None
        merged = self.line_merge.confirm()
        self._notify(ChangeTopic.SESSION)
        return merged

    def cancel_expanding(self) -> bool:
        return self._session_changed(self.line_merge.cancel())

    def cancel_active(self) -> bool:
        """Cancel whichever session is active (bound to Escape)."""
        return self._session_changed(self.placement.cancel() or self.line_merge.cancel())

    # ------------------------------------------------------------------
    # Layout lifecycle
    # ------------------------------------------------------------------

    def _reset_sessions(self) -> None:
        self.placement.state = IDLE
        self.line_merge.state = IDLE
        self.selected_id = None

    def load_layout(self, layout: Layout) -> int:
        """Replace the current layout. Returns how many malformed items were dropped."""
        valid = [
            item
            for item in layout.items
            if is_valid_position(item.position) and is_valid_size(item.size)
        ]
        dropped = len(layout.items) - len(valid)
        if dropped:
            log_error(f"[Store] Skipped {dropped} malformed item(s) in layout {layout.id}")

        self._reset_sessions()
        self.layout = layout.model_copy(update={"items": valid})
        self.grid = GridSpace(bounds=self.layout.room, cell_size=self.grid.cell_size)
        self._notify(ChangeTopic.LAYOUT)
        return dropped

    def reset_layout(self) -> None:
        """Drop back to a fresh, unsaved default layout. Nothing is persisted."""
        self.load_layout(Layout())

    def _require_gateway(self) -> Optional[PersistenceGateway]:
        if self.gateway is None:
            self._fail("No persistence gateway configured")
        return self.gateway

    async def load_layout_from_gateway(self, layout_id: str) -> bool:
        gateway = self._require_gateway()
        if gateway is None:
            return False
        try:
            layout = await gateway.get_layout(layout_id)
        except PersistenceError as exc:
            self._fail(f"Failed to load layout {layout_id}: {exc}")
            return False
        if layout is None:
            self._fail(f"Layout {layout_id} not found")
            return False
        self.load_layout(layout)
        log_info(f"[Store] Loaded layout '{layout.name}' ({len(self.layout.items)} items)")
        return True

    async def create_new_layout(self, name: str = Config.DEFAULT_LAYOUT_NAME) -> Optional[Layout]:
        gateway = self._require_gateway()
        if gateway is None:
            return None
        try:
            layout = await gateway.create_layout(name, self.layout.room)
        except PersistenceError as exc:
            self._fail(f"Failed to create layout '{name}': {exc}")
            return None
        self.load_layout(layout)
        return layout

    async def list_layouts(self) -> List[Layout]:
        gateway = self._require_gateway()
        if gateway is None:
            return []
        try:
            return await gateway.list_layouts()
        except PersistenceError as exc:
            self._fail(f"Failed to list layouts: {exc}")
            return []

    async def load_default_layout(self) -> bool:
        """Load the layout named like the default one (or the oldest), creating it if none exist."""
        gateway = self._require_gateway()
        if gateway is None:
            return False
        layouts = await self.list_layouts()
        if not layouts:
            return await self.create_new_layout(Config.DEFAULT_LAYOUT_NAME) is not None

        default = next(
            (layout for layout in layouts if layout.name == Config.DEFAULT_LAYOUT_NAME),
            layouts[0],
        )
        return await self.load_layout_from_gateway(default.id)

    async def rename_layout(self, layout_id: str, name: str) -> bool:
        gateway = self._require_gateway()
        if gateway is None:
            return False
        try:
            renamed = await gateway.rename_layout(layout_id, name)
        except PersistenceError as exc:
            self._fail(f"Failed to rename layout {layout_id}: {exc}")
            return False
        if self.layout.id == layout_id:
            self.layout = self.layout.model_copy(
                update={"name": renamed.name, "updated_at": renamed.updated_at}
            )
            self._notify(ChangeTopic.LAYOUT)
        return True

    async def delete_layout(self, layout_id: str) -> bool:
        """Delete a stored layout. The default layout is protected.

        Deleting the layout currently open switches back to the default one.
        """
        gateway = self._require_gateway()
        if gateway is None:
            return False
        try:
            layout = await gateway.get_layout(layout_id)
            if layout is not None and layout.name == Config.DEFAULT_LAYOUT_NAME:
                self._fail(f"'{Config.DEFAULT_LAYOUT_NAME}' cannot be deleted")
                return False
            await gateway.delete_layout(layout_id)
        except PersistenceError as exc:
            self._fail(f"Failed to delete layout {layout_id}: {exc}")
            return False

        if self.layout.id == layout_id:
            await self.load_default_layout()
        return True

    async def save_layout(self, name: str) -> bool:
        """Write the whole current layout to the gateway under ``name``.

        A layout the gateway has never seen is created (and the store adopts
        the new id); otherwise the stored copy is renamed and its items are
        brought in line with memory.
        """
        gateway = self._require_gateway()
        if gateway is None:
            return False
        try:
            stored = await gateway.get_layout(self.layout.id)
            if stored is None:
                created = await gateway.create_layout(name, self.layout.room)
                for item in self.layout.items:
                    await gateway.create_item(created.id, item)
                self.layout = self.layout.model_copy(
                    update={"id": created.id, "name": created.name, "updated_at": _utcnow()}
                )
            else:
                if stored.name != name:
                    await gateway.rename_layout(stored.id, name)
                stored_ids = {item.id for item in stored.items}
                current_ids = {item.id for item in self.layout.items}
                for item in self.layout.items:
                    if item.id in stored_ids:
                        await gateway.update_item(stored.id, item)
                    else:
                        await gateway.create_item(stored.id, item)
                for item_id in stored_ids - current_ids:
                    await gateway.delete_item(stored.id, item_id)
                self.layout = self.layout.model_copy(update={"name": name, "updated_at": _utcnow()})
        except PersistenceError as exc:
            self._fail(f"Failed to save layout '{name}': {exc}")
            return False

        log_success(f"[Store] Saved layout '{name}' ({len(self.layout.items)} items)")
        self._notify(ChangeTopic.LAYOUT)
        return True
