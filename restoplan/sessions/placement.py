"""Placement and drag state machine.

States
------
``Idle``
    Nothing in flight.
``Placing(draft, feasible)``
    A catalog entry is following the pointer. The draft is not part of the
    layout until :meth:`PlacementSession.confirm` succeeds.
``Dragging(item_id, original_position, candidate, feasible)``
    An existing item is being relocated. The committed item is never touched
    until :meth:`PlacementSession.release` succeeds, so cancelling a drag is
    always a full restore.

Transitions only ever read the committed layout through the store handle and
write to it through the store's mutation API.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Union

from ..grid import is_valid_position
from ..logging_utils import log_deterministic, log_error
from ..schemas import CatalogEntry, PlacedItem, Position

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..store import LayoutStore


@dataclass(frozen=True)
class Idle:
    """No placement or drag in progress."""


@dataclass(frozen=True)
class Placing:
    draft: PlacedItem
    feasible: bool = False


@dataclass(frozen=True)
class Dragging:
    item_id: str
    original_position: Position
    candidate: Position
    feasible: bool = True


PlacementState = Union[Idle, Placing, Dragging]

IDLE = Idle()


def normalize_position(position: Position) -> Position:
    """Coerce integral floats (e.g. ``2.0`` from a pointer mapper) to ints."""
    return Position(x=int(position.x), y=int(position.y), z=int(position.z))


class PlacementSession:
    """Drives drafting new items and dragging committed ones."""

    def __init__(self, store: "LayoutStore"):
        self.store = store
        self.state: PlacementState = IDLE

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def is_idle(self) -> bool:
        return isinstance(self.state, Idle)

    @property
    def is_placing(self) -> bool:
        return isinstance(self.state, Placing)

    @property
    def is_dragging(self) -> bool:
        return isinstance(self.state, Dragging)

    def _others(self, exclude_id: Optional[str] = None) -> List[PlacedItem]:
        return [item for item in self.store.items if item.id != exclude_id]

    # ------------------------------------------------------------------
    # Placing
    # ------------------------------------------------------------------

    def start_placing(self, entry: CatalogEntry) -> bool:
        """Begin drafting ``entry``. Replaces any draft already in flight."""
        if self.is_dragging:
            return False

        draft = PlacedItem.from_catalog(entry, Position())
        feasible = self.store.grid.can_place(draft.position, draft.size, self.store.items)
        self.state = Placing(draft=draft, feasible=feasible)
        log_deterministic(f"[Placement] Drafting {entry.id} as {draft.id}")
        return True

    def update_position(self, position: Optional[Position]) -> bool:
        """Move the draft (or drag candidate) and recompute feasibility."""
        if isinstance(self.state, Idle):
            return False
        if not is_valid_position(position):
            log_error(f"[Placement] Rejected malformed position: {position!r}")
            return False

        position = normalize_position(position)
        grid = self.store.grid

        if isinstance(self.state, Placing):
            draft = self.state.draft.model_copy(update={"position": position})
            feasible = grid.can_place(position, draft.size, self.store.items)
            self.state = Placing(draft=draft, feasible=feasible)
            return True

        state = self.state
        item = self.store.get_item(state.item_id)
        if item is None:
            # Dragged item was removed underneath us; nothing left to restore.
            self.state = IDLE
            return False
        feasible = grid.can_place(position, item.size, self._others(item.id))
        self.state = Dragging(
            item_id=state.item_id,
            original_position=state.original_position,
            candidate=position,
            feasible=feasible,
        )
        return True

    def confirm(self) -> Optional[PlacedItem]:
        """Commit the draft if its current position is feasible.

        Returns the committed item, or ``None`` when nothing was committed (not
        placing, or the draft sits on a blocked/out-of-bounds cell).
        """
        if not isinstance(self.state, Placing):
            return None

        draft = self.state.draft
        if not self.store.grid.can_place(draft.position, draft.size, self.store.items):
            log_deterministic(f"[Placement] {draft.id} blocked at {draft.position.cell}")
            return None

        if not self.store.add_item(draft):
            return None

        self.state = IDLE
        return draft

    # ------------------------------------------------------------------
    # Dragging
    # ------------------------------------------------------------------

    def start_drag(self, item_id: str) -> bool:
        """Begin relocating a committed item. Merged items cannot be dragged."""
        if not self.is_idle:
            return False

        item = self.store.get_item(item_id)
        if item is None or item.is_merged:
            return False

        self.state = Dragging(
            item_id=item.id,
            original_position=item.position,
            candidate=item.position,
            feasible=True,
        )
        log_deterministic(f"[Placement] Dragging {item.id} from {item.position.cell}")
        return True

    def release(self, position: Optional[Position] = None) -> bool:
        """Finish a drag, committing the new position when feasible.

        With no ``position`` the last candidate from :meth:`update_position` is
        used. Returns True only when the item actually moved.
        """
        if not isinstance(self.state, Dragging):
            return False
        if position is not None and not is_valid_position(position):
            log_error(f"[Placement] Rejected malformed release position: {position!r}")
            return False

        state = self.state
        target = normalize_position(position) if position is not None else state.candidate
        self.state = IDLE

        if target == state.original_position:
            return False
        # move_item re-checks feasibility; a blocked target leaves the item
        # at its original position.
        return self.store.move_item(state.item_id, target)

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    def cancel(self) -> bool:
        """Drop the draft or abandon the drag. Returns False when already idle."""
        if self.is_idle:
            return False
        if isinstance(self.state, Dragging):
            log_deterministic(
                f"[Placement] Drag of {self.state.item_id} cancelled; "
                f"kept at {self.state.original_position.cell}"
            )
        self.state = IDLE
        return True
