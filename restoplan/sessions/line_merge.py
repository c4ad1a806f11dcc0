"""Line merge: stretch one single-seat fixture into a long one.

A mergeable anchor is expanded toward the cursor. Every cell between the
anchor and the cursor on the dominant axis is a candidate; candidates that
collide or leave the room are skipped and the scan carries on, so a blocked
cell in the middle of the run yields a gapped preview rather than a shorter
line. On confirm the anchor is replaced by a single merged item whose length is
the anchor plus the accepted previews, starting at the lowest coordinate of the
run.

Note that a gapped run produces a merged item shorter than its span, laid out
from the lowest cell, which can cover the blocked cell. This mirrors the
long-standing behaviour of the designer and is pinned by tests. Those gap
cells are the only place a merge may overlap another item; every other cell
of the merged footprint was vetted while expanding and is re-checked on
confirm.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple, Union
from uuid import uuid4

from ..grid import is_valid_position, line_candidates, merged_run_extent
from ..logging_utils import log_deterministic, log_error
from ..schemas import LineDirection, MergedKind, PlacedItem, Position, Size
from .placement import IDLE, Idle, normalize_position

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..store import LayoutStore


@dataclass(frozen=True)
class Expanding:
    anchor: PlacedItem
    last_direction: Optional[LineDirection] = None
    previews: Tuple[PlacedItem, ...] = ()


MergeState = Union[Idle, Expanding]


def build_merged_item(
    anchor: PlacedItem,
    previews: Tuple[PlacedItem, ...],
    direction: LineDirection,
) -> PlacedItem:
    """Fuse ``anchor`` and its accepted ``previews`` into one merged item."""
    start, length = merged_run_extent(
        anchor.position, [preview.position for preview in previews], direction
    )
    # One grid unit per fused seat along the run; the cross axis keeps the anchor size
    if direction is LineDirection.HORIZONTAL:
        size = Size(width=length, height=anchor.size.height, depth=anchor.size.depth)
    else:
        size = Size(width=anchor.size.width, height=anchor.size.height, depth=length)

    return PlacedItem(
        id=f"{anchor.id}-long-{uuid4().hex[:8]}",
        type=anchor.type,
        name=anchor.name,
        position=Position(x=start.x, y=anchor.position.y, z=start.z),
        size=size,
        rotation=0,
        color=anchor.color,
        mergeable=anchor.mergeable,
        kind=MergedKind(direction=direction, length=length, source_id=anchor.id),
        metadata={
            **anchor.metadata,
            "merged": True,
            "direction": direction.value,
            "length": length,
            "source_id": anchor.id,
        },
    )


class LineMergeSession:
    """Expanding state machine for one anchor at a time."""

    def __init__(self, store: "LayoutStore"):
        self.store = store
        self.state: MergeState = IDLE

    @property
    def is_expanding(self) -> bool:
        return isinstance(self.state, Expanding)

    @property
    def previews(self) -> Tuple[PlacedItem, ...]:
        return self.state.previews if isinstance(self.state, Expanding) else ()

    def start(self, anchor: PlacedItem) -> bool:
        """Enter Expanding for ``anchor``. Ineligible anchors are ignored."""
        if self.is_expanding:
            return False
        if not anchor.can_expand or self.store.get_item(anchor.id) is None:
            return False

        self.state = Expanding(anchor=anchor)
        log_deterministic(f"[LineMerge] Expanding from {anchor.id} at {anchor.position.cell}")
        return True

    def update(self, cursor: Optional[Position]) -> bool:
        """Recompute the preview run toward ``cursor``."""
        if not isinstance(self.state, Expanding):
            return False
        if not is_valid_position(cursor):
            log_error(f"[LineMerge] Rejected malformed cursor: {cursor!r}")
            return False

        anchor = self.state.anchor
        direction, candidates = line_candidates(anchor.position, normalize_position(cursor))
        others = [item for item in self.store.items if item.id != anchor.id]
        grid = self.store.grid

        previews = tuple(
            anchor.model_copy(update={"id": f"{anchor.id}-line-{index}", "position": candidate})
            for index, candidate in enumerate(candidates, start=1)
            if grid.can_place(candidate, anchor.size, others)
        )
        self.state = Expanding(anchor=anchor, last_direction=direction, previews=previews)
        return True

    def confirm(self) -> Optional[PlacedItem]:
        """Replace the anchor with the merged item. Returns it, or None."""
        if not isinstance(self.state, Expanding):
            return None

        state = self.state
        self.state = IDLE

        # The layout may have changed since the last update
        anchor = self.store.get_item(state.anchor.id)
        stale = state.anchor
        if anchor is None or (anchor.position, anchor.size) != (stale.position, stale.size):
            log_error(f"[LineMerge] Anchor {state.anchor.id} moved or vanished; merge dropped")
            return None
        grid = self.store.grid
        others = [item for item in self.store.items if item.id != anchor.id]
        if not all(grid.can_place(p.position, p.size, others) for p in state.previews):
            log_error(f"[LineMerge] Previews for {anchor.id} are no longer free; merge dropped")
            return None

        direction = state.last_direction or LineDirection.HORIZONTAL
        merged = build_merged_item(anchor, state.previews, direction)
        vetted = grid.item_cells(anchor).union(*(grid.item_cells(p) for p in state.previews))
        gaps = grid.item_cells(merged) - vetted

        if not self.store.replace_item(anchor.id, merged, tolerated=gaps):
            return None

        log_deterministic(
            f"[LineMerge] {anchor.id} -> {merged.id} "
            f"({direction.value}, length {merged.kind.length})"
        )
        return merged

    def cancel(self) -> bool:
        if not self.is_expanding:
            return False
        self.state = IDLE
        return True
