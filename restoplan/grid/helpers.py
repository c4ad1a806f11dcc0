"""Utilities built on top of :class:`GridSpace`."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..schemas import LineDirection, ObjectType, PlacedItem, Position
from .space import Cell, GridSpace


def infer_direction(anchor: Position, cursor: Position) -> LineDirection:
    """Pick the elongation axis from the cursor offset.

    Horizontal only wins on a strictly larger x offset; ties go vertical.
    """
    delta_x = abs(cursor.x - anchor.x)
    delta_z = abs(cursor.z - anchor.z)
    return LineDirection.HORIZONTAL if delta_x > delta_z else LineDirection.VERTICAL


def line_candidates(
    anchor: Position,
    cursor: Position,
    *,
    spacing: int = 1,
) -> Tuple[LineDirection, List[Position]]:
    """Return the inferred direction and the candidate cells from anchor to cursor.

    Candidates step outward from the anchor (the anchor itself is excluded) in
    the direction of the cursor on the chosen axis. The cross-axis coordinate
    is held at the anchor's.
    """
    direction = infer_direction(anchor, cursor)
    if direction is LineDirection.HORIZONTAL:
        distance = abs(cursor.x - anchor.x)
        sign = 1 if cursor.x > anchor.x else -1
    else:
        distance = abs(cursor.z - anchor.z)
        sign = 1 if cursor.z > anchor.z else -1

    count = max(0, distance // spacing)
    positions: List[Position] = []
    for i in range(1, count + 1):
        offset = i * spacing * sign
        if direction is LineDirection.HORIZONTAL:
            positions.append(anchor.shifted(dx=offset))
        else:
            positions.append(anchor.shifted(dz=offset))
    return direction, positions


def merged_run_extent(
    anchor: Position,
    accepted: Sequence[Position],
    direction: LineDirection,
) -> Tuple[Position, int]:
    """Compute ``(start_position, length)`` for a merged run.

    ``length`` counts the anchor plus every accepted preview. ``start_position``
    is the minimum coordinate along the elongation axis; the cross-axis
    coordinate is the anchor's. When previews were skipped around a blocked
    cell the run is not contiguous, and ``length`` undercounts the span.
    """
    length = 1 + len(accepted)
    if direction is LineDirection.HORIZONTAL:
        min_x = min([anchor.x, *(p.x for p in accepted)])
        return Position(x=min_x, y=0, z=anchor.z), length
    min_z = min([anchor.z, *(p.z for p in accepted)])
    return Position(x=anchor.x, y=0, z=min_z), length


def find_overlaps(grid: GridSpace, items: Iterable[PlacedItem]) -> List[Tuple[str, str]]:
    """Return every pair of item ids whose footprints intersect."""
    owners: Dict[Cell, str] = {}
    pairs: List[Tuple[str, str]] = []
    for item in items:
        seen_here = set()
        for cell in grid.item_cells(item):
            other = owners.get(cell)
            if other is not None and other not in seen_here:
                seen_here.add(other)
                pairs.append((other, item.id))
            owners.setdefault(cell, item.id)
    return pairs


def find_out_of_bounds(grid: GridSpace, items: Iterable[PlacedItem]) -> List[str]:
    """Return ids of items with at least one cell outside the room."""
    return [
        item.id
        for item in items
        if any(not grid.is_in_bounds(x, z) for x, z in grid.item_cells(item))
    ]


_DEFAULT_SYMBOLS: Dict[str, str] = {
    ObjectType.TABLE.value: "T ",
    ObjectType.CHAIR.value: "c ",
    ObjectType.BAR.value: "B ",
    ObjectType.KITCHEN.value: "K ",
    ObjectType.BATHROOM.value: "W ",
    ObjectType.ENTRANCE.value: "E ",
    ObjectType.WALL.value: "██",
    ObjectType.DECORATION.value: "* ",
    ObjectType.TEST.value: "? ",
    "merged": "==",
    "preview": "+ ",
    "draft": "[]",
}


def render_ascii_plan(
    grid: GridSpace,
    items: Iterable[PlacedItem],
    *,
    previews: Iterable[PlacedItem] = (),
    draft: Optional[PlacedItem] = None,
    symbols: Optional[Dict[str, str]] = None,
) -> str:
    """Render the whole room as text, one row per z value (top row = min z).

    Useful for debugging and test failure output. Previews are drawn over
    committed items, and the draft over both. Empty cells render as ``. ``.
    """
    mapping = {**_DEFAULT_SYMBOLS}
    if symbols:
        mapping.update(symbols)

    canvas: Dict[Cell, str] = {}
    for item in items:
        symbol = mapping["merged"] if item.is_merged else mapping.get(item.type.value, "??")
        for cell in grid.item_cells(item):
            canvas[cell] = symbol
    for preview in previews:
        for cell in grid.item_cells(preview):
            canvas[cell] = mapping["preview"]
    if draft is not None:
        for cell in grid.item_cells(draft):
            canvas[cell] = mapping["draft"]

    half_w = grid.bounds.half_width
    half_d = grid.bounds.half_depth
    lines: List[str] = []
    for z in range(-half_d, half_d + 1):
        lines.append("".join(canvas.get((x, z), ". ") for x in range(-half_w, half_w + 1)))
    return "\n".join(lines)
