"""Grid space: coordinate transforms, bounds and occupancy math.

The room is centred on the origin. For a room of width ``W`` and depth ``D``
the addressable cells are ``x in [-W//2, W//2]`` and ``z in [-D//2, D//2]``.
An item occupies ``size.width x size.depth`` cells starting at its position
(the minimum corner). Rotation never changes the footprint.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Set, Tuple

from ..config import Config
from ..schemas import PlacedItem, Position, RoomBounds, Size

Cell = Tuple[int, int]


def _is_grid_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if isinstance(value, float):
        return not math.isnan(value) and value.is_integer()
    return True


def is_valid_position(position: Optional[Position]) -> bool:
    """Return True when ``position`` is present and every coordinate is integral."""
    if position is None:
        return False
    return all(_is_grid_number(getattr(position, axis, None)) for axis in ("x", "y", "z"))


def is_valid_size(size: Optional[Size]) -> bool:
    """Return True when ``size`` is present, integral and at least 1 on every axis."""
    if size is None:
        return False
    values = [getattr(size, axis, None) for axis in ("width", "height", "depth")]
    return all(_is_grid_number(v) and v >= 1 for v in values)


@dataclass
class GridSpace:
    """Occupancy model for one room.

    Pure and stateless apart from its configuration, so sessions and the store
    can query it freely without side effects.
    """

    bounds: RoomBounds = field(default_factory=RoomBounds)
    cell_size: int = field(default_factory=lambda: Config.CELL_SIZE)

    # ------------------------------------------------------------------
    # Pixel <-> grid transforms (presentational only)
    # ------------------------------------------------------------------

    def pixel_to_grid(self, px: float, py: float, center_x: float, center_y: float) -> Position:
        """Map a pixel coordinate in the 2D view to the nearest grid cell."""
        return Position(
            x=round((px - center_x) / self.cell_size),
            y=0,
            z=round((py - center_y) / self.cell_size),
        )

    def grid_to_pixel(self, x: int, z: int, center_x: float, center_y: float) -> Tuple[float, float]:
        """Pixel coordinate of the centre of cell ``(x, z)``."""
        half = self.cell_size / 2
        return (x * self.cell_size + center_x + half, z * self.cell_size + center_y + half)

    def grid_to_pixel_corner(self, x: int, z: int, center_x: float, center_y: float) -> Tuple[float, float]:
        """Pixel coordinate of the top-left corner of cell ``(x, z)``."""
        return (x * self.cell_size + center_x, z * self.cell_size + center_y)

    # ------------------------------------------------------------------
    # Bounds and occupancy
    # ------------------------------------------------------------------

    def is_in_bounds(self, x: int, z: int) -> bool:
        half_w = self.bounds.half_width
        half_d = self.bounds.half_depth
        return -half_w <= x <= half_w and -half_d <= z <= half_d

    def occupied_cells(self, position: Optional[Position], size: Optional[Size]) -> Set[Cell]:
        """Return the set of floor cells covered by a footprint.

        Malformed input yields an empty set rather than raising, mirroring how
        ``can_place`` treats it as infeasible.
        """
        if not is_valid_position(position) or not is_valid_size(size):
            return set()
        x0, z0 = int(position.x), int(position.z)
        return {
            (x0 + dx, z0 + dz)
            for dx in range(int(size.width))
            for dz in range(int(size.depth))
        }

    def item_cells(self, item: PlacedItem) -> Set[Cell]:
        return self.occupied_cells(item.position, item.size)

    def can_place(
        self,
        position: Optional[Position],
        size: Optional[Size],
        existing_items: Iterable[PlacedItem],
    ) -> bool:
        """Check bounds and collisions for a footprint against ``existing_items``.

        Callers exclude the item being moved themselves (e.g. a dragged item or
        a merge anchor) before passing ``existing_items``.
        """
        if not is_valid_position(position) or not is_valid_size(size):
            return False

        cells = self.occupied_cells(position, size)
        if not all(self.is_in_bounds(x, z) for x, z in cells):
            return False

        for item in existing_items:
            if not cells.isdisjoint(self.item_cells(item)):
                return False

        return True
