"""Grid occupancy model for floor plans."""

from .space import Cell, GridSpace, is_valid_position, is_valid_size
from .helpers import (
    find_out_of_bounds,
    find_overlaps,
    infer_direction,
    line_candidates,
    merged_run_extent,
    render_ascii_plan,
)

__all__ = [
    "Cell",
    "GridSpace",
    "is_valid_position",
    "is_valid_size",
    "find_out_of_bounds",
    "find_overlaps",
    "infer_direction",
    "line_candidates",
    "merged_run_extent",
    "render_ascii_plan",
]
