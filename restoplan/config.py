"""
Restoplan Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # Room bounds in grid units (x spans the width, z spans the depth)
    ROOM_WIDTH: int = int(os.getenv("RESTOPLAN_ROOM_WIDTH", "20"))
    ROOM_DEPTH: int = int(os.getenv("RESTOPLAN_ROOM_DEPTH", "15"))
    ROOM_HEIGHT: int = int(os.getenv("RESTOPLAN_ROOM_HEIGHT", "3"))

    # Size of one grid cell in pixels for the 2D view
    CELL_SIZE: int = int(os.getenv("RESTOPLAN_CELL_SIZE", "40"))

    # Pointer gesture timings
    LONG_PRESS_MS: int = int(os.getenv("RESTOPLAN_LONG_PRESS_MS", "500"))
    DOUBLE_CLICK_MS: int = int(os.getenv("RESTOPLAN_DOUBLE_CLICK_MS", "300"))
    DRAG_THRESHOLD_PX: int = int(os.getenv("RESTOPLAN_DRAG_THRESHOLD_PX", "5"))

    # Persistence
    LAYOUT_DIR: Path = Path(os.getenv("RESTOPLAN_LAYOUT_DIR", "planner_layouts"))
    DEFAULT_LAYOUT_NAME: str = os.getenv("RESTOPLAN_DEFAULT_LAYOUT", "Layout 1")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if values are unusable."""
        for name in ("ROOM_WIDTH", "ROOM_DEPTH", "ROOM_HEIGHT", "CELL_SIZE"):
            if getattr(cls, name) < 1:
                raise ValueError(f"{name} must be >= 1 (got {getattr(cls, name)})")

        if cls.LONG_PRESS_MS <= 0 or cls.DOUBLE_CLICK_MS <= 0:
            raise ValueError("Gesture delays must be positive milliseconds")

        if cls.DRAG_THRESHOLD_PX < 0:
            raise ValueError("RESTOPLAN_DRAG_THRESHOLD_PX cannot be negative")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Restoplan Configuration:",
            f"  Room: {cls.ROOM_WIDTH} x {cls.ROOM_DEPTH} (height {cls.ROOM_HEIGHT})",
            f"  Cell size: {cls.CELL_SIZE}px",
            f"  Long press: {cls.LONG_PRESS_MS}ms, double click: {cls.DOUBLE_CLICK_MS}ms",
            f"  Layout dir: {cls.LAYOUT_DIR}",
            f"  Default layout: {cls.DEFAULT_LAYOUT_NAME}",
        ]
        return "\n".join(lines)
