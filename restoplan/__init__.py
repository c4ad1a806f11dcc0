"""
Restoplan - grid placement engine for restaurant floor plans.

Place catalog fixtures on a room grid, drag them around, and stretch
single-seat tables into long ones, without ever letting two fixtures overlap
or leave the room.

No file I/O required. No database required. Persistence and table status
are injected by the host.
"""

__version__ = "0.1.0"

# Main aggregate
from .store import ChangeTopic, InteractionMode, LayoutStore, RenderSnapshot

# Grid model
from .grid import GridSpace, render_ascii_plan

# Sessions and input
from .sessions import (
    AsyncioScheduler,
    GestureDetector,
    InteractionController,
    LineMergeSession,
    ManualScheduler,
    PlacementSession,
)

# Persistence
from .commands import CommandQueue, PersistenceWorker
from .persistence import (
    PersistenceGateway,
    PersistenceError,
    InMemoryPersistence,
    JsonPersistence,
)

# Catalog and tables
from .catalog import (
    DEFAULT_CATALOG,
    CatalogError,
    CatalogLoader,
    InMemoryTableStatusSource,
    TableStatusSource,
    describe_associated,
    entry_for_table,
)

# Core schemas
from .schemas import (
    AssociatedKind,
    CatalogEntry,
    Layout,
    LineDirection,
    MergedKind,
    ObjectType,
    PlacedItem,
    Position,
    RoomBounds,
    Size,
    StandardKind,
    TableStatus,
)

__all__ = [
    # Main class
    "LayoutStore",
    "RenderSnapshot",
    "ChangeTopic",
    "InteractionMode",
    # Grid
    "GridSpace",
    "render_ascii_plan",
    # Sessions
    "PlacementSession",
    "LineMergeSession",
    "GestureDetector",
    "InteractionController",
    "ManualScheduler",
    "AsyncioScheduler",
    # Persistence
    "CommandQueue",
    "PersistenceWorker",
    "PersistenceGateway",
    "PersistenceError",
    "InMemoryPersistence",
    "JsonPersistence",
    # Catalog
    "DEFAULT_CATALOG",
    "CatalogError",
    "CatalogLoader",
    "TableStatusSource",
    "InMemoryTableStatusSource",
    "describe_associated",
    "entry_for_table",
    # Schemas
    "ObjectType",
    "LineDirection",
    "Position",
    "Size",
    "RoomBounds",
    "StandardKind",
    "MergedKind",
    "AssociatedKind",
    "CatalogEntry",
    "PlacedItem",
    "Layout",
    "TableStatus",
]
