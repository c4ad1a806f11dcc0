"""
Pydantic schemas for the restaurant floor-plan engine.

All data structures shared by the grid, the interaction sessions, the layout
store and the persistence gateways are defined here.

Design Philosophy:
- Integer grid coordinates everywhere (x = width axis, z = depth axis)
- Item variants are a closed tagged union (``ItemKind``) instead of ad hoc
  metadata flags, so "is this a long table?" is a type question
- ``metadata`` stays free-form for catalog/scenario extensions
- Pydantic validation keeps payloads identical across gateways
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from .config import Config


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Geometry
# ============================================================================


class ObjectType(str, Enum):
    """Type tag of a placeable fixture."""

    TABLE = "table"
    CHAIR = "chair"
    BAR = "bar"
    KITCHEN = "kitchen"
    BATHROOM = "bathroom"
    ENTRANCE = "entrance"
    WALL = "wall"
    DECORATION = "decoration"
    TEST = "test"


class LineDirection(str, Enum):
    """Elongation axis of a merged run."""

    HORIZONTAL = "horizontal"  # along x
    VERTICAL = "vertical"      # along z


class Position(BaseModel):
    """Integer grid coordinate. ``y`` is vertical and stays 0 on the floor plane."""

    model_config = ConfigDict(frozen=True)

    x: int = 0
    y: int = 0
    z: int = 0

    @property
    def cell(self) -> tuple[int, int]:
        """The (x, z) floor cell this position anchors."""
        return (self.x, self.z)

    def shifted(self, dx: int = 0, dz: int = 0) -> "Position":
        return Position(x=self.x + dx, y=self.y, z=self.z + dz)


class Size(BaseModel):
    """Footprint in grid units.

    Components are deliberately unconstrained so malformed persisted data can be
    loaded and then filtered with :meth:`is_valid`.
    """

    model_config = ConfigDict(frozen=True)

    width: int = 1
    height: int = 1
    depth: int = 1

    def is_valid(self) -> bool:
        return self.width >= 1 and self.height >= 1 and self.depth >= 1


class RoomBounds(BaseModel):
    """Room dimensions in grid units."""

    width: int = Field(default_factory=lambda: Config.ROOM_WIDTH, ge=1)
    height: int = Field(default_factory=lambda: Config.ROOM_HEIGHT, ge=1)
    depth: int = Field(default_factory=lambda: Config.ROOM_DEPTH, ge=1)

    @property
    def half_width(self) -> int:
        return self.width // 2

    @property
    def half_depth(self) -> int:
        return self.depth // 2


# ============================================================================
# Item kinds (tagged union)
# ============================================================================


class StandardKind(BaseModel):
    """A plain fixture: movable, rotatable, possibly mergeable."""

    kind: Literal["standard"] = "standard"


class MergedKind(BaseModel):
    """A long fixture produced by a line merge. Immutable except for removal."""

    kind: Literal["merged"] = "merged"
    direction: LineDirection
    length: int = Field(1, ge=1, description="Number of base units fused together")
    source_id: Optional[str] = Field(None, description="Id of the anchor that seeded the merge")


class AssociatedKind(BaseModel):
    """A fixture bound to a live restaurant table."""

    kind: Literal["associated"] = "associated"
    external_id: str = Field(..., description="Restaurant table id in the POS system")


ItemKind = Annotated[
    Union[StandardKind, MergedKind, AssociatedKind],
    Field(discriminator="kind"),
]


# ============================================================================
# Catalog, items, layouts
# ============================================================================


class CatalogEntry(BaseModel):
    """Read-only placement template."""

    id: str
    type: ObjectType
    name: str
    size: Size = Field(default_factory=Size)
    color: str = "#8B4513"
    category: str = "general"
    description: Optional[str] = None
    # Single-seat fixtures that may seed a line merge
    mergeable: bool = False
    # Set for entries generated from a live restaurant table
    external_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PlacedItem(BaseModel):
    """A fixture committed to (or drafted for) a layout."""

    id: str
    type: ObjectType
    name: str
    position: Position = Field(default_factory=Position)
    size: Size = Field(default_factory=Size)
    rotation: int = Field(0, description="Degrees; multiple of 90, fixed at 0 once merged")
    color: str = "#8B4513"
    mergeable: bool = False
    kind: ItemKind = Field(default_factory=StandardKind)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_merged(self) -> bool:
        return isinstance(self.kind, MergedKind)

    @property
    def is_associated(self) -> bool:
        return isinstance(self.kind, AssociatedKind)

    @property
    def can_expand(self) -> bool:
        """True when this item may anchor a line merge."""
        return self.mergeable and not self.is_merged

    @classmethod
    def from_catalog(cls, entry: CatalogEntry, position: Optional[Position] = None) -> "PlacedItem":
        """Create a fresh draft from a catalog template."""
        kind: Union[StandardKind, AssociatedKind]
        if entry.external_id is not None:
            kind = AssociatedKind(external_id=entry.external_id)
        else:
            kind = StandardKind()
        return cls(
            id=f"{entry.id}-{uuid4().hex[:12]}",
            type=entry.type,
            name=entry.name,
            position=position or Position(),
            size=entry.size,
            rotation=0,
            color=entry.color,
            mergeable=entry.mergeable,
            kind=kind,
            metadata={"catalog_item_id": entry.id, **entry.metadata},
        )


class Layout(BaseModel):
    """A named room plan: an unordered collection of placed items."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(default_factory=lambda: Config.DEFAULT_LAYOUT_NAME)
    items: List[PlacedItem] = Field(default_factory=list)
    room: RoomBounds = Field(default_factory=RoomBounds)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def get_item(self, item_id: str) -> Optional[PlacedItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


# ============================================================================
# Restaurant tables
# ============================================================================


TableState = Literal["free", "occupied", "reserved", "cleaning"]


class TableStatus(BaseModel):
    """Live status of a restaurant table, used only to decorate rendering."""

    external_id: str
    number: int = 0
    name: str = ""
    status: TableState = "free"
    capacity: int = Field(4, ge=0)
