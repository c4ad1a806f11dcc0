"""
Catalog of placeable fixtures and the live restaurant-table source.

The catalog is read-only template data. Entries are either the built-in
``DEFAULT_CATALOG`` or loaded from a JSON file with :class:`CatalogLoader`.
Restaurant tables known to the point-of-sale side are turned into associated
catalog entries with :func:`entry_for_table`, so that placing one binds the
fixture to the table.

Catalog file structure:
```json
{
  "name": "Bistro",
  "entries": [
    {"id": "table-with-chairs", "type": "table", "name": "Table with chairs",
     "size": {"width": 1, "height": 1, "depth": 1}, "mergeable": true}
  ]
}
```

Table status is presentation data only. It decorates associated items for the
renderers and never takes part in placement feasibility.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from .config import Config
from .schemas import CatalogEntry, ObjectType, PlacedItem, Size, TableStatus


class CatalogError(ValueError):
    """Raised when a catalog file is missing required data or is malformed."""


OBJECT_COLORS: Dict[ObjectType, str] = {
    ObjectType.TABLE: "#8B4513",
    ObjectType.CHAIR: "#654321",
    ObjectType.BAR: "#D2691E",
    ObjectType.KITCHEN: "#DC143C",
    ObjectType.BATHROOM: "#4169E1",
    ObjectType.ENTRANCE: "#32CD32",
    ObjectType.WALL: "#696969",
    ObjectType.DECORATION: "#228B22",
    ObjectType.TEST: "#FF6B6B",
}

OBJECT_DIMENSIONS: Dict[ObjectType, Size] = {
    ObjectType.TABLE: Size(width=1, height=1, depth=1),
    ObjectType.CHAIR: Size(width=1, height=1, depth=1),
    ObjectType.BAR: Size(width=2, height=1, depth=1),
    ObjectType.KITCHEN: Size(width=3, height=2, depth=2),
    ObjectType.BATHROOM: Size(width=2, height=2, depth=2),
    ObjectType.ENTRANCE: Size(width=1, height=1, depth=1),
    ObjectType.WALL: Size(width=1, height=1, depth=1),
    ObjectType.DECORATION: Size(width=1, height=1, depth=1),
    ObjectType.TEST: Size(width=1, height=1, depth=1),
}

# Category used for entries generated from live restaurant tables
RESTAURANT_TABLES_CATEGORY = "restaurant-tables"


def _entry(
    entry_id: str,
    object_type: ObjectType,
    name: str,
    category: str,
    description: str,
    *,
    mergeable: bool = False,
) -> CatalogEntry:
    return CatalogEntry(
        id=entry_id,
        type=object_type,
        name=name,
        size=OBJECT_DIMENSIONS[object_type],
        color=OBJECT_COLORS[object_type],
        category=category,
        description=description,
        mergeable=mergeable,
    )


DEFAULT_CATALOG: List[CatalogEntry] = [
    _entry("table-with-chairs", ObjectType.TABLE, "Table with chairs", "furniture",
           "Single-seat table; stretch it into a long table", mergeable=True),
    _entry("table-square", ObjectType.TABLE, "Square table", "furniture", "Small square table"),
    _entry("chair", ObjectType.CHAIR, "Chair", "furniture", "Single chair"),
    _entry("bar-counter", ObjectType.BAR, "Bar counter", "service", "Two-cell bar counter"),
    _entry("kitchen", ObjectType.KITCHEN, "Kitchen", "service", "Kitchen block"),
    _entry("bathroom", ObjectType.BATHROOM, "Bathroom", "facilities", "Restrooms"),
    _entry("entrance", ObjectType.ENTRANCE, "Entrance", "structure", "Main entrance"),
    _entry("wall", ObjectType.WALL, "Wall", "structure", "One wall segment"),
    _entry("plant", ObjectType.DECORATION, "Plant", "decoration", "Potted plant"),
]


def get_entries_by_category(
    category: str, entries: Optional[Iterable[CatalogEntry]] = None
) -> List[CatalogEntry]:
    """Return entries in ``category``. ``"all"`` returns every entry."""
    pool = list(DEFAULT_CATALOG if entries is None else entries)
    if category == "all":
        return pool
    return [entry for entry in pool if entry.category == category]


def search_entries(
    term: str, entries: Optional[Iterable[CatalogEntry]] = None
) -> List[CatalogEntry]:
    """Case-insensitive match on name or description."""
    pool = list(DEFAULT_CATALOG if entries is None else entries)
    needle = term.strip().lower()
    if not needle:
        return pool
    return [
        entry
        for entry in pool
        if needle in entry.name.lower() or needle in (entry.description or "").lower()
    ]


def entry_for_table(table: TableStatus) -> CatalogEntry:
    """Build the catalog entry that places (and binds) a restaurant table."""
    return CatalogEntry(
        id=f"table-{table.external_id}",
        type=ObjectType.TABLE,
        name=f"Table {table.number} - {table.name}" if table.name else f"Table {table.number}",
        size=OBJECT_DIMENSIONS[ObjectType.TABLE],
        color=OBJECT_COLORS[ObjectType.TABLE],
        category=RESTAURANT_TABLES_CATEGORY,
        description=f"{table.capacity} seats - {table.status}",
        external_id=table.external_id,
        metadata={"table_number": table.number, "capacity": table.capacity},
    )


class CatalogLoader:
    """Load catalog entries from JSON files.

    Directory structure:
    - Default: {PROJECT_ROOT}/catalogs/
    - Override via constructor: CatalogLoader(Path("/custom/catalogs"))
    - Catalog files: {catalog_name}.json

    Validation:
    - ``entries`` must be a non-empty list
    - Each entry needs ``id``, ``type`` and ``name``
    - Entry ids must be unique
    - A missing ``size`` falls back to the default dimensions for the type
    """

    def __init__(self, catalogs_dir: Optional[Path] = None):
        self.catalogs_dir = catalogs_dir or (Config.PROJECT_ROOT / "catalogs")

    def load(self, catalog_name: str) -> List[CatalogEntry]:
        """Load ``{catalog_name}.json`` from the catalogs directory.

        Raises:
            FileNotFoundError: If the file doesn't exist
            CatalogError: If the JSON is invalid or an entry fails validation
        """
        path = self.catalogs_dir / f"{catalog_name}.json"
        if not path.exists():
            raise FileNotFoundError(f"Catalog '{catalog_name}' not found at {path}")

        try:
            data = json.loads(path.read_text("utf-8"))
        except json.JSONDecodeError as exc:
            raise CatalogError(f"Catalog '{catalog_name}' is not valid JSON: {exc}") from exc

        return self.parse(data)

    def parse(self, data: Dict[str, Any]) -> List[CatalogEntry]:
        self._validate_catalog(data)

        entries: List[CatalogEntry] = []
        for raw in data["entries"]:
            payload = dict(raw)
            try:
                object_type = ObjectType(payload["type"])
            except ValueError as exc:
                raise CatalogError(f"Unknown object type in entry {payload['id']!r}") from exc
            payload.setdefault("size", OBJECT_DIMENSIONS[object_type].model_dump())
            payload.setdefault("color", OBJECT_COLORS[object_type])
            try:
                entry = CatalogEntry.model_validate(payload)
            except ValidationError as exc:
                raise CatalogError(f"Invalid catalog entry {payload['id']!r}: {exc}") from exc
            if not entry.size.is_valid():
                raise CatalogError(f"Catalog entry {entry.id!r} has a size below 1")
            entries.append(entry)
        return entries

    def _validate_catalog(self, data: Dict[str, Any]) -> None:
        entries = data.get("entries")
        if not isinstance(entries, list) or not entries:
            raise CatalogError("Catalog must define a non-empty 'entries' list")

        seen = set()
        for raw in entries:
            missing = [key for key in ("id", "type", "name") if key not in raw]
            if missing:
                raise CatalogError(f"Catalog entry missing required fields: {missing}")
            if raw["id"] in seen:
                raise CatalogError(f"Duplicate catalog entry id: {raw['id']!r}")
            seen.add(raw["id"])


# ============================================================================
# Restaurant table status
# ============================================================================


class TableStatusSource(ABC):
    """Read-only view of the restaurant's tables."""

    @abstractmethod
    async def get_status(self, external_id: str) -> Optional[TableStatus]:
        """Return the current status of one table, or None if unknown."""

    @abstractmethod
    async def list_tables(self) -> List[TableStatus]:
        """Return every table available for association."""


class InMemoryTableStatusSource(TableStatusSource):
    def __init__(self, tables: Optional[Iterable[TableStatus]] = None):
        self.tables: Dict[str, TableStatus] = {t.external_id: t for t in tables or ()}

    def set_status(self, external_id: str, status: str) -> None:
        table = self.tables[external_id]
        self.tables[external_id] = table.model_copy(update={"status": status})

    async def get_status(self, external_id: str) -> Optional[TableStatus]:
        return self.tables.get(external_id)

    async def list_tables(self) -> List[TableStatus]:
        return sorted(self.tables.values(), key=lambda t: t.number)


async def describe_associated(
    items: Iterable[PlacedItem], source: TableStatusSource
) -> Dict[str, Dict[str, Any]]:
    """Map associated item ids to their table's status and capacity.

    Items whose table is unknown to ``source`` are reported as ``free`` so the
    renderers always have something to show.
    """
    decorations: Dict[str, Dict[str, Any]] = {}
    for item in items:
        if not item.is_associated:
            continue
        status = await source.get_status(item.kind.external_id)
        decorations[item.id] = {
            "external_id": item.kind.external_id,
            "status": status.status if status else "free",
            "capacity": status.capacity if status else None,
            "number": status.number if status else None,
        }
    return decorations
