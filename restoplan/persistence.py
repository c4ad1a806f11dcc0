"""
PersistenceGateway interface for pluggable layout storage.

This module provides the abstract PersistenceGateway interface and two concrete
implementations for storing floor-plan layouts. Persistence is OPTIONAL - the
designer works entirely in-memory with no file system dependency.

Two included implementations:
1. InMemoryPersistence - Dict-based storage, data lost on exit (testing, prototyping)
2. JsonPersistence - File-based storage, human-readable JSON (single restaurant)

Key responsibilities:
- Create/update/delete placed items per layout
- Create/rename/delete/list layouts
- Record associations between placed items and restaurant tables

Every failure is raised as :class:`PersistenceError`. Callers (the command worker)
record it on the store; nothing here retries.

Usage pattern:
    gateway = InMemoryPersistence()  # or JsonPersistence()
    await gateway.initialize()

    layout = await gateway.create_layout("Layout 1", RoomBounds())
    await gateway.create_item(layout.id, item)

    await gateway.close()
"""

import asyncio
import json
import shutil
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from .config import Config
from .logging_utils import log_error, log_persistence
from .schemas import Layout, PlacedItem, RoomBounds


class PersistenceError(RuntimeError):
    """Raised when a gateway cannot complete a request."""


class PersistenceGateway(ABC):
    """Abstract base class for layout persistence.

    All methods are async so that file or network backends never block the
    input handlers that drive the sessions. ``initialize()`` and ``close()``
    manage backend lifecycle.

    Method categories:
    1. Lifecycle: initialize(), close()
    2. Items: create_item(), update_item(), delete_item(), list_items()
    3. Layouts: create_layout(), get_layout(), list_layouts(), rename_layout(), delete_layout()
    4. Tables: associate_table()
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backend (create directories, open connections)."""

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def create_item(self, layout_id: str, item: PlacedItem) -> None:
        """
        Store a newly committed item.

        Raises:
            PersistenceError: If the layout is unknown or the id already exists
        """

    @abstractmethod
    async def update_item(self, layout_id: str, item: PlacedItem) -> None:
        """
        Replace the stored copy of an existing item.

        Raises:
            PersistenceError: If the item does not exist
        """

    @abstractmethod
    async def delete_item(self, layout_id: str, item_id: str) -> None:
        """Remove an item. Deleting an unknown item is a no-op."""

    @abstractmethod
    async def list_items(self, layout_id: str) -> List[PlacedItem]:
        """Return every stored item of a layout (unordered)."""

    @abstractmethod
    async def create_layout(self, name: str, room: Optional[RoomBounds] = None) -> Layout:
        """Create an empty layout and return it."""

    @abstractmethod
    async def get_layout(self, layout_id: str) -> Optional[Layout]:
        """Return the layout with its items, or None if unknown."""

    @abstractmethod
    async def list_layouts(self) -> List[Layout]:
        """Return layout headers (items omitted), oldest first."""

    @abstractmethod
    async def rename_layout(self, layout_id: str, name: str) -> Layout:
        """
        Rename a layout.

        Raises:
            PersistenceError: If the layout is unknown
        """

    @abstractmethod
    async def delete_layout(self, layout_id: str) -> None:
        """Delete a layout and all of its items. Unknown ids are a no-op."""

    @abstractmethod
    async def associate_table(self, item_id: str, external_id: str) -> None:
        """Record that ``item_id`` represents restaurant table ``external_id``."""

    async def get_layout_by_name(self, name: str) -> Optional[Layout]:
        for header in await self.list_layouts():
            if header.name == name:
                return await self.get_layout(header.id)
        return None


class InMemoryPersistence(PersistenceGateway):
    """In-memory persistence using Python dicts (no files).

    Storage structure:
    - layouts: Dict[layout_id, Layout] - layout headers (items stored separately)
    - items: Dict[layout_id, Dict[item_id, PlacedItem]]
    - associations: Dict[item_id, external_id]

    Item buckets are created lazily, so items may be written for a layout id
    the gateway has not seen yet (e.g. a store started without a backend).
    """

    def __init__(self):
        self.layouts: Dict[str, Layout] = {}
        self.items: Dict[str, Dict[str, PlacedItem]] = {}
        self.associations: Dict[str, str] = {}

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        # Data is kept so callers can inspect it after shutdown.
        pass

    async def create_item(self, layout_id: str, item: PlacedItem) -> None:
        bucket = self.items.setdefault(layout_id, {})
        if item.id in bucket:
            raise PersistenceError(f"Item {item.id} already exists in layout {layout_id}")
        bucket[item.id] = item
        log_persistence(f"[InMemory] create {item.id} in {layout_id}")

    async def update_item(self, layout_id: str, item: PlacedItem) -> None:
        bucket = self.items.get(layout_id, {})
        if item.id not in bucket:
            raise PersistenceError(f"Item {item.id} not found in layout {layout_id}")
        bucket[item.id] = item
        log_persistence(f"[InMemory] update {item.id} in {layout_id}")

    async def delete_item(self, layout_id: str, item_id: str) -> None:
        self.items.get(layout_id, {}).pop(item_id, None)
        self.associations.pop(item_id, None)
        log_persistence(f"[InMemory] delete {item_id} from {layout_id}")

    async def list_items(self, layout_id: str) -> List[PlacedItem]:
        return list(self.items.get(layout_id, {}).values())

    async def create_layout(self, name: str, room: Optional[RoomBounds] = None) -> Layout:
        layout = Layout(name=name, room=room or RoomBounds())
        self.layouts[layout.id] = layout
        self.items.setdefault(layout.id, {})
        log_persistence(f"[InMemory] create layout {layout.id} ({name})")
        return layout

    async def get_layout(self, layout_id: str) -> Optional[Layout]:
        header = self.layouts.get(layout_id)
        if header is None:
            return None
        return header.model_copy(update={"items": await self.list_items(layout_id)})

    async def list_layouts(self) -> List[Layout]:
        return sorted(self.layouts.values(), key=lambda layout: layout.created_at)

    async def rename_layout(self, layout_id: str, name: str) -> Layout:
        header = self.layouts.get(layout_id)
        if header is None:
            raise PersistenceError(f"Layout {layout_id} not found")
        renamed = header.model_copy(
            update={"name": name, "updated_at": datetime.now(timezone.utc)}
        )
        self.layouts[layout_id] = renamed
        return renamed

    async def delete_layout(self, layout_id: str) -> None:
        self.layouts.pop(layout_id, None)
        for item_id in self.items.pop(layout_id, {}):
            self.associations.pop(item_id, None)
        log_persistence(f"[InMemory] delete layout {layout_id}")

    async def associate_table(self, item_id: str, external_id: str) -> None:
        self.associations[item_id] = external_id


class JsonPersistence(PersistenceGateway):
    """File-based persistence using JSON for human-readable storage.

    Directory structure:
    ```
    {base_path}/
      associations.json           # {item_id: external_table_id}
      {layout_id}/
        layout.json               # Layout header (no items)
        items/
          {item_id}.json          # One PlacedItem per file
    ```

    All file I/O runs in a thread (``asyncio.to_thread``). Item files that fail
    validation are skipped with an error log rather than failing the whole read.
    There is no locking; one process per directory.
    """

    def __init__(self, base_path: Path | str = Config.LAYOUT_DIR):
        self.base_path = Path(base_path)

    def _layout_dir(self, layout_id: str) -> Path:
        return self.base_path / layout_id

    def _item_path(self, layout_id: str, item_id: str) -> Path:
        return self._layout_dir(layout_id) / "items" / f"{item_id}.json"

    @property
    def _associations_path(self) -> Path:
        return self.base_path / "associations.json"

    async def _write_json(self, path: Path, payload) -> None:
        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), "utf-8")

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise PersistenceError(f"Failed to write {path}: {exc}") from exc

    async def _read_json(self, path: Path):
        try:
            text = await asyncio.to_thread(path.read_text, "utf-8")
            return json.loads(text)
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Failed to read {path}: {exc}") from exc

    async def initialize(self) -> None:
        await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        # Nothing to clean up for JSON persistence
        return None

    async def create_item(self, layout_id: str, item: PlacedItem) -> None:
        path = self._item_path(layout_id, item.id)
        if path.exists():
            raise PersistenceError(f"Item {item.id} already exists in layout {layout_id}")
        await self._write_json(path, item.model_dump(mode="json"))
        log_persistence(f"[Json] create {item.id} in {layout_id}")

    async def update_item(self, layout_id: str, item: PlacedItem) -> None:
        path = self._item_path(layout_id, item.id)
        if not path.exists():
            raise PersistenceError(f"Item {item.id} not found in layout {layout_id}")
        await self._write_json(path, item.model_dump(mode="json"))
        log_persistence(f"[Json] update {item.id} in {layout_id}")

    async def delete_item(self, layout_id: str, item_id: str) -> None:
        path = self._item_path(layout_id, item_id)
        if path.exists():
            await asyncio.to_thread(path.unlink)
        await self._drop_associations([item_id])
        log_persistence(f"[Json] delete {item_id} from {layout_id}")

    async def list_items(self, layout_id: str) -> List[PlacedItem]:
        directory = self._layout_dir(layout_id) / "items"
        if not directory.exists():
            return []

        paths = await asyncio.to_thread(lambda: sorted(directory.glob("*.json")))
        items: List[PlacedItem] = []
        for path in paths:
            payload = await self._read_json(path)
            try:
                items.append(PlacedItem.model_validate(payload))
            except ValidationError as exc:
                log_error(f"[Json] Skipping malformed item file {path.name}: {exc.error_count()} errors")
        return items

    async def create_layout(self, name: str, room: Optional[RoomBounds] = None) -> Layout:
        layout = Layout(name=name, room=room or RoomBounds())
        await self._write_json(
            self._layout_dir(layout.id) / "layout.json",
            layout.model_dump(mode="json", exclude={"items"}),
        )
        log_persistence(f"[Json] create layout {layout.id} ({name})")
        return layout

    async def _read_header(self, layout_id: str) -> Optional[Layout]:
        path = self._layout_dir(layout_id) / "layout.json"
        if not path.exists():
            return None
        payload = await self._read_json(path)
        try:
            return Layout.model_validate(payload)
        except ValidationError as exc:
            raise PersistenceError(f"Malformed layout file {path}: {exc}") from exc

    async def get_layout(self, layout_id: str) -> Optional[Layout]:
        header = await self._read_header(layout_id)
        if header is None:
            return None
        return header.model_copy(update={"items": await self.list_items(layout_id)})

    async def list_layouts(self) -> List[Layout]:
        if not self.base_path.exists():
            return []
        directories = await asyncio.to_thread(
            lambda: sorted(p for p in self.base_path.iterdir() if p.is_dir())
        )
        headers: List[Layout] = []
        for directory in directories:
            header = await self._read_header(directory.name)
            if header is not None:
                headers.append(header)
        return sorted(headers, key=lambda layout: layout.created_at)

    async def rename_layout(self, layout_id: str, name: str) -> Layout:
        header = await self._read_header(layout_id)
        if header is None:
            raise PersistenceError(f"Layout {layout_id} not found")
        renamed = header.model_copy(
            update={"name": name, "updated_at": datetime.now(timezone.utc)}
        )
        await self._write_json(
            self._layout_dir(layout_id) / "layout.json",
            renamed.model_dump(mode="json", exclude={"items"}),
        )
        return renamed

    async def delete_layout(self, layout_id: str) -> None:
        directory = self._layout_dir(layout_id)
        if not directory.exists():
            return
        item_ids = [item.id for item in await self.list_items(layout_id)]
        await asyncio.to_thread(shutil.rmtree, directory)
        await self._drop_associations(item_ids)
        log_persistence(f"[Json] delete layout {layout_id}")

    async def load_associations(self) -> Dict[str, str]:
        if not self._associations_path.exists():
            return {}
        return await self._read_json(self._associations_path)

    async def associate_table(self, item_id: str, external_id: str) -> None:
        associations = await self.load_associations()
        associations[item_id] = external_id
        await self._write_json(self._associations_path, associations)

    async def _drop_associations(self, item_ids: List[str]) -> None:
        associations = await self.load_associations()
        remaining = {k: v for k, v in associations.items() if k not in item_ids}
        if remaining != associations:
            await self._write_json(self._associations_path, remaining)
