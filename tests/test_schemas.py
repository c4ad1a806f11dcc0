"""Tests for schema validation and item kinds."""

import pytest
from pydantic import ValidationError

from restoplan.config import Config
from restoplan.schemas import (
    AssociatedKind,
    CatalogEntry,
    Layout,
    LineDirection,
    MergedKind,
    ObjectType,
    PlacedItem,
    Position,
    RoomBounds,
    StandardKind,
)


def test_item_kind_round_trips_through_discriminator():
    item = PlacedItem(
        id="long",
        type=ObjectType.TABLE,
        name="Long table",
        kind=MergedKind(direction=LineDirection.VERTICAL, length=3, source_id="seat"),
    )

    restored = PlacedItem.model_validate(item.model_dump(mode="json"))

    assert isinstance(restored.kind, MergedKind)
    assert restored.kind.direction is LineDirection.VERTICAL
    assert restored.is_merged and not restored.can_expand


def test_unknown_kind_is_rejected():
    with pytest.raises(ValidationError):
        PlacedItem.model_validate(
            {"id": "x", "type": "table", "name": "X", "kind": {"kind": "folding"}}
        )


def test_merged_length_must_be_positive():
    with pytest.raises(ValidationError):
        MergedKind(direction=LineDirection.HORIZONTAL, length=0)


def test_can_expand_requires_mergeable_and_not_merged():
    plain = PlacedItem(id="a", type=ObjectType.TABLE, name="A")
    seat = PlacedItem(id="b", type=ObjectType.TABLE, name="B", mergeable=True)
    bound = seat.model_copy(update={"kind": AssociatedKind(external_id="t-1")})

    assert isinstance(plain.kind, StandardKind)
    assert not plain.can_expand
    assert seat.can_expand
    assert bound.can_expand and bound.is_associated


def test_from_catalog_copies_template_and_generates_id():
    entry = CatalogEntry(id="chair", type=ObjectType.CHAIR, name="Chair", metadata={"style": "wood"})

    first = PlacedItem.from_catalog(entry)
    second = PlacedItem.from_catalog(entry, Position(x=1, z=2))

    assert first.id != second.id
    assert first.id.startswith("chair-") and len(first.id) == len("chair-") + 12
    assert second.position == Position(x=1, z=2)
    assert first.metadata == {"catalog_item_id": "chair", "style": "wood"}


def test_positions_are_frozen():
    position = Position(x=1)

    with pytest.raises(ValidationError):
        position.x = 2
    assert position.shifted(dx=-1, dz=3) == Position(x=0, z=3)


def test_layout_defaults_follow_config():
    layout = Layout()

    assert layout.name == Config.DEFAULT_LAYOUT_NAME
    assert layout.room == RoomBounds(
        width=Config.ROOM_WIDTH, height=Config.ROOM_HEIGHT, depth=Config.ROOM_DEPTH
    )
    assert layout.get_item("missing") is None


def test_config_validate_rejects_bad_dimensions(monkeypatch):
    Config.validate()
    monkeypatch.setattr(Config, "ROOM_WIDTH", 0)

    with pytest.raises(ValueError):
        Config.validate()
    assert "Room:" in Config.display()
