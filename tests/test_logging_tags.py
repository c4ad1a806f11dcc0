"""Tests for log tags and verbose gating in console output."""

from __future__ import annotations

import contextlib
import io

from restoplan.logging_utils import (
    LOG_TAG_DETERMINISTIC,
    LOG_TAG_ERROR,
    colored,
    Color,
    log_deterministic,
    log_error,
)
from restoplan.schemas import CatalogEntry, ObjectType, Position
from restoplan.store import LayoutStore


def capture(fn) -> str:
    buffer = io.StringIO()
    with contextlib.redirect_stdout(buffer):
        fn()
    return buffer.getvalue()


def test_session_tracing_only_in_verbose_mode(monkeypatch):
    monkeypatch.setenv("RESTOPLAN_NO_COLOR", "1")

    monkeypatch.delenv("RESTOPLAN_VERBOSE", raising=False)
    assert capture(lambda: log_deterministic("quiet")) == ""

    monkeypatch.setenv("RESTOPLAN_VERBOSE", "1")
    assert capture(lambda: log_deterministic("loud")) == f"{LOG_TAG_DETERMINISTIC} loud\n"


def test_errors_always_print(monkeypatch):
    monkeypatch.setenv("RESTOPLAN_NO_COLOR", "1")
    monkeypatch.delenv("RESTOPLAN_VERBOSE", raising=False)

    assert capture(lambda: log_error("boom")) == f"{LOG_TAG_ERROR} boom\n"


def test_colored_wraps_with_ansi_unless_disabled(monkeypatch):
    monkeypatch.delenv("RESTOPLAN_NO_COLOR", raising=False)
    assert colored("x", Color.RED) == f"{Color.RED.value}x{Color.RESET.value}"

    monkeypatch.setenv("RESTOPLAN_NO_COLOR", "1")
    assert colored("x", Color.RED, bold=True) == "x"


def test_rejected_position_is_logged_as_error(monkeypatch):
    monkeypatch.setenv("RESTOPLAN_NO_COLOR", "1")
    store = LayoutStore()
    store.start_placing(CatalogEntry(id="chair", type=ObjectType.CHAIR, name="Chair"))

    output = capture(lambda: store.update_placing_position(Position.model_construct(x=0.5, y=0, z=0)))

    assert output.startswith(LOG_TAG_ERROR)
    assert "[Placement]" in output
