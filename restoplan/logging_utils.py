"""Logging utilities for the floor-plan engine.

Provides color-coded console output to distinguish grid/session decisions from
persistence traffic and failures.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    # Colors for operation types
    BLUE = "\033[94m"      # Deterministic operations (grid checks, session transitions)
    YELLOW = "\033[93m"    # Persistence gateway traffic
    RED = "\033[91m"       # Errors and rejected input
    GREEN = "\033[92m"     # Committed mutations
    CYAN = "\033[96m"      # Info/metadata

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if RESTOPLAN_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("RESTOPLAN_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def is_verbose() -> bool:
    """Return True when per-event session tracing is enabled."""
    return os.getenv("RESTOPLAN_VERBOSE", "").lower() in {"1", "true", "yes"}


def log_deterministic(message: str) -> None:
    """Log a grid/session decision (blue). Only printed in verbose mode."""
    if is_verbose():
        print(colored(f"{LOG_TAG_DETERMINISTIC} {message}", Color.BLUE))


def log_persistence(message: str) -> None:
    """Log persistence gateway traffic (yellow). Only printed in verbose mode."""
    if is_verbose():
        print(colored(f"{LOG_TAG_PERSISTENCE} {message}", Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error or rejected input (red)."""
    print(colored(f"{LOG_TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a committed mutation (green). Only printed in verbose mode."""
    if is_verbose():
        print(colored(f"{LOG_TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    print(colored(f"{LOG_TAG_INFO} {message}", Color.CYAN))


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"  # Grid/session decision
LOG_TAG_PERSISTENCE = "[db]"   # Gateway call
LOG_TAG_ERROR = "[!]"          # Error/rejection
LOG_TAG_SUCCESS = "[✓]"        # Committed mutation
LOG_TAG_INFO = "[i]"           # Information
