"""Logging utilities for the triage memory subsystem.

Console output is color-coded so engine decisions (selection, scoring, pruning)
read differently from LLM-backed grading and reflection calls.
"""

import os
from enum import Enum

from .config import Config


class Color(Enum):
    """ANSI color codes for terminal output."""

    BLUE = "\033[94m"      # Deterministic engine decisions
    YELLOW = "\033[93m"    # LLM grading / reflection
    RED = "\033[91m"       # Failures (non-critical and critical)
    GREEN = "\033[92m"     # Persisted writes
    CYAN = "\033[96m"      # Info/metadata
    GRAY = "\033[90m"      # Debug detail

    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text unless TRIAGE_MEMORY_NO_COLOR is set
    """
    if os.getenv("TRIAGE_MEMORY_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def debug_enabled() -> bool:
    """Return True when DEBUG_MEMORY or LOG_LEVEL=DEBUG asks for per-memory score traces."""
    if os.getenv("DEBUG_MEMORY", "").lower() in ("1", "true", "yes"):
        return True
    return Config.LOG_LEVEL.upper() == "DEBUG"


def log_deterministic(message: str) -> None:
    """Log a deterministic engine decision (blue)."""
    print(colored(f"{EMOJI_DETERMINISTIC} {message}", Color.BLUE))


def log_llm(message: str) -> None:
    """Log an LLM operation (yellow)."""
    print(colored(f"{EMOJI_LLM} {message}", Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error (red)."""
    print(colored(f"{EMOJI_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a success (green)."""
    print(colored(f"{EMOJI_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    print(colored(f"{EMOJI_INFO} {message}", Color.CYAN))


def log_debug(message: str) -> None:
    """Log debug detail (gray), only when DEBUG_MEMORY is set."""
    if debug_enabled():
        print(colored(f"{EMOJI_DEBUG} {message}", Color.GRAY))


def format_fields(**fields: object) -> str:
    """Render key=value pairs for structured-looking console lines."""
    return " ".join(f"{key}={value}" for key, value in fields.items())


# Markers for operation types (color-blind accessible)
EMOJI_DETERMINISTIC = "[•]"
EMOJI_LLM = "[AI]"
EMOJI_ERROR = "[!]"
EMOJI_SUCCESS = "[✓]"
EMOJI_INFO = "[i]"
EMOJI_DEBUG = "[..]"
