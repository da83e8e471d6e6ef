"""Leveled diagnostic output on standard error."""

from __future__ import annotations

import enum
import re
import sys
import threading

__all__ = ["LogLevel", "set_log_level", "get_log_level", "log", "format_array"]


class LogLevel(enum.IntEnum):
    """Verbosity of diagnostic messages."""

    NONE = 0
    ERR = 1
    WARNING = 2
    INFO = 3

    @property
    def prefix(self) -> str:
        """The marker printed in front of messages of this level."""
        return _PREFIXES[self]


_PREFIXES = {
    LogLevel.NONE: "",
    LogLevel.ERR: "[EE]",
    LogLevel.WARNING: "[WW]",
    LogLevel.INFO: "[II]",
}

_print_lock = threading.Lock()
_general_level = LogLevel.ERR

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _to_int(level: int | str) -> int:
    if isinstance(level, int):
        return level
    match = _LEADING_INT.match(level)
    return int(match.group(1)) if match else 0


def set_log_level(level: int | str | None) -> LogLevel:
    """Set the general verbosity and return it.

    ``None`` selects :attr:`LogLevel.ERR`. Strings are read like a leading
    decimal number (anything unreadable counts as 0). Values above
    :attr:`LogLevel.INFO` are clamped to it.
    """
    global _general_level
    if level is None:
        _general_level = LogLevel.ERR
        return _general_level
    value = _to_int(level) % 256
    _general_level = LogLevel.INFO if value > LogLevel.INFO else LogLevel(value)
    return _general_level


def get_log_level() -> LogLevel:
    """Return the current general verbosity."""
    return _general_level


def log(level: LogLevel, *args: object) -> None:
    """Write the arguments, concatenated, to stderr if ``level`` is enabled."""
    level = LogLevel(level)
    if level > _general_level:
        return
    line = f"{level.prefix} " + "".join(str(arg) for arg in args) + "\n"
    with _print_lock:
        sys.stderr.write(line)
        sys.stderr.flush()


def format_array(data: bytes) -> str:
    """Render bytes as ``Data (<length>): <hex digits>``."""
    raw = bytes(data)
    return f"Data ({len(raw)}): {raw.hex()}"