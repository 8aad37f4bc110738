"""Utility functions for bulkmark."""

import time

PATH_SEPARATOR = "/"
_ESCAPE = "\\"


def escape_segment(name: str) -> str:
    """Escape a folder name so it can sit inside a '/'-separated path."""
    return name.replace(_ESCAPE, _ESCAPE * 2).replace(
        PATH_SEPARATOR, _ESCAPE + PATH_SEPARATOR
    )


def join_path(segments: list[str]) -> str:
    """Build a path string from raw (unescaped) folder names."""
    return PATH_SEPARATOR.join(escape_segment(s) for s in segments if s)


def split_path(path: str) -> list[str]:
    """Split a path string back into raw folder names.

    Inverse of join_path: '\\/' is a literal slash and '\\\\' a literal
    backslash. A backslash before any other character is kept as-is, so
    paths typed by hand or by the model still split sensibly. Empty
    segments are dropped.
    """
    segments: list[str] = []
    current: list[str] = []
    i = 0
    while i < len(path):
        char = path[i]
        if char == _ESCAPE and i + 1 < len(path) and path[i + 1] in (PATH_SEPARATOR, _ESCAPE):
            current.append(path[i + 1])
            i += 2
            continue
        if char == PATH_SEPARATOR:
            segments.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1
    segments.append("".join(current))
    return [s for s in segments if s]


def child_path(parent: str, name: str) -> str:
    """Append one raw folder name to an already-escaped path."""
    escaped = escape_segment(name)
    return f"{parent}{PATH_SEPARATOR}{escaped}" if parent else escaped


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)
