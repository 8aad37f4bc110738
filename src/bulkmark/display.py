"""Helpers for showing folder paths to a person."""

from typing import Callable, Iterable, Optional, TypeVar

from .utils import PATH_SEPARATOR, join_path, split_path

T = TypeVar("T")

ELLIPSIS = "⋯"


def strip_root_segment(path: str, roots: Optional[Iterable[str]] = None) -> str:
    """Drop the leading root folder ("Bookmarks bar/AI" -> "AI").

    With ``roots`` only those names are stripped; without it the first
    segment of any multi-segment path is.
    """
    segments = split_path(path)
    if len(segments) <= 1:
        return path
    if roots is not None and segments[0] not in set(roots):
        return path
    return join_path(segments[1:])


def display_segments(path: str, max_segments: int = 4) -> list[str]:
    """Segments to render, collapsing the middle of deep paths.

    A path deeper than ``max_segments`` becomes first / ⋯ / last two.
    """
    segments = split_path(path)
    if len(segments) <= max_segments:
        return segments
    return [segments[0], ELLIPSIS] + segments[-2:]


def format_path(path: str, max_segments: int = 4) -> str:
    return f" {PATH_SEPARATOR} ".join(display_segments(path, max_segments))


def group_by_root_folder(
    items: Iterable[T],
    get_path: Callable[[T], str],
    roots: Optional[Iterable[str]] = None,
) -> list[tuple[str, list[T]]]:
    """Group items by the first folder under the root, in first-seen order."""
    root_names = set(roots) if roots is not None else None
    groups: dict[str, list[T]] = {}
    for item in items:
        segments = split_path(strip_root_segment(get_path(item), root_names))
        group_name = segments[0] if segments else ""
        groups.setdefault(group_name, []).append(item)
    return list(groups.items())
