"""Folder index building, path resolution and folder-path materialization.

Path strings are built from escaped folder names (see ``utils.join_path``)
so a name containing '/' never splits into two segments.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .bookmarks import BookmarkNode, BookmarkStore
from .utils import child_path, join_path, split_path

logger = logging.getLogger(__name__)


@dataclass
class FolderIndex:
    """Everything the organizer needs to know about existing folders."""

    text_tree: str = ""
    path_to_id: dict[str, str] = field(default_factory=dict)
    id_to_path: dict[str, str] = field(default_factory=dict)
    default_parent_id: str = ""
    max_depth: int = 0
    total_folder_count: int = 0


def _folder_children(node: BookmarkNode) -> list[BookmarkNode]:
    return [c for c in node.children if c.is_folder and c.title]


def build_id_to_path(path_to_id: dict[str, str]) -> dict[str, str]:
    return {folder_id: path for path, folder_id in path_to_id.items()}


def build_folder_index(tree: list[BookmarkNode]) -> FolderIndex:
    """Walk the tree once and render folders for the model.

    Args:
        tree: Result of ``BookmarkStore.get_tree()``.

    Returns:
        A FolderIndex with an indented text rendering, path->id and
        id->path maps. The first root folder (usually the bookmarks bar)
        becomes the default parent for new folders.
    """
    if not tree:
        return FolderIndex()

    root = tree[0]
    index = FolderIndex(default_parent_id=root.children[0].id if root.children else root.id)
    lines: list[str] = []

    def walk(node: BookmarkNode, parent_path: str, prefix: str, is_last: bool, depth: int) -> None:
        current_path = child_path(parent_path, node.title)
        connector = "└── " if is_last else "├── "
        lines.append(f"{prefix}{connector}{node.title}")
        index.path_to_id[current_path] = node.id
        index.total_folder_count += 1
        index.max_depth = max(index.max_depth, depth)

        children = _folder_children(node)
        child_prefix = prefix + ("    " if is_last else "│   ")
        for i, child in enumerate(children):
            walk(child, current_path, child_prefix, i == len(children) - 1, depth + 1)

    top_level = _folder_children(root)
    for i, folder in enumerate(top_level):
        walk(folder, "", "", i == len(top_level) - 1, 0)

    index.text_tree = "\n".join(lines)
    index.id_to_path = build_id_to_path(index.path_to_id)
    return index


def _root_prefixes(path_to_id: dict[str, str], default_parent_id: str = "") -> list[str]:
    """Top-level folder paths, the default parent's first."""
    roots = [p for p in path_to_id if len(split_path(p)) == 1]
    roots.sort(key=lambda p: path_to_id[p] != default_parent_id)
    return roots


def resolve_folder_id(
    folder_path: str,
    path_to_id: dict[str, str],
    default_parent_id: str = "",
) -> Optional[str]:
    """Find an existing folder id for a path, with or without its root folder.

    The model is told to leave out root names such as "Bookmarks bar", so
    "AI/Learning" must resolve to "Bookmarks bar/AI/Learning".
    """
    segments = split_path(folder_path)
    if not segments:
        return None
    normalized = join_path(segments)
    if normalized in path_to_id:
        return path_to_id[normalized]
    for root in _root_prefixes(path_to_id, default_parent_id):
        candidate = f"{root}/{normalized}"
        if candidate in path_to_id:
            return path_to_id[candidate]
    return None


def create_folder_path(
    store: BookmarkStore,
    folder_path: str,
    path_to_id: dict[str, str],
    default_parent_id: str,
) -> Optional[str]:
    """Resolve a path to a folder id, creating missing segments.

    Walks the path one segment at a time, reusing ids from ``path_to_id``
    and creating each missing folder under the previous one. New ids are
    written back into ``path_to_id`` in place, so repeating the call with
    the same path creates nothing.

    A path whose first segment is not a known top-level folder is placed
    under ``default_parent_id``.

    Returns:
        The id of the last segment, or None for an empty path.
    """
    segments = split_path(folder_path)
    if not segments:
        return None

    parent_id = default_parent_id
    base = ""
    first = join_path(segments[:1])
    if first not in path_to_id:
        base = build_id_to_path(path_to_id).get(default_parent_id, "")
        for root in _root_prefixes(path_to_id, default_parent_id):
            if f"{root}/{first}" in path_to_id:
                base, parent_id = root, path_to_id[root]
                break

    current = base
    for segment in segments:
        current = child_path(current, segment)
        folder_id = path_to_id.get(current)
        if folder_id is None:
            node = store.create(parent_id, segment)
            folder_id = node.id
            path_to_id[current] = folder_id
            logger.info("Created folder %r (%s)", current, folder_id)
        parent_id = folder_id

    return parent_id
