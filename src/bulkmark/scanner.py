"""Flatten the bookmark tree into compact records."""

from dataclasses import dataclass, field

from .bookmarks import BookmarkNode
from .models import CompactBookmark

ROOT_FOLDER_PATH = "Root"


@dataclass
class BookmarkStats:
    total_bookmarks: int
    total_folders: int
    by_folder: dict[str, int] = field(default_factory=dict)


def flatten_bookmarks(
    tree: list[BookmarkNode],
    id_to_path: dict[str, str],
) -> list[CompactBookmark]:
    """Collect every titled bookmark with its current folder id and path."""
    results: list[CompactBookmark] = []

    def walk(node: BookmarkNode) -> None:
        if node.url and node.title:
            results.append(CompactBookmark(
                id=node.id,
                title=node.title,
                url=node.url,
                current_folder_path=(
                    id_to_path.get(node.parent_id, ROOT_FOLDER_PATH)
                    if node.parent_id else ROOT_FOLDER_PATH
                ),
                current_folder_id=node.parent_id or "",
            ))
        for child in node.children:
            walk(child)

    for node in tree:
        walk(node)
    return results


def filter_by_folders(
    bookmarks: list[CompactBookmark],
    selected_folder_ids: list[str],
) -> list[CompactBookmark]:
    selected = set(selected_folder_ids)
    return [b for b in bookmarks if b.current_folder_id in selected]


def distinct_folder_ids(bookmarks: list[CompactBookmark]) -> list[str]:
    """Folder ids that hold at least one bookmark, in first-seen order."""
    return list(dict.fromkeys(b.current_folder_id for b in bookmarks))


def bookmark_stats(bookmarks: list[CompactBookmark]) -> BookmarkStats:
    by_folder: dict[str, int] = {}
    for bookmark in bookmarks:
        by_folder[bookmark.current_folder_path] = by_folder.get(bookmark.current_folder_path, 0) + 1
    return BookmarkStats(
        total_bookmarks=len(bookmarks),
        total_folders=len(by_folder),
        by_folder=by_folder,
    )
