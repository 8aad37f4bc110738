"""Bookmark storage primitives: tree read, create, move and search."""

import copy
import json
import logging
import os
import tempfile
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .exceptions import BookmarkStoreError

logger = logging.getLogger(__name__)

ROOT_ID = "0"

# Chromium's on-disk root keys, in display order
_CHROMIUM_ROOTS = (
    ("bookmark_bar", "Bookmarks bar"),
    ("other", "Other bookmarks"),
    ("synced", "Mobile bookmarks"),
)

# Seconds between 1601-01-01 (Chromium's epoch) and 1970-01-01
_WINDOWS_EPOCH_OFFSET = 11_644_473_600


@dataclass
class BookmarkNode:
    """A bookmark (url set) or a folder (url is None)."""

    id: str
    title: str
    url: Optional[str] = None
    parent_id: Optional[str] = None
    children: list["BookmarkNode"] = field(default_factory=list)

    @property
    def is_folder(self) -> bool:
        return self.url is None


class BookmarkStore(ABC):
    """Host bookmark API consumed by the organizer."""

    @abstractmethod
    def get_tree(self) -> list[BookmarkNode]:
        """Return the whole tree as a list holding the root node."""

    @abstractmethod
    def create(self, parent_id: str, title: str, url: Optional[str] = None) -> BookmarkNode:
        """Create a folder (url None) or bookmark under parent_id."""

    @abstractmethod
    def move(self, node_id: str, new_parent_id: str) -> BookmarkNode:
        """Move a node to the end of another folder."""

    @abstractmethod
    def search(self, url: str) -> list[BookmarkNode]:
        """Return bookmarks whose url matches exactly."""


def default_tree() -> BookmarkNode:
    """An empty tree with the three standard browser root folders."""
    root = BookmarkNode(id=ROOT_ID, title="")
    for index, (_, title) in enumerate(_CHROMIUM_ROOTS, start=1):
        root.children.append(BookmarkNode(id=str(index), title=title, parent_id=ROOT_ID))
    return root


class InMemoryBookmarkStore(BookmarkStore):
    """Bookmark tree held in memory, indexed by id."""

    def __init__(self, root: Optional[BookmarkNode] = None):
        self._root = root or default_tree()
        self._index: dict[str, BookmarkNode] = {}
        self._reindex()

    def _reindex(self) -> None:
        self._index.clear()
        stack = [self._root]
        while stack:
            node = stack.pop()
            self._index[node.id] = node
            for child in node.children:
                child.parent_id = node.id
                stack.append(child)

    def _next_id(self) -> str:
        numeric = [int(i) for i in self._index if i.isdigit()]
        return str(max(numeric, default=0) + 1)

    def _get(self, node_id: str) -> BookmarkNode:
        node = self._index.get(node_id)
        if node is None:
            raise BookmarkStoreError(f"Can't find bookmark for id {node_id}")
        return node

    def _get_folder(self, folder_id: str) -> BookmarkNode:
        folder = self._get(folder_id)
        if not folder.is_folder:
            raise BookmarkStoreError(f"Node {folder_id} is not a folder")
        return folder

    def _changed(self) -> None:
        """Hook called after every mutation; raising undoes the mutation."""

    def get_tree(self) -> list[BookmarkNode]:
        return [copy.deepcopy(self._root)]

    def get(self, node_id: str) -> BookmarkNode:
        return copy.deepcopy(self._get(node_id))

    def create(self, parent_id: str, title: str, url: Optional[str] = None) -> BookmarkNode:
        parent = self._get_folder(parent_id)
        if parent.id == ROOT_ID:
            raise BookmarkStoreError("Can't modify the root bookmark folders")
        node = BookmarkNode(id=self._next_id(), title=title, url=url, parent_id=parent.id)
        parent.children.append(node)
        self._index[node.id] = node
        try:
            self._changed()
        except BookmarkStoreError:
            parent.children.pop()
            del self._index[node.id]
            raise
        logger.debug("Created %s %s (%r) under %s",
                     "folder" if url is None else "bookmark", node.id, title, parent.id)
        return copy.deepcopy(node)

    def move(self, node_id: str, new_parent_id: str) -> BookmarkNode:
        node = self._get(node_id)
        if node.parent_id in (None, ROOT_ID):
            raise BookmarkStoreError("Can't modify the root bookmark folders")
        new_parent = self._get_folder(new_parent_id)
        if new_parent.id == ROOT_ID:
            raise BookmarkStoreError("Can't modify the root bookmark folders")

        ancestor: Optional[BookmarkNode] = new_parent
        while ancestor is not None:
            if ancestor.id == node.id:
                raise BookmarkStoreError("Can't move a folder into its own subtree")
            ancestor = self._index.get(ancestor.parent_id) if ancestor.parent_id else None

        old_parent = self._get(node.parent_id)
        old_children = old_parent.children
        old_parent.children = [c for c in old_children if c.id != node.id]
        new_parent.children.append(node)
        node.parent_id = new_parent.id
        try:
            self._changed()
        except BookmarkStoreError:
            new_parent.children.pop()
            old_parent.children = old_children
            node.parent_id = old_parent.id
            raise
        return copy.deepcopy(node)

    def search(self, url: str) -> list[BookmarkNode]:
        return [
            copy.deepcopy(node)
            for node in self._index.values()
            if node.url is not None and node.url == url
        ]


class ChromiumBookmarksFile(InMemoryBookmarkStore):
    """Bookmark store over a Chromium profile's ``Bookmarks`` JSON file.

    Every mutation is written back atomically. The checksum is dropped on
    write; the browser recomputes it on next load. Close the browser first,
    or it will overwrite the file on exit.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._extras: dict[str, dict[str, Any]] = {}
        self._root_keys: dict[str, str] = {}
        self._document: dict[str, Any] = {}
        super().__init__(self._load())

    def _load(self) -> BookmarkNode:
        try:
            self._document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BookmarkStoreError(f"Failed to read bookmarks file {self.path}: {e}") from e

        roots = self._document.get("roots")
        if not isinstance(roots, dict):
            raise BookmarkStoreError(f"{self.path} has no 'roots' object")

        root = BookmarkNode(id=ROOT_ID, title="")
        for key, _ in _CHROMIUM_ROOTS:
            if key in roots:
                node = self._from_json(roots[key], ROOT_ID)
                self._root_keys[node.id] = key
                root.children.append(node)
        return root

    def _from_json(self, data: dict[str, Any], parent_id: str) -> BookmarkNode:
        node_id = str(data.get("id", ""))
        is_url = data.get("type") == "url"
        node = BookmarkNode(
            id=node_id,
            title=data.get("name", ""),
            url=data.get("url", "") if is_url else None,
            parent_id=parent_id,
        )
        self._extras[node_id] = {
            k: v for k, v in data.items() if k not in ("id", "name", "url", "type", "children")
        }
        for child in data.get("children", []):
            node.children.append(self._from_json(child, node_id))
        return node

    def _to_json(self, node: BookmarkNode) -> dict[str, Any]:
        extras = self._extras.get(node.id)
        if extras is None:
            extras = {
                "date_added": str(int((time.time() + _WINDOWS_EPOCH_OFFSET) * 1_000_000)),
                "guid": str(uuid.uuid4()),
            }
            self._extras[node.id] = extras
        data: dict[str, Any] = dict(extras)
        data["id"] = node.id
        data["name"] = node.title
        if node.is_folder:
            data["type"] = "folder"
            data["children"] = [self._to_json(c) for c in node.children]
        else:
            data["type"] = "url"
            data["url"] = node.url
        return data

    def _changed(self) -> None:
        roots = dict(self._document.get("roots", {}))
        for child in self._root.children:
            roots[self._root_keys[child.id]] = self._to_json(child)
        document = dict(self._document)
        document.pop("checksum", None)
        document["roots"] = roots

        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", delete=False, dir=str(self.path.parent), encoding="utf-8", suffix=".tmp"
            ) as tmp:
                tmp_name = tmp.name
                json.dump(document, tmp, indent=3, ensure_ascii=False)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise BookmarkStoreError(f"Failed to write bookmarks file {self.path}: {e}") from e
        self._document = document
