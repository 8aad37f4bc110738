"""Data models for bulkmark.

Everything here round-trips through ``to_dict``/``from_dict`` using the
camelCase keys of the persisted session record, so a record written by
one execution context can be read by the other.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

# Session status values
IDLE = "idle"
SCANNING = "scanning"
SELECTING = "selecting"
ORGANIZING = "organizing"
REVIEWING_PLAN = "reviewing_plan"
REVIEWING_ASSIGNMENTS = "reviewing_assignments"
APPLYING = "applying"
COMPLETED = "completed"
ERROR = "error"

STATUSES = (
    IDLE,
    SCANNING,
    SELECTING,
    ORGANIZING,
    REVIEWING_PLAN,
    REVIEWING_ASSIGNMENTS,
    APPLYING,
    COMPLETED,
    ERROR,
)


@dataclass(frozen=True)
class CompactBookmark:
    """Snapshot of one bookmark taken at scan time."""

    id: str
    title: str
    url: str
    current_folder_path: str
    current_folder_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "currentFolderPath": self.current_folder_path,
            "currentFolderId": self.current_folder_id,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "CompactBookmark":
        return cls(
            id=str(d.get("id", "")),
            title=d.get("title", ""),
            url=d.get("url", ""),
            current_folder_path=d.get("currentFolderPath", ""),
            current_folder_id=str(d.get("currentFolderId", "")),
        )


@dataclass
class ProposedFolder:
    path: str
    description: str = ""
    is_new: bool = False
    is_excluded: bool = False  # client-side veto, never sent by the model

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "description": self.description,
            "isNew": self.is_new,
            "isExcluded": self.is_excluded,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "ProposedFolder":
        return cls(
            path=d.get("path", ""),
            description=d.get("description", ""),
            is_new=bool(d.get("isNew", False)),
            is_excluded=bool(d.get("isExcluded", False)),
        )


@dataclass
class FolderPlan:
    folders: list[ProposedFolder] = field(default_factory=list)
    summary: str = ""

    def excluded_paths(self) -> set[str]:
        return {f.path for f in self.folders if f.is_excluded}

    def to_dict(self) -> dict[str, Any]:
        return {
            "folders": [f.to_dict() for f in self.folders],
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "FolderPlan":
        return cls(
            folders=[ProposedFolder.from_dict(f) for f in d.get("folders", [])],
            summary=d.get("summary", ""),
        )


@dataclass
class BookmarkAssignment:
    """One bookmark's proposed destination."""

    bookmark_id: str
    bookmark_title: str
    bookmark_url: str
    current_path: str
    suggested_path: str
    suggested_folder_id: Optional[str] = None
    is_new_folder: bool = False
    is_approved: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "bookmarkId": self.bookmark_id,
            "bookmarkTitle": self.bookmark_title,
            "bookmarkUrl": self.bookmark_url,
            "currentPath": self.current_path,
            "suggestedPath": self.suggested_path,
            "suggestedFolderId": self.suggested_folder_id,
            "isNewFolder": self.is_new_folder,
            "isApproved": self.is_approved,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "BookmarkAssignment":
        folder_id = d.get("suggestedFolderId")
        return cls(
            bookmark_id=str(d.get("bookmarkId", "")),
            bookmark_title=d.get("bookmarkTitle", ""),
            bookmark_url=d.get("bookmarkUrl", ""),
            current_path=d.get("currentPath", ""),
            suggested_path=d.get("suggestedPath", ""),
            suggested_folder_id=str(folder_id) if folder_id is not None else None,
            is_new_folder=bool(d.get("isNewFolder", False)),
            is_approved=bool(d.get("isApproved", True)),
        )


@dataclass
class OrganizeResult:
    """Output of one plan+assign AI call."""

    folder_plan: FolderPlan
    assignments: list[BookmarkAssignment] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "folderPlan": self.folder_plan.to_dict(),
            "assignments": [a.to_dict() for a in self.assignments],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "OrganizeResult":
        return cls(
            folder_plan=FolderPlan.from_dict(d.get("folderPlan") or {}),
            assignments=[
                BookmarkAssignment.from_dict(a) for a in d.get("assignments", [])
            ],
        )


@dataclass
class OrganizeSession:
    """The single persisted record shared by both execution contexts."""

    status: str = IDLE
    all_bookmarks: list[CompactBookmark] = field(default_factory=list)
    selected_folder_ids: Optional[list[str]] = None  # None = not chosen yet
    bookmarks_to_organize: list[CompactBookmark] = field(default_factory=list)
    folder_plan: Optional[FolderPlan] = None
    folder_tree: str = ""
    assignments: list[BookmarkAssignment] = field(default_factory=list)
    applied_count: int = 0
    skipped_count: int = 0
    error_message: Optional[str] = None
    started_at: Optional[int] = None
    completed_at: Optional[int] = None
    service_id: str = ""
    path_to_id_map: dict[str, str] = field(default_factory=dict)
    default_parent_id: str = ""

    @classmethod
    def initial(cls) -> "OrganizeSession":
        return cls()

    @property
    def approved_count(self) -> int:
        return sum(1 for a in self.assignments if a.is_approved)

    @property
    def rejected_count(self) -> int:
        return len(self.assignments) - self.approved_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "allBookmarks": [b.to_dict() for b in self.all_bookmarks],
            "selectedFolderIds": (
                list(self.selected_folder_ids)
                if self.selected_folder_ids is not None
                else None
            ),
            "bookmarksToOrganize": [b.to_dict() for b in self.bookmarks_to_organize],
            "folderPlan": self.folder_plan.to_dict() if self.folder_plan else None,
            "folderTree": self.folder_tree,
            "assignments": [a.to_dict() for a in self.assignments],
            "appliedCount": self.applied_count,
            "skippedCount": self.skipped_count,
            "errorMessage": self.error_message,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "serviceId": self.service_id,
            "pathToIdMap": dict(self.path_to_id_map),
            "defaultParentId": self.default_parent_id,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "OrganizeSession":
        """Rebuild a session, filling missing fields with initial defaults."""
        selected = d.get("selectedFolderIds")
        plan = d.get("folderPlan")
        return cls(
            status=d.get("status", IDLE),
            all_bookmarks=[CompactBookmark.from_dict(b) for b in d.get("allBookmarks", [])],
            selected_folder_ids=[str(i) for i in selected] if selected is not None else None,
            bookmarks_to_organize=[
                CompactBookmark.from_dict(b) for b in d.get("bookmarksToOrganize", [])
            ],
            folder_plan=FolderPlan.from_dict(plan) if plan else None,
            folder_tree=d.get("folderTree", ""),
            assignments=[BookmarkAssignment.from_dict(a) for a in d.get("assignments", [])],
            applied_count=int(d.get("appliedCount", 0)),
            skipped_count=int(d.get("skippedCount", 0)),
            error_message=d.get("errorMessage"),
            started_at=d.get("startedAt"),
            completed_at=d.get("completedAt"),
            service_id=d.get("serviceId", ""),
            path_to_id_map={k: str(v) for k, v in (d.get("pathToIdMap") or {}).items()},
            default_parent_id=str(d.get("defaultParentId", "")),
        )
