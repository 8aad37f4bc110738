"""Foreground session orchestrator for a bulk-organize run.

State machine::

    idle -> scanning -> selecting -> organizing -> reviewing_plan
         -> reviewing_assignments -> applying -> completed

with ``error`` reachable from scanning, organizing and applying. Every
mutation is persisted before the method returns, because the foreground
may be torn down right after the user acts. The organizing phase runs in
the background context; its outcome arrives through the session store.
"""

import logging
from typing import Optional

from .bookmarks import BookmarkStore
from .exceptions import ConfigError, InvalidTransitionError
from .folders import build_folder_index, create_folder_path
from .messaging import (
    GET_ORGANIZE_STATUS,
    ORGANIZE_COMPLETE,
    ORGANIZE_ERROR,
    START_ORGANIZE,
    Channel,
    Message,
)
from .models import (
    APPLYING,
    COMPLETED,
    ERROR,
    IDLE,
    ORGANIZING,
    REVIEWING_ASSIGNMENTS,
    REVIEWING_PLAN,
    SCANNING,
    SELECTING,
    OrganizeResult,
    OrganizeSession,
)
from .scanner import distinct_folder_ids, filter_by_folders, flatten_bookmarks
from .storage import CredentialStore, SessionStore
from .utils import now_ms

logger = logging.getLogger(__name__)

# Persisted statuses that only make sense while the foreground is alive
_RESUME_NORMALIZATION = {
    SCANNING: IDLE,
    APPLYING: REVIEWING_ASSIGNMENTS,
}


class OrganizeOrchestrator:
    """Drives one organize session from the foreground."""

    def __init__(
        self,
        sessions: SessionStore,
        bookmarks: Optional[BookmarkStore],
        credentials: CredentialStore,
        channel: Channel,
        default_service_id: str = "",
    ):
        self._sessions = sessions
        self._bookmarks = bookmarks
        self._credentials = credentials
        self._channel = channel
        self._default_service_id = default_service_id
        self.session = OrganizeSession.initial()
        self.waiting_for_ai = False
        self._attached = False

    # -- lifecycle ---------------------------------------------------------

    def attach(self) -> OrganizeSession:
        """Load the persisted session and normalize stale statuses.

        A scan or apply that was running when the previous foreground died
        can't be resumed, so those statuses are rolled back and the
        correction persisted. An organizing session is resumed by waiting
        for the background result again.
        """
        if not self._attached:
            self._channel.to_foreground.add_listener(self.on_message)
            self._attached = True

        saved = self._sessions.load()
        if saved is None or saved.status == IDLE:
            self.session = OrganizeSession.initial()
            self.waiting_for_ai = False
            return self.session

        normalized = _RESUME_NORMALIZATION.get(saved.status)
        if normalized is not None:
            logger.info("Resuming stale %s session as %s", saved.status, normalized)
            saved.status = normalized
            self.session = saved
            self._persist()
        else:
            self.session = saved
        self.waiting_for_ai = self.session.status == ORGANIZING
        return self.session

    def detach(self) -> None:
        if self._attached:
            self._channel.to_foreground.remove_listener(self.on_message)
            self._attached = False

    def refresh(self) -> OrganizeSession:
        """Re-read the persisted session without normalizing it."""
        saved = self._sessions.load()
        self.session = saved or OrganizeSession.initial()
        self.waiting_for_ai = self.session.status == ORGANIZING
        return self.session

    def request_status(self) -> OrganizeSession:
        """Ask the background context for the session it last persisted."""
        reply = self._channel.to_background.send(Message(GET_ORGANIZE_STATUS))
        if isinstance(reply, dict):
            self.session = OrganizeSession.from_dict(reply)
            self.waiting_for_ai = self.session.status == ORGANIZING
        return self.session

    def reset(self) -> OrganizeSession:
        """Discard the session; an in-flight AI result will be ignored."""
        self.session = OrganizeSession.initial()
        self.waiting_for_ai = False
        self._sessions.clear()
        return self.session

    def acknowledge(self) -> OrganizeSession:
        """Dismiss a completed or failed run."""
        self._require(COMPLETED, ERROR)
        return self.reset()

    # -- helpers -----------------------------------------------------------

    def _persist(self) -> None:
        self._sessions.save(self.session)

    def _require(self, *statuses: str) -> None:
        if self.session.status not in statuses:
            raise InvalidTransitionError(
                f"Not allowed while session is {self.session.status} "
                f"(expected {' or '.join(statuses)})"
            )

    def _fail(self, message: str) -> None:
        self.session.status = ERROR
        self.session.error_message = message
        self.waiting_for_ai = False
        self._persist()

    def _store(self) -> BookmarkStore:
        if self._bookmarks is None:
            raise ConfigError("No bookmarks file configured")
        return self._bookmarks

    # -- scanning and selection -------------------------------------------

    def start_scan(self) -> OrganizeSession:
        self._require(IDLE)
        store = self._store()
        self.session.status = SCANNING
        self._persist()

        try:
            tree = store.get_tree()
            index = build_folder_index(tree)
            all_bookmarks = flatten_bookmarks(tree, index.id_to_path)
        except Exception as e:
            logger.exception("Error scanning bookmarks")
            self._fail(str(e) or "Failed to scan bookmarks")
            return self.session

        self.session.status = SELECTING
        self.session.all_bookmarks = all_bookmarks
        self.session.selected_folder_ids = distinct_folder_ids(all_bookmarks)
        self.session.folder_tree = index.text_tree
        self.session.path_to_id_map = index.path_to_id
        self.session.default_parent_id = index.default_parent_id
        self.session.error_message = None
        self._persist()
        logger.info("Scanned %d bookmark(s) in %d folder(s)",
                    len(all_bookmarks), len(self.session.selected_folder_ids))
        return self.session

    def toggle_folder(self, folder_id: str) -> OrganizeSession:
        self._require(SELECTING)
        selected = list(self.session.selected_folder_ids or [])
        if folder_id in selected:
            selected.remove(folder_id)
        elif folder_id in distinct_folder_ids(self.session.all_bookmarks):
            selected.append(folder_id)
        else:
            logger.warning("No bookmarks in folder %s; not selecting it", folder_id)
            return self.session
        self.session.selected_folder_ids = selected
        self._persist()
        return self.session

    def select_all_folders(self) -> OrganizeSession:
        self._require(SELECTING)
        self.session.selected_folder_ids = distinct_folder_ids(self.session.all_bookmarks)
        self._persist()
        return self.session

    def deselect_all_folders(self) -> OrganizeSession:
        self._require(SELECTING)
        self.session.selected_folder_ids = []
        self._persist()
        return self.session

    # -- organizing --------------------------------------------------------

    def start_organizing(self) -> OrganizeSession:
        """Hand the AI call to the background context and return at once."""
        self._require(SELECTING)
        selected = self.session.selected_folder_ids or []
        if not selected:
            logger.info("No folders selected; nothing to organize")
            return self.session
        bookmarks_to_organize = filter_by_folders(self.session.all_bookmarks, selected)
        if not bookmarks_to_organize:
            logger.info("Selected folders hold no bookmarks; nothing to organize")
            return self.session

        service_id = self._credentials.selected_service() or self._default_service_id
        if not service_id:
            self._fail("No AI provider selected")
            return self.session

        self.session.status = ORGANIZING
        self.session.service_id = service_id
        self.session.bookmarks_to_organize = bookmarks_to_organize
        self.session.folder_plan = None
        self.session.assignments = []
        self.session.error_message = None
        self._persist()
        self.waiting_for_ai = True

        self._channel.to_background.send(Message(START_ORGANIZE, {
            "serviceId": service_id,
            "bookmarks": [b.to_dict() for b in bookmarks_to_organize],
            "folderTree": self.session.folder_tree,
            "pathToIdMap": dict(self.session.path_to_id_map),
            "defaultParentId": self.session.default_parent_id,
        }))
        return self.session

    def on_message(self, message: Message) -> None:
        """React to a background notification.

        The payload is only a hint; the stored session wins when it has
        already left the organizing state.
        """
        if message.type not in (ORGANIZE_COMPLETE, ORGANIZE_ERROR):
            return
        self.waiting_for_ai = False
        try:
            saved = self._sessions.load()
        except Exception as e:
            logger.warning("Could not reload session after %s: %s", message.type, e)
            saved = None

        if saved is not None and saved.status in (REVIEWING_PLAN, ERROR):
            self.session = saved
            return
        if self.session.status != ORGANIZING:
            # Reset while the call was in flight; ignore the late result
            return

        if message.type == ORGANIZE_COMPLETE:
            result = OrganizeResult.from_dict(message.payload.get("result") or {})
            self.session.status = REVIEWING_PLAN
            self.session.folder_plan = result.folder_plan
            self.session.assignments = result.assignments
        else:
            self.session.status = ERROR
            self.session.error_message = message.payload.get("errorMessage") or "Organize failed"

    # -- plan review -------------------------------------------------------

    def toggle_plan_folder(self, folder_path: str) -> OrganizeSession:
        self._require(REVIEWING_PLAN)
        plan = self.session.folder_plan
        if plan is None:
            return self.session
        for folder in plan.folders:
            if folder.path == folder_path:
                folder.is_excluded = not folder.is_excluded
        self._persist()
        return self.session

    def approve_plan(self) -> OrganizeSession:
        """Drop assignments that target excluded folders."""
        self._require(REVIEWING_PLAN)
        excluded = self.session.folder_plan.excluded_paths() if self.session.folder_plan else set()
        kept = [a for a in self.session.assignments if a.suggested_path not in excluded]
        dropped = len(self.session.assignments) - len(kept)
        if dropped:
            logger.info("Removed %d assignment(s) targeting excluded folders", dropped)
        self.session.assignments = kept
        self.session.status = REVIEWING_ASSIGNMENTS
        self._persist()
        return self.session

    def reject_plan(self) -> OrganizeSession:
        """Go back to folder selection to re-plan."""
        self._require(REVIEWING_PLAN)
        self.session.status = SELECTING
        self.session.folder_plan = None
        self.session.assignments = []
        self._persist()
        return self.session

    # -- assignment review -------------------------------------------------

    def toggle_assignment(self, bookmark_id: str) -> OrganizeSession:
        self._require(REVIEWING_ASSIGNMENTS)
        for assignment in self.session.assignments:
            if assignment.bookmark_id == bookmark_id:
                assignment.is_approved = not assignment.is_approved
        self._persist()
        return self.session

    def approve_all_assignments(self) -> OrganizeSession:
        return self._set_all_approved(True)

    def reject_all_assignments(self) -> OrganizeSession:
        return self._set_all_approved(False)

    def _set_all_approved(self, approved: bool) -> OrganizeSession:
        self._require(REVIEWING_ASSIGNMENTS)
        for assignment in self.session.assignments:
            assignment.is_approved = approved
        self._persist()
        return self.session

    # -- apply -------------------------------------------------------------

    def apply_moves(self) -> OrganizeSession:
        """Move every approved bookmark, one at a time, in order.

        A failed or unresolvable move is counted as skipped and never
        stops the run. Rejected assignments also count as skipped.
        """
        self._require(REVIEWING_ASSIGNMENTS)
        store = self._store()
        self.session.status = APPLYING
        self.session.started_at = now_ms()
        self._persist()

        try:
            approved = [a for a in self.session.assignments if a.is_approved]
            path_to_id = dict(self.session.path_to_id_map)
            applied = 0
            skipped = 0

            for assignment in approved:
                try:
                    folder_id = assignment.suggested_folder_id
                    if not folder_id and assignment.is_new_folder:
                        folder_id = create_folder_path(
                            store,
                            assignment.suggested_path,
                            path_to_id,
                            self.session.default_parent_id,
                        )
                    if not folder_id:
                        logger.warning("No folder for %r (%s); skipping",
                                       assignment.suggested_path, assignment.bookmark_id)
                        skipped += 1
                        continue
                    store.move(assignment.bookmark_id, folder_id)
                    applied += 1
                except Exception as e:
                    logger.error("Error moving bookmark %s: %s", assignment.bookmark_id, e)
                    skipped += 1

            rejected = len(self.session.assignments) - len(approved)
            self.session.status = COMPLETED
            self.session.applied_count = applied
            self.session.skipped_count = skipped + rejected
            self.session.completed_at = now_ms()
            self.session.path_to_id_map = path_to_id
            self._persist()
        except Exception as e:
            logger.exception("Error applying moves")
            self._fail(str(e) or "Failed to apply bookmark moves")
            return self.session

        logger.info("Applied %d move(s), skipped %d",
                    self.session.applied_count, self.session.skipped_count)
        return self.session
