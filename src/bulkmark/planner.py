"""The plan+assign AI call and its response parser."""

import json
import logging
import re

from .exceptions import ParseError
from .folders import resolve_folder_id
from .llm.base import LLMProvider
from .models import (
    BookmarkAssignment,
    CompactBookmark,
    FolderPlan,
    OrganizeResult,
    ProposedFolder,
)
from .prompts import ORGANIZE_SYSTEM_PROMPT, build_organize_user_prompt

logger = logging.getLogger(__name__)

ORGANIZE_MAX_OUTPUT_TOKENS = 16_384

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def extract_json(response_text: str) -> str:
    """Strip optional Markdown code fences around the JSON body."""
    trimmed = response_text.strip()
    match = _FENCE_RE.search(trimmed)
    if match:
        return match.group(1).strip()
    return trimmed


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 chars per token for English)."""
    return len(text) // 4


def parse_organize_response(
    response_text: str,
    batch: list[CompactBookmark],
    path_to_id_map: dict[str, str],
    default_parent_id: str = "",
) -> OrganizeResult:
    """Parse the model's JSON into a folder plan plus assignments.

    Unknown bookmark ids are logged and kept with empty title/url. A folder
    counts as new when its path does not resolve to an existing folder id.

    Raises:
        ParseError: The text is not JSON or lacks the "folders" or
            "assignments" arrays.
    """
    try:
        parsed = json.loads(extract_json(response_text))
    except json.JSONDecodeError as e:
        logger.error("Failed to parse organize response: %s\nResponse:\n%s", e, response_text)
        raise ParseError("Failed to parse AI organize response") from e

    if not isinstance(parsed, dict):
        logger.error("Organize response is not a JSON object:\n%s", response_text)
        raise ParseError("Failed to parse AI organize response")
    for key in ("folders", "assignments"):
        if not isinstance(parsed.get(key), list):
            logger.error("Organize response missing %r array:\n%s", key, response_text)
            raise ParseError(f'AI response missing "{key}" array')

    def resolve(path: str):
        return resolve_folder_id(path, path_to_id_map, default_parent_id)

    folders = []
    for entry in parsed["folders"]:
        if not isinstance(entry, dict):
            logger.warning("Skipping non-object folder entry: %r", entry)
            continue
        path = str(entry.get("path") or "").strip()
        if not path:
            continue
        claimed_new = bool(entry.get("isNew"))
        is_new = resolve(path) is None
        if claimed_new != is_new:
            logger.debug("Folder %r marked isNew=%s but resolves as new=%s", path, claimed_new, is_new)
        folders.append(ProposedFolder(
            path=path,
            description=str(entry.get("description") or ""),
            is_new=is_new,
        ))

    bookmarks_by_id = {b.id: b for b in batch}
    assignments = []
    for entry in parsed["assignments"]:
        if not isinstance(entry, dict):
            logger.warning("Skipping non-object assignment entry: %r", entry)
            continue
        bookmark_id = str(entry.get("bookmarkId") or "")
        suggested_path = str(entry.get("suggestedPath") or "").strip()
        bookmark = bookmarks_by_id.get(bookmark_id)
        if bookmark is None:
            logger.warning("Unknown bookmarkId in assignment: %r", bookmark_id)

        folder_id = resolve(suggested_path)
        assignments.append(BookmarkAssignment(
            bookmark_id=bookmark_id,
            bookmark_title=bookmark.title if bookmark else "",
            bookmark_url=bookmark.url if bookmark else "",
            current_path=bookmark.current_folder_path if bookmark else "",
            suggested_path=suggested_path,
            suggested_folder_id=folder_id,
            is_new_folder=folder_id is None and bool(suggested_path),
            is_approved=True,
        ))

    return OrganizeResult(
        folder_plan=FolderPlan(folders=folders, summary=str(parsed.get("summary") or "")),
        assignments=assignments,
    )


def organize_bookmarks(
    llm: LLMProvider,
    bookmarks: list[CompactBookmark],
    folder_tree: str,
    path_to_id_map: dict[str, str],
    default_parent_id: str = "",
) -> OrganizeResult:
    """Run the single plan+assign call for a batch of bookmarks."""
    user_prompt = build_organize_user_prompt(bookmarks, folder_tree)
    prompt_tokens = estimate_tokens(ORGANIZE_SYSTEM_PROMPT + user_prompt)
    if prompt_tokens > llm.max_input_tokens:
        logger.warning(
            "Organize prompt is ~%d tokens, above the model's %d-token input limit",
            prompt_tokens, llm.max_input_tokens,
        )
    logger.debug("Organize prompt:\n--- SYSTEM ---\n%s\n--- USER ---\n%s",
                 ORGANIZE_SYSTEM_PROMPT, user_prompt)

    response_text = llm.generate(
        ORGANIZE_SYSTEM_PROMPT,
        user_prompt,
        max_output_tokens=ORGANIZE_MAX_OUTPUT_TOKENS,
    )
    logger.debug("Organize response:\n%s", response_text)

    result = parse_organize_response(response_text, bookmarks, path_to_id_map, default_parent_id)
    logger.info(
        "Plan has %d folder(s) and %d assignment(s) for %d bookmark(s)",
        len(result.folder_plan.folders), len(result.assignments), len(bookmarks),
    )
    return result
