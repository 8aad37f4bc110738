"""Pytest configuration and fixtures for bulkmark tests"""

import json
from typing import Optional

import pytest

from bulkmark.bookmarks import BookmarkNode, InMemoryBookmarkStore, ROOT_ID
from bulkmark.llm.base import LLMProvider
from bulkmark.messaging import Channel
from bulkmark.storage import CredentialStore, MemoryStore, SessionStore

GEMINI_KEY = "AIza" + "x" * 35


def make_tree() -> BookmarkNode:
    """Bookmarks bar holds folders A and B; one loose bookmark in Other."""
    return BookmarkNode(id=ROOT_ID, title="", children=[
        BookmarkNode(id="1", title="Bookmarks bar", children=[
            BookmarkNode(id="4", title="A", children=[
                BookmarkNode(id="6", title="Python docs", url="https://docs.python.org/"),
            ]),
            BookmarkNode(id="5", title="B", children=[
                BookmarkNode(id="7", title="Rust book", url="https://doc.rust-lang.org/book/"),
            ]),
        ]),
        BookmarkNode(id="2", title="Other bookmarks", children=[
            BookmarkNode(id="8", title="Hacker News", url="https://news.ycombinator.com/"),
        ]),
        BookmarkNode(id="3", title="Mobile bookmarks"),
    ])


def organize_response(folders, assignments, summary="Grouped by topic") -> str:
    return json.dumps({"folders": folders, "assignments": assignments, "summary": summary})


# A plan that keeps A and introduces a new folder C for two bookmarks
DEFAULT_RESPONSE = organize_response(
    folders=[
        {"path": "A", "description": "Python", "isNew": False},
        {"path": "C", "description": "Everything else", "isNew": True},
    ],
    assignments=[
        {"bookmarkId": "6", "suggestedPath": "A"},
        {"bookmarkId": "7", "suggestedPath": "C"},
        {"bookmarkId": "8", "suggestedPath": "C"},
    ],
)


class FakeProvider(LLMProvider):
    """Returns canned text (or raises) and records every call."""

    name = "Fake"

    def __init__(self, response: str = DEFAULT_RESPONSE, error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.calls = []

    @property
    def max_input_tokens(self) -> int:
        return 100_000

    @property
    def default_max_output_tokens(self) -> int:
        return 16_384

    def generate(self, system_prompt, user_prompt, max_output_tokens=None):
        self.calls.append((system_prompt, user_prompt, max_output_tokens))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def kv():
    return MemoryStore()


@pytest.fixture
def sessions(kv):
    return SessionStore(kv)


@pytest.fixture
def credentials(kv):
    return CredentialStore(kv, {"geminiApiKey": GEMINI_KEY})


@pytest.fixture
def bookmark_store():
    return InMemoryBookmarkStore(make_tree())


@pytest.fixture
def channel():
    return Channel()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def provider_factory(fake_provider):
    """A get_llm_provider stand-in that always returns fake_provider."""
    def factory(service_id, api_key, model=None):
        factory.calls.append((service_id, api_key, model))
        return fake_provider
    factory.calls = []
    return factory


def chromium_document() -> dict:
    """The make_tree() layout as a Chromium Bookmarks file."""
    def url(node_id, name, href):
        return {"id": node_id, "name": name, "type": "url", "url": href}

    def folder(node_id, name, children):
        return {"id": node_id, "name": name, "type": "folder", "children": children}

    return {
        "checksum": "0" * 32,
        "version": 1,
        "roots": {
            "bookmark_bar": folder("1", "Bookmarks bar", [
                folder("4", "A", [url("6", "Python docs", "https://docs.python.org/")]),
                folder("5", "B", [url("7", "Rust book", "https://doc.rust-lang.org/book/")]),
            ]),
            "other": folder("2", "Other bookmarks", [
                url("8", "Hacker News", "https://news.ycombinator.com/"),
            ]),
            "synced": folder("3", "Mobile bookmarks", []),
        },
    }


@pytest.fixture
def bookmarks_file(tmp_path):
    path = tmp_path / "Bookmarks"
    path.write_text(json.dumps(chromium_document()), encoding="utf-8")
    return path
