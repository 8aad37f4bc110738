"""Bulk-reorganize bookmarks into an AI-proposed folder hierarchy."""

__version__ = "0.1.0"
