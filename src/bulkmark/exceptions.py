"""Custom exceptions for bulkmark."""


class BulkmarkError(Exception):
    """Base exception for bulkmark."""


class ConfigError(BulkmarkError):
    """Raised when configuration or credentials are missing or invalid."""


class StorageError(BulkmarkError):
    """Raised when the key-value store cannot be read or written."""


class BookmarkStoreError(BulkmarkError):
    """Raised when a bookmark tree read, create or move fails."""


class LLMError(BulkmarkError):
    """Raised when LLM API calls fail."""


class TruncatedResponseError(LLMError):
    """Raised when the provider stopped because the output budget ran out."""


class ParseError(BulkmarkError):
    """Raised when the AI response is not the expected JSON document."""


class InvalidTransitionError(BulkmarkError):
    """Raised when a session operation is not allowed in the current state."""
