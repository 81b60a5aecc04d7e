#!/usr/bin/env python3
"""Common error types shared across modules.

Provides shared lightweight exceptions to avoid circular imports.
"""

from typing import Optional


class FeedParseError(Exception):
    """Raised when a feed document cannot be decoded into entries.

    Attributes:
        source_id: Source whose payload failed to parse, when known.
    """

    def __init__(self, message: str = "Feed could not be parsed", source_id: Optional[str] = None):
        super().__init__(message)
        self.source_id = source_id


class StorageError(Exception):
    """Raised when a store operation fails inside the database worker."""

    def __init__(self, message: str = "Storage operation failed", operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation

__all__ = ["FeedParseError", "StorageError"]
