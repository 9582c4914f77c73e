"""SQLite article storage."""

from __future__ import annotations


class StorageError(RuntimeError):
    """Raised when the article store cannot be opened, written or read."""


from .sqlite import ArticleStore  # noqa: E402

__all__ = ["ArticleStore", "StorageError"]
