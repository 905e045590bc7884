"""
SQLite Adapter - Content section storage with metadata full-text search.
"""

from .repository import SQLiteRepository

__all__ = ["SQLiteRepository"]
