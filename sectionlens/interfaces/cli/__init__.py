"""
CLI Interface - Command-line tools for SectionLens.

Provides commands for:
- Loading cleansed sections and building the vector index
- Querying sections
- Serving the API
"""

from .main import app, main

__all__ = ["app", "main"]
