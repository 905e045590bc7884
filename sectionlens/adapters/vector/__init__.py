"""
Vector Adapter - Embedding similarity search over indexed sections.
"""

from .search import VectorSearch

__all__ = ["VectorSearch"]
