"""
API Routes.
"""

from . import chatbot, health, search

__all__ = ["health", "chatbot", "search"]
