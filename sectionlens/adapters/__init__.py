"""
Adapters - Concrete collaborators for the retrieval domain.

All storage, embedding and model calls are wrapped here so the domain only
sees its contracts.
"""

from .faiss import FAISSIndex
from .llm import LLMQueryInterpreter, LLMResponse, LLMService
from .sqlite import SQLiteRepository
from .vector import VectorSearch

__all__ = [
    # Storage
    "SQLiteRepository",
    "FAISSIndex",
    # Semantic search
    "VectorSearch",
    # Query interpretation (Ollama)
    "LLMService",
    "LLMResponse",
    "LLMQueryInterpreter",
]
