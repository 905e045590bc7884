"""
FAISS Index - L2 vector similarity search.

Features:
- Async-compatible operations
- Euclidean distances, ascending (closest first)
- Index persistence
- Metadata storage alongside vectors
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import faiss
import numpy as np

logger = logging.getLogger(__name__)

__all__ = ["FAISSIndex"]

INDEX_FILE = "faiss_index.bin"
METADATA_FILE = "metadata.json"


class FAISSIndex:
    """
    FAISS vector index returning L2 distances.

    Example:
        >>> index = FAISSIndex(dimension=384)
        >>> await index.add_vectors(embeddings, [{"id": "s1"}, {"id": "s2"}])
        >>> hits = await index.search(query_embedding, k=10)
        >>> hits[0]["distance"] <= hits[1]["distance"]
        True
    """

    def __init__(self, dimension: int = 384, index_type: str = "Flat") -> None:
        """
        Initialize FAISS index.

        Args:
            dimension: Vector dimension (384 for MiniLM, 768 for MPNet)
            index_type: Index type ("Flat" or "HNSW")
        """
        self.dimension = dimension
        self.index_type = index_type

        self._index: faiss.Index | None = None
        self._metadata: list[dict[str, Any]] = []

    def _create_index(self) -> faiss.Index:
        """Create FAISS index based on type."""
        if self.index_type == "HNSW":
            return faiss.IndexHNSWFlat(self.dimension, 32)
        return faiss.IndexFlatL2(self.dimension)

    async def initialize(self) -> None:
        """Initialize empty index."""
        self._index = self._create_index()
        self._metadata = []
        logger.info(
            "FAISS index initialized: dimension=%d, type=%s",
            self.dimension,
            self.index_type,
        )

    async def add_vectors(
        self,
        vectors: np.ndarray,
        metadata: list[dict[str, Any]],
    ) -> None:
        """
        Add vectors with metadata.

        Args:
            vectors: numpy array of shape (n, dimension)
            metadata: List of metadata dicts (same length as vectors)
        """
        if len(vectors) != len(metadata):
            raise ValueError(
                f"Got {len(vectors)} vectors but {len(metadata)} metadata entries"
            )
        if self._index is None:
            await self.initialize()
        assert self._index is not None  # Guaranteed by initialize()

        vectors = np.ascontiguousarray(np.asarray(vectors, dtype="float32"))
        if vectors.ndim == 1:
            vectors = vectors.reshape(1, -1)

        await asyncio.to_thread(self._index.add, vectors)
        self._metadata.extend(metadata)

        logger.debug("Added %d vectors to index", len(vectors))

    async def search(
        self,
        query_vector: np.ndarray,
        k: int = 10,
    ) -> list[dict[str, Any]]:
        """
        Search for the nearest vectors.

        Args:
            query_vector: Query vector of shape (dimension,) or (1, dimension)
            k: Number of results

        Returns:
            List of dicts with 'distance', 'metadata', and 'index', closest first
        """
        if self._index is None or self._index.ntotal == 0 or k <= 0:
            return []

        query_vector = np.ascontiguousarray(np.asarray(query_vector, dtype="float32"))
        if query_vector.ndim == 1:
            query_vector = query_vector.reshape(1, -1)

        squared, indices = await asyncio.to_thread(
            self._index.search, query_vector, min(k, self._index.ntotal)
        )

        results = []
        for value, idx in zip(squared[0], indices[0]):
            if 0 <= idx < len(self._metadata):
                results.append(
                    {
                        # faiss L2 indices report squared distances
                        "distance": float(np.sqrt(max(float(value), 0.0))),
                        "index": int(idx),
                        "metadata": self._metadata[idx],
                    }
                )

        return results

    async def save(self, path: str | Path) -> None:
        """
        Save index to disk.

        Args:
            path: Directory to save index
        """
        if self._index is None:
            await self.initialize()
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)

        await asyncio.to_thread(faiss.write_index, self._index, str(path / INDEX_FILE))

        metadata = {
            "dimension": self.dimension,
            "index_type": self.index_type,
            "metadata": self._metadata,
        }
        await asyncio.to_thread(self._write_json, path / METADATA_FILE, metadata)

        logger.info("Index saved to %s (%d vectors)", path, self.size)

    @staticmethod
    def _write_json(path: Path, data: dict[str, Any]) -> None:
        """Write JSON file (sync helper for to_thread)."""
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)

    async def load(self, path: str | Path) -> None:
        """
        Load index from disk.

        Args:
            path: Directory containing saved index
        """
        path = Path(path)

        self._index = await asyncio.to_thread(faiss.read_index, str(path / INDEX_FILE))

        data = await asyncio.to_thread(self._read_json, path / METADATA_FILE)
        self.dimension = data["dimension"]
        self.index_type = data["index_type"]
        self._metadata = data["metadata"]

        logger.info("Index loaded from %s (%d vectors)", path, self.size)

    @staticmethod
    def exists(path: str | Path) -> bool:
        path = Path(path)
        return (path / INDEX_FILE).exists() and (path / METADATA_FILE).exists()

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any]:
        """Read JSON file (sync helper for to_thread)."""
        with open(path, encoding="utf-8") as f:
            result: dict[str, Any] = json.load(f)
            return result

    @property
    def size(self) -> int:
        """Get number of vectors in index."""
        return self._index.ntotal if self._index else 0
