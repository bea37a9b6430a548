"""
Vector Similarity Index
Per-owner FAISS inner-product indices over L2-normalized item vectors.
"""

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import faiss
import numpy as np

from ..errors import OwnerIsolationViolation

logger = logging.getLogger(__name__)


class VectorIndexError(Exception):
    """Exception raised for vector index errors."""

    pass


def cosine_similarity(a, b) -> float:
    """
    Cosine similarity between two vectors.

    Returns 0.0 when either vector has zero norm.
    """
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    if a.shape != b.shape:
        raise ValueError(f"Vector shapes differ: {a.shape} vs {b.shape}")

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = float(np.dot(a, b) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


def _normalize(vector: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vector)
    if norm == 0.0:
        return vector
    return vector / norm


@dataclass
class _Entry:
    faiss_id: int
    owner_id: str
    content_hash: Optional[str] = None
    model_id: Optional[str] = None


class VectorIndex:
    """
    Thread-safe vector index scoped by owner.

    Each owner gets its own IndexIDMap2(IndexFlatIP), so a query can only
    ever see vectors of the owner it was issued for.
    """

    def __init__(self, dimension: int):
        """
        Initialize an empty index.

        Args:
            dimension: Length of every stored vector
        """
        if dimension <= 0:
            raise ValueError(f"Dimension must be positive, got {dimension}")

        self.dimension = dimension
        self._owner_indexes: Dict[str, faiss.Index] = {}
        self._entries: Dict[str, _Entry] = {}  # item_id -> entry
        self._item_ids: Dict[int, str] = {}  # faiss id -> item_id
        self._next_id = 0
        self._lock = threading.RLock()

    def _prepare(self, vector) -> np.ndarray:
        vector = np.asarray(vector, dtype=np.float32).ravel()
        if vector.shape[0] != self.dimension:
            raise ValueError(
                f"Vector dimension {vector.shape[0]} does not match index dimension "
                f"{self.dimension}; a full reindex is required"
            )
        if not np.all(np.isfinite(vector)):
            raise ValueError("Vector contains NaN or infinite values")
        return _normalize(vector).astype(np.float32)

    def _owner_index(self, owner_id: str) -> faiss.Index:
        index = self._owner_indexes.get(owner_id)
        if index is None:
            index = faiss.IndexIDMap2(faiss.IndexFlatIP(self.dimension))
            self._owner_indexes[owner_id] = index
        return index

    def upsert(
        self,
        item_id: str,
        owner_id: str,
        vector,
        content_hash: Optional[str] = None,
        model_id: Optional[str] = None,
    ) -> None:
        """
        Insert or replace the vector of an item.

        Args:
            item_id: Item identifier
            owner_id: Owner of the item
            vector: Embedding vector
            content_hash: Hash of the text the vector was built from
            model_id: Model that produced the vector
        """
        prepared = self._prepare(vector)

        with self._lock:
            existing = self._entries.get(item_id)
            if existing is not None:
                self._owner_indexes[existing.owner_id].remove_ids(
                    np.array([existing.faiss_id], dtype=np.int64)
                )
                faiss_id = existing.faiss_id
            else:
                faiss_id = self._next_id
                self._next_id += 1

            self._owner_index(owner_id).add_with_ids(
                prepared.reshape(1, -1), np.array([faiss_id], dtype=np.int64)
            )
            self._entries[item_id] = _Entry(faiss_id, owner_id, content_hash, model_id)
            self._item_ids[faiss_id] = item_id

    def remove(self, item_id: str) -> bool:
        """Remove an item's vector. Returns False if it was not indexed."""
        with self._lock:
            entry = self._entries.pop(item_id, None)
            if entry is None:
                return False
            self._owner_indexes[entry.owner_id].remove_ids(
                np.array([entry.faiss_id], dtype=np.int64)
            )
            del self._item_ids[entry.faiss_id]
            return True

    def top_k(self, owner_id: str, query_vector, k: int) -> List[Tuple[str, float]]:
        """
        Find the k nearest items of one owner by cosine similarity.

        Args:
            owner_id: Owner to search within
            query_vector: Query embedding
            k: Maximum number of results

        Returns:
            List of (item_id, cosine_similarity), similarity descending then item id
        """
        if k <= 0:
            return []

        query = self._prepare(query_vector).reshape(1, -1)

        with self._lock:
            index = self._owner_indexes.get(owner_id)
            if index is None or index.ntotal == 0:
                return []

            scores, ids = index.search(query, min(k, index.ntotal))

            results = []
            for score, faiss_id in zip(scores[0], ids[0]):
                if faiss_id < 0:
                    continue
                item_id = self._item_ids[int(faiss_id)]
                entry = self._entries[item_id]
                if entry.owner_id != owner_id:
                    raise OwnerIsolationViolation(owner_id, entry.owner_id, item_id)
                results.append((item_id, max(-1.0, min(1.0, float(score)))))

        results.sort(key=lambda pair: (-pair[1], pair[0]))
        return results

    def is_current(self, item_id: str, content_hash: Optional[str], model_id: Optional[str]) -> bool:
        """Whether an item's stored vector was built from this content and model."""
        with self._lock:
            entry = self._entries.get(item_id)
            return (
                entry is not None
                and entry.content_hash == content_hash
                and entry.model_id == model_id
            )

    def contains(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._entries

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def owner_size(self, owner_id: str) -> int:
        with self._lock:
            index = self._owner_indexes.get(owner_id)
            return index.ntotal if index is not None else 0

    def clear(self) -> None:
        with self._lock:
            self._owner_indexes = {}
            self._entries = {}
            self._item_ids = {}
            self._next_id = 0

    def save(self, path: Path) -> Path:
        """
        Save all vectors and their bookkeeping to a .npz snapshot.

        Args:
            path: Target file

        Returns:
            Path where the index was saved
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with self._lock:
            item_ids = sorted(self._entries)
            entries = [self._entries[item_id] for item_id in item_ids]
            if entries:
                vectors = np.vstack(
                    [self._owner_indexes[e.owner_id].reconstruct(e.faiss_id) for e in entries]
                ).astype(np.float32)
            else:
                vectors = np.zeros((0, self.dimension), dtype=np.float32)

        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "wb") as f:
            np.savez(
                f,
                item_ids=np.array(item_ids, dtype=str),
                owner_ids=np.array([e.owner_id for e in entries], dtype=str),
                content_hashes=np.array([e.content_hash or "" for e in entries], dtype=str),
                model_ids=np.array([e.model_id or "" for e in entries], dtype=str),
                vectors=vectors,
                dimension=np.array(self.dimension),
                saved_at=np.array(datetime.utcnow().isoformat()),
            )
        os.replace(tmp_path, path)

        logger.info(f"Saved vector index to {path}: {len(item_ids)} vectors")
        return path

    def load(self, path: Path) -> int:
        """
        Replace the index contents with a saved snapshot.

        A snapshot built with a different dimension is discarded.

        Args:
            path: Snapshot file

        Returns:
            Number of vectors loaded

        Raises:
            FileNotFoundError: If the snapshot does not exist
            VectorIndexError: If the snapshot cannot be read
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Vector index snapshot not found: {path}")

        try:
            with np.load(path, allow_pickle=False) as data:
                dimension = int(data["dimension"])
                item_ids = [str(x) for x in data["item_ids"]]
                owner_ids = [str(x) for x in data["owner_ids"]]
                hashes = [str(x) or None for x in data["content_hashes"]]
                model_ids = [str(x) or None for x in data["model_ids"]]
                vectors = np.asarray(data["vectors"], dtype=np.float32)
        except (KeyError, ValueError, OSError) as e:
            raise VectorIndexError(f"Failed to read vector index snapshot {path}: {e}")

        if dimension != self.dimension:
            logger.warning(
                f"Discarding vector index snapshot with dimension {dimension} "
                f"(configured {self.dimension}); run a full reindex"
            )
            return 0

        with self._lock:
            self.clear()
            for item_id, owner_id, vector, content_hash, model_id in zip(
                item_ids, owner_ids, vectors, hashes, model_ids
            ):
                self.upsert(item_id, owner_id, vector, content_hash, model_id)

        logger.info(f"Loaded vector index from {path}: {len(item_ids)} vectors")
        return len(item_ids)

    def get_stats(self) -> dict:
        """
        Get index statistics.

        Returns:
            Dictionary with index stats
        """
        with self._lock:
            return {
                "num_vectors": len(self._entries),
                "num_owners": sum(1 for idx in self._owner_indexes.values() if idx.ntotal > 0),
                "dimension": self.dimension,
                "index_type": "IDMap2(FlatIP)",
            }
