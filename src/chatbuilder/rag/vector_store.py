"""
Local Vector Index

In-memory store of chunk embeddings, persisted to a single JSON file.

Features:
- Insert and delete-by-document with write-through persistence
- Exact k-nearest-neighbour search by cosine similarity (linear scan)
- Dimension checks on every insert and query
- Single writer, lock-free readers: each mutation swaps in a new immutable
  snapshot, so searches never observe a half-applied write

Sized for thousands of chunks. An approximate index can replace the scan
behind the same search() contract if the corpus grows much larger.
"""

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np
from pydantic import BaseModel, Field

from .config import RAGConfig
from ..exceptions import IndexPersistenceError, ValidationError

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class EmbeddingRecord(BaseModel):
    """One embedded chunk."""

    id: str = Field(..., description="Record id (shared with the relational mirror)")
    document_id: str = Field(..., description="Owning document id")
    chunk_text: str = Field(..., description="Chunk text")
    chunk_index: int = Field(..., ge=0, description="Position of the chunk in its document")
    embedding: List[float] = Field(..., description="Dense vector")


class SearchResult(EmbeddingRecord):
    """An index record with its similarity to the query."""

    similarity: float = Field(..., description="Cosine similarity to the query (-1..1)")


@dataclass(frozen=True)
class _Snapshot:
    records: Tuple[EmbeddingRecord, ...]
    matrix: np.ndarray
    norms: np.ndarray
    dimension: Optional[int]


def _empty_snapshot() -> _Snapshot:
    return _Snapshot(
        records=(),
        matrix=np.zeros((0, 0), dtype=np.float64),
        norms=np.zeros(0, dtype=np.float64),
        dimension=None,
    )


def _build_snapshot(records: Sequence[EmbeddingRecord]) -> _Snapshot:
    if not records:
        return _empty_snapshot()
    matrix = np.asarray([r.embedding for r in records], dtype=np.float64)
    return _Snapshot(
        records=tuple(records),
        matrix=matrix,
        norms=np.linalg.norm(matrix, axis=1),
        dimension=matrix.shape[1],
    )


def _as_vector(values: Sequence[float], expected_dim: Optional[int]) -> np.ndarray:
    """Validate a vector and return it as a 1-d float array."""
    try:
        vec = np.asarray(values, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Vector must be a sequence of numbers: {e}") from e

    if vec.ndim != 1 or vec.size == 0:
        raise ValidationError("Vector must be a non-empty 1-dimensional sequence")
    if not np.all(np.isfinite(vec)):
        raise ValidationError("Vector contains NaN or infinite values")
    if expected_dim is not None and vec.size != expected_dim:
        raise ValidationError(
            f"Vector dimension mismatch: expected {expected_dim}, got {vec.size}"
        )
    return vec


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        ValidationError: If the vectors differ in length
    """
    vec_a = _as_vector(a, None)
    vec_b = _as_vector(b, vec_a.size)

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


class VectorIndex:
    """File-backed in-memory vector index."""

    def __init__(self, storage_path: str):
        """
        Initialize the index, loading any existing snapshot.

        Args:
            storage_path: JSON file the index is persisted to
        """
        self.storage_path = Path(storage_path)
        self._write_lock = threading.Lock()
        self._snapshot = _empty_snapshot()
        self.last_persist_error: Optional[str] = None

        self._load()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> Optional[int]:
        """Vector dimension, or None while the index is empty."""
        return self._snapshot.dimension

    def count(self) -> int:
        """Number of records in the index."""
        return len(self._snapshot.records)

    def records(self) -> List[EmbeddingRecord]:
        """All records in insertion order."""
        return list(self._snapshot.records)

    def document_ids(self) -> Set[str]:
        """Ids of every document with at least one record."""
        return {r.document_id for r in self._snapshot.records}

    def search(self, query_vector: Sequence[float], k: int = 5) -> List[SearchResult]:
        """
        Find the k most similar records.

        Args:
            query_vector: Query embedding
            k: Maximum number of results

        Returns:
            Results sorted by descending similarity (ties keep insertion order)

        Raises:
            ValidationError: If the query dimension differs from the index
        """
        snapshot = self._snapshot
        if not snapshot.records or k < 1:
            return []

        query = _as_vector(query_vector, snapshot.dimension)
        query_norm = np.linalg.norm(query)

        denominators = snapshot.norms * query_norm
        scores = np.divide(
            snapshot.matrix @ query,
            denominators,
            out=np.zeros(len(snapshot.records), dtype=np.float64),
            where=denominators != 0,
        )
        np.clip(scores, -1.0, 1.0, out=scores)

        order = np.argsort(-scores, kind="stable")[:k]
        return [
            SearchResult(**snapshot.records[i].model_dump(), similarity=float(scores[i]))
            for i in order
        ]

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def add(
        self,
        id: str,
        document_id: str,
        chunk_text: str,
        chunk_index: int,
        vector: Sequence[float],
    ) -> EmbeddingRecord:
        """
        Append a record and persist the index.

        Raises:
            ValidationError: On a dimension mismatch, bad vector or duplicate id
        """
        with self._write_lock:
            current = self._snapshot
            vec = _as_vector(vector, current.dimension)

            if any(r.id == id for r in current.records):
                raise ValidationError(f"Record id already in index: {id}")

            record = EmbeddingRecord(
                id=id,
                document_id=document_id,
                chunk_text=chunk_text,
                chunk_index=chunk_index,
                embedding=vec.tolist(),
            )
            self._commit(_build_snapshot(current.records + (record,)))

        logger.debug(f"Indexed chunk {chunk_index} of document {document_id}")
        return record

    def delete_by_document_id(self, document_id: str) -> int:
        """
        Remove every record belonging to a document and persist.

        Returns:
            Number of records removed
        """
        with self._write_lock:
            current = self._snapshot
            kept = [r for r in current.records if r.document_id != document_id]
            removed = len(current.records) - len(kept)
            if removed:
                self._commit(_build_snapshot(kept))

        logger.info(f"Removed {removed} vectors for document {document_id}")
        return removed

    def remove(self, record_id: str) -> bool:
        """Remove one record by id and persist. Returns False if it was absent."""
        with self._write_lock:
            current = self._snapshot
            kept = [r for r in current.records if r.id != record_id]
            if len(kept) == len(current.records):
                return False
            self._commit(_build_snapshot(kept))
        return True

    def replace_all(self, records: Iterable[EmbeddingRecord]) -> int:
        """
        Replace the whole index (used when rebuilding from the database).

        Returns:
            Number of records now in the index
        """
        records = list(records)
        dimension = None
        for record in records:
            dimension = _as_vector(record.embedding, dimension).size

        with self._write_lock:
            self._commit(_build_snapshot(records))

        logger.info(f"Index replaced with {len(records)} records")
        return len(records)

    def clear(self) -> None:
        """Remove all records."""
        self.replace_all([])

    def save(self) -> None:
        """
        Persist the current snapshot.

        Raises:
            IndexPersistenceError: If the file cannot be written
        """
        with self._write_lock:
            self._write(self._snapshot)
            self.last_persist_error = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _commit(self, snapshot: _Snapshot) -> None:
        """Swap in a new snapshot and write it through. Caller holds the lock."""
        self._snapshot = snapshot
        try:
            self._write(snapshot)
            self.last_persist_error = None
        except IndexPersistenceError as e:
            # In-memory state stays authoritative until the next good write
            self.last_persist_error = str(e)
            logger.error(f"Vector index not persisted: {e}")

    def _write(self, snapshot: _Snapshot) -> None:
        payload = {
            "version": SNAPSHOT_VERSION,
            "dimension": snapshot.dimension,
            "records": [r.model_dump() for r in snapshot.records],
        }
        tmp_name = None
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.storage_path.parent,
                prefix=f".{self.storage_path.name}.",
                suffix=".tmp",
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.storage_path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise IndexPersistenceError(
                f"Failed to write vector index to {self.storage_path}: {e}"
            ) from e

    def _load(self) -> None:
        if not self.storage_path.exists():
            logger.info(f"No vector index at {self.storage_path}, starting empty")
            return

        try:
            with open(self.storage_path, "r", encoding="utf-8") as fh:
                payload = json.load(fh)
            records = [EmbeddingRecord(**row) for row in payload.get("records", [])]
            snapshot = _build_snapshot(records)
            if snapshot.records and not np.all(np.isfinite(snapshot.matrix)):
                raise ValueError("snapshot contains non-finite values")
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Error loading vector index from {self.storage_path}: {e}")
            return

        self._snapshot = snapshot
        logger.info(
            f"Loaded {len(snapshot.records)} vectors "
            f"(dimension: {snapshot.dimension}) from {self.storage_path}"
        )


def get_vector_index(config: Optional[RAGConfig] = None) -> VectorIndex:
    """
    Get vector index instance.

    Args:
        config: RAG configuration (optional)

    Returns:
        VectorIndex loaded from config.index_path
    """
    if config is None:
        from .config import get_rag_config
        config = get_rag_config()

    return VectorIndex(config.index_path)
