"""FAISS vector store for semantic search.

Handles:
- FAISS inner-product index over L2-normalized vectors (cosine similarity)
- Row persistence (content, type, metadata, raw embedding) in SQLite
- Rebuilding the index from the rows when the saved index is missing or stale
- Filtered, thresholded similarity queries
- Index persistence with a JSON sidecar
"""
import json
import sqlite3
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
import numpy as np
import faiss
import structlog

from proofrag import config, db
from proofrag.errors import StorageError
from proofrag.models import ChunkMetadata, Document, SearchResult

logger = structlog.get_logger()


class FAISSVectorStore:
    """FAISS-based vector store with a fixed dimension and SQLite rows."""

    def __init__(
        self,
        index_dir: Path = None,
        dimension: Optional[int] = None,
        embedding_model: str = None,
    ):
        """Initialize the FAISS vector store.

        Args:
            index_dir: Directory to store index, sidecar and database (default: DATA_DIR)
            dimension: Configured embedding dimension; fixed by the first insert if None
            embedding_model: Embedding model name recorded in the sidecar
        """
        self.index_dir = Path(index_dir or config.DATA_DIR)
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL

        self.index_path = self.index_dir / "vectors.index"
        self.metadata_path = self.index_dir / "metadata.json"
        self.db_path = self.index_dir / "documents.sqlite"

        self.index: Optional[faiss.Index] = None
        self.dimension: Optional[int] = dimension
        self._db_ready = False

        logger.info(
            "faiss_store_initialized",
            index_dir=str(self.index_dir),
            dimension=dimension,
        )

    def init_new_index(self, dimension: int) -> None:
        """Initialize a new, empty FAISS index."""
        self.dimension = dimension
        # Exact search; inner product on unit vectors is cosine similarity
        self.index = faiss.IndexFlatIP(self.dimension)

        logger.info(
            "faiss_index_initialized",
            dimension=self.dimension,
            index_type="IndexFlatIP",
        )

    def load_index(self) -> None:
        """Load existing FAISS index from disk.

        Raises:
            StorageError: If files are unreadable or the dimension differs
                from the configured one
        """
        try:
            with open(self.metadata_path, "r") as f:
                sidecar = json.load(f)
            index = faiss.read_index(str(self.index_path))
        except (OSError, ValueError, RuntimeError) as e:
            raise StorageError(f"Failed to load vector index: {e}") from e

        stored_dim = sidecar.get("embedding_dimension")
        if self.dimension is not None and stored_dim != self.dimension:
            raise StorageError(
                f"Dimension mismatch: index was built with {sidecar.get('embedding_model')} "
                f"(dim={stored_dim}), but the store is configured for dim={self.dimension}. "
                f"Please rebuild the index."
            )

        self.index = index
        self.dimension = stored_dim

        logger.info(
            "faiss_index_loaded",
            dimension=self.dimension,
            vector_count=self.index.ntotal,
            model=sidecar.get("embedding_model"),
        )

    def _ensure_database(self) -> None:
        if self._db_ready:
            return
        try:
            db.init_database(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize database: {e}") from e
        self._db_ready = True

    def init_or_load(self) -> None:
        """Load the index from disk if present, otherwise start a new one.

        A saved index whose vector count disagrees with the database, or a
        database without a saved index, is rebuilt from the rows. Without a
        configured dimension the new index is created lazily on the first
        insert.
        """
        self._ensure_database()
        row_count = self._row_count()

        if self.index_path.exists() and self.metadata_path.exists():
            logger.info("existing_index_detected", path=str(self.index_path))
            self.load_index()
            if self.index.ntotal != row_count:
                logger.warning(
                    "index_out_of_sync",
                    vector_count=self.index.ntotal,
                    row_count=row_count,
                )
                self.restore_from_rows()
            return

        if row_count > 0:
            logger.warning("index_missing", row_count=row_count)
            self.restore_from_rows()
            return

        if self.dimension is not None:
            self.init_new_index(self.dimension)
        else:
            logger.info("index_deferred_until_first_insert")

    def _row_count(self) -> int:
        try:
            return db.get_document_count(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read database: {e}") from e

    def restore_from_rows(self) -> None:
        """Rebuild the FAISS index from the embeddings stored in the rows and save it.

        Raises:
            StorageError: If the rows are unreadable, their vector ids have
                gaps, or their dimension differs from the configured one
        """
        try:
            rows = db.get_all_embeddings(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read stored embeddings: {e}") from e

        if [vector_id for vector_id, _ in rows] != list(range(len(rows))):
            raise StorageError(
                f"Vector ids in {self.db_path} are not contiguous. Please rebuild the index."
            )

        if not rows:
            self.index = None
            if self.dimension is not None:
                self.init_new_index(self.dimension)
            return

        try:
            matrix = np.vstack([np.frombuffer(blob, dtype=np.float32) for _, blob in rows])
        except ValueError as e:
            raise StorageError(f"Stored embeddings have inconsistent dimensions: {e}") from e

        dimension = matrix.shape[1]
        if self.dimension is not None and dimension != self.dimension:
            raise StorageError(
                f"Dimension mismatch: stored rows have dim={dimension}, but the store "
                f"is configured for dim={self.dimension}. Please rebuild the index."
            )

        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        self.init_new_index(dimension)
        self.index.add(np.ascontiguousarray(matrix / norms, dtype=np.float32))

        logger.info("index_restored_from_rows", vector_count=self.index.ntotal)

        self.save_index()

    def save_index(self) -> None:
        """Save FAISS index and sidecar metadata to disk.

        Raises:
            StorageError: If the save fails
        """
        if self.index is None:
            logger.debug("save_skipped_no_index")
            return

        self.index_dir.mkdir(parents=True, exist_ok=True)

        sidecar = {
            "embedding_model": self.embedding_model,
            "embedding_dimension": self.dimension,
            "index_type": "IndexFlatIP",
            "metric": "cosine",
            "vector_count": self.index.ntotal,
        }

        try:
            faiss.write_index(self.index, str(self.index_path))
            with open(self.metadata_path, "w") as f:
                json.dump(sidecar, f, indent=2)
        except (OSError, RuntimeError) as e:
            raise StorageError(f"Failed to save vector index: {e}") from e

        logger.info(
            "faiss_index_saved",
            index_path=str(self.index_path),
            vector_count=self.index.ntotal,
        )

    def rebuild_index(self) -> None:
        """Clear the index and all rows."""
        logger.warning("rebuilding_index", index_dir=str(self.index_dir))

        for path in (self.index_path, self.metadata_path):
            if path.exists():
                path.unlink()
                logger.info("deleted_existing_file", path=str(path))

        try:
            db.init_database(self.db_path)
            db.clear_all_documents(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to clear database: {e}") from e

        self.index = None
        if self.dimension is not None:
            self.init_new_index(self.dimension)

    def _normalize(self, embedding: List[float], what: str) -> np.ndarray:
        try:
            vector = np.asarray(embedding, dtype=np.float32).reshape(1, -1)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Invalid {what}: {e}") from e

        if vector.shape[1] != self.dimension:
            raise StorageError(
                f"{what.capitalize()} dimension mismatch: expected {self.dimension}, "
                f"got {vector.shape[1]}"
            )

        norm = float(np.linalg.norm(vector))
        if not np.isfinite(norm) or norm == 0.0:
            raise StorageError(f"Invalid {what}: zero or non-finite norm")

        return vector / norm

    async def insert(
        self,
        content: str,
        doc_type: str,
        metadata: ChunkMetadata,
        embedding: List[float],
    ) -> Document:
        """Persist one row and its vector.

        Raises:
            StorageError: On dimension mismatch or persistence failure
        """
        self._ensure_database()
        if self.index is None:
            if self.dimension is None:
                self.dimension = len(embedding)
            self.init_new_index(self.dimension)

        vector = self._normalize(embedding, "embedding")
        vector_id = self.index.ntotal

        # Row first so a failed write never leaves an orphan vector
        try:
            row_id = db.insert_document(
                self.db_path,
                vector_id=vector_id,
                content=content,
                doc_type=doc_type,
                metadata=metadata.to_dict(),
                embedding=np.asarray(embedding, dtype=np.float32).tobytes(),
            )
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error("row_insert_failed", vector_id=vector_id, error=str(e))
            raise StorageError(f"Failed to store document row: {e}") from e

        try:
            self.index.add(vector)
        except RuntimeError as e:
            db.delete_document_by_vector_id(self.db_path, vector_id)
            logger.error("vector_add_failed", vector_id=vector_id, error=str(e))
            raise StorageError(f"Failed to add vector: {e}") from e

        logger.debug("document_inserted", row_id=row_id, vector_id=vector_id, doc_type=doc_type)

        return Document(
            id=str(row_id),
            content=content,
            type=doc_type,
            metadata=metadata,
            embedding=list(embedding),
        )

    async def query(
        self,
        query_embedding: List[float],
        top_k: int,
        filters: Optional[Dict[str, Any]] = None,
        min_similarity: float = -1.0,
    ) -> List[SearchResult]:
        """Return up to ``top_k`` rows most similar to ``query_embedding``.

        Results have similarity >= ``min_similarity``, match every key of
        ``filters`` with an equal value of the same type (``type`` matches
        the row's document type), and are ordered by similarity descending,
        earlier inserts first on ties.

        Raises:
            ValueError: If top_k is not positive
            StorageError: On dimension mismatch or database failure
        """
        if top_k < 1:
            raise ValueError(f"top_k must be positive, got {top_k}")

        if self.index is None or self.index.ntotal == 0:
            logger.info("empty_index_no_results")
            return []

        query_vector = self._normalize(query_embedding, "query embedding")

        # Score everything so filters and ties are applied over the full set
        scores, indices = self.index.search(query_vector, self.index.ntotal)

        candidates = [
            (int(vector_id), min(1.0, max(-1.0, float(score))))
            for vector_id, score in zip(indices[0], scores[0])
            if vector_id != -1 and score >= min_similarity
        ]

        try:
            rows = db.get_documents_by_vector_ids(self.db_path, [vid for vid, _ in candidates])
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read document rows: {e}") from e
        rows_by_vector_id = {row["vector_id"]: row for row in rows}

        matched = []
        for vector_id, similarity in candidates:
            row = rows_by_vector_id.get(vector_id)
            if row is None:
                logger.warning("vector_without_row", vector_id=vector_id)
                continue

            metadata = ChunkMetadata.from_dict(row["metadata"])
            if filters and not _row_matches(row["type"], metadata, filters):
                continue

            document = Document(
                id=str(row["id"]),
                content=row["content"],
                type=row["type"],
                metadata=metadata,
                embedding=np.frombuffer(row["embedding"], dtype=np.float32).tolist(),
            )
            matched.append((vector_id, SearchResult(document=document, similarity=similarity)))

        matched.sort(key=lambda item: (-item[1].similarity, item[0]))
        results = [result for _, result in matched[:top_k]]

        logger.info(
            "vector_search_completed",
            top_k=top_k,
            filters=filters or {},
            min_similarity=min_similarity,
            results_found=len(results),
        )

        return results

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store."""
        if self.index is None:
            return {
                "initialized": False,
                "vector_count": 0,
                "dimension": self.dimension,
            }

        return {
            "initialized": True,
            "vector_count": self.index.ntotal,
            "dimension": self.dimension,
            "embedding_model": self.embedding_model,
            "index_exists_on_disk": self.index_path.exists(),
        }


def _row_matches(doc_type: str, metadata: ChunkMetadata, filters: Dict[str, Any]) -> bool:
    flat = metadata.to_dict()
    flat["type"] = doc_type
    return all(key in flat and _same_value(flat[key], value) for key, value in filters.items())


def _same_value(stored: Any, wanted: Any) -> bool:
    # True == 1 == 1.0 in Python; filters match on type as well
    if isinstance(wanted, Enum):
        wanted = wanted.value
    return type(stored) is type(wanted) and stored == wanted
