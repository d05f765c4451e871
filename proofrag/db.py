"""SQLite persistence for stored document rows.

Each row holds one chunk's content, document type, metadata and raw
embedding (float32 bytes) plus the position (``vector_id``) of that
embedding in the FAISS index. The index can always be rebuilt from the rows.
"""
import sqlite3
import json
from pathlib import Path
from typing import List, Dict, Any, Tuple
from datetime import datetime, timezone
import structlog

logger = structlog.get_logger()

# SQLite caps the number of bound parameters per statement
_LOOKUP_BATCH = 500


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Get a connection to the SQLite database.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_database(db_path: Path) -> None:
    """Create the documents table if it doesn't exist."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                vector_id INTEGER NOT NULL UNIQUE,
                content TEXT NOT NULL,
                type TEXT NOT NULL,
                metadata_json TEXT NOT NULL,
                embedding BLOB NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_documents_type
            ON documents(type)
        """)

        conn.commit()
        logger.info("database_initialized", db_path=str(db_path))

    except sqlite3.Error as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise
    finally:
        conn.close()


def insert_document(
    db_path: Path,
    vector_id: int,
    content: str,
    doc_type: str,
    metadata: Dict[str, Any],
    embedding: bytes,
) -> int:
    """Insert a document row.

    Args:
        db_path: Path to the SQLite database
        vector_id: Position of the embedding in the FAISS index
        content: Chunk text
        doc_type: Document category tag
        metadata: Flattened chunk metadata (must be JSON serializable)
        embedding: Raw float32 vector bytes

    Returns:
        ID of the inserted row
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            INSERT INTO documents (
                vector_id, content, type, metadata_json, embedding, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
        """, (
            vector_id,
            content,
            doc_type,
            json.dumps(metadata),
            sqlite3.Binary(embedding),
            datetime.now(timezone.utc).isoformat(),
        ))

        conn.commit()
        return cursor.lastrowid

    except sqlite3.Error as e:
        conn.rollback()
        logger.error("document_insert_failed", error=str(e), vector_id=vector_id)
        raise
    finally:
        conn.close()


def delete_document_by_vector_id(db_path: Path, vector_id: int) -> None:
    conn = get_connection(db_path)
    try:
        conn.execute("DELETE FROM documents WHERE vector_id = ?", (vector_id,))
        conn.commit()
    finally:
        conn.close()


def get_documents_by_vector_ids(db_path: Path, vector_ids: List[int]) -> List[Dict[str, Any]]:
    """Retrieve rows by their FAISS vector IDs.

    Returns:
        List of row dictionaries with ``metadata`` parsed from JSON
    """
    if not vector_ids:
        return []

    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        rows = []
        for i in range(0, len(vector_ids), _LOOKUP_BATCH):
            batch = vector_ids[i : i + _LOOKUP_BATCH]
            placeholders = ",".join("?" * len(batch))
            cursor.execute(f"""
                SELECT id, vector_id, content, type, metadata_json, embedding, created_at
                FROM documents
                WHERE vector_id IN ({placeholders})
            """, batch)
            rows.extend(cursor.fetchall())

        documents = []
        for row in rows:
            document = dict(row)
            document["metadata"] = json.loads(document.pop("metadata_json"))
            documents.append(document)

        return documents

    except sqlite3.Error as e:
        logger.error("documents_retrieval_failed", error=str(e))
        raise
    finally:
        conn.close()


def clear_all_documents(db_path: Path) -> int:
    """Delete all rows. Used when rebuilding the index from scratch.

    Returns:
        Number of rows deleted
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("SELECT COUNT(*) FROM documents")
        count = cursor.fetchone()[0]

        cursor.execute("DELETE FROM documents")
        conn.commit()

        logger.info("documents_cleared", count=count)
        return count

    except sqlite3.Error as e:
        conn.rollback()
        logger.error("documents_clear_failed", error=str(e))
        raise
    finally:
        conn.close()


def get_document_count(db_path: Path) -> int:
    conn = get_connection(db_path)
    try:
        return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
    finally:
        conn.close()


def get_all_embeddings(db_path: Path) -> List[Tuple[int, bytes]]:
    """Return ``(vector_id, embedding)`` for every row, ordered by vector_id."""
    conn = get_connection(db_path)
    try:
        rows = conn.execute(
            "SELECT vector_id, embedding FROM documents ORDER BY vector_id"
        ).fetchall()
        return [(row["vector_id"], bytes(row["embedding"])) for row in rows]
    except sqlite3.Error as e:
        logger.error("embeddings_retrieval_failed", error=str(e))
        raise
    finally:
        conn.close()
