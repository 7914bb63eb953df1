"""SQLite persistence for stored chunks.

The chunk table holds content and metadata; each row id doubles as the
vector id in the FAISS index, so a search hit maps straight back to its row.
"""
import sqlite3
import json
from pathlib import Path
from typing import List, Dict, Any
from datetime import datetime, timezone
import structlog

logger = structlog.get_logger()


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Get a connection to the SQLite database.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_database(db_path: Path) -> None:
    """Initialize the database schema.

    Creates the chunks table (and its source index) if it doesn't exist.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chunks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source TEXT,
                content TEXT NOT NULL,
                metadata_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        # Index for per-document deletion
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_chunks_source
            ON chunks(source)
        """)

        conn.commit()
        logger.info("database_initialized", db_path=str(db_path))

    except Exception as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise
    finally:
        conn.close()


def insert_chunk(db_path: Path, content: str, metadata: Dict[str, Any]) -> int:
    """Insert a chunk row.

    Args:
        db_path: SQLite database file
        content: The chunk text
        metadata: Chunk metadata; its 'filename' key (if any) becomes the source

    Returns:
        ID of the inserted row (used as the vector id)
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            INSERT INTO chunks (source, content, metadata_json, created_at)
            VALUES (?, ?, ?, ?)
        """, (
            metadata.get("filename"),
            content,
            json.dumps(metadata, default=str),
            datetime.now(timezone.utc).isoformat(),
        ))

        conn.commit()
        return cursor.lastrowid

    except Exception as e:
        conn.rollback()
        logger.error("chunk_insert_failed", error=str(e))
        raise
    finally:
        conn.close()


def delete_chunks(db_path: Path, chunk_ids: List[int]) -> int:
    """Delete chunk rows by id.

    Returns:
        Number of rows deleted
    """
    if not chunk_ids:
        return 0

    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        placeholders = ",".join("?" * len(chunk_ids))
        cursor.execute(f"DELETE FROM chunks WHERE id IN ({placeholders})", chunk_ids)
        conn.commit()
        return cursor.rowcount

    except Exception as e:
        conn.rollback()
        logger.error("chunk_delete_failed", error=str(e))
        raise
    finally:
        conn.close()


def get_chunk_ids_by_source(db_path: Path, source: str) -> List[int]:
    """Get the ids of every chunk that came from one source document."""
    conn = get_connection(db_path)

    try:
        rows = conn.execute(
            "SELECT id FROM chunks WHERE source = ? ORDER BY id", (source,)
        ).fetchall()
        return [row["id"] for row in rows]

    finally:
        conn.close()


def get_chunks_by_ids(db_path: Path, chunk_ids: List[int]) -> Dict[int, Dict[str, Any]]:
    """Retrieve chunks by id.

    Returns:
        Mapping of chunk id to a dict with 'content' and 'metadata'
    """
    if not chunk_ids:
        return {}

    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        placeholders = ",".join("?" * len(chunk_ids))
        cursor.execute(f"""
            SELECT id, content, metadata_json
            FROM chunks
            WHERE id IN ({placeholders})
        """, chunk_ids)

        return {
            row["id"]: {
                "content": row["content"],
                "metadata": json.loads(row["metadata_json"]),
            }
            for row in cursor.fetchall()
        }

    except Exception as e:
        logger.error("chunks_retrieval_failed", error=str(e))
        raise
    finally:
        conn.close()
