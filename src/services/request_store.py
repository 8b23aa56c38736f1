"""Idempotency store for movie creation requests.

A request ID can only be processing once at a time and is never processed
again after it completed. A failed request is released so it can be retried.

Two implementations share one interface: an in-memory store for tests and
one-off CLI runs, and an aiosqlite-backed store for the API server.
"""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import aiosqlite

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = ".moviegen/requests.db"

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class RequestStore(Protocol):
    async def try_begin(self, request_id: str, prompt: str = "") -> bool: ...

    async def mark_completed(self, request_id: str, playback_url: str) -> None: ...

    async def mark_failed(self, request_id: str, error: str) -> None: ...

    async def get(self, request_id: str) -> dict[str, Any] | None: ...

    async def list_requests(self, limit: int = 100) -> list[dict[str, Any]]: ...


class MemoryRequestStore:
    """Process-local request store."""

    def __init__(self) -> None:
        self._requests: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def try_begin(self, request_id: str, prompt: str = "") -> bool:
        async with self._lock:
            existing = self._requests.get(request_id)
            if existing and existing["status"] != STATUS_FAILED:
                return False
            now = datetime.now().isoformat()
            self._requests[request_id] = {
                "id": request_id,
                "status": STATUS_PROCESSING,
                "prompt": prompt,
                "playback_url": None,
                "error": None,
                "created_at": existing["created_at"] if existing else now,
                "updated_at": now,
            }
            return True

    async def mark_completed(self, request_id: str, playback_url: str) -> None:
        self._update(request_id, status=STATUS_COMPLETED, playback_url=playback_url, error=None)

    async def mark_failed(self, request_id: str, error: str) -> None:
        self._update(request_id, status=STATUS_FAILED, error=error)

    async def get(self, request_id: str) -> dict[str, Any] | None:
        record = self._requests.get(request_id)
        return dict(record) if record else None

    async def list_requests(self, limit: int = 100) -> list[dict[str, Any]]:
        records = sorted(self._requests.values(), key=lambda r: r["created_at"], reverse=True)
        return [dict(r) for r in records[:limit]]

    def _update(self, request_id: str, **fields: Any) -> None:
        record = self._requests.get(request_id)
        if record is None:
            logger.warning(f"Unknown request {request_id}, cannot update")
            return
        record.update(fields, updated_at=datetime.now().isoformat())


class SQLiteRequestStore:
    """Async SQLite request storage.

    Survives server restarts, so a completed request is still recognised as
    a duplicate after a redeploy.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize request store with database path.

        Args:
            db_path: Path to SQLite database file. Parent directory
                     will be created if it doesn't exist.
        """
        self.db_path = Path(db_path)
        self.db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the database and create the schema if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.db = await aiosqlite.connect(str(self.db_path))
        self.db.row_factory = aiosqlite.Row

        await self.db.execute("PRAGMA journal_mode=WAL")
        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS requests (
                id TEXT PRIMARY KEY,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                data JSON,
                error TEXT
            )
        """)
        await self.db.execute("""
            CREATE INDEX IF NOT EXISTS idx_requests_created_at
            ON requests (created_at DESC)
        """)
        await self.db.commit()

        # Rows left processing by a previous run can never finish
        cursor = await self.db.execute(
            "UPDATE requests SET status = ?, updated_at = ?, error = ? WHERE status = ?",
            (STATUS_FAILED, datetime.now().isoformat(), "interrupted", STATUS_PROCESSING),
        )
        await self.db.commit()
        if cursor.rowcount:
            logger.warning(f"Released {cursor.rowcount} interrupted requests")
        logger.info(f"Request store connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self.db:
            await self.db.close()
            self.db = None
            logger.info("Request store connection closed")

    def _require_db(self) -> aiosqlite.Connection:
        if self.db is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self.db

    async def try_begin(self, request_id: str, prompt: str = "") -> bool:
        """Claim a request for processing.

        Returns:
            False if the request is already processing or completed

        Raises:
            RuntimeError: If database is not connected
        """
        db = self._require_db()
        async with self._lock:
            existing = await self.get(request_id)
            if existing and existing["status"] != STATUS_FAILED:
                return False

            now = datetime.now().isoformat()
            data = json.dumps({"prompt": prompt, "playback_url": None})
            if existing:
                await db.execute(
                    "UPDATE requests SET status = ?, updated_at = ?, data = ?, error = NULL WHERE id = ?",
                    (STATUS_PROCESSING, now, data, request_id),
                )
            else:
                await db.execute(
                    "INSERT INTO requests (id, status, created_at, updated_at, data) VALUES (?, ?, ?, ?, ?)",
                    (request_id, STATUS_PROCESSING, now, now, data),
                )
            await db.commit()
            logger.info(f"Request {request_id} claimed for processing")
            return True

    async def mark_completed(self, request_id: str, playback_url: str) -> None:
        await self._update(request_id, STATUS_COMPLETED, {"playback_url": playback_url}, error=None)

    async def mark_failed(self, request_id: str, error: str) -> None:
        await self._update(request_id, STATUS_FAILED, {}, error=error)

    async def get(self, request_id: str) -> dict[str, Any] | None:
        db = self._require_db()
        async with db.execute("SELECT * FROM requests WHERE id = ?", (request_id,)) as cursor:
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_dict(row)

    async def list_requests(self, limit: int = 100) -> list[dict[str, Any]]:
        db = self._require_db()
        async with db.execute(
            "SELECT * FROM requests ORDER BY created_at DESC LIMIT ?", (limit,)
        ) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_dict(row) for row in rows]

    async def _update(
        self, request_id: str, status: str, data: dict[str, Any], error: str | None
    ) -> None:
        db = self._require_db()
        current = await self.get(request_id)
        if current is None:
            logger.warning(f"Unknown request {request_id}, cannot update")
            return

        merged = {"prompt": current["prompt"], "playback_url": current["playback_url"], **data}
        await db.execute(
            "UPDATE requests SET status = ?, updated_at = ?, data = ?, error = ? WHERE id = ?",
            (status, datetime.now().isoformat(), json.dumps(merged), error, request_id),
        )
        await db.commit()
        logger.debug(f"Updated request {request_id}: status={status}")

    def _row_to_dict(self, row: aiosqlite.Row) -> dict[str, Any]:
        try:
            data = json.loads(row["data"]) if row["data"] else {}
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse JSON data for request {row['id']}")
            data = {}

        return {
            "id": row["id"],
            "status": row["status"],
            "prompt": data.get("prompt", ""),
            "playback_url": data.get("playback_url"),
            "error": row["error"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }
