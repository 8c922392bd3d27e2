"""SQLite-backed durable storage for queued scraping tasks.

Tasks survive process restarts: anything still ``active`` when the process
died is put back to ``waiting`` by :meth:`TaskStore.requeue_active`.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import aiosqlite
from pydantic_core import PydanticSerializationError

from ingestly.models.task import ScrapingTask, TaskResult

logger = logging.getLogger(__name__)

WAITING = "waiting"
ACTIVE = "active"
COMPLETED = "completed"
FAILED = "failed"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS tasks (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    queue TEXT NOT NULL,
    id TEXT NOT NULL,
    url TEXT NOT NULL,
    priority INTEGER NOT NULL DEFAULT 10,
    status TEXT NOT NULL DEFAULT 'waiting',
    payload TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    error TEXT,
    result TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (queue, id)
)
"""

_INDEX = """
CREATE INDEX IF NOT EXISTS idx_tasks_claim
ON tasks(queue, status, priority, seq)
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TaskStore:
    def __init__(self, db_path: Union[str, Path] = ":memory:", queue_name: str = "scraping-queue"):
        self.db_path = str(db_path)
        self.queue_name = queue_name
        self._db: Optional[aiosqlite.Connection] = None
        self._claim_lock = asyncio.Lock()

    async def open(self) -> None:
        if self._db is not None:
            return
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute(_SCHEMA)
        await self._db.execute(_INDEX)
        await self._db.commit()
        logger.debug("Task store opened at %s", self.db_path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Task store is not open")
        return self._db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add(self, task: ScrapingTask) -> bool:
        """Insert *task*; returns False when its id is already queued."""
        return await self.add_many([task]) == 1

    async def add_many(self, tasks: Iterable[ScrapingTask]) -> int:
        now = _now()
        rows = [
            (self.queue_name, t.id, t.url, t.priority, t.model_dump_json(), now, now)
            for t in tasks
        ]
        before = self.db.total_changes
        await self.db.executemany(
            """
            INSERT OR IGNORE INTO tasks (queue, id, url, priority, payload, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
        await self.db.commit()
        return self.db.total_changes - before

    async def claim(self) -> Optional[ScrapingTask]:
        """Atomically move the next waiting task (priority, then FIFO) to ``active``."""
        async with self._claim_lock:
            async with self.db.execute(
                """
                SELECT seq, payload FROM tasks
                WHERE queue = ? AND status = ?
                ORDER BY priority ASC, seq ASC
                LIMIT 1
                """,
                (self.queue_name, WAITING),
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            seq, payload = row
            await self.db.execute(
                "UPDATE tasks SET status = ?, updated_at = ? WHERE seq = ?",
                (ACTIVE, _now(), seq),
            )
            await self.db.commit()
        return ScrapingTask.model_validate_json(payload)

    async def _finish(self, status: str, result: TaskResult, attempts: int) -> None:
        try:
            serialised = result.model_dump_json()
        except PydanticSerializationError:
            serialised = result.model_copy(update={"data": repr(result.data)}).model_dump_json()
        await self.db.execute(
            """
            UPDATE tasks SET status = ?, attempts = ?, error = ?, result = ?, updated_at = ?
            WHERE queue = ? AND id = ?
            """,
            (status, attempts, result.error, serialised, _now(), self.queue_name, result.task_id),
        )
        await self.db.commit()

    async def complete(self, result: TaskResult, attempts: int = 1) -> None:
        await self._finish(COMPLETED, result, attempts)

    async def fail(self, result: TaskResult, attempts: int = 1) -> None:
        await self._finish(FAILED, result, attempts)

    async def requeue_active(self) -> int:
        """Return tasks left ``active`` by a previous process to ``waiting``."""
        cursor = await self.db.execute(
            "UPDATE tasks SET status = ?, updated_at = ? WHERE queue = ? AND status = ?",
            (WAITING, _now(), self.queue_name, ACTIVE),
        )
        await self.db.commit()
        return cursor.rowcount

    async def prune(self, status: str, keep: int) -> int:
        """Delete all but the *keep* most recently finished tasks with *status*."""
        cursor = await self.db.execute(
            """
            DELETE FROM tasks WHERE queue = ? AND status = ? AND seq NOT IN (
                SELECT seq FROM tasks WHERE queue = ? AND status = ?
                ORDER BY updated_at DESC, seq DESC LIMIT ?
            )
            """,
            (self.queue_name, status, self.queue_name, status, keep),
        )
        await self.db.commit()
        return cursor.rowcount

    async def clear(self) -> int:
        cursor = await self.db.execute("DELETE FROM tasks WHERE queue = ?", (self.queue_name,))
        await self.db.commit()
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def counts(self) -> Dict[str, int]:
        counts = {WAITING: 0, ACTIVE: 0, COMPLETED: 0, FAILED: 0}
        async with self.db.execute(
            "SELECT status, COUNT(*) FROM tasks WHERE queue = ? GROUP BY status",
            (self.queue_name,),
        ) as cursor:
            async for status, count in cursor:
                counts[status] = count
        return counts

    async def results(self, status: Optional[str] = None) -> List[TaskResult]:
        query = "SELECT result FROM tasks WHERE queue = ? AND result IS NOT NULL"
        params: list = [self.queue_name]
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY seq"
        async with self.db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [TaskResult.model_validate_json(row[0]) for row in rows]

