"""
pulse-agent — durable offline heartbeat queue.

Purpose
- Store heartbeats that could not be delivered and hand them back in
  insertion order for later resync.

Functional requirements
- SQLite file in WAL mode with a busy timeout; short-lived connections.
- ``push_many`` is idempotent per heartbeat id (latest payload wins).
- ``pop_many(limit)`` removes and returns the oldest entries atomically.
- Opening or writing the queue surfaces ``OfflineQueueError`` with the path.

Handler chain stage
- ``with_queue(path)``: if the rest of the chain raises, the whole batch is
  stored and the error re-raised; on success, entries whose result is
  ``error`` are stored again.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from pulse_agent.heartbeat.handle import Handle, HandleOption
from pulse_agent.heartbeat.models import Heartbeat, Result, ResultStatus

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000
DEFAULT_BUSY_RETRY_LIMIT: Final[int] = 4
DEFAULT_BUSY_RETRY_BACKOFF_MS: Final[int] = 25

_BUSY_SUBSTRINGS: Final[tuple[str, ...]] = ("database is locked", "database is busy")

_SCHEMA_SQL: Final[str] = """
CREATE TABLE IF NOT EXISTS heartbeats (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    payload_json TEXT NOT NULL,
    queued_at TEXT NOT NULL
)
"""


class OfflineQueueError(RuntimeError):
    """Raised when the offline queue cannot be opened, read, or written."""


class OfflineSendError(RuntimeError):
    """Raised by ``OfflineSender`` so ``with_queue`` stores the batch."""

    def __init__(self, message: str = "heartbeats saved to offline queue, not sent") -> None:
        super().__init__(message)


class OfflineQueue:
    """SQLite-backed FIFO of heartbeats keyed by ``Heartbeat.id()``."""

    def __init__(
        self,
        path: str | Path,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        busy_retry_limit: int = DEFAULT_BUSY_RETRY_LIMIT,
        busy_retry_backoff_ms: int = DEFAULT_BUSY_RETRY_BACKOFF_MS,
    ) -> None:
        if busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        if busy_retry_limit < 0:
            raise ValueError("busy_retry_limit must be >= 0")
        self._path = Path(path).expanduser()
        self._busy_timeout_ms = busy_timeout_ms
        self._busy_retry_limit = busy_retry_limit
        self._busy_retry_backoff_ms = busy_retry_backoff_ms
        with self.transaction() as conn:
            self._execute(conn, _SCHEMA_SQL, (), operation="create schema")

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self._path,
                timeout=self._busy_timeout_ms / 1000.0,
                isolation_level=None,
            )
            conn.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")
            conn.execute("PRAGMA journal_mode=WAL")
        except (OSError, sqlite3.Error) as exc:
            raise OfflineQueueError(f"failed to open offline queue {self._path}: {exc}") from exc
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self.connection() as conn:
            self._execute(conn, "BEGIN IMMEDIATE", (), operation="begin transaction")
            try:
                yield conn
            except Exception:
                conn.execute("ROLLBACK")
                raise
            else:
                self._execute(conn, "COMMIT", (), operation="commit transaction")

    def push_many(self, heartbeats: Sequence[Heartbeat]) -> int:
        if not heartbeats:
            return 0
        queued_at = _utc_now_iso()
        rows = [(heartbeat.id(), heartbeat.to_json(), queued_at) for heartbeat in heartbeats]
        with self.transaction() as conn:
            for row in rows:
                self._execute(
                    conn,
                    "DELETE FROM heartbeats WHERE id = ?",
                    (row[0],),
                    operation="replace heartbeat",
                )
                self._execute(
                    conn,
                    "INSERT INTO heartbeats (id, payload_json, queued_at) VALUES (?, ?, ?)",
                    row,
                    operation="push heartbeat",
                )
        logger.debug("stored %d heartbeat(s) in offline queue %s", len(rows), self._path)
        return len(rows)

    def pop_many(self, limit: int) -> list[Heartbeat]:
        """Remove and return up to ``limit`` of the oldest heartbeats."""

        if limit <= 0:
            return []
        with self.transaction() as conn:
            rows = self._execute(
                conn,
                "SELECT seq, payload_json FROM heartbeats ORDER BY seq ASC LIMIT ?",
                (limit,),
                operation="read heartbeats",
            ).fetchall()
            if rows:
                self._execute(
                    conn,
                    "DELETE FROM heartbeats WHERE seq <= ?",
                    (rows[-1][0],),
                    operation="delete heartbeats",
                )

        heartbeats: list[Heartbeat] = []
        for _seq, payload in rows:
            try:
                heartbeats.append(Heartbeat.from_json(payload))
            except ValueError as exc:
                logger.warning("dropping unreadable heartbeat from offline queue: %s", exc)
        return heartbeats

    def count(self) -> int:
        with self.connection() as conn:
            row = self._execute(
                conn, "SELECT COUNT(*) FROM heartbeats", (), operation="count heartbeats"
            ).fetchone()
        return int(row[0]) if row is not None else 0

    def _execute(
        self,
        conn: sqlite3.Connection,
        sql: str,
        params: Sequence[object],
        *,
        operation: str,
    ) -> sqlite3.Cursor:
        for attempt in range(self._busy_retry_limit + 1):
            try:
                return conn.execute(sql, tuple(params))
            except sqlite3.Error as exc:
                busy = any(fragment in str(exc).lower() for fragment in _BUSY_SUBSTRINGS)
                if busy and attempt < self._busy_retry_limit:
                    time.sleep((self._busy_retry_backoff_ms / 1000.0) * float(2**attempt))
                    continue
                raise OfflineQueueError(f"{operation} failed for {self._path}: {exc}") from exc
        raise OfflineQueueError(f"{operation} exhausted retries unexpectedly")


class OfflineSender:
    """Terminal sender for the save-only path; never delivers.

    ``received`` counts the heartbeats that reached it, which the queue stage
    stored on the way back.
    """

    def __init__(self) -> None:
        self.received = 0

    def send_heartbeats(self, heartbeats: list[Heartbeat]) -> list[Result]:
        self.received += len(heartbeats)
        raise OfflineSendError()


def with_queue(path: str | Path) -> HandleOption:
    """Open the queue at ``path`` now and return the queueing stage."""

    queue = OfflineQueue(path)

    def option(next_handle: Handle) -> Handle:
        def handle(heartbeats: list[Heartbeat]) -> list[Result]:
            logger.debug("execute offline queue with file %s", queue.path)
            if not heartbeats:
                return next_handle(heartbeats)

            try:
                results = next_handle(heartbeats)
            except Exception:
                logger.debug("pushing %d heartbeat(s) to offline queue", len(heartbeats))
                queue.push_many(heartbeats)
                raise

            requeue: list[Heartbeat] = []
            for result in results:
                if result.status is ResultStatus.ERROR:
                    requeue.append(result.heartbeat)
                elif result.status is ResultStatus.REJECTED:
                    logger.debug("heartbeat rejected by api: %s", result.message)
            if requeue:
                logger.debug("requeueing %d heartbeat(s) with errors", len(requeue))
                queue.push_many(requeue)
            return results

        return handle

    return option


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


__all__ = [
    "OfflineQueue",
    "OfflineQueueError",
    "OfflineSendError",
    "OfflineSender",
    "with_queue",
]
