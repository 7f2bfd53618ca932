"""SQLite-backed thread persistence."""

import json
import logging
import re
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from termai.errors import PersistenceError
from termai.messages import Message, message_from_dict, message_to_dict

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "termai" / "threads.db"
DEFAULT_NAME_PREFIX = "Thread-"
DEFAULT_NAME_PATTERN = re.compile(rf"{re.escape(DEFAULT_NAME_PREFIX)}\d{{14}}")


@dataclass
class Thread:
    id: str
    name: str
    messages: list[Message] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @property
    def has_default_name(self) -> bool:
        return DEFAULT_NAME_PATTERN.fullmatch(self.name) is not None


class ThreadStore:
    """Stores threads and their ordered messages in SQLite.

    The store is the only writer of thread rows. It does not lock per thread;
    callers must not update the same thread from two places at once.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Could not open thread database at {self.db_path}: {e}") from e

    def _init_db(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS threads (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS messages (
                thread_id TEXT NOT NULL REFERENCES threads(id),
                position INTEGER NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                PRIMARY KEY (thread_id, position)
            );
        """)

    def create_thread(self) -> Thread:
        """Create and persist an empty thread with a generated name."""
        now = _now()
        thread = Thread(
            id=uuid.uuid4().hex[:12],
            name=default_thread_name(),
            created_at=now,
            updated_at=now,
        )
        with self._writing("create thread"):
            self._conn.execute(
                "INSERT INTO threads (id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (thread.id, thread.name, thread.created_at, thread.updated_at),
            )
        logger.debug("Created thread %s (%s)", thread.id, thread.name)
        return thread

    def get_thread(self, thread_id: str) -> Thread | None:
        """Load a thread, or None if it is missing or its messages cannot be decoded."""
        row = self._conn.execute(
            "SELECT id, name, created_at, updated_at FROM threads WHERE id = ?",
            (thread_id,),
        ).fetchone()
        if row is None:
            return None

        rows = self._conn.execute(
            "SELECT content FROM messages WHERE thread_id = ? ORDER BY position",
            (thread_id,),
        ).fetchall()
        try:
            messages = [message_from_dict(json.loads(r["content"])) for r in rows]
        except (json.JSONDecodeError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Thread %s is corrupted, treating it as missing: %s", thread_id, e)
            return None

        return Thread(
            id=row["id"],
            name=row["name"],
            messages=messages,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def update_thread(self, thread_id: str, messages: list[Message]) -> None:
        """Replace the stored message list of a thread with ``messages``."""
        rows = [
            (thread_id, i, msg.role, json.dumps(message_to_dict(msg)))
            for i, msg in enumerate(messages)
        ]
        with self._writing("update thread"):
            cur = self._conn.execute(
                "UPDATE threads SET updated_at = ? WHERE id = ?", (_now(), thread_id)
            )
            if cur.rowcount == 0:
                raise PersistenceError(f"Thread {thread_id} does not exist")
            self._conn.execute("DELETE FROM messages WHERE thread_id = ?", (thread_id,))
            self._conn.executemany(
                "INSERT INTO messages (thread_id, position, role, content) VALUES (?, ?, ?, ?)",
                rows,
            )

    def rename_thread(self, thread_id: str, name: str) -> None:
        with self._writing("rename thread"):
            cur = self._conn.execute(
                "UPDATE threads SET name = ?, updated_at = ? WHERE id = ?",
                (name, _now(), thread_id),
            )
            if cur.rowcount == 0:
                raise PersistenceError(f"Thread {thread_id} does not exist")

    def list_threads(self, limit: int = 20) -> list[dict]:
        """Return recent threads as dicts with id, name, timestamps and message_count."""
        rows = self._conn.execute(
            "SELECT t.id, t.name, t.created_at, t.updated_at, "
            "  (SELECT COUNT(*) FROM messages m WHERE m.thread_id = t.id) as message_count "
            "FROM threads t "
            "ORDER BY t.updated_at DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [dict(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def _writing(self, action: str) -> Iterator[None]:
        """Commit on success; roll back and raise PersistenceError on sqlite failure."""
        try:
            yield
            self._conn.commit()
        except sqlite3.Error as e:
            self._rollback()
            raise PersistenceError(f"Could not {action}: {e}") from e
        except BaseException:
            self._rollback()
            raise

    def _rollback(self) -> None:
        # The connection may already be unusable
        with suppress(sqlite3.Error):
            self._conn.rollback()


def default_thread_name() -> str:
    return f"{DEFAULT_NAME_PREFIX}{datetime.now().strftime('%Y%m%d%H%M%S')}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
