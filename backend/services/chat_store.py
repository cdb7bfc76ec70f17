"""Chat message store - SQLite storage for per-session message logs.

Each session (an opaque id held in the client's cookie) owns an append-only
log of messages. Archiving a session moves its whole log into chat_bin in one
transaction and leaves the active log empty; the session id stays usable.
"""

import logging
import sqlite3
import time
import uuid
from contextlib import closing
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import List, Optional

from config import runtime_config
from errors import ValidationError

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant")


def new_message_id() -> str:
    """msg_<epoch ms>_<8 hex chars>"""
    return f"msg_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Message:
    """A chat message. Immutable once stored."""

    id: str
    role: str
    content: str
    timestamp: str

    @classmethod
    def create(cls, role: str, content: str) -> "Message":
        return cls(id=new_message_id(), role=role, content=content, timestamp=utc_now_iso())

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ArchivedMessage:
    """A message moved to the archive, with when it was moved."""

    id: str
    role: str
    content: str
    timestamp: str
    archived_at: str

    def to_dict(self) -> dict:
        return asdict(self)


class MessageStore:
    """SQLite storage for active and archived chat messages."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize store.

        Args:
            db_path: Path to SQLite database (default: CHAT_DB_PATH from config)
        """
        self.db_path = Path(db_path or runtime_config.chat_db_path)
        self._lock = Lock()
        self._ensure_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _ensure_db(self) -> None:
        """Ensure SQLite database and tables exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn, conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    session_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_messages_session_id ON messages(session_id);

                CREATE TABLE IF NOT EXISTS chat_bin (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL,
                    session_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    archived_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_chat_bin_session_id ON chat_bin(session_id);
                """
            )
        logger.info(f"Chat store ready: {self.db_path}")

    def append(self, session_id: str, message: Message) -> None:
        if message.role not in ROLES:
            raise ValidationError(
                f"Invalid message role: {message.role}",
                parameter="role",
                expected=", ".join(ROLES),
                received=message.role,
            )
        with self._lock, closing(self._connect()) as conn, conn:
            conn.execute(
                "INSERT INTO messages (id, session_id, role, content, timestamp) VALUES (?, ?, ?, ?, ?)",
                (message.id, session_id, message.role, message.content, message.timestamp),
            )

    def list(self, session_id: str, limit: int) -> List[Message]:
        """Most recent `limit` messages of a session, oldest first."""
        if limit <= 0:
            return []
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT id, role, content, timestamp FROM messages "
                "WHERE session_id = ? ORDER BY seq DESC LIMIT ?",
                (session_id, limit),
            ).fetchall()
        return [Message(*row) for row in reversed(rows)]

    def archive(self, session_id: str) -> int:
        """Move every message of a session to chat_bin. Returns how many moved."""
        archived_at = utc_now_iso()
        with self._lock, closing(self._connect()) as conn, conn:
            conn.execute(
                "INSERT INTO chat_bin (id, session_id, role, content, timestamp, archived_at) "
                "SELECT id, session_id, role, content, timestamp, ? FROM messages "
                "WHERE session_id = ? ORDER BY seq",
                (archived_at, session_id),
            )
            moved = conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,)).rowcount
        logger.info(f"Session {session_id} archived ({moved} messages)")
        return moved

    def list_archived(self, session_id: str) -> List[ArchivedMessage]:
        """Archived messages of a session, in original order."""
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT id, role, content, timestamp, archived_at FROM chat_bin "
                "WHERE session_id = ? ORDER BY seq",
                (session_id,),
            ).fetchall()
        return [ArchivedMessage(*row) for row in rows]

    def count(self, session_id: str) -> int:
        with closing(self._connect()) as conn:
            return conn.execute("SELECT COUNT(*) FROM messages WHERE session_id = ?", (session_id,)).fetchone()[0]


_store: Optional[MessageStore] = None


def get_message_store() -> MessageStore:
    """Get or create the process-wide message store."""
    global _store
    if _store is None:
        _store = MessageStore()
    return _store


def set_message_store(store: Optional[MessageStore]) -> None:
    """Replace the process-wide message store (startup wiring, tests)."""
    global _store
    _store = store
