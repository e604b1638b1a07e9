"""SQLite persistence for conversations and messages."""

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from saiman.models.llm import ToolCall
from saiman.models.messages import Attachment, Conversation, Message
from saiman.utils.logging import get_logger

logger = get_logger(__name__)

RECENT_LIMIT = 20

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS conversations (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    created_at  REAL NOT NULL,
    updated_at  REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id              TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    role            TEXT NOT NULL,
    content         TEXT NOT NULL,
    tool_calls      TEXT,
    created_at      REAL NOT NULL,
    FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id);
"""

# Columns added after the first release, applied to older databases on open
_MIGRATIONS = (
    ("attachments", "ALTER TABLE messages ADD COLUMN attachments TEXT"),
    ("tool_usage_summary", "ALTER TABLE messages ADD COLUMN tool_usage_summary TEXT"),
)

_MESSAGE_COLUMNS = "id, conversation_id, role, content, tool_calls, attachments, tool_usage_summary, created_at"

_tool_calls_adapter = TypeAdapter(list[ToolCall])
_attachments_adapter = TypeAdapter(list[Attachment])


def _timestamp(value: datetime) -> float:
    return value.timestamp()


def _datetime(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=UTC)


class ConversationStore:
    """Thread-safe store over a single SQLite connection.

    ``":memory:"`` gives a private in-memory database.
    """

    def __init__(self, db_path: str | Path = ":memory:"):
        if str(db_path) == ":memory:":
            self._db_path = ":memory:"
        else:
            resolved = Path(db_path).expanduser()
            resolved.parent.mkdir(parents=True, exist_ok=True)
            self._db_path = str(resolved)

        self._lock = threading.Lock()
        self._conn = self._connect()
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    def _ensure_schema(self) -> None:
        with self._lock:
            self._conn.executescript(_SCHEMA_SQL)
            existing = {row["name"] for row in self._conn.execute("PRAGMA table_info(messages)")}
            for column, statement in _MIGRATIONS:
                if column not in existing:
                    self._conn.execute(statement)
                    logger.info(f"Database migrated: added {column} column")
            self._conn.commit()

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            cur = self._conn.cursor()
            try:
                yield cur
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # Conversations

    def create_conversation(self, conversation: Conversation) -> Conversation:
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO conversations (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (
                    conversation.id,
                    conversation.title,
                    _timestamp(conversation.created_at),
                    _timestamp(conversation.updated_at),
                ),
            )
        return conversation

    def update_conversation(self, conversation: Conversation) -> None:
        """Persist the title and ``updated_at`` of an existing conversation."""
        with self._cursor() as cur:
            cur.execute(
                "UPDATE conversations SET title = ?, updated_at = ? WHERE id = ?",
                (conversation.title, _timestamp(conversation.updated_at), conversation.id),
            )

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        with self._cursor() as cur:
            row = cur.execute(
                "SELECT id, title, created_at, updated_at FROM conversations WHERE id = ?", (conversation_id,)
            ).fetchone()
        return self._conversation_from_row(row) if row else None

    def get_most_recent_conversation(self) -> Conversation | None:
        with self._cursor() as cur:
            row = cur.execute(
                "SELECT id, title, created_at, updated_at FROM conversations ORDER BY updated_at DESC LIMIT 1"
            ).fetchone()
        return self._conversation_from_row(row) if row else None

    def get_all_conversations(self, limit: int = RECENT_LIMIT) -> list[Conversation]:
        """Most recently updated first."""
        with self._cursor() as cur:
            rows = cur.execute(
                "SELECT id, title, created_at, updated_at FROM conversations ORDER BY updated_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._conversation_from_row(row) for row in rows]

    def search_conversations(self, query: str, limit: int = RECENT_LIMIT) -> list[Conversation]:
        """Case-insensitive substring match on titles and user/assistant message text."""
        pattern = f"%{query}%"
        with self._cursor() as cur:
            rows = cur.execute(
                """
                SELECT DISTINCT c.id, c.title, c.created_at, c.updated_at
                FROM conversations c
                LEFT JOIN messages m ON c.id = m.conversation_id
                WHERE LOWER(c.title) LIKE LOWER(?)
                   OR (LOWER(m.content) LIKE LOWER(?) AND m.role IN ('user', 'assistant'))
                ORDER BY c.updated_at DESC
                LIMIT ?
                """,
                (pattern, pattern, limit),
            ).fetchall()
        return [self._conversation_from_row(row) for row in rows]

    def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and, through the foreign key, its messages."""
        with self._cursor() as cur:
            cur.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))

    @staticmethod
    def _conversation_from_row(row: sqlite3.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            title=row["title"],
            created_at=_datetime(row["created_at"]),
            updated_at=_datetime(row["updated_at"]),
        )

    # Messages

    def create_message(self, message: Message) -> Message:
        tool_calls = _tool_calls_adapter.dump_json(message.tool_calls).decode() if message.tool_calls else None
        attachments = _attachments_adapter.dump_json(message.attachments).decode() if message.attachments else None
        with self._cursor() as cur:
            cur.execute(
                f"INSERT INTO messages ({_MESSAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    message.id,
                    message.conversation_id,
                    message.role,
                    message.content,
                    tool_calls,
                    attachments,
                    message.tool_usage_summary,
                    _timestamp(message.created_at),
                ),
            )
        return message

    def get_messages(self, conversation_id: str) -> list[Message]:
        """Messages of a conversation, oldest first."""
        with self._cursor() as cur:
            rows = cur.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE conversation_id = ? ORDER BY created_at ASC, rowid ASC",
                (conversation_id,),
            ).fetchall()
        return [self._message_from_row(row) for row in rows]

    def get_last_message(self, conversation_id: str) -> Message | None:
        with self._cursor() as cur:
            row = cur.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE conversation_id = ? "
                "ORDER BY created_at DESC, rowid DESC LIMIT 1",
                (conversation_id,),
            ).fetchone()
        return self._message_from_row(row) if row else None

    def delete_message(self, message_id: str) -> None:
        with self._cursor() as cur:
            cur.execute("DELETE FROM messages WHERE id = ?", (message_id,))

    @staticmethod
    def _message_from_row(row: sqlite3.Row) -> Message:
        tool_calls = None
        if row["tool_calls"]:
            try:
                tool_calls = _tool_calls_adapter.validate_json(row["tool_calls"])
            except ValidationError as e:
                logger.warning(f"Dropping unreadable tool calls on message {row['id']}: {e}")

        attachments = None
        if row["attachments"]:
            try:
                attachments = _attachments_adapter.validate_json(row["attachments"])
            except ValidationError as e:
                logger.warning(f"Dropping unreadable attachments on message {row['id']}: {e}")

        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            content=row["content"],
            tool_calls=tool_calls,
            attachments=attachments,
            tool_usage_summary=row["tool_usage_summary"],
            created_at=_datetime(row["created_at"]),
        )
