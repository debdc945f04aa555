"""Session persistence - one JSON file per conversation."""

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from linkchat.llm.base import Message


logger = logging.getLogger(__name__)

ROLE_TITLES = {"user": "User", "assistant": "Assistant", "system": "System"}


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _new_session_id() -> str:
    return f"{datetime.now():%Y%m%d_%H%M%S}_{uuid.uuid4().hex[:6]}"


@dataclass(frozen=True)
class ChatMessage:
    """One message in a session. Never modified after creation."""
    id: str
    role: str  # "user", "assistant", "system"
    content: str
    timestamp: str

    @classmethod
    def create(cls, role: str, content: str) -> "ChatMessage":
        return cls(id=uuid.uuid4().hex, role=role, content=content, timestamp=_now())


@dataclass
class ChatSession:
    """Ordered conversation plus bookkeeping."""
    id: str = field(default_factory=_new_session_id)
    start_time: str = field(default_factory=_now)
    messages: list[ChatMessage] = field(default_factory=list)
    working_directory: str = field(default_factory=lambda: str(Path.cwd()))
    model: str = ""
    total_messages: int = 0
    last_activity: str = field(default_factory=_now)

    def add(self, role: str, content: str) -> ChatMessage:
        """Append a message and refresh the counters."""
        message = ChatMessage.create(role, content)
        self.messages.append(message)
        self._touch()
        return message

    def clear(self) -> None:
        self.messages.clear()
        self._touch()

    def _touch(self) -> None:
        self.total_messages = len(self.messages)
        self.last_activity = _now()

    def to_llm_messages(self, window: int = 0) -> list[Message]:
        """Messages for the backend; ``window`` > 0 keeps only the newest N."""
        messages = self.messages[-window:] if window > 0 else self.messages
        return [Message(role=m.role, content=m.content) for m in messages]

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ChatSession":
        messages = [
            ChatMessage(
                id=m.get("id") or uuid.uuid4().hex,
                role=m["role"],
                content=m.get("content", ""),
                timestamp=m.get("timestamp", ""),
            )
            for m in data.get("messages", [])
        ]
        return cls(
            id=data["id"],
            start_time=data.get("start_time", ""),
            messages=messages,
            working_directory=data.get("working_directory", ""),
            model=data.get("model", ""),
            total_messages=data.get("total_messages", len(messages)),
            last_activity=data.get("last_activity", ""),
        )


class SessionStore:
    """Save, load, list, delete and export sessions."""

    def __init__(self, sessions_dir: Path):
        """Initialize the store.

        Args:
            sessions_dir: Directory holding <session id>.json files.
        """
        self.sessions_dir = Path(sessions_dir)
        self.sessions_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, session_id: str) -> Path:
        """File for a session id.

        Raises:
            ValueError: If the id is empty or could leave the sessions directory.
        """
        if not session_id or ".." in session_id or "/" in session_id or "\\" in session_id:
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self.sessions_dir / f"{session_id}.json"

    def save(self, session: ChatSession) -> Path:
        """Write the whole session to its JSON file."""
        path = self._path(session.id)
        path.write_text(json.dumps(session.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        logger.debug("Session saved: %s", path)
        return path

    def load(self, session_id: str) -> ChatSession:
        """Load a session by ID.

        Raises:
            FileNotFoundError: If the session doesn't exist.
        """
        path = self._path(session_id)
        if not path.exists():
            raise FileNotFoundError(f"Session not found: {session_id}")
        return ChatSession.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def list_sessions(self, limit: Optional[int] = None) -> list[ChatSession]:
        """All saved sessions, most recently active first."""
        sessions = []
        for path in self.sessions_dir.glob("*.json"):
            try:
                sessions.append(ChatSession.from_dict(json.loads(path.read_text(encoding="utf-8"))))
            except (OSError, ValueError, KeyError) as e:
                logger.warning("Skipping unreadable session file %s: %s", path, e)

        sessions.sort(key=lambda s: s.last_activity or s.start_time, reverse=True)
        return sessions[:limit] if limit else sessions

    def delete(self, session_id: str) -> bool:
        """Delete a session; False if it did not exist."""
        path = self._path(session_id)
        if path.exists():
            path.unlink()
            logger.info("Session deleted: %s", session_id)
            return True
        return False

    def clear(self) -> int:
        """Delete every saved session; returns how many were removed."""
        count = 0
        for path in self.sessions_dir.glob("*.json"):
            path.unlink()
            count += 1
        logger.info("Cleared %d session(s)", count)
        return count

    def export_markdown(self, session_id: str, output_dir: Optional[Path] = None) -> Path:
        """Render a session as Markdown, one ``## Role (time)`` section per message.

        Raises:
            FileNotFoundError: If the session doesn't exist.
        """
        session = self.load(session_id)
        out = Path(output_dir or Path.cwd()) / f"session-{session_id}.md"
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(render_markdown(session), encoding="utf-8")
        logger.info("Session %s exported to %s", session_id, out)
        return out


def _display_time(timestamp: str, fmt: str) -> str:
    try:
        return datetime.fromisoformat(timestamp).strftime(fmt)
    except (TypeError, ValueError):
        return timestamp or "unknown"


def render_markdown(session: ChatSession) -> str:
    lines = [
        f"# Chat Session: {session.id}",
        "",
        f"**Started:** {_display_time(session.start_time, '%Y-%m-%d %H:%M:%S')}",
        f"**Messages:** {len(session.messages)}",
        "",
    ]
    for message in session.messages:
        role = ROLE_TITLES.get(message.role, message.role.title())
        lines.append(f"## {role} ({_display_time(message.timestamp, '%H:%M:%S')})")
        lines.append("")
        lines.append(message.content)
        lines.append("")
    return "\n".join(lines)


def format_session_list(sessions: list[ChatSession]) -> str:
    """Format session list for display."""
    if not sessions:
        return "No saved sessions."

    lines = ["Saved sessions:", ""]
    for s in sessions:
        started = _display_time(s.start_time, "%Y-%m-%d %H:%M")
        lines.append(f"  [{s.id}] {len(s.messages)} messages, started {started}")
        first_user = next((m.content for m in s.messages if m.role == "user"), "")
        if first_user:
            preview = first_user.splitlines()[0][:60]
            lines.append(f"       {preview}")
    return "\n".join(lines)


def format_session(session: ChatSession, max_chars: Optional[int] = None) -> str:
    """Format one session's messages for display."""
    lines = [
        f"Session: {session.id}",
        f"Started: {_display_time(session.start_time, '%Y-%m-%d %H:%M:%S')}",
        f"Messages: {len(session.messages)}",
        "",
    ]
    for message in session.messages:
        content = message.content
        if max_chars and len(content) > max_chars:
            content = content[:max_chars] + "..."
        lines.append(f"[{message.role.upper()}] {_display_time(message.timestamp, '%H:%M:%S')}")
        lines.append(f"  {content}")
        lines.append("")
    return "\n".join(lines)
