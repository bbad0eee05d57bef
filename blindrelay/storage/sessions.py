"""
Chat session persistence on top of a key-value store.

All sessions live under one key as a JSON array, newest first:

    sessions = [
        {"id", "title", "messages": [{"id", "content", "timestamp", "sender"}],
         "createdAt", "updatedAt"},
        ...
    ]
"""

import argparse
import sys
import uuid
from typing import List, Optional

import structlog
from pydantic import ValidationError

from blindrelay.common.config import load_settings
from blindrelay.common.errors import NotFoundError, StorageError
from blindrelay.common.protocol import ChatMessage, ChatSession, Sender
from blindrelay.common.utils import now_ms
from blindrelay.storage.kv import JsonFileStore, KeyValueStore


logger = structlog.get_logger(__name__)

SESSIONS_KEY = "sessions"
TITLE_WORDS = 6


def generate_title(message: str) -> str:
    """First six words of the opening message, with '...' if there were more."""
    words = message.split(" ")
    title = " ".join(words[:TITLE_WORDS])
    return title + ("..." if len(words) > TITLE_WORDS else "")


def _new_message(content: str, sender: Sender) -> ChatMessage:
    return ChatMessage(id=uuid.uuid4().hex, content=content, timestamp=now_ms(), sender=sender)


class SessionStore:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def _save(self, sessions: List[ChatSession]) -> None:
        self.store.set(
            SESSIONS_KEY,
            [s.model_dump(mode="json", by_alias=True) for s in sessions],
        )

    def list_sessions(self) -> List[ChatSession]:
        raw = self.store.get(SESSIONS_KEY) or []
        sessions = []
        for item in raw:
            try:
                sessions.append(ChatSession.model_validate(item))
            except ValidationError as exc:
                logger.warning("session_record_skipped", error=str(exc))
        return sessions

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        for session in self.list_sessions():
            if session.id == session_id:
                return session
        return None

    def create_session(self, first_message: str) -> ChatSession:
        """New session seeded with `first_message` from the user."""
        ts = now_ms()
        session = ChatSession(
            id=uuid.uuid4().hex,
            title=generate_title(first_message),
            messages=[_new_message(first_message, Sender.USER)],
            created_at=ts,
            updated_at=ts,
        )
        self._save([session] + self.list_sessions())
        logger.info("session_created", session_id=session.id, title=session.title)
        return session

    def add_message(self, session_id: str, content: str, sender: Sender) -> ChatSession:
        """
        Append a message to an existing session.

        :raises NotFoundError: no session with that id
        """
        sessions = self.list_sessions()
        for session in sessions:
            if session.id == session_id:
                session.messages.append(_new_message(content, sender))
                session.updated_at = now_ms()
                self._save(sessions)
                return session
        raise NotFoundError(f"chat session {session_id} not found")

    def delete_session(self, session_id: str) -> bool:
        sessions = self.list_sessions()
        remaining = [s for s in sessions if s.id != session_id]
        if len(remaining) == len(sessions):
            return False
        self._save(remaining)
        return True


def main(argv=None):
    parser = argparse.ArgumentParser(description="Inspect stored chat sessions")
    parser.add_argument("--list", action="store_true", help="List stored sessions")
    parser.add_argument("--delete", metavar="ID", help="Delete a session by id")
    args = parser.parse_args(argv)

    settings = load_settings()
    sessions = SessionStore(JsonFileStore(settings.store_path))

    try:
        if args.delete:
            if sessions.delete_session(args.delete):
                print(f"[STORE] Deleted session {args.delete}")
            else:
                print(f"[STORE] No session {args.delete}")
        elif args.list:
            for s in sessions.list_sessions():
                print(f"{s.id}  {len(s.messages):>3} msgs  {s.title}")
        else:
            parser.print_help()
    except StorageError as e:
        print(f"[STORE] {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
