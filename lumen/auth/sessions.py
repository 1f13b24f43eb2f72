"""Session store: opaque bearer tokens persisted in ``sessions.json``.

Tokens are 32 random bytes (hex) and carry no user information; the
user id lives only in the server-side record.
"""

import asyncio
import logging
import secrets
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from lumen.content.models import parse_timestamp
from lumen.storage import read_json, write_json_atomic

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Session(BaseModel):
    token: str
    user_id: str
    created_at: str
    expires_at: str

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    def is_expired(self, now: datetime) -> bool:
        return parse_timestamp(self.expires_at) <= now


class SessionStore:
    def __init__(self, data_dir: Path, ttl_seconds: int = 86400, clock: Callable[[], datetime] = _utcnow):
        self.path = Path(data_dir) / "sessions.json"
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock
        self._sessions: dict[str, Session] | None = None
        self._lock = asyncio.Lock()

    def load(self) -> None:
        """Read sessions from disk, dropping expired ones."""
        raw = read_json(self.path, {"sessions": []})
        sessions = {}
        for entry in raw.get("sessions", []) if isinstance(raw, dict) else []:
            try:
                session = Session.model_validate(entry)
            except ValidationError:
                logger.warning("Skipping malformed session record")
                continue
            sessions[session.token] = session
        self._sessions = sessions
        if self.purge_expired():
            self._save()

    def _all(self) -> dict[str, Session]:
        if self._sessions is None:
            self.load()
        return self._sessions

    def _save(self) -> None:
        write_json_atomic(self.path, {"sessions": [s.model_dump(by_alias=True) for s in self._all().values()]})

    async def create(self, user_id: str) -> Session:
        now = self.clock()
        session = Session(
            token=secrets.token_hex(32),
            user_id=user_id,
            created_at=_iso(now),
            expires_at=_iso(now + self.ttl),
        )
        async with self._lock:
            self._all()[session.token] = session
            self._save()
        return session

    def get(self, token: str | None) -> Session | None:
        """The live session for ``token``; expired sessions are dropped lazily."""
        if not token:
            return None
        session = self._all().get(token)
        if session is None:
            return None
        if session.is_expired(self.clock()):
            del self._sessions[token]
            self._save()
            return None
        return session

    async def invalidate_token(self, token: str) -> bool:
        async with self._lock:
            removed = self._all().pop(token, None)
            if removed:
                self._save()
        return removed is not None

    async def invalidate_user_sessions(self, user_id: str) -> int:
        async with self._lock:
            sessions = self._all()
            tokens = [t for t, s in sessions.items() if s.user_id == user_id]
            for token in tokens:
                del sessions[token]
            if tokens:
                self._save()
        if tokens:
            logger.info(f"Invalidated {len(tokens)} session(s) for user {user_id}")
        return len(tokens)

    def purge_expired(self) -> int:
        now = self.clock()
        sessions = self._sessions or {}
        expired = [t for t, s in sessions.items() if s.is_expired(now)]
        for token in expired:
            del sessions[token]
        return len(expired)
