"""User records persisted in ``users.json`` (``{"users": [...]}``)."""

from __future__ import annotations

import asyncio
import logging
import secrets
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from lumen.content.models import now_iso
from lumen.errors import NotFound, ValidationFailed
from lumen.storage import read_json, write_json_atomic

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "admin"
    EDITOR = "editor"
    AUTHOR = "author"


class User(BaseModel):
    id: str
    username: str
    email: str = ""
    role: Role = Role.EDITOR
    password_hash: str
    created_at: str
    updated_at: str | None = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "use_enum_values": True}

    def public(self) -> dict[str, Any]:
        """The user without its password hash."""
        return self.model_dump(by_alias=True, exclude={"password_hash"}, exclude_none=True)


class UserStore:
    def __init__(self, data_dir: Path):
        self.path = Path(data_dir) / "users.json"
        self._users: list[User] | None = None
        self._lock = asyncio.Lock()

    def load(self) -> list[User]:
        raw = read_json(self.path, {"users": []})
        users = []
        for entry in raw.get("users", []) if isinstance(raw, dict) else []:
            try:
                users.append(User.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping malformed user record: {e}")
        self._users = users
        return list(users)

    def list(self) -> list[User]:
        if self._users is None:
            self.load()
        return [u.model_copy() for u in self._users]

    def get(self, user_id: str) -> User:
        for user in self.list():
            if user.id == user_id:
                return user
        raise NotFound("User not found")

    def get_by_username(self, username: str) -> User | None:
        wanted = (username or "").strip().lower()
        for user in self.list():
            if user.username.lower() == wanted:
                return user
        return None

    def count_admins(self) -> int:
        return sum(1 for u in self.list() if u.role == Role.ADMIN)

    async def create(self, username: str, email: str, password_hash: str, role: str = Role.EDITOR.value) -> User:
        """Raises ``ValidationFailed`` when the username or email is taken."""
        async with self._lock:
            users = self.list()
            errors = {}
            if any(u.username.lower() == username.lower() for u in users):
                errors["username"] = "Username already exists"
            if email and any(u.email and u.email.lower() == email.lower() for u in users):
                errors["email"] = "Email already exists"
            if errors:
                raise ValidationFailed("Invalid user", errors=errors)
            try:
                user = User(
                    id=secrets.token_hex(16),
                    username=username,
                    email=email,
                    role=role,
                    password_hash=password_hash,
                    created_at=now_iso(),
                )
            except ValidationError as e:
                raise ValidationFailed("Invalid user", errors={"role": "Role must be admin, editor or author"}) from e
            self._save(users + [user])
        logger.info(f"Created user '{username}' ({user.role})")
        return user

    async def update(self, user_id: str, changes: dict[str, Any]) -> User:
        async with self._lock:
            users = self.list()
            current = self.get(user_id)
            email = changes.get("email")
            if email and any(u.id != user_id and u.email and u.email.lower() == email.lower() for u in users):
                raise ValidationFailed("Invalid user", errors={"email": "Email already exists"})
            try:
                updated = User.model_validate({
                    **current.model_dump(),
                    **changes,
                    "id": current.id,
                    "username": current.username,
                    "updated_at": now_iso(),
                })
            except ValidationError as e:
                raise ValidationFailed("Invalid user", errors={"role": "Role must be admin, editor or author"}) from e
            self._save([updated if u.id == user_id else u for u in users])
        return updated

    async def delete(self, user_id: str) -> User:
        async with self._lock:
            users = self.list()
            removed = self.get(user_id)
            self._save([u for u in users if u.id != user_id])
        logger.info(f"Deleted user '{removed.username}'")
        return removed

    def _save(self, users: list[User]) -> None:
        write_json_atomic(self.path, {"users": [u.model_dump(by_alias=True, exclude_none=True) for u in users]})
        self._users = users
