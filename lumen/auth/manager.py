"""Authentication and user management.

``authenticate`` runs the login protocol:
1. Reject while the username is rate limited
2. Look up the user (a missing user still counts as a failed attempt)
3. Verify the password hash
4. Record the failure, or reset the counter and open a session
"""

import logging
from dataclasses import dataclass
from typing import Any

from lumen.auth.passwords import MAX_PASSWORD_BYTES, hash_password, verify_password
from lumen.auth.rate_limiter import LoginRateLimiter
from lumen.auth.sessions import SessionStore
from lumen.auth.users import Role, User, UserStore
from lumen.errors import Conflict, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 4


@dataclass
class LoginResult:
    user: dict[str, Any]
    token: str
    expires_at: str

    def to_dict(self) -> dict[str, Any]:
        return {"user": self.user, "token": self.token, "expiresAt": self.expires_at}


def _check_password(password: Any) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(
            "Invalid password", errors={"password": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"}
        )
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        raise ValidationFailed(
            "Invalid password", errors={"password": f"Password must be at most {MAX_PASSWORD_BYTES} bytes"}
        )
    return password


class AuthManager:
    def __init__(self, users: UserStore, sessions: SessionStore, limiter: LoginRateLimiter):
        self.users = users
        self.sessions = sessions
        self.limiter = limiter

    async def bootstrap(self, username: str, password: str) -> User | None:
        """Create a default admin when no users exist."""
        if self.users.list():
            return None
        user = await self.users.create(username, "", await hash_password(password), Role.ADMIN.value)
        logger.warning(
            f"No users found: created default admin '{username}' with the configured temporary password. "
            "Change it immediately."
        )
        return user

    async def authenticate(self, username: str, password: str) -> LoginResult | None:
        """Verify credentials and open a session.

        Returns:
            LoginResult, or None when the credentials are wrong.

        Raises:
            RateLimited: If the username is locked out.
        """
        self.limiter.check(username)

        user = self.users.get_by_username(username)
        if user is None:
            self.limiter.record_failure(username)
            logger.info(f"Failed login for unknown user '{username}'")
            return None

        if not await verify_password(password or "", user.password_hash):
            self.limiter.record_failure(username)
            logger.info(f"Failed login for '{username}'")
            return None

        self.limiter.reset(username)
        session = await self.sessions.create(user.id)
        logger.info(f"User '{user.username}' logged in")
        return LoginResult(user=user.public(), token=session.token, expires_at=session.expires_at)

    def get_user_from_token(self, token: str | None) -> User | None:
        session = self.sessions.get(token)
        if session is None:
            return None
        try:
            return self.users.get(session.user_id)
        except NotFound:
            return None

    async def logout(self, token: str) -> bool:
        return await self.sessions.invalidate_token(token)

    async def create_user(self, data: dict[str, Any]) -> User:
        username = str(data.get("username") or "").strip()
        if not username:
            raise ValidationFailed("Invalid user", errors={"username": "Username is required"})
        password = _check_password(data.get("password"))
        role = data.get("role") or Role.EDITOR.value
        return await self.users.create(username, str(data.get("email") or ""), await hash_password(password), role)

    async def update_user(self, user_id: str, data: dict[str, Any]) -> User:
        """Update email, role or password. Usernames cannot change."""
        current = self.users.get(user_id)
        if "username" in data and data["username"] != current.username:
            raise ValidationFailed("Invalid user", errors={"username": "Username cannot be changed"})

        changes: dict[str, Any] = {}
        if "email" in data:
            changes["email"] = str(data["email"] or "")
        if "role" in data:
            if current.role == Role.ADMIN and data["role"] != Role.ADMIN and self.users.count_admins() <= 1:
                raise Conflict("Cannot demote the last admin")
            changes["role"] = data["role"]
        if data.get("password"):
            changes["password_hash"] = await hash_password(_check_password(data["password"]))
        updated = await self.users.update(user_id, changes)
        if "password_hash" in changes:
            await self.sessions.invalidate_user_sessions(user_id)
        return updated

    async def delete_user(self, user_id: str, acting_user_id: str) -> User:
        """Delete a user and revoke their sessions.

        Raises:
            Conflict: On self-deletion or when removing the last admin.
        """
        target = self.users.get(user_id)
        if target.id == acting_user_id:
            raise Conflict("You cannot delete your own account")
        if target.role == Role.ADMIN and self.users.count_admins() <= 1:
            raise Conflict("Cannot delete the last admin")
        removed = await self.users.delete(user_id)
        await self.sessions.invalidate_user_sessions(user_id)
        return removed
