"""Per-request authentication context."""

from dataclasses import dataclass
from typing import Any

EDITOR_ROLES = ("admin", "editor")


@dataclass(frozen=True)
class RequestContext:
    current_user: dict[str, Any] | None = None
    token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    @property
    def role(self) -> str | None:
        return self.current_user.get("role") if self.current_user else None

    @property
    def is_editable(self) -> bool:
        return self.role in EDITOR_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


ANONYMOUS = RequestContext()
