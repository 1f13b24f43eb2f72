"""Error kinds shared by the stores, the renderer and the HTTP layer.

Each error carries the HTTP status it maps to; the exception handlers in
``lumen.main`` turn them into the ``{success: false, error}`` envelope.
"""


class CMSError(Exception):
    """Base class for every expected failure."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def payload(self) -> dict:
        """Extra keys merged into the JSON error envelope."""
        return {}


class NotFound(CMSError):
    status_code = 404
    message = "Not found"


class Unauthenticated(CMSError):
    status_code = 401
    message = "Authentication required"


class Unauthorized(CMSError):
    status_code = 403
    message = "Insufficient permissions"


class ValidationFailed(CMSError):
    """Bad input. ``errors`` maps field names to messages."""

    status_code = 400
    message = "Validation failed"

    def __init__(self, message: str | None = None, errors: dict[str, str] | None = None):
        super().__init__(message)
        self.errors = errors or {}

    def payload(self) -> dict:
        return {"errors": self.errors}


class DuplicateSlug(CMSError):
    status_code = 409
    code = "DUPLICATE_SLUG"

    def __init__(self, slug: str):
        super().__init__(f"An item with slug '{slug}' already exists")
        self.slug = slug

    def payload(self) -> dict:
        return {"code": self.code, "slug": self.slug}


class RateLimited(CMSError):
    status_code = 429

    def __init__(self, retry_after: int):
        minutes = max(1, -(-retry_after // 60))
        super().__init__(f"Too many login attempts. Try again in {minutes} minute(s).")
        self.retry_after = retry_after

    def payload(self) -> dict:
        return {"retryAfter": self.retry_after}


class Conflict(CMSError):
    status_code = 409
    message = "Conflict"


class AlreadyInstalled(Conflict):
    message = "Theme is already installed"


class InvalidPackage(CMSError):
    """A theme package failed validation. ``errors`` lists every violated rule."""

    status_code = 400
    message = "Invalid theme package"

    def __init__(self, errors: list[str], message: str | None = None):
        super().__init__(message or f"Invalid theme package: {'; '.join(errors)}")
        self.errors = errors

    def payload(self) -> dict:
        return {"errors": self.errors}


class TemplateMissing(CMSError):
    status_code = 500

    def __init__(self, template: str):
        super().__init__(f"Template not found: {template}")
        self.template = template


class MarketplaceUnavailable(CMSError):
    status_code = 502
    message = "Theme marketplace is unavailable"
