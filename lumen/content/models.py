"""Content item model.

Posts and pages share one schema. Known frontmatter keys map onto typed
fields (camelCase on disk and on the wire, snake_case in Python); every
other key is kept in ``extra`` and written back untouched.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from lumen.errors import ValidationFailed

MAX_RELATED_POSTS = 5

DEFAULT_TITLES = {"post": "Untitled Post", "page": "Untitled Page"}


class Kind(str, Enum):
    POST = "post"
    PAGE = "page"


class Status(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class PageType(str, Enum):
    NORMAL = "normal"
    CUSTOM = "custom"


# Frontmatter key order when writing a file.
FRONTMATTER_FIELDS = (
    "id",
    "title",
    "subtitle",
    "slug",
    "status",
    "author",
    "createdAt",
    "updatedAt",
    "publishDate",
    "excerpt",
    "seoDescription",
    "featuredImage",
    "gallery",
    "pageType",
    "parentPage",
    "category",
    "tags",
    "relatedPosts",
)

POST_ONLY_FIELDS = {"category", "tags", "relatedPosts"}
PAGE_ONLY_FIELDS = {"pageType", "parentPage"}


def now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str | None) -> datetime:
    """Parse an ISO timestamp for sorting. Unparseable values sort oldest."""
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _scalar(value: Any) -> Any:
    """Normalize YAML-native dates back into ISO strings."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    if isinstance(value, date):
        return value.isoformat()
    return value


class ContentItem(BaseModel):
    """A post or a page, as stored in one markdown file."""

    kind: Kind
    id: str
    title: str = ""
    subtitle: str = ""
    slug: str
    status: Status = Status.DRAFT
    author: str = "admin"
    created_at: str = ""
    updated_at: str = ""
    publish_date: str | None = None
    excerpt: str | None = None
    seo_description: str = ""
    featured_image: str | dict | None = None
    gallery: list[str | dict] = Field(default_factory=list)
    page_type: PageType | None = None
    parent_page: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    related_posts: list[str] = Field(default_factory=list)
    body: str = ""
    extra: dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "use_enum_values": True,
        "validate_default": True,
    }

    @field_validator("id", "slug", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator("created_at", "updated_at", "publish_date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> Any:
        return _scalar(value)

    @field_validator("title", "subtitle", "author", "seo_description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        return [str(t) for t in value]

    @field_validator("category", mode="before")
    @classmethod
    def _single_category(cls, value: Any) -> Any:
        if isinstance(value, list):
            return str(value[0]) if value else None
        return value or None

    @field_validator("gallery", mode="before")
    @classmethod
    def _gallery_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("related_posts", mode="before")
    @classmethod
    def _related_ids(cls, value: Any) -> Any:
        """Accept ids or ``{id, ...}`` objects; keep ids only."""
        if value is None:
            return []
        if isinstance(value, str):
            value = [v.strip() for v in value.split(",") if v.strip()]
        ids = []
        for entry in value:
            if isinstance(entry, dict):
                entry = entry.get("id")
            if entry is not None and str(entry) not in ids:
                ids.append(str(entry))
        return ids

    @property
    def effective_page_type(self) -> PageType:
        """Pages without an explicit ``pageType`` are normal pages."""
        return PageType(self.page_type or PageType.NORMAL)

    @property
    def is_published(self) -> bool:
        return self.status == Status.PUBLISHED

    @property
    def is_custom(self) -> bool:
        return self.kind == Kind.PAGE and self.effective_page_type == PageType.CUSTOM

    @classmethod
    def from_fields(cls, kind: Kind | str, fields: dict[str, Any], body: str | None = None) -> "ContentItem":
        """Build an item from a flat frontmatter-style mapping.

        Keys may be camelCase or snake_case. Unknown keys go to ``extra``.

        Raises:
            ValidationFailed: If a known field has an invalid value.
        """
        known: dict[str, Any] = {}
        extra: dict[str, Any] = dict(fields.get("extra") or {})
        for key, value in fields.items():
            if key in ("extra", "kind"):
                continue
            alias = _ALIASES.get(key)
            if alias is None:
                extra[key] = _scalar(value)
            else:
                known[alias] = value
        if body is not None:
            known["body"] = body
        try:
            return cls(kind=Kind(kind), extra=extra, **known)
        except ValidationError as e:
            raise ValidationFailed("Invalid content fields", errors=validation_errors(e)) from e

    def frontmatter(self) -> dict[str, Any]:
        """Ordered frontmatter mapping (camelCase keys, extras last)."""
        data = self.model_dump(by_alias=True, exclude={"kind", "body", "extra"})
        skip = PAGE_ONLY_FIELDS if self.kind == Kind.POST else POST_ONLY_FIELDS
        meta: dict[str, Any] = {}
        for key in FRONTMATTER_FIELDS:
            value = data.get(key)
            if key in skip or value is None or value == []:
                continue
            meta[key] = value
        for key, value in self.extra.items():
            if key not in meta and value is not None:
                meta[key] = value
        return meta

    def to_view(self) -> dict[str, Any]:
        """Flat JSON view: frontmatter plus ``type`` and ``content``."""
        view = self.frontmatter()
        view["type"] = self.kind
        view["content"] = self.body
        return view


_ALIASES: dict[str, str] = {}
for _name, _field in ContentItem.model_fields.items():
    if _name in ("kind", "extra"):
        continue
    _ALIASES[_name] = _name
    _ALIASES[_field.alias or _name] = _name
_ALIASES["content"] = "body"


def field_alias(name: str) -> str | None:
    """Map a camelCase or snake_case key to its model attribute, if known."""
    return _ALIASES.get(name)


def validation_errors(exc: ValidationError) -> dict[str, str]:
    """Flatten a pydantic error into ``{field: message}``."""
    errors = {}
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"] if part != "body") or "value"
        errors[loc] = err["msg"]
    return errors
