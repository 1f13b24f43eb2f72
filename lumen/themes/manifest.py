"""Theme manifest (``theme.json``) schema and validation.

``validate_manifest`` returns one message per violated rule. When required
fields are missing, only the missing-field messages are returned.
"""

import json
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from lumen.errors import InvalidPackage

MANIFEST_FILENAME = "theme.json"

REQUIRED_FIELDS = (
    "title",
    "description",
    "version",
    "author",
    "authorUrl",
    "tags",
    "license",
    "features",
    "screenshot",
)
REQUIRED_LICENSE = "GPL-3.0-or-later"
SCREENSHOT_EXTENSIONS = ("jpg", "jpeg", "png", "webp", "avif", "svg")

VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")
HEX_COLOR_PATTERN = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


class ThemeManifest(BaseModel):
    title: str
    description: str
    version: str
    author: str
    author_url: str = Field(alias="authorUrl")
    tags: list[str]
    license: str
    features: list[str]
    screenshot: str
    colors: list[dict[str, Any]] | None = None

    model_config = {"populate_by_name": True, "extra": "allow"}

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def validate_manifest(data: Any) -> list[str]:
    """Check a parsed manifest. Returns an empty list when it is valid."""
    if not isinstance(data, dict):
        return ["theme.json must contain a JSON object."]

    missing = [f"Missing required field: {name}" for name in REQUIRED_FIELDS if name not in data]
    if missing:
        return missing

    errors = []
    for name in ("title", "description", "author"):
        if not isinstance(data[name], str) or not data[name].strip():
            errors.append(f"{name} must be a non-empty string.")

    version = data["version"]
    if not isinstance(version, str) or not VERSION_PATTERN.match(version):
        errors.append("version must be in X.Y.Z format where X, Y, Z are numbers.")

    author_url = data["authorUrl"]
    if not isinstance(author_url, str) or not author_url.startswith("https://") or len(author_url) <= len("https://"):
        errors.append("authorUrl must be a valid https:// URL.")

    for name in ("tags", "features"):
        value = data[name]
        if not isinstance(value, list) or not value or not all(isinstance(v, str) and v.strip() for v in value):
            errors.append(f"{name} must be a non-empty array of strings.")

    if data["license"] != REQUIRED_LICENSE:
        errors.append(f"license must be '{REQUIRED_LICENSE}'.")

    screenshot = data["screenshot"]
    extension = screenshot.rsplit(".", 1)[-1].lower() if isinstance(screenshot, str) and "." in screenshot else ""
    if extension not in SCREENSHOT_EXTENSIONS:
        errors.append(f"screenshot must be an image file ({', '.join(SCREENSHOT_EXTENSIONS)}).")

    colors = data.get("colors")
    if colors is not None:
        if not isinstance(colors, list):
            errors.append("colors must be an array.")
        else:
            for i, color in enumerate(colors):
                if not isinstance(color, dict) or not color.get("name") or not isinstance(color.get("value"), str):
                    errors.append(f"colors[{i}] must have a name and a value.")
                elif not HEX_COLOR_PATTERN.match(color["value"]):
                    errors.append(f"colors[{i}].value must be a hex color.")
    return errors


def load_manifest(theme_dir: Path) -> ThemeManifest:
    """Read and validate ``theme.json`` in ``theme_dir``.

    Raises:
        InvalidPackage: With every violated rule.
    """
    path = Path(theme_dir) / MANIFEST_FILENAME
    if not path.is_file():
        raise InvalidPackage([f"{MANIFEST_FILENAME} not found"])
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidPackage([f"{MANIFEST_FILENAME} is not valid JSON: {e}"]) from e
    errors = validate_manifest(data)
    if errors:
        raise InvalidPackage(errors)
    return ThemeManifest.model_validate(data)


def parse_version(version: str) -> tuple[int, ...]:
    """``"1.2.3"`` -> ``(1, 2, 3)``; non-numeric parts count as 0."""
    parts = []
    for part in str(version or "0").split("."):
        digits = re.match(r"\d+", part)
        parts.append(int(digits.group()) if digits else 0)
    while len(parts) < 3:
        parts.append(0)
    return tuple(parts)


def compare_versions(a: str, b: str) -> int:
    """Return 1 if ``a`` is newer than ``b``, -1 if older, 0 if equal."""
    va, vb = parse_version(a), parse_version(b)
    return (va > vb) - (va < vb)
