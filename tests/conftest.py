"""Shared test fixtures."""

import io
import json
import zipfile

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from PIL import Image

from lumen.config import Settings
from lumen.content.index import ContentIndex
from lumen.content.store import FrontmatterStore
from lumen.hooks import HookBus
from lumen.main import create_app
from lumen.services import build_services, startup

ADMIN_PASSWORD = "s3cret-admin"

THEME_MANIFEST = {
    "title": "Aurora",
    "description": "A test theme",
    "version": "1.0.0",
    "author": "Theme Author",
    "authorUrl": "https://example.com/aurora",
    "tags": ["blog"],
    "license": "GPL-3.0-or-later",
    "features": ["posts"],
    "screenshot": "screenshot.png",
}

THEME_FILES = {
    "templates/layout.html": "<html><body>{{ metadata.title }}|{{ content }}</body></html>",
}


@pytest.fixture
def config(tmp_path):
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "content",
        themes_dir=tmp_path / "themes",
        cookie_secret="test-secret",
        default_admin_password=ADMIN_PASSWORD,
    )


@pytest.fixture
def hooks():
    return HookBus()


@pytest.fixture
def store(tmp_path, hooks):
    store = FrontmatterStore(tmp_path / "content", hooks)
    store.ensure_dirs()
    return store


@pytest.fixture
def index(store):
    return ContentIndex(store)


@pytest_asyncio.fixture
async def services(config):
    services = build_services(config)
    await startup(services)
    return services


@pytest.fixture
def client(config):
    with TestClient(create_app(config)) as c:
        yield c


@pytest.fixture
def admin_headers(client):
    response = client.post("/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    # Authenticate through the header only, so anonymous requests stay anonymous.
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['data']['token']}"}


def build_theme_zip(
    name: str = "aurora",
    manifest: dict | None = None,
    files: dict[str, str] | None = None,
    extra_entries: dict[str, str] | None = None,
) -> bytes:
    """Zip a theme laid out as ``<name>/theme.json`` plus ``files``."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        if manifest is not False:
            zf.writestr(f"{name}/theme.json", json.dumps(manifest or THEME_MANIFEST))
        for path, text in (files if files is not None else THEME_FILES).items():
            zf.writestr(f"{name}/{path}", text)
        for path, text in (extra_entries or {}).items():
            zf.writestr(path, text)
    return buffer.getvalue()


def write_theme(themes_dir, name: str, manifest: dict | None = None, files: dict[str, str] | None = None):
    """Create an installed theme directory directly on disk."""
    root = themes_dir / name
    root.mkdir(parents=True, exist_ok=True)
    (root / "theme.json").write_text(json.dumps(manifest or THEME_MANIFEST))
    for path, text in (files if files is not None else THEME_FILES).items():
        target = root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text)
    return root


@pytest.fixture
def theme_manifest():
    return dict(THEME_MANIFEST)


@pytest.fixture
def theme_zip():
    return build_theme_zip


@pytest.fixture
def make_theme():
    return write_theme


@pytest.fixture
def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (4, 3), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()
