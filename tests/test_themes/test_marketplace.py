"""Tests for the theme marketplace client."""

import io
import zipfile

import httpx
import pytest
import respx

from lumen.errors import Conflict, InvalidPackage, MarketplaceUnavailable, NotFound
from lumen.site.settings import SettingsStore
from lumen.themes.installer import InstallState, ThemeInstaller
from lumen.themes.marketplace import MarketplaceClient, repackage, search_themes, sort_themes
from lumen.themes.registry import ThemeRegistry

BASE_URL = "https://marketplace.example.com"

THEMES = [
    {"name": "aurora", "title": "Aurora", "version": "1.2.0", "category": "blog", "tags": ["dark"],
     "downloadUrl": f"{BASE_URL}/packages/aurora.zip", "updatedAt": "2024-05-01"},
    {"name": "default", "title": "Default", "version": "2.0.0", "category": "starter", "tags": ["minimal"],
     "changelog": ["New layout"], "updatedAt": "2024-06-01"},
    {"name": "zen", "title": "Zen", "description": "Calm docs theme", "version": "0.3.0", "category": "docs",
     "sourceRepo": "someone/themes", "sourcePath": "themes/zen"},
]


@pytest.fixture
def client():
    return MarketplaceClient(BASE_URL, cache_seconds=300, timeout=5)


def _archive(entries: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, text in entries.items():
            zf.writestr(name, text)
    return buffer.getvalue()


class TestCatalog:
    @pytest.mark.asyncio
    async def test_themes_are_cached(self, client):
        with respx.mock:
            route = respx.get(f"{BASE_URL}/themes.json").mock(
                return_value=httpx.Response(200, json={"themes": THEMES})
            )
            first = await client.themes()
            second = await client.themes()

        assert [t["name"] for t in first] == ["aurora", "default", "zen"]
        assert first == second
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_bare_list_is_accepted(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/themes.json").mock(return_value=httpx.Response(200, json=THEMES))
            assert len(await client.themes()) == 3

    @pytest.mark.asyncio
    async def test_server_error(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/categories.json").mock(return_value=httpx.Response(500))
            with pytest.raises(MarketplaceUnavailable):
                await client.categories()

    @pytest.mark.asyncio
    async def test_disabled_client(self):
        with pytest.raises(MarketplaceUnavailable):
            await MarketplaceClient("").themes()

    @pytest.mark.asyncio
    async def test_browse_filters_and_sorts(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/themes.json").mock(return_value=httpx.Response(200, json={"themes": THEMES}))
            by_category = await client.browse(category="Docs")
            by_version = await client.browse(sort="version")

        assert [t["name"] for t in by_category] == ["zen"]
        assert [t["name"] for t in by_version] == ["default", "aurora", "zen"]

    @pytest.mark.asyncio
    async def test_unknown_theme(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/themes.json").mock(return_value=httpx.Response(200, json={"themes": THEMES}))
            with pytest.raises(NotFound):
                await client.get_theme("ghost")


class TestDownload:
    @pytest.mark.asyncio
    async def test_download_url(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/themes.json").mock(return_value=httpx.Response(200, json={"themes": THEMES}))
            respx.get(f"{BASE_URL}/packages/aurora.zip").mock(return_value=httpx.Response(200, content=b"zipbytes"))
            assert await client.download("aurora") == b"zipbytes"

    @pytest.mark.asyncio
    async def test_source_repo_is_repackaged(self, client):
        archive = _archive({
            "themes-main/README.md": "repo",
            "themes-main/themes/zen/theme.json": "{}",
            "themes-main/themes/zen/templates/layout.html": "<html></html>",
        })
        with respx.mock:
            respx.get(f"{BASE_URL}/themes.json").mock(return_value=httpx.Response(200, json={"themes": THEMES}))
            respx.get("https://github.com/someone/themes/archive/refs/heads/main.zip").mock(
                return_value=httpx.Response(200, content=archive)
            )
            package = await client.download("zen")

        with zipfile.ZipFile(io.BytesIO(package)) as zf:
            assert sorted(zf.namelist()) == ["zen/templates/layout.html", "zen/theme.json"]


class TestHelpers:
    def test_search(self):
        assert [t["name"] for t in search_themes(THEMES, "calm")] == ["zen"]
        assert [t["name"] for t in search_themes(THEMES, "DARK")] == ["aurora"]

    def test_sort_by_name(self):
        assert [t["name"] for t in sort_themes(THEMES, "name")] == ["aurora", "default", "zen"]

    def test_repackage_missing_directory(self):
        with pytest.raises(NotFound):
            repackage(_archive({"repo-main/other/file.txt": "x"}), "themes/zen", "zen")


class TestUpdates:
    @pytest.mark.asyncio
    async def test_check_updates(self, tmp_path, client):
        settings = SettingsStore(tmp_path / "content")
        registry = ThemeRegistry(tmp_path / "themes", settings)
        registry.seed_default()
        registry.initialize()
        installer = ThemeInstaller(registry)

        with respx.mock:
            respx.get(f"{BASE_URL}/themes.json").mock(return_value=httpx.Response(200, json={"themes": THEMES}))
            updates = await installer.check_updates(client)

        assert updates == [
            {"name": "default", "currentVersion": "1.0.0", "latestVersion": "2.0.0", "changelog": ["New layout"]}
        ]


@pytest.fixture
def installer(tmp_path):
    registry = ThemeRegistry(tmp_path / "themes", SettingsStore(tmp_path / "content"))
    registry.seed_default()
    registry.initialize()
    return ThemeInstaller(registry)


def _catalog(*entries):
    return respx.get(f"{BASE_URL}/themes.json").mock(return_value=httpx.Response(200, json={"themes": list(entries)}))


class TestMarketplaceInstall:
    @pytest.mark.asyncio
    async def test_download_goes_through_install(self, installer, client, theme_zip):
        with respx.mock:
            _catalog(THEMES[0])
            download = respx.get(f"{BASE_URL}/packages/aurora.zip").mock(
                return_value=httpx.Response(200, content=theme_zip("aurora"))
            )
            theme = await installer.install_from_marketplace("aurora", client.download)

        assert download.call_count == 1
        assert theme.name == "aurora"
        assert installer.registry.get("aurora").version == "1.0.0"
        assert (installer.themes_dir / "aurora" / "templates" / "layout.html").is_file()
        assert installer.last_attempt.state == InstallState.COMMITTED

    @pytest.mark.asyncio
    async def test_invalid_download_is_rejected(self, installer, client):
        with respx.mock:
            _catalog(THEMES[0])
            respx.get(f"{BASE_URL}/packages/aurora.zip").mock(return_value=httpx.Response(200, content=b"not a zip"))
            with pytest.raises(InvalidPackage):
                await installer.install_from_marketplace("aurora", client.download)

        assert installer.last_attempt.state == InstallState.REJECTED
        assert not (installer.themes_dir / "aurora").exists()


class TestMarketplaceUpdate:
    @pytest.mark.asyncio
    async def test_same_version_is_refused(self, installer, client):
        entry = {"name": "default", "version": "1.0.0", "downloadUrl": f"{BASE_URL}/packages/default.zip"}
        with respx.mock:
            _catalog(entry)
            with pytest.raises(Conflict):
                await installer.update_from_marketplace("default", client)

        assert installer.registry.get("default").version == "1.0.0"

    @pytest.mark.asyncio
    async def test_newer_version_replaces_theme(self, installer, client, theme_zip, theme_manifest):
        entry = {"name": "default", "version": "2.0.0", "downloadUrl": f"{BASE_URL}/packages/default.zip"}
        package = theme_zip(
            "default",
            manifest={**theme_manifest, "version": "2.0.0"},
            files={"templates/layout.html": "<html>new layout</html>"},
        )
        with respx.mock:
            _catalog(entry)
            respx.get(f"{BASE_URL}/packages/default.zip").mock(return_value=httpx.Response(200, content=package))
            theme = await installer.update_from_marketplace("default", client)

        root = installer.themes_dir / "default"
        assert theme.version == "2.0.0"
        assert (root / "templates" / "layout.html").read_text() == "<html>new layout</html>"
        assert not [p for p in installer.themes_dir.iterdir() if p.name.startswith("_temp_backup_")]

    @pytest.mark.asyncio
    async def test_theme_must_be_installed(self, installer, client):
        with pytest.raises(NotFound):
            await installer.update_from_marketplace("aurora", client)
