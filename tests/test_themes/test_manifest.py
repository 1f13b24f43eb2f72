"""Tests for theme manifest validation."""

import pytest

from lumen.errors import InvalidPackage
from lumen.themes.manifest import compare_versions, load_manifest, parse_version, validate_manifest


@pytest.fixture
def manifest(theme_manifest):
    def build(**overrides):
        return {**theme_manifest, **overrides}
    return build


class TestValidateManifest:
    def test_valid(self, manifest):
        assert validate_manifest(manifest()) == []

    def test_missing_fields_only(self, manifest):
        data = manifest(license="MIT")
        del data["title"]
        del data["screenshot"]
        assert validate_manifest(data) == [
            "Missing required field: title",
            "Missing required field: screenshot",
        ]

    def test_license(self, manifest):
        assert validate_manifest(manifest(license="MIT")) == ["license must be 'GPL-3.0-or-later'."]

    def test_version_format(self, manifest):
        errors = validate_manifest(manifest(version="1.0"))
        assert errors == ["version must be in X.Y.Z format where X, Y, Z are numbers."]

    def test_author_url_must_be_https(self, manifest):
        errors = validate_manifest(manifest(authorUrl="http://example.com"))
        assert errors == ["authorUrl must be a valid https:// URL."]

    def test_screenshot_extension(self, manifest):
        errors = validate_manifest(manifest(screenshot="shot.bmp"))
        assert len(errors) == 1
        assert errors[0].startswith("screenshot must be an image file")

    def test_tags_must_be_non_empty(self, manifest):
        assert validate_manifest(manifest(tags=[])) == ["tags must be a non-empty array of strings."]

    def test_colors(self, manifest):
        errors = validate_manifest(manifest(colors=[{"name": "Primary", "value": "blue"}, {"value": "#fff"}]))
        assert errors == ["colors[0].value must be a hex color.", "colors[1] must have a name and a value."]

    def test_collects_every_violation(self, manifest):
        assert len(validate_manifest(manifest(license="MIT", version="one"))) == 2

    def test_not_an_object(self):
        assert validate_manifest([]) == ["theme.json must contain a JSON object."]


class TestLoadManifest:
    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidPackage):
            load_manifest(tmp_path)

    def test_invalid_json(self, tmp_path):
        (tmp_path / "theme.json").write_text("{")
        with pytest.raises(InvalidPackage) as exc:
            load_manifest(tmp_path)
        assert "not valid JSON" in exc.value.errors[0]

    def test_loads_extra_keys(self, tmp_path, make_theme, manifest):
        root = make_theme(tmp_path, "aurora", manifest(index="home.html"))
        loaded = load_manifest(root)
        assert loaded.author_url == "https://example.com/aurora"
        assert loaded.model_extra["index"] == "home.html"


class TestVersions:
    def test_parse(self):
        assert parse_version("1.2.3") == (1, 2, 3)
        assert parse_version("2") == (2, 0, 0)

    def test_compare(self):
        assert compare_versions("1.10.0", "1.9.9") == 1
        assert compare_versions("1.0.0", "1.0.0") == 0
        assert compare_versions("0.9.0", "1.0.0") == -1
