"""Tests for the markdown-with-frontmatter codec."""

import pytest

from lumen.content.frontmatter import FrontmatterError, parse, read_file, serialize
from lumen.content.models import ContentItem


def _post(**fields):
    data = {"id": "1700000000000", "title": "Hello", "slug": "hello"}
    data.update(fields)
    body = data.pop("body", "Body text")
    return ContentItem.from_fields("post", data, body=body)


class TestSerialize:
    def test_starts_with_frontmatter_block(self):
        text = serialize(_post())
        assert text.startswith("---\n")
        assert "\n---\n\nBody text\n" in text

    def test_id_is_always_quoted(self):
        assert 'id: "1700000000000"' in serialize(_post())

    def test_numeric_strings_are_quoted(self):
        assert 'title: "2024"' in serialize(_post(title="2024"))

    def test_scalar_lists_are_inline(self):
        assert "tags: [python, web]" in serialize(_post(tags=["python", "web"]))

    def test_keys_keep_declared_order(self):
        text = serialize(_post(tags=["a"], status="published"))
        assert text.index("id:") < text.index("title:") < text.index("slug:") < text.index("status:") < text.index("tags:")

    def test_page_only_fields_are_not_written_for_posts(self):
        text = serialize(_post(pageType="custom"))
        assert "pageType" not in text

    def test_empty_body_writes_no_trailing_section(self):
        assert serialize(_post(body="")).endswith("---\n")

    def test_extra_fields_are_written_last(self):
        text = serialize(_post(mood="happy"))
        assert text.index("mood: happy") > text.index("slug:")


class TestParse:
    def test_round_trip_preserves_item(self):
        item = _post(tags=["python"], category="Dev", status="published", createdAt="2024-01-02T03:04:05.000Z")
        assert parse(serialize(item), "post") == item

    def test_unknown_keys_go_to_extra(self):
        item = parse('---\nid: "1"\nslug: x\nmood: happy\n---\n\nHi', "post")
        assert item.extra == {"mood": "happy"}
        assert item.body == "Hi"

    def test_numeric_id_is_coerced_to_string(self):
        item = parse("---\nid: 42\nslug: x\n---\n", "post")
        assert item.id == "42"

    def test_comma_separated_tags_are_split(self):
        item = parse('---\nid: "1"\nslug: x\ntags: "a, b"\n---\n', "post")
        assert item.tags == ["a", "b"]

    def test_related_post_objects_become_ids(self):
        item = parse('---\nid: "1"\nslug: x\nrelatedPosts:\n  - id: "7"\n    title: Seven\n---\n', "post")
        assert item.related_posts == ["7"]

    def test_fallback_slug_is_used(self):
        item = parse('---\nid: "1"\n---\n', "page", fallback_slug="about")
        assert item.slug == "about"

    def test_missing_id_is_rejected(self):
        with pytest.raises(FrontmatterError):
            parse("---\ntitle: No id\nslug: x\n---\n", "post")

    def test_malformed_yaml_is_rejected(self):
        with pytest.raises(FrontmatterError):
            parse('---\nid: "1"\ntitle: [unclosed\n---\n', "post")

    def test_read_file_uses_stem_as_slug(self, tmp_path):
        path = tmp_path / "from-file.md"
        path.write_text('---\nid: "5"\ntitle: From file\n---\n\nText\n')
        item = read_file(path, "post")
        assert item.slug == "from-file"
        assert item.body == "Text"
