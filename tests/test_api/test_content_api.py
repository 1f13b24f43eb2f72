"""Tests for the posts, pages and bulk endpoints together with the public pages they drive."""

import frontmatter


def _create(client, headers, collection="posts", **fields):
    response = client.post(f"/api/{collection}", json=fields, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestPostLifecycle:
    def test_draft_then_publish(self, client, admin_headers, config):
        post = _create(client, admin_headers, title="Hello World", content="Hi **there**")

        path = config.data_dir / "posts" / "hello-world.md"
        meta = frontmatter.load(path)
        assert str(meta["id"]) == post["id"]
        assert meta["slug"] == "hello-world"
        assert meta["status"] == "draft"
        assert client.get("/post/hello-world").status_code == 404

        published = client.put(f"/api/posts/{post['id']}", json={"status": "published"}, headers=admin_headers)
        assert published.status_code == 200

        page = client.get("/post/hello-world")
        assert page.status_code == 200
        assert "<strong>there</strong>" in page.text

    def test_slug_rename_moves_file(self, client, admin_headers, config):
        post = _create(client, admin_headers, title="Hello World", status="published")

        response = client.put(f"/api/posts/{post['id']}", json={"slug": "greetings"}, headers=admin_headers)

        assert response.json()["data"]["slug"] == "greetings"
        assert (config.data_dir / "posts" / "greetings.md").is_file()
        assert not (config.data_dir / "posts" / "hello-world.md").exists()
        assert client.get("/post/hello-world").status_code == 404
        assert client.get("/post/greetings").status_code == 200

    def test_prev_next_navigation(self, client, admin_headers):
        _create(client, admin_headers, title="Post A", status="published")
        _create(client, admin_headers, title="Post B", status="published")

        newer = client.get("/post/post-b").text
        older = client.get("/post/post-a").text

        assert 'class="prev" href="/post/post-a"' in newer
        assert 'class="next"' not in newer
        assert 'class="prev"' not in older
        assert 'class="next" href="/post/post-b"' in older

    def test_duplicate_slug(self, client, admin_headers):
        _create(client, admin_headers, title="Same")
        response = client.post("/api/posts", json={"title": "Same"}, headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_SLUG"

        replaced = client.post("/api/posts?overwrite=true", json={"title": "Same"}, headers=admin_headers)
        assert replaced.status_code == 201

    def test_delete(self, client, admin_headers):
        post = _create(client, admin_headers, title="Gone")
        assert client.delete(f"/api/posts/{post['id']}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/posts/{post['id']}", headers=admin_headers).status_code == 404
        assert client.delete(f"/api/posts/{post['id']}", headers=admin_headers).status_code == 404

    def test_invalid_status(self, client, admin_headers):
        response = client.post("/api/posts", json={"title": "Bad", "status": "archived"}, headers=admin_headers)
        assert response.status_code == 400
        assert "status" in response.json()["errors"]


class TestListing:
    def test_filters_and_total(self, client, admin_headers):
        _create(client, admin_headers, title="One", status="published", tags=["Python"])
        _create(client, admin_headers, title="Two", status="published")
        _create(client, admin_headers, title="Three")

        published = client.get("/api/posts?status=published", headers=admin_headers).json()
        assert published["total"] == 2
        assert [p["slug"] for p in published["data"]] == ["two", "one"]

        tagged = client.get("/api/posts?tag=python", headers=admin_headers).json()
        assert [p["slug"] for p in tagged["data"]] == ["one"]

        limited = client.get("/api/posts?limit=1&offset=1", headers=admin_headers).json()
        assert len(limited["data"]) == 1
        assert limited["total"] == 3

    def test_summary_view(self, client, admin_headers):
        _create(client, admin_headers, title="Long", content="word " * 100)
        post = client.get("/api/posts?summaryView=true&previewLength=20", headers=admin_headers).json()["data"][0]
        assert post["content"].endswith("...")
        assert len(post["content"]) <= 23

    def test_pages_include_seeded_home(self, client, admin_headers):
        pages = client.get("/api/pages", headers=admin_headers).json()["data"]
        assert [p["slug"] for p in pages] == ["home"]


class TestBulk:
    def test_publish_and_delete(self, client, admin_headers):
        first = _create(client, admin_headers, title="First")
        second = _create(client, admin_headers, title="Second")

        response = client.post(
            "/api/bulk/posts",
            json={"action": "publish", "ids": [first["id"], second["id"], "missing"]},
            headers=admin_headers,
        )
        assert [r["success"] for r in response.json()["data"]] == [True, True, False]
        assert client.get("/post/first").status_code == 200

        client.post("/api/bulk/posts", json={"action": "delete", "ids": [first["id"]]}, headers=admin_headers)
        assert client.get("/api/posts", headers=admin_headers).json()["total"] == 1

    def test_unknown_action(self, client, admin_headers):
        response = client.post("/api/bulk/posts", json={"action": "archive", "ids": []}, headers=admin_headers)
        assert response.status_code == 400
