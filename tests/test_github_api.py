"""
Tests for the authenticated GitHub content client.
"""

import asyncio
import json

import httpx
import pytest

from models import Memo, ContentSettings
from services.errors import AuthenticationError, NotFoundError, ValidationError, WriteConflictError
from services.github_api import GitHubAPIClient
from services.markdown import parse_blog_post_metadata

MANIFEST = "data/blog-manifest.json"
MEMOS = "data/memos.json"


@pytest.fixture
def client(github, settings, cache):
    return GitHubAPIClient("test-token", settings, cache=cache, transport=github.transport)


class TestReads:
    """Test cases for cached reads."""

    def test_requires_token(self):
        with pytest.raises(AuthenticationError):
            GitHubAPIClient("")

    def test_owner_is_resolved_once(self, client, github):
        async def run():
            await client.get_memos()
            await client.get_links()

        asyncio.run(run())
        assert len([r for r in github.requests if r.url.path == "/user"]) == 1

    def test_blog_posts_filter_drafts(self, client, github, make_post):
        github.add_file("data/blog/a.md", make_post("A", "2024-01-01"))
        github.add_file("data/blog/d.md", make_post("D", "2024-02-01", status="draft"))
        github.add_file("data/blog/.gitkeep", "")
        posts = asyncio.run(client.get_blog_posts("alice"))
        assert [p.id for p in posts] == ["a"]
        all_posts = asyncio.run(client.get_all_blog_posts("alice"))
        assert sorted(p.id for p in all_posts) == ["a", "d"]
        drafts = asyncio.run(client.get_drafts("alice"))
        assert [p.id for p in drafts] == ["d"]

    def test_blog_posts_missing_directory(self, client):
        assert asyncio.run(client.get_blog_posts("alice")) == []

    def test_blog_post_list_is_cached(self, client, github, make_post):
        github.add_file("data/blog/a.md", make_post("A", "2024-01-01"))
        asyncio.run(client.get_blog_posts("alice"))
        count = len(github.requests)
        asyncio.run(client.get_blog_posts("alice", include_drafts=True))
        assert len(github.requests) == count

    def test_get_blog_post(self, client, github, make_post):
        github.add_file("data/blog/my post.md", make_post("Mine", "2024-01-01"))
        post = asyncio.run(client.get_blog_post("my%20post", "alice"))
        assert post.id == "my post"
        assert post.title == "Mine"
        assert asyncio.run(client.get_blog_post("missing", "alice")) is None

    def test_memos(self, client, github):
        github.add_json(MEMOS, [{"id": "1", "content": "hi", "timestamp": "t"}])
        memos = asyncio.run(client.get_memos("alice"))
        assert memos == [Memo(id="1", content="hi", timestamp="t")]

    def test_memos_error_reads_as_empty_and_is_not_cached(self, client, github):
        github.add_json(MEMOS, [{"id": "1", "content": "hi", "timestamp": "t"}])
        github.fail_paths[MEMOS] = 500
        assert asyncio.run(client.get_memos("alice")) == []
        del github.fail_paths[MEMOS]
        assert len(asyncio.run(client.get_memos("alice"))) == 1

    def test_links(self, client, github):
        github.add_json("data/site-config.json", {"links": {"x": "https://x.com/alice"}})
        assert asyncio.run(client.get_links("alice")) == {"x": "https://x.com/alice"}

    def test_links_missing(self, client):
        assert asyncio.run(client.get_links("alice")) == {}

    def test_likes_missing_is_empty(self, client):
        assert asyncio.run(client.get_likes("alice")) == {}


class TestPostWrites:
    """Test cases for creating, updating and deleting posts."""

    def test_create_post_updates_manifest(self, client, github):
        post = asyncio.run(client.create_blog_post("Hello World", "Body", owner="alice"))
        assert post.id == "hello-world"
        assert post.title == "Hello World"
        stored = github.read("data/blog/hello-world.md")
        assert stored.startswith("---\ntitle: Hello World\ndate: ")
        assert stored.endswith("---\n\nBody")
        assert github.read_json(MANIFEST) == {"published": ["hello-world.md"], "drafts": []}

    def test_create_draft(self, client, github):
        post = asyncio.run(client.create_blog_post("Idea", "Body", owner="alice", draft=True))
        assert post.is_draft
        assert "status: draft" in github.read("data/blog/idea.md")
        assert github.read_json(MANIFEST) == {"published": [], "drafts": ["idea.md"]}

    def test_create_requires_title(self, client):
        with pytest.raises(ValidationError):
            asyncio.run(client.create_blog_post("  ", "Body", owner="alice"))

    def test_create_existing_post_fails(self, client, github, make_post):
        github.add_file("data/blog/hello.md", make_post("Hello", "2024-01-01"))
        with pytest.raises(ValidationError):
            asyncio.run(client.create_blog_post("Hello", "Body", owner="alice"))

    def test_manifest_failure_does_not_fail_the_write(self, client, github, caplog):
        github.fail_paths[MANIFEST] = 500
        post = asyncio.run(client.create_blog_post("Still Saved", "Body", owner="alice"))
        assert post.id == "still-saved"
        assert github.read("data/blog/still-saved.md") is not None
        assert "Failed to update blog manifest" in caplog.text

    def test_update_keeps_date_and_status(self, client, github, make_post):
        github.add_file("data/blog/p.md", make_post("Old", "2023-05-05T00:00:00.000Z", "old body", status="draft"))
        post = asyncio.run(client.update_blog_post("p", "New", "new body", owner="alice"))
        assert post.title == "New"
        assert post.date == "2023-05-05T00:00:00.000Z"
        assert post.is_draft
        assert github.read("data/blog/p.md") == (
            "---\ntitle: New\ndate: 2023-05-05T00:00:00.000Z\nstatus: draft\n---\n\nnew body"
        )

    def test_update_missing_post(self, client):
        with pytest.raises(NotFoundError):
            asyncio.run(client.update_blog_post("ghost", "T", "B", owner="alice"))

    def test_delete_post(self, client, github, make_post):
        github.add_file("data/blog/p.md", make_post("P", "2024-01-01"))
        github.add_json(MANIFEST, {"published": ["p.md", "q.md"], "drafts": ["p.md"]})
        asyncio.run(client.delete_blog_post("p", owner="alice"))
        assert github.read("data/blog/p.md") is None
        assert github.read_json(MANIFEST) == {"published": ["q.md"], "drafts": []}

    def test_delete_missing_post(self, client):
        with pytest.raises(NotFoundError):
            asyncio.run(client.delete_blog_post("ghost", owner="alice"))

    def test_publish_and_unpublish(self, client, github, make_post):
        github.add_file("data/blog/p.md", make_post("P", "2024-01-01T00:00:00.000Z", status="draft"))
        github.add_json(MANIFEST, {"published": [], "drafts": ["p.md"]})

        asyncio.run(client.publish_post("p", owner="alice"))
        text = github.read("data/blog/p.md")
        assert "status: published" in text
        assert "publishedAt: " in text
        assert github.read_json(MANIFEST) == {"published": ["p.md"], "drafts": []}

        asyncio.run(client.unpublish_post("p", owner="alice"))
        assert "status: draft" in github.read("data/blog/p.md")
        assert github.read_json(MANIFEST) == {"published": [], "drafts": ["p.md"]}

    def test_publish_keeps_other_front_matter(self, client, github):
        original = (
            "---\n"
            "title: Hello\n"
            "date: 2024-01-01T00:00:00.000Z\n"
            "status: draft\n"
            "lastModified: 2024-01-02T00:00:00.000Z\n"
            "city: Lisbon\n"
            "external_discussions:\n"
            "  - platform: hackernews\n"
            "    url: https://news.ycombinator.com/item?id=1\n"
            "---\n\nBody"
        )
        github.add_file("data/blog/hello.md", original)

        asyncio.run(client.publish_post("hello", owner="alice"))
        text = github.read("data/blog/hello.md")
        metadata = parse_blog_post_metadata(text)
        assert metadata.status == "published"
        assert "status: published" in text
        assert metadata.published_at
        assert metadata.last_modified == "2024-01-02T00:00:00.000Z"
        assert metadata.city == "Lisbon"
        assert [d.platform for d in metadata.discussions] == ["hackernews"]
        assert text.endswith("---\n\nBody")

        asyncio.run(client.unpublish_post("hello", owner="alice"))
        text = github.read("data/blog/hello.md")
        metadata = parse_blog_post_metadata(text)
        assert metadata.status == "draft"
        assert [d.url for d in metadata.discussions] == ["https://news.ycombinator.com/item?id=1"]

    def test_update_keeps_discussions(self, client, github):
        github.add_file("data/blog/p.md", (
            "---\ntitle: Old\ndate: 2024-01-01T00:00:00.000Z\n"
            "external_discussions:\n  - platform: reddit\n    url: https://reddit.com/r/x/1\n"
            "---\n\nold body"
        ))
        post = asyncio.run(client.update_blog_post("p", "New", "new body", owner="alice"))
        assert post.title == "New"
        assert [d.platform for d in post.discussions] == ["reddit"]
        assert github.read("data/blog/p.md").endswith("---\n\nnew body")

    @pytest.mark.parametrize("title", ["a\n---\nb", "line\rbreak"])
    def test_multiline_title_is_rejected(self, client, github, title, make_post):
        github.add_file("data/blog/p.md", make_post("P", "2024-01-01"))
        with pytest.raises(ValidationError, match="single line"):
            asyncio.run(client.create_blog_post(title, "body", owner="alice"))
        with pytest.raises(ValidationError, match="single line"):
            asyncio.run(client.update_blog_post("p", title, "body", owner="alice"))
        assert github.requests_for("PUT") == []

    def test_ensure_content_structure(self, client, github):
        asyncio.run(client.ensure_content_structure("alice"))
        assert github.read("data/blog/.gitkeep") == ""
        assert github.read(MEMOS) == "[]"
        asyncio.run(client.ensure_content_structure("alice"))
        assert len(github.requests_for("PUT")) == 2


class TestMemoWrites:
    """Test cases for memo and likes writes."""

    def test_create_memo_prepends(self, client, github):
        github.add_json(MEMOS, [{"id": "1", "content": "first", "timestamp": "t1"}])
        asyncio.run(client.create_memo(Memo(id="2", content="second", timestamp="t2"), owner="alice"))
        assert [m["id"] for m in github.read_json(MEMOS)] == ["2", "1"]
        assert json.loads(github.requests_for("PUT")[0].content)["message"] == "Add new memo: 2"

    def test_create_memo_from_text_creates_file(self, client, github):
        memo = asyncio.run(client.create_memo("just text", image="https://x/y.png", owner="alice"))
        assert memo.id.isdigit()
        stored = github.read_json(MEMOS)
        assert stored == [{"id": memo.id, "content": "just text", "timestamp": memo.timestamp, "image": "https://x/y.png"}]

    def test_update_memo_keeps_timestamp(self, client, github):
        github.add_json(MEMOS, [{"id": "1", "content": "old", "timestamp": "t1"}])
        asyncio.run(client.update_memo("1", "new", owner="alice"))
        assert github.read_json(MEMOS) == [{"id": "1", "content": "new", "timestamp": "t1"}]

    def test_update_unknown_memo(self, client, github):
        github.add_json(MEMOS, [])
        with pytest.raises(NotFoundError):
            asyncio.run(client.update_memo("404", "new", owner="alice"))

    def test_delete_memo(self, client, github):
        github.add_json(MEMOS, [
            {"id": "1", "content": "a", "timestamp": "t1"},
            {"id": "2", "content": "b", "timestamp": "t2"},
        ])
        asyncio.run(client.delete_memo("1", owner="alice"))
        assert [m["id"] for m in github.read_json(MEMOS)] == ["2"]

    def test_update_likes(self, client, github):
        github.add_json("data/likes.json", {})
        likes = {"post-a": {"l1": {"timestamp": "t", "userAgent": "ua", "country": "GB", "language": "en"}}}
        asyncio.run(client.update_likes(likes, owner="alice"))
        assert github.read_json("data/likes.json") == likes


class TestConflicts:
    """Test cases for optimistic concurrency on writes."""

    def _racing_handler(self, github, times):
        """Change memos.json behind the client's back before the first `times` PUTs."""
        original = github.handle
        state = {"left": times}

        def handle(request):
            if request.method == "PUT" and state["left"] > 0:
                state["left"] -= 1
                github.add_json(MEMOS, [{"id": "x", "content": "concurrent", "timestamp": "t"}])
            return original(request)

        return handle

    def test_conflict_is_raised_without_retries(self, github, settings, cache):
        github.add_json(MEMOS, [])
        transport = httpx.MockTransport(self._racing_handler(github, 1))
        client = GitHubAPIClient("test-token", settings, cache=cache, transport=transport)
        with pytest.raises(WriteConflictError):
            asyncio.run(client.create_memo(Memo(id="1", content="a", timestamp="t"), owner="alice"))

    def test_conflict_retried_when_enabled(self, github, cache):
        settings = ContentSettings(github_username="alice", write_retries=1)
        github.add_json(MEMOS, [])
        transport = httpx.MockTransport(self._racing_handler(github, 1))
        client = GitHubAPIClient("test-token", settings, cache=cache, transport=transport)
        asyncio.run(client.create_memo(Memo(id="1", content="a", timestamp="t"), owner="alice"))
        assert [m["id"] for m in github.read_json(MEMOS)] == ["1", "x"]
