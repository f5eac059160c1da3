"""
Authenticated GitHub repository client.

Reads and writes blog posts, memos, likes and the manifest through the GitHub
contents API using a user access token. Reads are cached; writes read the
current file and its sha uncached and send the sha back, so a concurrent
change surfaces as a WriteConflictError.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

import httpx

from models import BlogPost, ContentSettings, LikesDatabase, Memo, now_iso
from services.cache import ContentCache, cache_key, get_default_cache
from services.errors import AuthenticationError, NotFoundError, ValidationError, WriteConflictError
from services.github_contents import GitHubContents
from services.manifest import BlogManifestManager
from services.markdown import render_frontmatter, update_frontmatter
from services.utils import (
    BLOG_DIR,
    LIKES_PATH,
    MEMOS_PATH,
    PLACEHOLDER_FILE,
    SITE_CONFIG_PATH,
    blog_post_path,
    build_blog_post,
    is_blog_file,
    post_filename,
    slugify_title,
    validate_likes,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _validate_title(title: str) -> None:
    if not title.strip():
        raise ValidationError("title is required")
    if "\n" in title or "\r" in title:
        raise ValidationError("title must be a single line")


class GitHubAPIClient:
    """Read/write content client for the token owner's repository."""

    def __init__(
        self,
        token: str,
        settings: Optional[ContentSettings] = None,
        cache: Optional[ContentCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        contents: Optional[GitHubContents] = None,
    ):
        if not token:
            raise AuthenticationError("Access token is required")
        self.settings = settings or ContentSettings()
        self.repo = self.settings.repo
        self.cache = cache if cache is not None else get_default_cache(self.settings)
        self.contents = contents or GitHubContents(token, self.settings, transport=transport)
        self._owner: Optional[str] = None

    async def get_authenticated_owner(self) -> str:
        """Login of the token's user. Costs one request, then memoised."""
        if self._owner is None:
            self._owner = await self.contents.get_authenticated_login()
        return self._owner

    async def _resolve_owner(self, owner: Optional[str]) -> str:
        return owner or await self.get_authenticated_owner()

    def manifest_manager(self, owner: str) -> BlogManifestManager:
        return BlogManifestManager(self.contents, owner, self.repo)

    async def _cached(self, owner: str, path: str, loader: Callable[[], Awaitable[T]]) -> T:
        return await self.cache.get_cached_or_fetch(cache_key("api", owner, self.repo, path), loader)

    async def _read_json(self, owner: str, path: str) -> Optional[Any]:
        repo_file = await self.contents.get_file(owner, self.repo, path)
        if repo_file is None:
            return None
        return json.loads(repo_file.content)

    # Reads

    async def get_blog_posts(self, owner: Optional[str] = None, include_drafts: bool = False) -> List[BlogPost]:
        """Every post in data/blog, unsorted. Drafts only when include_drafts is set."""
        owner = await self._resolve_owner(owner)
        posts = await self._cached(owner, BLOG_DIR, lambda: self._load_blog_posts(owner))
        if include_drafts:
            return list(posts)
        return [p for p in posts if not p.is_draft]

    async def _load_blog_posts(self, owner: str) -> List[BlogPost]:
        entries = await self.contents.list_directory(owner, self.repo, BLOG_DIR)
        if entries is None:
            logger.info("Blog directory does not exist for %s, returning no posts", owner)
            return []
        names = [
            e["name"] for e in entries
            if e.get("type") == "file" and is_blog_file(e["name"])
        ]
        posts = await asyncio.gather(*(self.get_blog_post(name, owner) for name in names))
        return [p for p in posts if p is not None]

    async def get_blog_post(self, filename: str, owner: Optional[str] = None) -> Optional[BlogPost]:
        """A single post, or None when it is absent or the path is not a file."""
        owner = await self._resolve_owner(owner)
        filename = post_filename(filename)
        path = blog_post_path(filename)

        async def load() -> Optional[BlogPost]:
            repo_file = await self.contents.get_file(owner, self.repo, path)
            if repo_file is None:
                return None
            return build_blog_post(filename, repo_file.content)

        return await self._cached(owner, path, load)

    async def get_drafts(self, owner: Optional[str] = None) -> List[BlogPost]:
        posts = await self.get_blog_posts(owner, include_drafts=True)
        return [p for p in posts if p.is_draft]

    async def get_all_blog_posts(self, owner: Optional[str] = None) -> List[BlogPost]:
        return await self.get_blog_posts(owner, include_drafts=True)

    async def get_memos(self, owner: Optional[str] = None) -> List[Memo]:
        """Memos newest first. A missing or unreadable memos file reads as no memos."""
        owner = await self._resolve_owner(owner)

        async def load() -> List[Memo]:
            data = await self._read_json(owner, MEMOS_PATH)
            if not isinstance(data, list):
                return []
            return [Memo(**item) for item in data]

        try:
            return list(await self._cached(owner, MEMOS_PATH, load))
        except Exception:
            logger.exception("Error fetching memos for %s", owner)
            return []

    async def get_links(self, owner: Optional[str] = None) -> Dict[str, str]:
        owner = await self._resolve_owner(owner)

        async def load() -> Dict[str, str]:
            config = await self._read_json(owner, SITE_CONFIG_PATH)
            if not isinstance(config, dict):
                return {}
            return config.get("links") or {}

        try:
            return dict(await self._cached(owner, SITE_CONFIG_PATH, load))
        except Exception:
            logger.warning("Error fetching links for %s", owner, exc_info=True)
            return {}

    async def get_likes(self, owner: Optional[str] = None) -> LikesDatabase:
        owner = await self._resolve_owner(owner)

        async def load() -> LikesDatabase:
            data = await self._read_json(owner, LIKES_PATH)
            return data if isinstance(data, dict) else {}

        return dict(await self._cached(owner, LIKES_PATH, load))

    # Writes

    async def _with_conflict_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a read-modify-write cycle, repeating it on sha conflicts up to write_retries times."""
        attempt = 0
        while True:
            try:
                return await operation()
            except WriteConflictError as e:
                if attempt >= self.settings.write_retries:
                    raise
                attempt += 1
                logger.warning("%s, retrying (%d/%d)", e, attempt, self.settings.write_retries)

    async def _sync_manifest(self, owner: str, action: Callable[[BlogManifestManager], Awaitable[None]]) -> None:
        """Best-effort manifest upkeep after a post write; failures are logged only."""
        manager = self.manifest_manager(owner)
        try:
            await manager.ensure_manifest_exists()
            await action(manager)
        except Exception:
            logger.exception("Failed to update blog manifest for %s", owner)

    async def ensure_content_structure(self, owner: Optional[str] = None) -> None:
        """Create data/blog/.gitkeep and data/memos.json when they are missing."""
        owner = await self._resolve_owner(owner)
        initial = {
            f"{BLOG_DIR}/{PLACEHOLDER_FILE}": ("Initialize blog directory", ""),
            MEMOS_PATH: ("Initialize memos.json", "[]"),
        }
        for path, (message, content) in initial.items():
            if await self.contents.get_raw(owner, self.repo, path) is None:
                logger.info("Creating %s for %s", path, owner)
                await self.contents.put_file(owner, self.repo, path, content, message)

    async def create_blog_post(
        self,
        title: str,
        content: str,
        owner: Optional[str] = None,
        draft: bool = False,
    ) -> BlogPost:
        _validate_title(title)
        owner = await self._resolve_owner(owner)
        filename = f"{slugify_title(title)}.md"
        path = blog_post_path(filename)
        full_content = render_frontmatter(
            {"title": title, "date": now_iso(), "status": "draft" if draft else None},
            content,
        )

        async def write() -> None:
            if await self.contents.get_raw(owner, self.repo, path) is not None:
                raise ValidationError(f"Blog post {filename} already exists")
            await self.contents.put_file(owner, self.repo, path, full_content, f"Add blog post: {title}")

        await self._with_conflict_retry(write)
        if draft:
            await self._sync_manifest(owner, lambda m: m.add_draft(filename))
        else:
            await self._sync_manifest(owner, lambda m: m.add_post(filename))
        return build_blog_post(filename, full_content)

    async def update_blog_post(self, post_id: str, title: str, content: str, owner: Optional[str] = None) -> BlogPost:
        """Replace title and body, keeping every other front matter field."""
        _validate_title(title)
        owner = await self._resolve_owner(owner)
        filename = post_filename(post_id)
        path = blog_post_path(filename)
        result: Dict[str, str] = {}

        async def write() -> None:
            existing = await self.contents.get_file(owner, self.repo, path)
            if existing is None:
                raise NotFoundError(f"Blog post {filename}")
            result["content"] = update_frontmatter(existing.content, {"title": title}, body=content)
            await self.contents.put_file(
                owner, self.repo, path, result["content"], "Update blog post", sha=existing.sha
            )

        await self._with_conflict_retry(write)
        return build_blog_post(filename, result["content"])

    async def delete_blog_post(self, post_id: str, owner: Optional[str] = None) -> None:
        owner = await self._resolve_owner(owner)
        filename = post_filename(post_id)
        path = blog_post_path(filename)

        async def delete() -> None:
            existing = await self.contents.get_file(owner, self.repo, path)
            if existing is None:
                raise NotFoundError(f"Blog post {filename}")
            await self.contents.delete_file(owner, self.repo, path, existing.sha, "Delete blog post")

        await self._with_conflict_retry(delete)

        async def forget(manager: BlogManifestManager) -> None:
            await manager.remove_post(filename)
            await manager.remove_draft(filename)

        await self._sync_manifest(owner, forget)

    async def publish_post(self, post_id: str, owner: Optional[str] = None) -> None:
        """Mark a draft as published in its front matter and in the manifest."""
        owner = await self._resolve_owner(owner)
        filename = post_filename(post_id)
        await self._set_status(owner, filename, "published")
        await self._sync_manifest(owner, lambda m: m.publish_draft(filename))

    async def unpublish_post(self, post_id: str, owner: Optional[str] = None) -> None:
        owner = await self._resolve_owner(owner)
        filename = post_filename(post_id)
        await self._set_status(owner, filename, "draft")
        await self._sync_manifest(owner, lambda m: m.unpublish_post(filename))

    async def _set_status(self, owner: str, filename: str, status: str) -> None:
        path = blog_post_path(filename)

        async def write() -> None:
            existing = await self.contents.get_file(owner, self.repo, path)
            if existing is None:
                raise NotFoundError(f"Blog post {filename}")
            updated = update_frontmatter(
                existing.content,
                {"status": status, "publishedAt": now_iso() if status == "published" else None},
            )
            await self.contents.put_file(
                owner, self.repo, path, updated, f"Set {filename} to {status}", sha=existing.sha
            )

        await self._with_conflict_retry(write)

    async def _rewrite_memos(
        self,
        owner: str,
        modify: Callable[[List[Memo]], List[Memo]],
        message: str,
    ) -> None:
        async def write() -> None:
            repo_file = await self.contents.get_file(owner, self.repo, MEMOS_PATH)
            memos = [Memo(**m) for m in json.loads(repo_file.content)] if repo_file else []
            updated = modify(memos)
            await self.contents.put_file(
                owner,
                self.repo,
                MEMOS_PATH,
                json.dumps([m.model_dump(exclude_none=True) for m in updated], indent=2, ensure_ascii=False),
                message,
                sha=repo_file.sha if repo_file else None,
            )

        await self._with_conflict_retry(write)

    async def create_memo(
        self,
        memo: Union[Memo, str],
        image: Optional[str] = None,
        owner: Optional[str] = None,
    ) -> Memo:
        """Prepend a memo to data/memos.json, creating the file if needed."""
        owner = await self._resolve_owner(owner)
        if isinstance(memo, str):
            memo = Memo(
                id=str(int(time.time() * 1000)),
                content=memo,
                timestamp=now_iso(),
                image=image,
            )
        await self._rewrite_memos(owner, lambda memos: [memo, *memos], f"Add new memo: {memo.id}")
        return memo

    async def update_memo(self, memo_id: str, content: str, owner: Optional[str] = None) -> None:
        """Replace a memo's content, keeping its timestamp."""
        owner = await self._resolve_owner(owner)

        def modify(memos: List[Memo]) -> List[Memo]:
            for i, memo in enumerate(memos):
                if memo.id == memo_id:
                    memos[i] = memo.model_copy(update={"content": content})
                    return memos
            raise NotFoundError(f"Memo {memo_id}")

        await self._rewrite_memos(owner, modify, "Update memo")

    async def delete_memo(self, memo_id: str, owner: Optional[str] = None) -> None:
        owner = await self._resolve_owner(owner)
        await self._rewrite_memos(owner, lambda memos: [m for m in memos if m.id != memo_id], "Delete a memo")

    async def update_likes(self, likes: LikesDatabase, owner: Optional[str] = None) -> None:
        validate_likes(likes)
        owner = await self._resolve_owner(owner)

        async def write() -> None:
            existing = await self.contents.get_file(owner, self.repo, LIKES_PATH)
            await self.contents.put_file(
                owner,
                self.repo,
                LIKES_PATH,
                json.dumps(likes, indent=2, ensure_ascii=False),
                f"Update likes data - {now_iso()}",
                sha=existing.sha if existing else None,
            )

        await self._with_conflict_retry(write)
