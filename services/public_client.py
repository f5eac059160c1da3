"""
Public GitHub content client over raw.githubusercontent.com.

Raw URLs need no token and do not count against the API rate limit, but they
cannot list a directory, so posts are discovered through the blog manifest.
This client is read-only.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import httpx

from models import BlogManifest, BlogPost, ContentSettings, LikesDatabase, Memo
from services.cache import ContentCache, cache_key, get_default_cache
from services.errors import GitHubApiError
from services.github_contents import DEFAULT_TIMEOUT
from services.utils import (
    LIKES_PATH,
    MANIFEST_PATH,
    MEMOS_PATH,
    SITE_CONFIG_PATH,
    blog_post_path,
    build_blog_post,
    post_filename,
    url_path,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PublicGitHubClient:
    """Unauthenticated, read-only client for one owner's content repository."""

    def __init__(
        self,
        owner: str,
        repo: Optional[str] = None,
        settings: Optional[ContentSettings] = None,
        cache: Optional[ContentCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not owner:
            raise ValueError("owner is required")
        self.settings = settings or ContentSettings()
        self.owner = owner
        self.repo = repo or self.settings.repo
        self.base_url = f"{self.settings.raw_base_url.rstrip('/')}/{owner}/{self.repo}/{self.settings.branch}"
        self.cache = cache if cache is not None else get_default_cache(self.settings)
        self._transport = transport

    async def _cached(self, path: str, loader: Callable[[], Awaitable[T]]) -> T:
        return await self.cache.get_cached_or_fetch(cache_key("raw", self.owner, self.repo, path), loader)

    async def _fetch(self, path: str) -> Optional[httpx.Response]:
        """GET a repository file; None on 404, GitHubApiError on any other failure."""
        url = f"{self.base_url}/{url_path(path)}"
        try:
            async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, transport=self._transport) as client:
                response = await client.get(url, headers={"User-Agent": self.settings.user_agent})
        except httpx.RequestError as e:
            raise GitHubApiError(f"Network error fetching {path}: {e}") from e
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise GitHubApiError(f"HTTP {response.status_code} fetching {path}", response.status_code)
        return response

    async def _fetch_json(self, path: str) -> Optional[Any]:
        response = await self._fetch(path)
        if response is None:
            return None
        try:
            return json.loads(response.text)
        except ValueError as e:
            raise GitHubApiError(f"Invalid JSON in {path}: {e}") from e

    async def get_manifest(self) -> Optional[BlogManifest]:
        """The blog manifest (legacy shape migrated), or None if it does not exist."""

        async def load() -> Optional[BlogManifest]:
            data = await self._fetch_json(MANIFEST_PATH)
            return None if data is None else BlogManifest.from_raw(data)

        return await self._cached(MANIFEST_PATH, load)

    async def get_blog_posts(self, include_drafts: bool = False) -> List[BlogPost]:
        """Posts listed in the manifest. Unreadable posts are skipped."""
        manifest = await self.get_manifest()
        if manifest is None:
            logger.warning("Blog manifest not found for %s/%s, returning no posts", self.owner, self.repo)
            return []

        filenames = list(manifest.published)
        if include_drafts:
            filenames += [f for f in manifest.drafts if f not in filenames]

        results = await asyncio.gather(
            *(self.get_blog_post(name) for name in filenames), return_exceptions=True
        )
        posts = []
        for name, result in zip(filenames, results):
            if isinstance(result, Exception):
                logger.warning("Skipping blog post %s: %s", name, result)
            elif result is not None:
                posts.append(result)
        return posts

    async def get_blog_post(self, filename: str) -> Optional[BlogPost]:
        """A single post, or None when the file does not exist."""
        filename = post_filename(filename)
        path = blog_post_path(filename)

        async def load() -> Optional[BlogPost]:
            response = await self._fetch(path)
            if response is None:
                return None
            return build_blog_post(filename, response.text)

        return await self._cached(path, load)

    async def get_drafts(self) -> List[BlogPost]:
        posts = await self.get_blog_posts(include_drafts=True)
        return [p for p in posts if p.is_draft]

    async def get_all_blog_posts(self) -> List[BlogPost]:
        return await self.get_blog_posts(include_drafts=True)

    async def get_memos(self) -> List[Memo]:
        async def load() -> List[Memo]:
            data = await self._fetch_json(MEMOS_PATH)
            if data is None:
                logger.info("memos.json not found for %s, returning no memos", self.owner)
                return []
            if not isinstance(data, list):
                return []
            return [Memo(**item) for item in data]

        return list(await self._cached(MEMOS_PATH, load))

    async def get_links(self) -> Dict[str, str]:
        async def load() -> Dict[str, str]:
            config = await self._fetch_json(SITE_CONFIG_PATH)
            if not isinstance(config, dict):
                return {}
            return config.get("links") or {}

        return dict(await self._cached(SITE_CONFIG_PATH, load))

    async def get_likes(self) -> LikesDatabase:
        async def load() -> LikesDatabase:
            likes = await self._fetch_json(LIKES_PATH)
            return likes if isinstance(likes, dict) else {}

        return dict(await self._cached(LIKES_PATH, load))

    async def check_repository_health(self) -> bool:
        try:
            return await self._fetch("README.md") is not None
        except GitHubApiError:
            return False
