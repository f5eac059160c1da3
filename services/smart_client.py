"""
Smart content client that picks the data source for each call.

- server process in development: local filesystem
- otherwise, with an access token: authenticated GitHub API
- otherwise: public raw-content URLs (read-only, no API rate limit)

The decision comes from the ContentSettings passed in, never from ambient
process state, and is re-evaluated on every call.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from models import BlogPost, ContentSettings, LikesDatabase, Memo
from services.cache import ContentCache, get_default_cache
from services.errors import AuthenticationError, ConfigurationError
from services.github_api import GitHubAPIClient
from services.local_client import LocalFileSystemClient
from services.public_client import PublicGitHubClient

logger = logging.getLogger(__name__)


class SmartClient:
    """Uniform read/write interface over the local, API and public clients."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        settings: Optional[ContentSettings] = None,
        cache: Optional[ContentCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        local_client: Optional[LocalFileSystemClient] = None,
        api_client: Optional[GitHubAPIClient] = None,
        public_client: Optional[PublicGitHubClient] = None,
    ):
        self.access_token = access_token or None
        self.settings = settings or ContentSettings.from_env()
        self.cache = cache if cache is not None else get_default_cache(self.settings)
        self._transport = transport
        self._local_client = local_client
        self._api_client = api_client
        self._public_client = public_client

    @property
    def has_token(self) -> bool:
        return self.access_token is not None

    def _use_local(self) -> bool:
        return self.settings.uses_local_storage

    def _local(self) -> LocalFileSystemClient:
        if self._local_client is None:
            self._local_client = LocalFileSystemClient(Path(self.settings.data_dir), cache=self.cache)
        return self._local_client

    def _owner(self) -> str:
        if not self.settings.github_username:
            raise ConfigurationError("GITHUB_USERNAME environment variable is required for production")
        return self.settings.github_username

    def _api(self) -> GitHubAPIClient:
        if self._api_client is None:
            self._api_client = GitHubAPIClient(
                self.access_token, self.settings, cache=self.cache, transport=self._transport
            )
        return self._api_client

    def _public(self) -> PublicGitHubClient:
        if self._public_client is None:
            self._public_client = PublicGitHubClient(
                self._owner(), settings=self.settings, cache=self.cache, transport=self._transport
            )
        return self._public_client

    def _require_token(self, action: str) -> None:
        if not self.has_token:
            raise AuthenticationError(f"Authentication required for {action}")

    def describe_source(self) -> str:
        """Name of the backend the next call would use."""
        if self._use_local():
            return "local"
        self._owner()
        return "api" if self.has_token else "public"

    async def get_blog_posts(self) -> List[BlogPost]:
        """Published posts; drafts are included for authenticated callers."""
        include_drafts = self.has_token
        if self._use_local():
            return await self._local().get_blog_posts(include_drafts)
        owner = self._owner()
        if self.has_token:
            return await self._api().get_blog_posts(owner, include_drafts)
        return await self._public().get_blog_posts(include_drafts)

    async def get_blog_post(self, name: str) -> Optional[BlogPost]:
        if self._use_local():
            return await self._local().get_blog_post(name)
        owner = self._owner()
        if self.has_token:
            return await self._api().get_blog_post(name, owner)
        return await self._public().get_blog_post(name)

    async def get_drafts(self) -> List[BlogPost]:
        if not self.has_token:
            return []
        if self._use_local():
            return await self._local().get_drafts()
        return await self._api().get_drafts(self._owner())

    async def get_all_blog_posts(self) -> List[BlogPost]:
        if self._use_local():
            return await self._local().get_blog_posts(include_drafts=True)
        owner = self._owner()
        if self.has_token:
            return await self._api().get_all_blog_posts(owner)
        return await self._public().get_all_blog_posts()

    async def get_memos(self) -> List[Memo]:
        if self._use_local():
            return await self._local().get_memos()
        owner = self._owner()
        if self.has_token:
            return await self._api().get_memos(owner)
        return await self._public().get_memos()

    async def get_links(self) -> Dict[str, str]:
        if self._use_local():
            return await self._local().get_links()
        owner = self._owner()
        if self.has_token:
            return await self._api().get_links(owner)
        return await self._public().get_links()

    async def get_likes(self) -> LikesDatabase:
        if self._use_local():
            return await self._local().get_likes()
        owner = self._owner()
        if self.has_token:
            return await self._api().get_likes(owner)
        return await self._public().get_likes()

    async def create_memo(self, memo: Memo) -> Memo:
        if self._use_local():
            return await self._local().create_memo(memo)
        self._require_token("memo creation")
        return await self._api().create_memo(memo, owner=self._owner())

    async def update_likes(self, likes: LikesDatabase) -> None:
        if self._use_local():
            return await self._local().update_likes(likes)
        self._require_token("updating likes")
        await self._api().update_likes(likes, owner=self._owner())

    async def check_repository_health(self) -> bool:
        if self._use_local():
            return await self._local().check_repository_health()
        return await self._public().check_repository_health()


def create_smart_client(access_token: Optional[str] = None, **kwargs: Any) -> SmartClient:
    return SmartClient(access_token, **kwargs)
