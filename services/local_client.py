"""
Local filesystem content client used in development.

Reads and writes the same data/ layout as the GitHub repository, rooted at a
local directory. Blocking file I/O runs in worker threads.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from models import BlogManifest, BlogPost, LikesDatabase, Memo
from services.cache import ContentCache
from services.utils import (
    BLOG_DIR,
    LIKES_PATH,
    MANIFEST_PATH,
    MEMOS_PATH,
    SITE_CONFIG_PATH,
    build_blog_post,
    is_blog_file,
    post_filename,
    validate_likes,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except Exception:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class LocalFileSystemClient:
    """Content client backed by a local directory tree."""

    def __init__(self, data_dir: Optional[Path] = None, cache: Optional[ContentCache] = None):
        # data_dir plays the role of the repository's data/ directory
        self.data_dir = Path(data_dir) if data_dir is not None else Path.cwd() / "data"
        self.cache = cache

    @property
    def blog_dir(self) -> Path:
        return self._path(BLOG_DIR)

    def _path(self, relative: str) -> Path:
        return self.data_dir / Path(relative).relative_to("data")

    async def _cached(self, path: str, loader: Callable[[], Awaitable[T]]) -> T:
        if self.cache is None:
            return await loader()
        return await self.cache.get_cached_or_fetch(f"local:{self.data_dir}/{path}", loader)

    def _invalidate(self, path: str) -> None:
        if self.cache is not None:
            self.cache.invalidate(f"local:{self.data_dir}/{path}")

    async def _read_json(self, relative: str) -> Optional[Any]:
        """Parsed JSON at relative path, or None when the file does not exist."""
        path = self._path(relative)

        def read() -> Optional[Any]:
            if not path.exists():
                return None
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)

        return await asyncio.to_thread(read)

    async def _write_json(self, relative: str, data: Any) -> None:
        text = json.dumps(data, indent=2, ensure_ascii=False)
        await asyncio.to_thread(_atomic_write, self._path(relative), text)
        self._invalidate(relative)

    async def get_blog_posts(self, include_drafts: bool = False) -> List[BlogPost]:
        """All posts in data/blog, newest first."""
        posts = await self._cached(
            f"{BLOG_DIR}?drafts={int(include_drafts)}",
            lambda: self._load_blog_posts(include_drafts),
        )
        return list(posts)

    async def _load_blog_posts(self, include_drafts: bool) -> List[BlogPost]:
        if not self.blog_dir.exists():
            logger.info("Blog directory %s does not exist, returning no posts", self.blog_dir)
            return []

        names = await asyncio.to_thread(lambda: sorted(os.listdir(self.blog_dir)))
        posts = []
        for name in filter(is_blog_file, names):
            post = await self._load_blog_post(name)
            if post is None:
                continue
            if post.is_draft and not include_drafts:
                continue
            posts.append(post)

        posts.sort(key=lambda p: p.date, reverse=True)
        return posts

    async def get_blog_post(self, filename: str) -> Optional[BlogPost]:
        filename = post_filename(filename)
        return await self._cached(f"{BLOG_DIR}/{filename}", lambda: self._load_blog_post(filename))

    async def _load_blog_post(self, filename: str) -> Optional[BlogPost]:
        if Path(filename).name != filename:
            logger.warning("Rejecting blog post name outside the blog directory: %s", filename)
            return None
        path = self.blog_dir / filename
        try:
            if not path.exists():
                return None
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except OSError:
            logger.exception("Error reading blog post %s", filename)
            return None
        return build_blog_post(filename, content)

    async def get_drafts(self) -> List[BlogPost]:
        posts = await self.get_blog_posts(include_drafts=True)
        return [p for p in posts if p.is_draft]

    async def get_memos(self) -> List[Memo]:
        return list(await self._cached(MEMOS_PATH, self._load_memos))

    async def _load_memos(self) -> List[Memo]:
        try:
            data = await self._read_json(MEMOS_PATH)
        except (OSError, ValueError):
            logger.exception("Error reading local memos")
            return []
        if data is None:
            logger.info("memos.json not found, returning no memos")
            return []
        if not isinstance(data, list):
            return []
        return [Memo(**item) for item in data]

    async def get_links(self) -> Dict[str, str]:
        return dict(await self._cached(SITE_CONFIG_PATH, self._load_links))

    async def _load_links(self) -> Dict[str, str]:
        try:
            config = await self._read_json(SITE_CONFIG_PATH)
        except (OSError, ValueError):
            logger.warning("Error reading local site config", exc_info=True)
            return {}
        if not isinstance(config, dict):
            return {}
        return config.get("links") or {}

    async def get_likes(self) -> LikesDatabase:
        return dict(await self._cached(LIKES_PATH, self._load_likes))

    async def _load_likes(self) -> LikesDatabase:
        try:
            likes = await self._read_json(LIKES_PATH)
        except (OSError, ValueError):
            logger.exception("Error reading local likes")
            return {}
        return likes if isinstance(likes, dict) else {}

    async def create_memo(self, memo: Memo) -> Memo:
        """Prepend memo to data/memos.json."""
        memos = await self._load_memos()
        updated = [memo, *memos]
        await self._write_json(MEMOS_PATH, [m.model_dump(exclude_none=True) for m in updated])
        logger.info("Created memo %s locally", memo.id)
        return memo

    async def update_likes(self, likes: LikesDatabase) -> None:
        await self._write_json(LIKES_PATH, validate_likes(likes))
        logger.info("Updated local likes data")

    async def update_local_manifest(self) -> BlogManifest:
        """Rewrite data/blog-manifest.json from the files present in data/blog."""
        names: List[str] = []
        if self.blog_dir.exists():
            names = await asyncio.to_thread(lambda: sorted(os.listdir(self.blog_dir)))
        blog_files = [n for n in names if is_blog_file(n)]

        existing = BlogManifest.from_raw(await self._read_json(MANIFEST_PATH))
        drafts = [d for d in existing.drafts if d in blog_files]
        manifest = BlogManifest(
            published=[n for n in blog_files if n not in drafts],
            drafts=drafts,
        )
        await self._write_json(MANIFEST_PATH, manifest.model_dump())
        logger.info("Local blog manifest updated with %d files", len(blog_files))
        return manifest

    async def check_repository_health(self) -> bool:
        return self.data_dir.exists()
