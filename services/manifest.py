"""
Blog manifest maintenance.

data/blog-manifest.json lists post filenames so that readers limited to raw
URLs, which cannot list a directory, can still discover every post.
"""

import json
import logging
from typing import Optional, Tuple

from models import BlogManifest
from services.github_contents import GitHubContents
from services.utils import BLOG_DIR, MANIFEST_PATH, is_blog_file

logger = logging.getLogger(__name__)


class BlogManifestManager:
    """Read-modify-write operations on the manifest file.

    Every mutator propagates errors. Callers that treat manifest upkeep as a
    side effect of another write decide whether to swallow them.
    """

    def __init__(self, contents: GitHubContents, owner: str, repo: str):
        self.contents = contents
        self.owner = owner
        self.repo = repo

    async def get_manifest(self) -> Tuple[BlogManifest, Optional[str]]:
        """Current manifest and its sha; an empty manifest and None if it does not exist."""
        repo_file = await self.contents.get_file(self.owner, self.repo, MANIFEST_PATH)
        if repo_file is None:
            return BlogManifest(), None
        return BlogManifest.from_raw(json.loads(repo_file.content)), repo_file.sha

    async def save_manifest(self, manifest: BlogManifest, sha: Optional[str] = None) -> None:
        await self.contents.put_file(
            self.owner,
            self.repo,
            MANIFEST_PATH,
            json.dumps(manifest.model_dump(), indent=2, ensure_ascii=False),
            "Update blog manifest",
            sha=sha,
        )

    async def add_post(self, filename: str) -> None:
        """Register a published post (newest first). No write when already listed."""
        manifest, sha = await self.get_manifest()
        if filename in manifest.published:
            return
        manifest.drafts = [f for f in manifest.drafts if f != filename]
        manifest.published.insert(0, filename)
        await self.save_manifest(manifest, sha)

    async def remove_post(self, filename: str) -> None:
        manifest, sha = await self.get_manifest()
        manifest.published = [f for f in manifest.published if f != filename]
        await self.save_manifest(manifest, sha)

    async def add_draft(self, filename: str) -> None:
        manifest, sha = await self.get_manifest()
        if filename in manifest.drafts:
            return
        manifest.drafts.insert(0, filename)
        await self.save_manifest(manifest, sha)

    async def remove_draft(self, filename: str) -> None:
        manifest, sha = await self.get_manifest()
        manifest.drafts = [f for f in manifest.drafts if f != filename]
        await self.save_manifest(manifest, sha)

    async def publish_draft(self, filename: str) -> None:
        manifest, sha = await self.get_manifest()
        manifest.drafts = [f for f in manifest.drafts if f != filename]
        if filename not in manifest.published:
            manifest.published.insert(0, filename)
        await self.save_manifest(manifest, sha)

    async def unpublish_post(self, filename: str) -> None:
        manifest, sha = await self.get_manifest()
        manifest.published = [f for f in manifest.published if f != filename]
        if filename not in manifest.drafts:
            manifest.drafts.insert(0, filename)
        await self.save_manifest(manifest, sha)

    async def ensure_manifest_exists(self) -> None:
        manifest, sha = await self.get_manifest()
        if sha is None:
            logger.info("Blog manifest missing for %s/%s, creating it", self.owner, self.repo)
            await self.save_manifest(manifest)

    async def rebuild_from_directory(self) -> BlogManifest:
        """Regenerate the manifest from the files actually present in data/blog."""
        entries = await self.contents.list_directory(self.owner, self.repo, BLOG_DIR) or []
        blog_files = sorted(
            e["name"] for e in entries if e.get("type") == "file" and is_blog_file(e["name"])
        )
        current, sha = await self.get_manifest()
        drafts = [f for f in current.drafts if f in blog_files]
        manifest = BlogManifest(
            published=[f for f in blog_files if f not in drafts],
            drafts=drafts,
        )
        await self.save_manifest(manifest, sha)
        logger.info("Blog manifest rebuilt with %d files", len(blog_files))
        return manifest
