"""
Pydantic models for blog content, memos, manifests and client settings.
"""

import os
import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Literal
from pydantic import BaseModel, ConfigDict, Field


class ExternalDiscussion(BaseModel):
    """A link to a discussion thread about a post on another site."""
    platform: str
    url: str


class BlogPostMetadata(BaseModel):
    """Metadata parsed from a post's front matter."""
    title: str = ""
    date: str
    discussions: List[ExternalDiscussion] = Field(default_factory=list)
    status: Optional[Literal["draft", "published"]] = None
    published_at: Optional[str] = None
    last_modified: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: Optional[str] = None
    street: Optional[str] = None


class BlogPost(BaseModel):
    """Model for a blog post stored as data/blog/<id>.md."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    content: str
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    date: str
    discussions: Optional[List[ExternalDiscussion]] = None
    status: Optional[Literal["draft", "published"]] = None

    @property
    def is_draft(self) -> bool:
        return self.status == "draft"


class Memo(BaseModel):
    """Model for a short note kept in data/memos.json."""
    id: str
    content: str
    timestamp: str
    image: Optional[str] = None


class BlogManifest(BaseModel):
    """Index of blog post filenames, the only way to discover posts over raw URLs."""
    published: List[str] = Field(default_factory=list)
    drafts: List[str] = Field(default_factory=list)

    @classmethod
    def from_raw(cls, data: Any) -> "BlogManifest":
        """Parse a stored manifest, migrating the legacy {"files": [...]} shape."""
        if not isinstance(data, dict):
            return cls()
        if "published" in data or "drafts" in data:
            return cls(
                published=list(data.get("published") or []),
                drafts=list(data.get("drafts") or []),
            )
        return cls(published=list(data.get("files") or []), drafts=[])

    def contains(self, filename: str) -> bool:
        return filename in self.published or filename in self.drafts


class RepoFile(BaseModel):
    """A decoded file fetched from the repository contents API."""
    path: str
    content: str
    sha: str


class LikeData(BaseModel):
    """A single like as stored in data/likes.json."""
    timestamp: str
    userAgent: str
    country: str
    language: str


# item key -> like id -> like record
LikesDatabase = Dict[str, Dict[str, Dict[str, Any]]]


class CacheEntry(BaseModel):
    """Model for a resolved cache entry."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    key: str
    value: Any = None
    stored_at: float = Field(default_factory=time.monotonic)


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    if raw.strip().lower() in ("none", "off"):
        return None
    return int(raw)


class ContentSettings(BaseModel):
    """Runtime configuration shared by all content clients."""
    github_username: Optional[str] = None
    repo: str = "Cofe"
    branch: str = "main"
    environment: str = "production"
    runtime: Literal["server", "client"] = "server"
    data_dir: str = "data"
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    cache_max_entries: Optional[int] = Field(default=500, ge=1)
    write_retries: int = Field(default=0, ge=0)
    api_base_url: str = "https://api.github.com"
    raw_base_url: str = "https://raw.githubusercontent.com"
    user_agent: str = "tinymind-content/1.0"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def uses_local_storage(self) -> bool:
        """Local files are only reachable from a server process in development."""
        return self.runtime == "server" and self.is_development

    @classmethod
    def from_env(cls, **overrides: Any) -> "ContentSettings":
        """Build settings from environment variables (after .env is loaded)."""
        values: Dict[str, Any] = {
            "github_username": os.getenv("GITHUB_USERNAME") or None,
            "repo": os.getenv("CONTENT_REPO", "Cofe"),
            "branch": os.getenv("CONTENT_BRANCH", "main"),
            "environment": os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "production",
            "runtime": os.getenv("CONTENT_RUNTIME", "server"),
            "data_dir": os.getenv("CONTENT_DATA_DIR", "data"),
            "cache_ttl_seconds": float(os.getenv("CONTENT_CACHE_TTL", "300")),
            "cache_max_entries": _env_int("CONTENT_CACHE_MAX_ENTRIES", 500),
            "write_retries": _env_int("CONTENT_WRITE_RETRIES", 0) or 0,
            "api_base_url": os.getenv("GITHUB_API_URL", "https://api.github.com"),
            "raw_base_url": os.getenv("GITHUB_RAW_URL", "https://raw.githubusercontent.com"),
        }
        values.update(overrides)
        return cls(**values)


def now_iso() -> str:
    """Current UTC time in the ISO-8601 form used throughout the data files."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
