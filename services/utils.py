"""
Shared helpers: resource paths, post filenames and building BlogPost objects.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote, unquote

import pydantic

from models import BlogPost, LikeData, LikesDatabase
from services.errors import ValidationError
from services.markdown import parse_blog_post_metadata

logger = logging.getLogger(__name__)

BLOG_DIR = "data/blog"
MANIFEST_PATH = "data/blog-manifest.json"
MEMOS_PATH = "data/memos.json"
SITE_CONFIG_PATH = "data/site-config.json"
LIKES_PATH = "data/likes.json"
PLACEHOLDER_FILE = ".gitkeep"

_IMAGE_URL_RE = re.compile(r"(https?://\S+?\.(?:png|jpg|jpeg|gif|webp))", re.IGNORECASE)


def is_blog_file(name: str) -> bool:
    return name.endswith(".md") and name != PLACEHOLDER_FILE


def post_filename(name: str) -> str:
    """Normalise a post id or filename to its decoded '<id>.md' filename."""
    name = unquote(name)
    return name if name.endswith(".md") else f"{name}.md"


def post_id_from_filename(filename: str) -> str:
    name = filename[:-3] if filename.endswith(".md") else filename
    return unquote(name)


def blog_post_path(name: str) -> str:
    return f"{BLOG_DIR}/{post_filename(name)}"


def url_path(path: str) -> str:
    """Percent-encode a repository path for use in a URL."""
    return quote(path, safe="/")


def slugify_title(title: str) -> str:
    return re.sub(r"\s+", "-", title.strip().lower())


def get_first_image_url(content: str) -> Optional[str]:
    """First image URL in the text; GitHub blob links get ?raw=true appended."""
    match = _IMAGE_URL_RE.search(content)
    if not match:
        return None
    url = match.group(1)
    return f"{url}?raw=true" if url.startswith("https://github") else url


def normalize_date(value: Optional[str]) -> str:
    """Render a front matter date as a UTC ISO-8601 string with milliseconds."""
    if not value:
        parsed = datetime.now(timezone.utc)
    else:
        raw = value.strip().strip("'\"")
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Unparseable post date %r, keeping it as is", raw)
            return raw
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)
    return parsed.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_blog_post(filename: str, content: str) -> BlogPost:
    """Turn a post file's raw text into a BlogPost."""
    metadata = parse_blog_post_metadata(content)
    post_id = post_id_from_filename(filename)
    title = unquote(metadata.title) if metadata.title else post_id
    return BlogPost(
        id=post_id,
        title=title,
        content=content,
        image_url=get_first_image_url(content),
        date=normalize_date(metadata.date),
        discussions=metadata.discussions or None,
        status=metadata.status,
    )


def validate_likes(likes: LikesDatabase) -> LikesDatabase:
    """Check every like record before likes.json is overwritten."""
    if not isinstance(likes, dict):
        raise ValidationError("likes must map item keys to like records")
    for item_key, records in likes.items():
        if not isinstance(records, dict):
            raise ValidationError(f"likes for {item_key} must be a mapping")
        for like_id, record in records.items():
            try:
                LikeData.model_validate(record)
            except pydantic.ValidationError as e:
                raise ValidationError(f"Invalid like {item_key}/{like_id}: {e.errors()[0]['msg']}") from e
    return likes
