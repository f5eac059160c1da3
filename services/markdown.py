"""
Front matter parsing for blog post markdown files.

Posts start with an optional block such as::

    ---
    title: Hello
    date: 2024-01-01T00:00:00.000Z
    external_discussions:
      - platform: hackernews
        url: https://news.ycombinator.com/item?id=1
    ---

The block is read with line-oriented patterns rather than a YAML parser so that
unquoted titles containing colons and hand-edited files keep working.
"""

import re
from typing import Dict, List, Optional, Tuple

from models import BlogPostMetadata, ExternalDiscussion, now_iso

_FRONTMATTER_RE = re.compile(r"^---\n(.*?)\n---\n?(.*)$", re.DOTALL)
_DISCUSSIONS_RE = re.compile(r"external_discussions:\s*\n(.*?)(?=\n\w|\Z)", re.DOTALL)


def extract_frontmatter(content: str) -> Tuple[str, str]:
    """Split content into (frontmatter, body); ('', content) when there is no block."""
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return "", content
    body = match.group(2)
    if body.startswith("\n"):
        body = body[1:]
    return match.group(1), body


def remove_frontmatter(content: str) -> str:
    return extract_frontmatter(content)[1]


def parse_external_discussions(frontmatter: str) -> List[ExternalDiscussion]:
    """Parse the external_discussions list. Entries lacking a url are dropped."""
    discussions: List[ExternalDiscussion] = []
    match = _DISCUSSIONS_RE.search(frontmatter)
    if not match:
        return discussions

    current: Dict[str, str] = {}
    for line in match.group(1).split("\n"):
        if not line.strip():
            continue
        if "platform:" in line:
            if current.get("platform") and current.get("url"):
                discussions.append(ExternalDiscussion(**current))
            current = {"platform": line.split(":")[1].strip()}
        elif "url:" in line and current.get("platform"):
            current["url"] = line.split("url:", 1)[1].strip()

    if current.get("platform") and current.get("url"):
        discussions.append(ExternalDiscussion(**current))
    return discussions


def _field(frontmatter: str, name: str) -> Optional[str]:
    match = re.search(rf"{name}:[ \t]*(.+)", frontmatter)
    return match.group(1).strip() if match else None


def _float_field(frontmatter: str, name: str) -> Optional[float]:
    raw = _field(frontmatter, name)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def parse_blog_post_metadata(content: str) -> BlogPostMetadata:
    """Read title, date and discussions (plus optional location/status fields).

    A missing title is returned as '' so callers can fall back to the filename.
    A missing date defaults to now; there is no other authoritative timestamp.
    """
    frontmatter, _ = extract_frontmatter(content)

    status = _field(frontmatter, "status")
    if status not in ("draft", "published"):
        status = None

    return BlogPostMetadata(
        title=_field(frontmatter, "title") or "",
        date=_field(frontmatter, "date") or now_iso(),
        discussions=parse_external_discussions(frontmatter),
        status=status,
        published_at=_field(frontmatter, "publishedAt"),
        last_modified=_field(frontmatter, "lastModified"),
        latitude=_float_field(frontmatter, "latitude"),
        longitude=_float_field(frontmatter, "longitude"),
        city=_field(frontmatter, "city") or None,
        street=_field(frontmatter, "street") or None,
    )


def render_frontmatter(fields: Dict[str, Optional[str]], body: str) -> str:
    """Build a post file from ordered front matter fields and a markdown body."""
    lines = ["---"]
    for key, value in fields.items():
        if value is not None:
            lines.append(f"{key}: {value}")
    lines.append("---")
    return "\n".join(lines) + "\n\n" + body


def update_frontmatter(
    content: str, fields: Dict[str, Optional[str]], body: Optional[str] = None
) -> str:
    """Set top-level front matter fields in place, keeping every other line as written.

    Fields the block does not have yet are appended to it. None values are skipped.
    When body is given it replaces the existing body.
    """
    frontmatter, existing_body = extract_frontmatter(content)
    if body is None:
        body = existing_body
    lines = frontmatter.split("\n") if frontmatter else []
    for key, value in fields.items():
        if value is None:
            continue
        line = f"{key}: {value}"
        for i, existing in enumerate(lines):
            if existing.startswith(f"{key}:"):
                lines[i] = line
                break
        else:
            lines.append(line)
    return "\n".join(["---", *lines, "---"]) + "\n\n" + body
