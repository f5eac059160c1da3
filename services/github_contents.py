"""
Thin async wrapper over the GitHub repository contents API.
"""

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

from models import ContentSettings, RepoFile
from services.errors import AuthenticationError, GitHubApiError, WriteConflictError
from services.utils import url_path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=20.0, write=10.0, pool=30.0)


def encode_content(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("utf-8")


def decode_content(content_b64: str) -> str:
    return base64.b64decode(content_b64).decode("utf-8")


class GitHubContents:
    """Get, list, create-or-update and delete files through the REST API."""

    def __init__(
        self,
        token: str,
        settings: Optional[ContentSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not token:
            raise AuthenticationError("Access token is required")
        self.settings = settings or ContentSettings()
        self.base_url = self.settings.api_base_url.rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": self.settings.user_agent,
        }
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=DEFAULT_TIMEOUT,
            transport=self._transport,
        )

    def _contents_url(self, owner: str, repo: str, path: str) -> str:
        return f"/repos/{owner}/{repo}/contents/{url_path(path)}"

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if response.status_code < 400:
            return
        if response.status_code == 401:
            raise AuthenticationError("GitHub authentication failed. Check the access token.")
        if response.status_code == 429 or (
            response.status_code == 403 and response.headers.get("X-RateLimit-Remaining") == "0"
        ):
            logger.error("GitHub API rate limit exceeded while trying to %s", action)
        else:
            logger.error("GitHub API HTTP %d error while trying to %s: %s",
                         response.status_code, action, response.text)
        raise GitHubApiError(f"GitHub API error ({action}): HTTP {response.status_code}",
                             response.status_code)

    async def get_authenticated_login(self) -> str:
        async with self._client() as client:
            try:
                response = await client.get("/user")
            except httpx.RequestError as e:
                raise GitHubApiError(f"Network error: {e}") from e
        self._raise_for_status(response, "get authenticated user")
        return response.json()["login"]

    async def get_raw(self, owner: str, repo: str, path: str) -> Optional[Any]:
        """Raw JSON payload for path, or None on 404."""
        async with self._client() as client:
            try:
                response = await client.get(
                    self._contents_url(owner, repo, path),
                    params={"ref": self.settings.branch},
                )
            except httpx.RequestError as e:
                raise GitHubApiError(f"Network error: {e}") from e
        if response.status_code == 404:
            return None
        self._raise_for_status(response, f"get {path}")
        return response.json()

    async def get_file(self, owner: str, repo: str, path: str) -> Optional[RepoFile]:
        """Decoded file at path; None when absent or when path is not a file."""
        data = await self.get_raw(owner, repo, path)
        if not isinstance(data, dict) or "content" not in data:
            if data is not None:
                logger.warning("Unexpected contents response for %s, treating as missing", path)
            return None
        return RepoFile(path=path, content=decode_content(data["content"]), sha=data["sha"])

    async def list_directory(self, owner: str, repo: str, path: str) -> Optional[List[Dict[str, Any]]]:
        """Directory entries, or None when the directory does not exist."""
        data = await self.get_raw(owner, repo, path)
        if data is None:
            return None
        if not isinstance(data, list):
            logger.warning("Expected a directory listing for %s", path)
            return []
        return data

    async def put_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        sha: Optional[str] = None,
    ) -> str:
        """Create or update a file. sha must be given when the file already exists."""
        payload: Dict[str, Any] = {
            "message": message,
            "content": encode_content(content),
            "branch": self.settings.branch,
        }
        if sha:
            payload["sha"] = sha

        async with self._client() as client:
            try:
                response = await client.put(self._contents_url(owner, repo, path), json=payload)
            except httpx.RequestError as e:
                raise GitHubApiError(f"Network error: {e}") from e
        if response.status_code in (409, 422):
            raise WriteConflictError(path, response.status_code)
        self._raise_for_status(response, f"write {path}")
        logger.info("%s %s", "Updated" if sha else "Created", path)
        return response.json()["content"]["sha"]

    async def delete_file(self, owner: str, repo: str, path: str, sha: str, message: str) -> None:
        payload = {"message": message, "sha": sha, "branch": self.settings.branch}
        async with self._client() as client:
            try:
                response = await client.request(
                    "DELETE", self._contents_url(owner, repo, path), json=payload
                )
            except httpx.RequestError as e:
                raise GitHubApiError(f"Network error: {e}") from e
        if response.status_code in (409, 422):
            raise WriteConflictError(path, response.status_code)
        self._raise_for_status(response, f"delete {path}")
        logger.info("Deleted %s", path)
