"""
Shared fixtures: an in-memory GitHub repository served through httpx.MockTransport.
"""

import base64
import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from models import ContentSettings
from services.cache import ContentCache


class FakeGitHub:
    """Minimal contents API and raw-content host backed by a dict of files.

    Files are keyed by (owner, repo, path). Every request is recorded in
    self.requests so tests can assert on exactly what went over the wire.
    """

    def __init__(self, login: str = "alice"):
        self.login = login
        self.files: Dict[Tuple[str, str, str], Tuple[str, str]] = {}
        self.requests: List[httpx.Request] = []
        self.fail_paths: Dict[str, int] = {}
        self._sha_counter = 0

    def _next_sha(self) -> str:
        self._sha_counter += 1
        return f"sha{self._sha_counter}"

    def add_file(self, path: str, content: str, owner: str = "alice", repo: str = "Cofe") -> str:
        sha = self._next_sha()
        self.files[(owner, repo, path)] = (content, sha)
        return sha

    def add_json(self, path: str, data: Any, owner: str = "alice", repo: str = "Cofe") -> str:
        return self.add_file(path, json.dumps(data), owner, repo)

    def read(self, path: str, owner: str = "alice", repo: str = "Cofe") -> Optional[str]:
        entry = self.files.get((owner, repo, path))
        return entry[0] if entry else None

    def read_json(self, path: str, owner: str = "alice", repo: str = "Cofe") -> Any:
        return json.loads(self.read(path, owner, repo))

    def requests_for(self, method: str, fragment: str = "") -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and fragment in r.url.path]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "raw.githubusercontent.com":
            return self._handle_raw(request)
        return self._handle_api(request)

    def _handle_raw(self, request: httpx.Request) -> httpx.Response:
        _, owner, repo, _branch, path = request.url.path.split("/", 4)
        if path in self.fail_paths:
            return httpx.Response(self.fail_paths[path])
        entry = self.files.get((owner, repo, path))
        if entry is None:
            return httpx.Response(404, text="404: Not Found")
        return httpx.Response(200, text=entry[0])

    def _handle_api(self, request: httpx.Request) -> httpx.Response:
        if request.headers.get("Authorization") != "Bearer test-token":
            return httpx.Response(401, json={"message": "Bad credentials"})
        if request.url.path == "/user":
            return httpx.Response(200, json={"login": self.login})

        _, _, owner, repo, _, path = request.url.path.split("/", 5)
        if path in self.fail_paths:
            return httpx.Response(self.fail_paths[path], json={"message": "boom"})
        key = (owner, repo, path)

        if request.method == "GET":
            return self._get(key)
        payload = json.loads(request.content)
        current = self.files.get(key)
        if request.method == "PUT":
            if current is not None and payload.get("sha") != current[1]:
                return httpx.Response(409, json={"message": "sha mismatch"})
            if current is None and payload.get("sha"):
                return httpx.Response(422, json={"message": "sha given for new file"})
            sha = self._next_sha()
            text = base64.b64decode(payload["content"]).decode("utf-8")
            self.files[key] = (text, sha)
            return httpx.Response(201 if current is None else 200, json={"content": {"sha": sha}})
        if request.method == "DELETE":
            if current is None:
                return httpx.Response(404, json={"message": "Not Found"})
            if payload.get("sha") != current[1]:
                return httpx.Response(409, json={"message": "sha mismatch"})
            del self.files[key]
            return httpx.Response(200, json={"commit": {}})
        return httpx.Response(405)

    def _get(self, key: Tuple[str, str, str]) -> httpx.Response:
        owner, repo, path = key
        entry = self.files.get(key)
        if entry is not None:
            return httpx.Response(200, json={
                "type": "file",
                "name": path.rsplit("/", 1)[-1],
                "path": path,
                "sha": entry[1],
                "encoding": "base64",
                "content": base64.b64encode(entry[0].encode("utf-8")).decode("utf-8"),
            })

        prefix = f"{path}/"
        children = []
        for (o, r, p), (_, sha) in self.files.items():
            if o == owner and r == repo and p.startswith(prefix) and "/" not in p[len(prefix):]:
                children.append({"type": "file", "name": p[len(prefix):], "path": p, "sha": sha})
        if not children:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json=sorted(children, key=lambda c: c["name"]))


def post_text(title: str, date: str, body: str = "Body text.", status: Optional[str] = None) -> str:
    lines = ["---", f"title: {title}", f"date: {date}"]
    if status:
        lines.append(f"status: {status}")
    lines.append("---")
    return "\n".join(lines) + "\n\n" + body


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def cache():
    return ContentCache()


@pytest.fixture
def settings():
    return ContentSettings(github_username="alice")


@pytest.fixture
def make_post():
    return post_text
