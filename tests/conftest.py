"""
Shared fixtures: an in-memory GitHub served through ``httpx.MockTransport`` and a scripted
reasoning backend.
"""

import base64
import hashlib
import json
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Sequence,
    Union,
)

import httpx
import pytest

from projectpilot.agent.backend_interface import BaseBackend
from projectpilot.core.project import Project
from projectpilot.core.schema import (
    BackendRequest,
    BackendResponse,
)
from projectpilot.github.coordinator import CommitCoordinator
from projectpilot.github.gateway import RemoteRepositoryGateway
from projectpilot.store.project_store import InMemoryProjectStore
from projectpilot.tools import TurnContext

API_URL = "https://api.github.test"
TOKEN = "ghp_test"
OWNER = "acme"
REPO = "webapp"


class FakeGitHub:
    """Tiny subset of the GitHub contents/branches/commits API for one repository."""

    def __init__(self, owner: str = OWNER, repo: str = REPO) -> None:
        self.prefix = f"/repos/{owner}/{repo}"
        self.files: Dict[str, bytes] = {}
        self.digests: Dict[str, str] = {}
        self.branches: Dict[str, str] = {"main": "c0ffee0"}
        self.commits: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []
        self.fail_branches = False
        self._version = 0

    # ------------------------------------------------------------------ #
    # Seeding helpers
    # ------------------------------------------------------------------ #
    def _next_digest(self, path: str, data: bytes) -> str:
        self._version += 1
        return hashlib.sha1(f"{path}:{self._version}:".encode() + data).hexdigest()

    def seed(self, path: str, content: Union[str, bytes]) -> str:
        data = content.encode("utf-8") if isinstance(content, str) else content
        self.files[path] = data
        self.digests[path] = self._next_digest(path, data)
        return self.digests[path]

    def count(self, method: str, path_suffix: str) -> int:
        return sum(
            1
            for r in self.requests
            if r.method == method and r.url.path == f"{self.prefix}{path_suffix}"
        )

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #
    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("authorization") != f"Bearer {TOKEN}":
            return httpx.Response(401, json={"message": "Bad credentials"})

        path = request.url.path
        if not path.startswith(self.prefix):
            return httpx.Response(404, json={"message": "Not Found"})
        rest = path[len(self.prefix) :]

        if rest == "/contents" or rest.startswith("/contents/"):
            file_path = rest[len("/contents") :].strip("/")
            if request.method == "GET":
                return self._get_contents(file_path)
            if request.method == "PUT":
                return self._put_contents(file_path, json.loads(request.content))
        if rest == "/readme" and request.method == "GET":
            return self._get_contents("README.md")
        if rest == "/branches":
            if self.fail_branches:
                return httpx.Response(500, json={"message": "Server Error"})
            return httpx.Response(200, json=[{"name": name} for name in self.branches])
        if rest == "/commits":
            limit = int(request.url.params.get("per_page", "30"))
            return httpx.Response(200, json=list(reversed(self.commits))[:limit])
        if rest.startswith("/git/ref/heads/"):
            branch = rest[len("/git/ref/heads/") :]
            if branch not in self.branches:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"object": {"sha": self.branches[branch]}})
        if rest == "/git/refs" and request.method == "POST":
            body = json.loads(request.content)
            name = body["ref"][len("refs/heads/") :]
            if name in self.branches:
                return httpx.Response(422, json={"message": "Reference already exists"})
            self.branches[name] = body["sha"]
            return httpx.Response(201, json={"ref": body["ref"], "object": {"sha": body["sha"]}})
        return httpx.Response(404, json={"message": "Not Found"})

    def _entry(self, path: str) -> Dict[str, Any]:
        return {
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "sha": self.digests[path],
            "size": len(self.files[path]),
            "type": "file",
            "html_url": f"https://github.test{self.prefix}/blob/main/{path}",
        }

    def _get_contents(self, path: str) -> httpx.Response:
        if path in self.files:
            body = self._entry(path)
            body["encoding"] = "base64"
            body["content"] = base64.encodebytes(self.files[path]).decode("ascii")
            return httpx.Response(200, json=body)

        prefix = f"{path}/" if path else ""
        children: Dict[str, Dict[str, Any]] = {}
        for file_path in self.files:
            if not file_path.startswith(prefix):
                continue
            head, _, tail = file_path[len(prefix) :].partition("/")
            child = f"{prefix}{head}"
            if tail:
                children[child] = {
                    "name": head,
                    "path": child,
                    "sha": hashlib.sha1(child.encode()).hexdigest(),
                    "size": 0,
                    "type": "dir",
                }
            else:
                children[child] = self._entry(child)
        if not children:
            return httpx.Response(404, json={"message": "Not Found"})
        # GitHub's own ordering is irrelevant; reverse it so sorting is observable
        listing = sorted(children.values(), key=lambda c: c["name"], reverse=True)
        return httpx.Response(200, json=listing)

    def _put_contents(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        expected = body.get("sha")
        if path in self.files:
            if expected is None:
                return httpx.Response(
                    422, json={"message": "Invalid request. \"sha\" wasn't supplied."}
                )
            if expected != self.digests[path]:
                return httpx.Response(
                    409, json={"message": f"{path} does not match {expected}"}
                )
        elif expected is not None:
            return httpx.Response(409, json={"message": f"{path} does not match {expected}"})

        data = base64.b64decode(body["content"])
        created = path not in self.files
        digest = self.seed(path, data)
        commit_sha = hashlib.sha1(f"commit:{digest}".encode()).hexdigest()
        self.commits.append(
            {
                "sha": commit_sha,
                "commit": {
                    "message": body["message"],
                    "author": {"name": "Test User", "date": "2026-10-19T12:00:00Z"},
                },
                "html_url": f"https://github.test{self.prefix}/commit/{commit_sha}",
            }
        )
        return httpx.Response(
            201 if created else 200,
            json={
                "content": {"name": path.rsplit("/", 1)[-1], "path": path, "sha": digest},
                "commit": {"sha": commit_sha, "html_url": self.commits[-1]["html_url"]},
            },
        )


class ScriptedBackend(BaseBackend):
    """Backend that replays a fixed sequence of responses or exceptions."""

    default_model = "scripted-model"

    def __init__(self, script: Sequence[Union[BackendResponse, BaseException]]) -> None:
        self.script = list(script)
        self.requests: List[BackendRequest] = []

    async def generate(self, request: BackendRequest) -> BackendResponse:
        self.requests.append(request)
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that only records the requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def gateway(github: FakeGitHub) -> RemoteRepositoryGateway:
    return RemoteRepositoryGateway(base_url=API_URL, transport=httpx.MockTransport(github.handle))


@pytest.fixture
def coordinator(gateway: RemoteRepositoryGateway) -> CommitCoordinator:
    return CommitCoordinator(gateway)


@pytest.fixture
def project() -> Project:
    return Project(name="Webapp", github_repos=[f"https://github.com/{OWNER}/{REPO}"])


@pytest.fixture
def store() -> InMemoryProjectStore:
    return InMemoryProjectStore()


@pytest.fixture
def make_context(project, store, coordinator):
    """Build a :class:`TurnContext`; pass ``credential=None`` to simulate a signed-out user."""

    def factory(credential: Optional[str] = TOKEN) -> TurnContext:
        return TurnContext(
            project=project, store=store, coordinator=coordinator, credential=credential
        )

    return factory
