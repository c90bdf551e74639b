"""
Stateless async client for the GitHub REST API.

Every operation takes the caller's bearer credential explicitly; nothing is read from ambient
state.  Responses are normalised into the pydantic models below so the rest of the code never
touches raw GitHub JSON.
"""

import base64
import binascii
import logging
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
)
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from projectpilot.config import settings
from projectpilot.core.errors import (
    AuthMissing,
    Conflict,
    DecodeFailure,
    NotFound,
    RepositoryError,
)

logger = logging.getLogger(__name__)

_FALLBACK_BRANCHES = ["main"]
_MAX_PAGE_SIZE = 100


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
class EntryKind(str, Enum):
    """Remote entry type."""

    FILE = "file"
    DIRECTORY = "directory"


class RemoteFile(BaseModel):
    """Metadata of a remote file or directory."""

    name: str
    path: str
    digest: str
    size: int = 0
    kind: EntryKind = EntryKind.FILE
    permalink: Optional[str] = None


class FileContent(BaseModel):
    """Decoded text of a remote file together with its digest."""

    path: str
    content: str
    digest: str


class CommitRequest(BaseModel):
    """One compare-and-swap write; no ``expected_digest`` means create-only."""

    path: str
    new_content: str
    message: str
    expected_digest: Optional[str] = None


class CommitResult(BaseModel):
    """Outcome of a successful compare-and-swap write."""

    path: str
    digest: str
    commit_sha: str
    permalink: Optional[str] = None


class CommitSummary(BaseModel):
    """One entry of the commit history."""

    digest: str
    message: str
    author_name: str
    author_date: str
    permalink: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _require(credential: Optional[str]) -> str:
    if not credential:
        raise AuthMissing()
    return credential


def _contents_url(owner: str, repo: str, path: str) -> str:
    clean = quote(path.strip("/"), safe="/")
    base = f"/repos/{owner}/{repo}/contents"
    return f"{base}/{clean}" if clean else base


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.reason_phrase


def _to_remote_file(item: Dict[str, Any]) -> RemoteFile:
    kind = EntryKind.DIRECTORY if item.get("type") == "dir" else EntryKind.FILE
    return RemoteFile(
        name=item["name"],
        path=item["path"],
        digest=item["sha"],
        size=item.get("size") or 0,
        kind=kind,
        permalink=item.get("html_url"),
    )


def _decode_content(path: str, data: Any) -> str:
    if isinstance(data, list):
        raise DecodeFailure(f"'{path}' is a directory, not a file.")
    if data.get("encoding") != "base64" or data.get("content") is None:
        raise DecodeFailure(f"'{path}' is not available as inline text (too large or binary).")
    try:
        raw = base64.b64decode(data["content"])
    except (binascii.Error, ValueError) as exc:
        raise DecodeFailure(f"'{path}' has malformed transport encoding.") from exc
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeFailure(f"'{path}' is binary or not UTF-8 text.") from exc


def sort_entries(entries: List[RemoteFile]) -> List[RemoteFile]:
    """Directories first, then by name."""
    return sorted(entries, key=lambda e: (e.kind is not EntryKind.DIRECTORY, e.name))


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------
class RemoteRepositoryGateway:
    """
    Thin wrapper around the GitHub contents, branches and commits endpoints.

    Parameters
    ----------
    base_url:
        API root, defaults to ``settings.GITHUB_API_URL``.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional ``httpx`` transport; tests plug in an ``httpx.MockTransport`` here.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url or settings.GITHUB_API_URL
        self._timeout = timeout if timeout is not None else settings.GITHUB_TIMEOUT
        self._transport = transport

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #
    async def _request(
        self,
        method: str,
        url: str,
        credential: Optional[str],
        *,
        params: Dict[str, Any] | None = None,
        json: Dict[str, Any] | None = None,
    ) -> httpx.Response:
        token = _require(credential)
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github.v3+json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                logger.debug("GitHub %s %s params=%s", method, url, params)
                return await client.request(method, url, headers=headers, params=params, json=json)
        except httpx.HTTPError as exc:
            logger.error("GitHub request error: %s", str(exc))
            raise RepositoryError(f"Error calling GitHub: {exc}") from exc

    @staticmethod
    def _check(response: httpx.Response, what: str) -> None:
        if response.is_success:
            return
        message = _error_message(response)
        status = response.status_code
        if status == 404:
            raise NotFound(f"{what} not found.")
        if status == 409:
            raise Conflict(f"{what}: {message}")
        raise RepositoryError(f"{what} failed ({status}): {message}", status_code=status)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def list_entries(
        self,
        credential: Optional[str],
        owner: str,
        repo: str,
        path: str = "",
        branch: Optional[str] = None,
    ) -> List[RemoteFile]:
        """List a directory; a file path yields a one-element list."""
        params = {"ref": branch} if branch else None
        resp = await self._request(
            "GET", _contents_url(owner, repo, path), credential, params=params
        )
        self._check(resp, f"Path '{path or '/'}' in {owner}/{repo}")
        data = resp.json()
        items = data if isinstance(data, list) else [data]
        return sort_entries([_to_remote_file(item) for item in items])

    async def read_file(
        self,
        credential: Optional[str],
        owner: str,
        repo: str,
        path: str,
        branch: Optional[str] = None,
    ) -> FileContent:
        """Return the decoded UTF-8 text of *path* and its digest."""
        params = {"ref": branch} if branch else None
        resp = await self._request(
            "GET", _contents_url(owner, repo, path), credential, params=params
        )
        self._check(resp, f"File '{path}' in {owner}/{repo}")
        data = resp.json()
        content = _decode_content(path, data)
        return FileContent(path=data.get("path", path), content=content, digest=data["sha"])

    async def get_digest(
        self,
        credential: Optional[str],
        owner: str,
        repo: str,
        path: str,
        branch: Optional[str] = None,
    ) -> str:
        """
        Current digest of *path* without decoding its content.

        Works for binary, non-UTF-8 and oversized files alike, so any existing file can be
        replaced under compare-and-swap.
        """
        params = {"ref": branch} if branch else None
        resp = await self._request(
            "GET", _contents_url(owner, repo, path), credential, params=params
        )
        self._check(resp, f"File '{path}' in {owner}/{repo}")
        data = resp.json()
        if isinstance(data, list):
            raise DecodeFailure(f"'{path}' is a directory, not a file.")
        return data["sha"]

    async def write_file(
        self,
        credential: Optional[str],
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        expected_digest: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> CommitResult:
        """Create or update *path* under compare-and-swap."""
        request = CommitRequest(
            path=path, new_content=content, message=message, expected_digest=expected_digest
        )
        return await self.commit(credential, owner, repo, request, branch=branch)

    async def commit(
        self,
        credential: Optional[str],
        owner: str,
        repo: str,
        request: CommitRequest,
        branch: Optional[str] = None,
    ) -> CommitResult:
        """
        Submit *request*; the service checks the expected digest atomically.

        Omitting ``expected_digest`` means create-only: if the file already exists the service
        rejects the write and :class:`Conflict` is raised.
        """
        path = request.path
        expected_digest = request.expected_digest
        body: Dict[str, Any] = {
            "message": request.message,
            "content": base64.b64encode(request.new_content.encode("utf-8")).decode("ascii"),
        }
        if branch:
            body["branch"] = branch
        if expected_digest:
            body["sha"] = expected_digest

        resp = await self._request("PUT", _contents_url(owner, repo, path), credential, json=body)
        if resp.status_code == 422 and not expected_digest:
            raise Conflict(f"File '{path}' already exists in {owner}/{repo}; read it first.")
        self._check(resp, f"Commit to '{path}' in {owner}/{repo}")

        data = resp.json()
        commit = data.get("commit") or {}
        file_meta = data.get("content") or {}
        result = CommitResult(
            path=file_meta.get("path", path),
            digest=file_meta["sha"],
            commit_sha=commit.get("sha", ""),
            permalink=commit.get("html_url"),
        )
        logger.info(
            "Committed %s to %s/%s (%s -> %s)",
            path,
            owner,
            repo,
            expected_digest or "new",
            result.digest,
        )
        return result

    async def list_branches(self, credential: Optional[str], owner: str, repo: str) -> List[str]:
        """Branch names; falls back to ``["main"]`` because the listing is informational."""
        _require(credential)
        try:
            resp = await self._request("GET", f"/repos/{owner}/{repo}/branches", credential)
            self._check(resp, f"Branches of {owner}/{repo}")
            return [b["name"] for b in resp.json()]
        except (RepositoryError, NotFound, Conflict) as exc:
            logger.warning("Branch listing failed for %s/%s, using fallback: %s", owner, repo, exc)
            return list(_FALLBACK_BRANCHES)

    async def list_commits(
        self,
        credential: Optional[str],
        owner: str,
        repo: str,
        branch: Optional[str] = None,
        limit: int | None = None,
    ) -> List[CommitSummary]:
        """Most recent commits first; *limit* is clamped to the service's 1..100 page size."""
        if limit is None:
            limit = settings.COMMIT_HISTORY_LIMIT
        params: Dict[str, Any] = {"per_page": max(1, min(_MAX_PAGE_SIZE, limit))}
        if branch:
            params["sha"] = branch
        resp = await self._request(
            "GET", f"/repos/{owner}/{repo}/commits", credential, params=params
        )
        self._check(resp, f"Commits of {owner}/{repo}")
        summaries = []
        for item in resp.json():
            commit = item.get("commit") or {}
            author = commit.get("author") or {}
            summaries.append(
                CommitSummary(
                    digest=item["sha"],
                    message=commit.get("message", ""),
                    author_name=author.get("name", ""),
                    author_date=author.get("date", ""),
                    permalink=item.get("html_url"),
                )
            )
        return summaries

    async def get_readme(
        self, credential: Optional[str], owner: str, repo: str, branch: Optional[str] = None
    ) -> str:
        """README text, or an empty string when the repository has none."""
        params = {"ref": branch} if branch else None
        resp = await self._request(
            "GET", f"/repos/{owner}/{repo}/readme", credential, params=params
        )
        if resp.status_code == 404:
            return ""
        self._check(resp, f"README of {owner}/{repo}")
        return _decode_content("README", resp.json())

    async def get_ref_sha(self, credential: Optional[str], owner: str, repo: str, ref: str) -> str:
        """Commit SHA a ref such as ``heads/main`` points at."""
        resp = await self._request("GET", f"/repos/{owner}/{repo}/git/ref/{ref}", credential)
        self._check(resp, f"Ref '{ref}' of {owner}/{repo}")
        return resp.json()["object"]["sha"]

    async def create_branch(
        self, credential: Optional[str], owner: str, repo: str, new_branch: str, base_sha: str
    ) -> str:
        """Create *new_branch* at *base_sha* and return the full ref name."""
        body = {"ref": f"refs/heads/{new_branch}", "sha": base_sha}
        resp = await self._request("POST", f"/repos/{owner}/{repo}/git/refs", credential, json=body)
        if resp.status_code == 422:
            raise Conflict(f"Branch '{new_branch}' already exists in {owner}/{repo}.")
        self._check(resp, f"Create branch '{new_branch}' in {owner}/{repo}")
        return resp.json()["ref"]
