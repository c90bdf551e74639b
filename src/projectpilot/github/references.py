"""
Resolve a loose repository string into a :class:`RepositoryReference`.

Accepted inputs, in order of precedence:

1. a full URL, e.g. ``https://github.com/acme/api`` or ``https://github.com/acme/api/tree/dev``
2. an ``owner/name`` pair naming one of the project's connected repositories
3. a bare name, matched against the project's connected repositories
"""

import logging
import re
from typing import (
    Optional,
    Sequence,
)

from pydantic import (
    BaseModel,
    ConfigDict,
)

from projectpilot.core.errors import (
    AmbiguousRepository,
    UnresolvableRepository,
)

logger = logging.getLogger(__name__)

_URL_RE = re.compile(
    r"^(?:https?://)?(?:www\.)?github\.com/(?P<owner>[^/\s]+)/(?P<name>[^/\s#?]+)"
    r"(?:/tree/(?P<branch>[^\s#?]+))?",
    re.IGNORECASE,
)
_PAIR_RE = re.compile(r"^(?P<owner>[A-Za-z0-9_.-]+)/(?P<name>[A-Za-z0-9_.-]+)$")


class RepositoryReference(BaseModel):
    """Owner, repository name and optional branch (``None`` = default branch)."""

    model_config = ConfigDict(frozen=True)

    owner: str
    name: str
    branch: Optional[str] = None

    @property
    def slug(self) -> str:
        """``owner/name`` form."""
        return f"{self.owner}/{self.name}"

    def on_branch(self, branch: Optional[str]) -> "RepositoryReference":
        """Return a copy pointing at *branch* (no-op when *branch* is empty)."""
        if not branch:
            return self
        return self.model_copy(update={"branch": branch})


def _strip_suffix(name: str) -> str:
    return name[:-4] if name.lower().endswith(".git") else name


def _from_match(match: "re.Match[str]") -> RepositoryReference:
    groups = match.groupdict()
    return RepositoryReference(
        owner=groups["owner"],
        name=_strip_suffix(groups["name"]),
        branch=groups.get("branch") or None,
    )


def _parse(raw: str) -> Optional[RepositoryReference]:
    text = raw.strip().rstrip("/")
    match = _URL_RE.match(text) or _PAIR_RE.match(text)
    return _from_match(match) if match else None


def resolve_repository(raw: str, known: Sequence[str] = ()) -> RepositoryReference:
    """
    Turn *raw* into a single repository reference.

    Parameters
    ----------
    raw:
        User- or agent-supplied string.
    known:
        The project's connected repository URLs, used to resolve ``owner/name`` pairs and bare
        names.

    Raises
    ------
    UnresolvableRepository
        Nothing matches *raw*, or an ``owner/name`` pair is not a connected repository.
    AmbiguousRepository
        A bare name matches more than one connected repository.
    """
    if not raw or not raw.strip():
        raise UnresolvableRepository(raw or "", "empty repository reference")

    text = raw.strip().rstrip("/")
    url_match = _URL_RE.match(text)
    if url_match:
        return _from_match(url_match)

    parsed_known = [(url, _parse(url)) for url in known]
    candidates = [(url, ref) for url, ref in parsed_known if ref is not None]

    pair_match = _PAIR_RE.match(text)
    if pair_match:
        pair = _from_match(pair_match)
        for url, ref in candidates:
            if ref.slug.lower() == pair.slug.lower():
                logger.debug("Resolved repository '%s' to %s", raw, url)
                return ref
        raise UnresolvableRepository(raw, "not one of the project's connected repositories")

    needle = _strip_suffix(text).lower()
    # Exact repository-name match first, then the looser substring match.
    exact = [(url, ref) for url, ref in candidates if ref.name.lower() == needle]
    matches = exact or [(url, ref) for url, ref in candidates if needle in url.lower()]

    if not matches:
        raise UnresolvableRepository(raw, "not a URL and no connected repository matches")
    if len(matches) > 1:
        raise AmbiguousRepository(raw, [url for url, _ in matches])

    url, ref = matches[0]
    logger.debug("Resolved repository '%s' to %s", raw, url)
    return ref
