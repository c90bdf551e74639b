"""
Safe read-then-write sequencing on top of :class:`RemoteRepositoryGateway`.

The remote digest is the only concurrency control shared between this session, the file
editor and any other client.  The coordinator therefore never writes to an existing path
without having observed its digest, and never resolves a conflict on its own: a
:class:`Conflict` always reaches the caller, who decides whether to re-read, diff or overwrite.
"""

import logging
from typing import (
    Dict,
    Optional,
    Tuple,
)

from projectpilot.core.errors import NotFound
from projectpilot.github.gateway import (
    CommitRequest,
    CommitResult,
    FileContent,
    RemoteRepositoryGateway,
)
from projectpilot.github.references import RepositoryReference

logger = logging.getLogger(__name__)

_DigestKey = Tuple[str, str, str, str]


def _key(ref: RepositoryReference, path: str) -> _DigestKey:
    return (ref.owner.lower(), ref.name.lower(), ref.branch or "", path.strip("/"))


class CommitCoordinator:
    """Per-session digest cache plus the compare-and-swap commit protocol."""

    def __init__(self, gateway: RemoteRepositoryGateway) -> None:
        self._gateway = gateway
        self._known: Dict[_DigestKey, str] = {}

    @property
    def gateway(self) -> RemoteRepositoryGateway:
        return self._gateway

    def known_digest(self, ref: RepositoryReference, path: str) -> Optional[str]:
        """Last digest observed for *path*, if any."""
        return self._known.get(_key(ref, path))

    def remember(self, ref: RepositoryReference, path: str, digest: str) -> None:
        """Record *digest* as the current version of *path*."""
        self._known[_key(ref, path)] = digest

    def forget(self, ref: RepositoryReference, path: str) -> None:
        """Drop the cached digest; the next save re-reads the remote file."""
        self._known.pop(_key(ref, path), None)

    async def read(
        self, credential: Optional[str], ref: RepositoryReference, path: str
    ) -> FileContent:
        """Read *path* and remember its digest for the next write."""
        current = await self._gateway.read_file(credential, ref.owner, ref.name, path, ref.branch)
        self.remember(ref, path, current.digest)
        return current

    async def save(
        self,
        credential: Optional[str],
        ref: RepositoryReference,
        path: str,
        content: str,
        message: str,
    ) -> CommitResult:
        """
        Write *content* to *path* guarded by the last known digest.

        Raises
        ------
        Conflict
            The remote file changed since it was last read.  The stale digest stays cached so
            that retrying blindly keeps failing until the caller re-reads.
        """
        expected = self.known_digest(ref, path)
        if expected is None:
            try:
                expected = await self._gateway.get_digest(
                    credential, ref.owner, ref.name, path, ref.branch
                )
                self.remember(ref, path, expected)
            except NotFound:
                logger.debug("%s not found in %s, committing in create mode", path, ref.slug)
                expected = None

        request = CommitRequest(
            path=path, new_content=content, message=message, expected_digest=expected
        )
        result = await self._gateway.commit(
            credential, ref.owner, ref.name, request, branch=ref.branch
        )
        self.remember(ref, path, result.digest)
        return result
