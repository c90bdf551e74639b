"""
Error kinds shared by the agent loop, the tool dispatcher and the repository gateway.

Everything raised on purpose by ProjectPilot derives from :class:`ProjectPilotError`, so the
dispatcher can turn a failed tool call into a readable result without swallowing real bugs.
"""


class ProjectPilotError(RuntimeError):
    """Base class for all expected ProjectPilot failures."""


# ---------------------------------------------------------------------------
# Reasoning backend
# ---------------------------------------------------------------------------
class BackendError(ProjectPilotError):
    """The reasoning backend call failed for a reason that is not retried."""


class RateLimited(BackendError):
    """The reasoning backend asked us to slow down (HTTP 429)."""


# ---------------------------------------------------------------------------
# Tool execution
# ---------------------------------------------------------------------------
class ToolExecutionError(ProjectPilotError):
    """Raised when a requested tool cannot run or fails."""


class UnknownTool(ToolExecutionError):
    """The agent named an operation that is not in the catalog."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool '{name}' is not registered.")
        self.name = name


class InvalidArguments(ToolExecutionError):
    """Arguments supplied by the agent do not match the tool's parameter schema."""


class RepositoryResolutionError(ToolExecutionError):
    """A loose repository string could not be turned into a single reference."""

    def __init__(self, raw: str, reason: str) -> None:
        super().__init__(f"Cannot resolve repository '{raw}': {reason}")
        self.raw = raw


class UnresolvableRepository(RepositoryResolutionError):
    """No known repository matches the supplied string."""


class AmbiguousRepository(RepositoryResolutionError):
    """More than one known repository matches the supplied string."""

    def __init__(self, raw: str, candidates: list[str]) -> None:
        super().__init__(raw, f"ambiguous, matches {', '.join(candidates)}")
        self.candidates = candidates


# ---------------------------------------------------------------------------
# Repository service
# ---------------------------------------------------------------------------
class AuthMissing(ProjectPilotError):
    """No repository credential is bound to the current user."""

    def __init__(self, message: str = "No GitHub credential is connected for this user.") -> None:
        super().__init__(message)


class NotFound(ProjectPilotError):
    """A path, repository, branch or project does not exist."""


class Conflict(ProjectPilotError):
    """A compare-and-swap write was rejected because the remote digest moved on."""


class DecodeFailure(ProjectPilotError):
    """Remote content could not be decoded as UTF-8 text."""


class RepositoryError(ProjectPilotError):
    """Any other failure talking to the repository service."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Turn lifecycle
# ---------------------------------------------------------------------------
class TurnCancelled(ProjectPilotError):
    """The turn was cancelled before it finished."""
