"""Execution context handed to tool handlers."""

from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Dict,
    Optional,
)

from projectpilot.core.cancellation import CancellationToken
from projectpilot.core.project import Project
from projectpilot.github.coordinator import CommitCoordinator
from projectpilot.github.references import RepositoryReference
from projectpilot.store.project_store import ProjectStore


@dataclass
class TurnContext:
    """
    Everything one turn needs, fixed when the turn starts.

    ``credential`` is the repository token of the user driving the turn; it is looked up once
    and threaded through every repository call.
    """

    project: Project
    store: ProjectStore
    coordinator: CommitCoordinator
    credential: Optional[str] = None
    cancel: CancellationToken = field(default_factory=CancellationToken)

    async def apply(self, updated: Project) -> Project:
        """Make *updated* the current aggregate and persist it immediately."""
        await self.store.save(updated)
        self.project = updated
        return updated


@dataclass(frozen=True)
class ToolInvocation:
    """Validated arguments of one call plus its resolved repository, if any."""

    arguments: Dict[str, Any]
    context: TurnContext
    repository: Optional[RepositoryReference] = None

    def arg(self, name: str, default: Any = None) -> Any:
        value = self.arguments.get(name)
        return default if value is None else value
