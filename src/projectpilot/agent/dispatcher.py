"""Dispatches the tool calls of one turn against the catalog and isolates their failures."""

import logging
from typing import (
    List,
    Optional,
    Sequence,
)

from projectpilot.core.errors import (
    AuthMissing,
    ProjectPilotError,
    UnknownTool,
)
from projectpilot.core.schema import (
    ConversationMessage,
    MessageRole,
    ToolCall,
    ToolResult,
)
from projectpilot.github.references import (
    RepositoryReference,
    resolve_repository,
)
from projectpilot.tools import (
    TOOL_CATALOG,
    ToolCatalog,
    ToolInvocation,
    ToolSpec,
    TurnContext,
    validate_arguments,
)

logger = logging.getLogger(__name__)

REPOSITORY_ARGUMENT = "repo_url"
BRANCH_ARGUMENT = "branch"


class ToolDispatcher:
    """
    Execute tool calls strictly in order, one at a time.

    Later calls may depend on what earlier calls in the same turn created (e.g. create a task,
    then set its status), so nothing runs concurrently and every call sees the aggregate as
    left by the previous one.  Each call yields exactly one :class:`ToolResult`; a failing call
    never stops its siblings.
    """

    def __init__(self, catalog: Optional[ToolCatalog] = None) -> None:
        self.catalog = catalog if catalog is not None else TOOL_CATALOG

    async def execute(self, calls: Sequence[ToolCall], context: TurnContext) -> List[ToolResult]:
        """Run *calls* in order and return one result per call, in the same order."""
        results: List[ToolResult] = []
        for call in calls:
            if context.cancel.cancelled:
                results.append(
                    ToolResult(call_name=call.name, output_text="Cancelled.", succeeded=False)
                )
                continue
            result = await self._execute_one(call, context)
            logger.info(
                "Tool '%s' %s: %s",
                call.name,
                "succeeded" if result.succeeded else "failed",
                result.output_text[:200],
            )
            results.append(result)
        return results

    async def _execute_one(self, call: ToolCall, context: TurnContext) -> ToolResult:
        def failed(message: str) -> ToolResult:
            return ToolResult(call_name=call.name, output_text=f"Error: {message}", succeeded=False)

        try:
            spec = self.catalog.get(call.name)
            arguments = validate_arguments(spec.declaration, call.arguments)
            repository = self._resolve(spec, arguments, context)
        except UnknownTool as exc:
            logger.warning("Backend requested unknown tool '%s'", call.name)
            return failed(str(exc))
        except ProjectPilotError as exc:
            return failed(str(exc))

        invocation = ToolInvocation(arguments=arguments, context=context, repository=repository)
        try:
            logger.debug("Executing tool '%s' with args=%s", call.name, arguments)
            output = await spec.handler(invocation)
        except ProjectPilotError as exc:
            return failed(str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", call.name)
            return failed(f"Tool '{call.name}' raised an error: {exc}")
        return ToolResult(call_name=call.name, output_text=output, succeeded=True)

    @staticmethod
    def _resolve(
        spec: ToolSpec, arguments: dict, context: TurnContext
    ) -> Optional[RepositoryReference]:
        if not spec.requires_repository:
            return None
        if not context.credential:
            raise AuthMissing()
        raw = arguments.get(REPOSITORY_ARGUMENT) or ""
        ref = resolve_repository(raw, context.project.github_repos)
        return ref.on_branch(arguments.get(BRANCH_ARGUMENT))

    @staticmethod
    def render(results: Sequence[ToolResult]) -> ConversationMessage:
        """Aggregate all results of a turn into one agent message, preserving call order."""
        content = "\n".join(f"[{r.call_name}]: {r.output_text}" for r in results)
        return ConversationMessage(role=MessageRole.AGENT, content=content)
