"""Main orchestration loop for ProjectPilot: one user utterance -> one agent turn."""

from __future__ import annotations

import asyncio
import logging
from typing import (
    List,
    Optional,
)

from projectpilot.agent.backend_interface import (
    BaseBackend,
    load_backend,
)
from projectpilot.agent.dispatcher import ToolDispatcher
from projectpilot.agent.retry import (
    RetryingInvoker,
    RetryPolicy,
    Sleeper,
)
from projectpilot.core.cancellation import CancellationToken
from projectpilot.core.errors import (
    BackendError,
    TurnCancelled,
)
from projectpilot.core.project import Project
from projectpilot.core.schema import (
    AgentTurn,
    BackendRequest,
    Conversation,
    GenerationConfig,
    MessageRole,
)
from projectpilot.github.coordinator import CommitCoordinator
from projectpilot.github.gateway import RemoteRepositoryGateway
from projectpilot.store.project_store import ProjectStore
from projectpilot.tools import TurnContext

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are a tech lead assistant for a software project. Use the tools to manage tasks and "
    "documentation and to read and commit code in the connected repositories. When a later "
    "step needs an ID created by an earlier step, call the tools in that order."
)
GREETING = (
    "Hi! I am your project assistant. I can manage tasks and docs and work with your "
    "connected repositories. How can I help?"
)
FAILURE_REPLY = (
    "The AI service is unavailable or overloaded right now. Please try again in a few seconds."
)
CANCELLED_REPLY = "Request cancelled."
HISTORY_WINDOW = 4


class AgentSession:
    """
    Conversation plus the collaborators needed to run turns against one project.

    The repository credential belongs to the user driving the session and is threaded into each
    turn's :class:`TurnContext`; nothing reads it from global state.
    """

    def __init__(
        self,
        project: Project,
        store: ProjectStore,
        backend: Optional[BaseBackend] = None,
        gateway: Optional[RemoteRepositoryGateway] = None,
        credential: Optional[str] = None,
        dispatcher: Optional[ToolDispatcher] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleeper] = None,
        model: Optional[str] = None,
    ) -> None:
        self.project = project
        self.store = store
        self.backend = backend or load_backend()
        self.coordinator = CommitCoordinator(gateway or RemoteRepositoryGateway())
        self.credential = credential
        self.dispatcher = dispatcher or ToolDispatcher()
        self.invoker = RetryingInvoker(self.backend.generate, policy=policy, sleep=sleep)
        self.model = model or self.backend.default_model
        self.conversation = Conversation()
        self.conversation.append(MessageRole.AGENT, GREETING)
        self.current_cancel: Optional[CancellationToken] = None
        self._turn_lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        """True while a turn is running."""
        return self._turn_lock.locked()

    def _build_request(self, user_msg: str) -> BackendRequest:
        previous = self.conversation.recent(HISTORY_WINDOW + 1)[:-1]
        history = "\n".join(f"{m.role.value}: {m.content}" for m in previous)
        prompt_parts: List[str] = [self.project.summary()]
        if history:
            prompt_parts.append("PREVIOUS CONVERSATION:\n" + history)
        prompt_parts.append(f"CURRENT QUERY:\n{user_msg}")
        return BackendRequest(
            model=self.model,
            contents="\n\n".join(prompt_parts),
            config=GenerationConfig(
                system_instruction=SYSTEM_INSTRUCTION,
                tools=self.dispatcher.catalog.declarations(),
            ),
        )

    def cancel(self) -> bool:
        """Cancel the turn in flight, if any."""
        if self.current_cancel is None:
            return False
        self.current_cancel.cancel()
        return True

    async def run_turn(self, user_msg: str) -> AgentTurn:
        """
        Process one user message.

        Turns of one session run one at a time, so each turn starts from the aggregate the
        previous turn left behind.  The user's message is appended first and always stays.  A
        backend failure appends a short failure reply and leaves everything else untouched so the
        user can resend.
        """
        async with self._turn_lock:
            return await self._run_turn(user_msg)

    async def _run_turn(self, user_msg: str) -> AgentTurn:
        self.conversation.append(MessageRole.USER, user_msg)
        request = self._build_request(user_msg)
        cancel = CancellationToken()
        self.current_cancel = cancel
        turn = AgentTurn(user_message=user_msg)
        try:
            response = await self.invoker.invoke(request, self.conversation, cancel)

            if not response.has_calls:
                turn.reply = response.text or "..."
            else:
                logger.info(
                    "Backend returned %d tool calls: %s",
                    len(response.function_calls),
                    [call.name for call in response.function_calls],
                )
                context = TurnContext(
                    project=self.project,
                    store=self.store,
                    coordinator=self.coordinator,
                    credential=self.credential,
                    cancel=cancel,
                )
                try:
                    results = await self.dispatcher.execute(response.function_calls, context)
                finally:
                    self.project = context.project
                turn.tool_calls = list(response.function_calls)
                turn.tool_results = results
                turn.reply = self.dispatcher.render(results).content
        except TurnCancelled:
            turn.reply = CANCELLED_REPLY
            turn.succeeded = False
        except BackendError as exc:
            logger.error("Backend call failed: %s", exc)
            turn.reply = FAILURE_REPLY
            turn.succeeded = False
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error while processing the turn")
            turn.reply = FAILURE_REPLY
            turn.succeeded = False
        finally:
            self.current_cancel = None

        self.conversation.append(MessageRole.AGENT, turn.reply)
        return turn


async def open_session(
    project_id: str,
    store: ProjectStore,
    credential: Optional[str] = None,
    **kwargs,
) -> AgentSession:
    """Load *project_id* from *store* and start a session on it."""
    project = await store.load(project_id)
    return AgentSession(project, store, credential=credential, **kwargs)
