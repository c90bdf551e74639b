"""
Schema definitions for backend <-> agent <-> tool messages.

These data models serve as the contract between the reasoning backend, the orchestration loop,
and individual tools.  We keep them separate from runtime logic so they can be imported anywhere
without side-effects.
"""

import uuid
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Literal,
    Mapping,
    Optional,
    Tuple,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)


class ToolCall(BaseModel):
    """A call that the reasoning backend wants the agent to execute."""

    name: str = Field(..., description="Tool name as chosen by the backend")
    arguments: Dict[str, Any] = Field(
        default_factory=dict, description="Keyword arguments for the tool (untrusted)"
    )


class ToolResult(BaseModel):
    """Outcome of exactly one :class:`ToolCall`."""

    call_name: str
    output_text: str
    succeeded: bool


class MessageRole(str, Enum):
    """Who authored a conversation message."""

    USER = "user"
    AGENT = "agent"
    SYSTEM_STATUS = "system-status"


class ConversationMessage(BaseModel):
    """One entry of the session conversation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: MessageRole
    content: str


class Conversation:
    """
    Ordered, append-only message log for one session.

    Only ``system-status`` entries may ever be removed, and only by identity.
    """

    def __init__(self, messages: Optional[List[ConversationMessage]] = None) -> None:
        self._messages: List[ConversationMessage] = list(messages or [])

    @property
    def messages(self) -> List[ConversationMessage]:
        """Return a snapshot of the conversation."""
        return list(self._messages)

    def append(self, role: MessageRole, content: str) -> ConversationMessage:
        """Append a new message and return it."""
        message = ConversationMessage(role=role, content=content)
        self._messages.append(message)
        return message

    def add(self, message: ConversationMessage) -> None:
        """Append an already built message."""
        self._messages.append(message)

    def post_status(self, content: str) -> ConversationMessage:
        """Append a transient status message."""
        return self.append(MessageRole.SYSTEM_STATUS, content)

    def prune_status(self, message: ConversationMessage) -> None:
        """Remove a transient status message previously posted."""
        if message.role is not MessageRole.SYSTEM_STATUS:
            raise ValueError("Only system-status messages can be pruned.")
        self._messages = [m for m in self._messages if m.id != message.id]

    def recent(self, count: int) -> List[ConversationMessage]:
        """Return the last *count* messages, status entries excluded."""
        history = [m for m in self._messages if m.role is not MessageRole.SYSTEM_STATUS]
        return history[-count:] if count > 0 else []

    def __len__(self) -> int:
        return len(self._messages)


# ---------------------------------------------------------------------------
# Tool declarations
# ---------------------------------------------------------------------------
class ParameterSpec(BaseModel):
    """Schema of a single tool parameter."""

    model_config = ConfigDict(frozen=True)

    type: Literal["string", "integer", "number", "boolean"] = "string"
    description: str = ""
    enum: Optional[Tuple[str, ...]] = None
    required: bool = False


class ToolDeclaration(BaseModel):
    """Name, description and parameter schema the backend sees for one tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: Mapping[str, ParameterSpec] = Field(default_factory=dict)

    @property
    def required(self) -> List[str]:
        """Names of the required parameters, in declaration order."""
        return [name for name, spec in self.parameters.items() if spec.required]

    def json_schema(self) -> Dict[str, Any]:
        """Render the parameters as a JSON schema object."""
        properties: Dict[str, Any] = {}
        for name, spec in self.parameters.items():
            prop: Dict[str, Any] = {"type": spec.type}
            if spec.description:
                prop["description"] = spec.description
            if spec.enum:
                prop["enum"] = list(spec.enum)
            properties[name] = prop
        return {"type": "object", "properties": properties, "required": self.required}


# ---------------------------------------------------------------------------
# Reasoning backend contract
# ---------------------------------------------------------------------------
class GenerationConfig(BaseModel):
    """Per-request backend configuration."""

    system_instruction: str
    tools: List[ToolDeclaration] = Field(default_factory=list)


class BackendRequest(BaseModel):
    """A single outbound request to the reasoning backend."""

    model: str
    contents: str
    config: GenerationConfig


class BackendResponse(BaseModel):
    """Either an ordered list of function calls or free text."""

    function_calls: List[ToolCall] = Field(default_factory=list)
    text: Optional[str] = None

    @property
    def has_calls(self) -> bool:
        """A non-empty call list always takes precedence over text."""
        return bool(self.function_calls)


class AgentTurn(BaseModel):
    """A single turn in the agent loop (for logging / API responses)."""

    user_message: str
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[ToolResult] = Field(default_factory=list)
    reply: Optional[str] = None
    succeeded: bool = True
