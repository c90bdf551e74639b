"""
Pydantic models for ProjectPilot API requests and responses.
This module defines the request and response schemas used by the ProjectPilot API.
"""

from typing import (
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from projectpilot.core.schema import (
    ConversationMessage,
    ToolResult,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class ProjectCreateRequest(BaseModel):
    """Create a new project."""

    name: str
    description: str = ""
    github_repos: List[str] = Field(default_factory=list)
    subsystems: List[str] = Field(default_factory=list)
    roles: List[str] = Field(default_factory=list)


class SessionRequest(BaseModel):
    """Request to create a new session on a project."""

    project_id: str = Field(..., description="Project the assistant works on")
    github_token: Optional[str] = Field(None, description="Repository credential of the user")


class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str
    project_id: str


class MessageRequest(BaseModel):
    """Incoming user message."""

    message: str = Field(..., description="User message for the assistant")
    session_id: str = Field(..., description="Session ID for conversation context")


class MessageResponse(BaseModel):
    """API response returned to the caller."""

    reply: str
    tool_results: List[ToolResult] = Field(default_factory=list)
    succeeded: bool = True
    session_id: str


class ConversationResponse(BaseModel):
    """Full conversation of a session."""

    session_id: str
    messages: List[ConversationMessage]


class FileWriteRequest(BaseModel):
    """Commit from the file editor."""

    repo: str = Field(..., description="Repository URL, owner/name or connected repo name")
    path: str
    content: str
    message: str
    branch: Optional[str] = None
