"""
Core API backend for ProjectPilot.

This module exposes the assistant and the repository file editor through a RESTful API:
- **GET /health**  - liveness check.
- **POST /projects**, **GET /projects/{id}** - create / fetch a project aggregate.
- **POST /sessions** - create a new session on a project, returns a session ID.
- **GET /sessions** - list all active sessions.
- **POST /sessions/{id}/cancel** - cancel the turn in flight.
- **GET /sessions/{id}/messages** - the session conversation.
- **POST /agent**   - multi-turn interaction: {"message": "...", "session_id": "..."}
- **/sessions/{id}/repo/...** - file editor: list, read, write, branches, commits.

File-editor writes go through the session's commit coordinator, so they share its digest cache
with the assistant and both honour compare-and-swap.
"""

import logging
import uuid
from typing import (
    Dict,
    List,
    Optional,
)

from fastapi import (
    FastAPI,
    HTTPException,
)

from projectpilot.agent.agent_loop import (
    AgentSession,
    open_session,
)
from projectpilot.api.models import (
    ConversationResponse,
    FileWriteRequest,
    MessageRequest,
    MessageResponse,
    ProjectCreateRequest,
    SessionRequest,
    SessionResponse,
)
from projectpilot.common import (
    AnsiColors,
    colored_print,
)
from projectpilot.config import settings
from projectpilot.core.errors import (
    AuthMissing,
    Conflict,
    DecodeFailure,
    NotFound,
    ProjectPilotError,
    RepositoryResolutionError,
)
from projectpilot.core.project import Project
from projectpilot.github.gateway import (
    CommitResult,
    CommitSummary,
    FileContent,
    RemoteFile,
)
from projectpilot.github.references import (
    RepositoryReference,
    resolve_repository,
)
from projectpilot.store.project_store import (
    JsonProjectStore,
    ProjectStore,
)

logger = logging.getLogger(__name__)

# Session storage (in-memory for now, could be moved to a database)
sessions: Dict[str, AgentSession] = {}

store: ProjectStore = JsonProjectStore()

_SECRET_SETTINGS = {"GEMINI_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GITHUB_TOKEN"}

app = FastAPI(title="ProjectPilot API", version="0.1.0", description="ProjectPilot assistant API")


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def get_session(session_id: str) -> AgentSession:
    """Return the session or 404."""
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return session


def to_http_error(exc: ProjectPilotError) -> HTTPException:
    """Map an expected failure to an HTTP status."""
    if isinstance(exc, Conflict):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, AuthMissing):
        return HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, (DecodeFailure, RepositoryResolutionError)):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))


def repo_ref(session: AgentSession, repo: str, branch: Optional[str]) -> RepositoryReference:
    try:
        return resolve_repository(repo, session.project.github_repos).on_branch(branch)
    except RepositoryResolutionError as exc:
        raise to_http_error(exc) from exc


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/projects", response_model=Project, summary="Create a project")
async def create_project(req: ProjectCreateRequest) -> Project:
    project = Project(**req.model_dump())
    await store.save(project)
    logger.info("Created project %s (%s)", project.id, project.name)
    return project


@app.get("/projects/{project_id}", response_model=Project, summary="Fetch a project")
async def get_project(project_id: str) -> Project:
    try:
        return await store.load(project_id)
    except ProjectPilotError as exc:
        raise to_http_error(exc) from exc


@app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
async def create_session(req: SessionRequest) -> SessionResponse:
    """Create a new conversation session bound to a project and a user credential."""
    try:
        session = await open_session(req.project_id, store, credential=req.github_token)
    except ProjectPilotError as exc:
        raise to_http_error(exc) from exc
    session_id = str(uuid.uuid4())
    sessions[session_id] = session
    return SessionResponse(session_id=session_id, project_id=req.project_id)


@app.get("/sessions", response_model=List[str], summary="List active sessions")
async def list_sessions() -> List[str]:
    """List all active session IDs."""
    return list(sessions.keys())


@app.post("/sessions/{session_id}/cancel", summary="Cancel the turn in flight")
async def cancel_turn(session_id: str) -> dict[str, bool]:
    return {"cancelled": get_session(session_id).cancel()}


@app.get(
    "/sessions/{session_id}/messages",
    response_model=ConversationResponse,
    summary="Session conversation",
)
async def get_messages(session_id: str) -> ConversationResponse:
    session = get_session(session_id)
    return ConversationResponse(session_id=session_id, messages=session.conversation.messages)


@app.post("/agent", response_model=MessageResponse, summary="Process a message")
async def agent_endpoint(req: MessageRequest) -> MessageResponse:
    """Run one agent turn in the given session."""
    session = get_session(req.session_id)
    if session.busy:
        raise HTTPException(status_code=409, detail="A turn is already running in this session")
    logger.debug("Turn input for session %s: %s", req.session_id, req.message)
    turn = await session.run_turn(req.message)
    return MessageResponse(
        reply=turn.reply or "",
        tool_results=turn.tool_results,
        succeeded=turn.succeeded,
        session_id=req.session_id,
    )


# ---------------------------------------------------------------------------
# File editor routes
# ---------------------------------------------------------------------------
@app.get("/sessions/{session_id}/repo/files", response_model=List[RemoteFile])
async def list_files(
    session_id: str, repo: str, path: str = "", branch: Optional[str] = None
) -> List[RemoteFile]:
    session = get_session(session_id)
    ref = repo_ref(session, repo, branch)
    try:
        return await session.coordinator.gateway.list_entries(
            session.credential, ref.owner, ref.name, path, ref.branch
        )
    except ProjectPilotError as exc:
        raise to_http_error(exc) from exc


@app.get("/sessions/{session_id}/repo/file", response_model=FileContent)
async def read_file(
    session_id: str, repo: str, path: str, branch: Optional[str] = None
) -> FileContent:
    session = get_session(session_id)
    ref = repo_ref(session, repo, branch)
    try:
        return await session.coordinator.read(session.credential, ref, path)
    except ProjectPilotError as exc:
        raise to_http_error(exc) from exc


@app.put("/sessions/{session_id}/repo/file", response_model=CommitResult)
async def write_file(session_id: str, req: FileWriteRequest) -> CommitResult:
    """Commit from the editor; 409 when someone else committed since the last read."""
    session = get_session(session_id)
    ref = repo_ref(session, req.repo, req.branch)
    try:
        return await session.coordinator.save(
            session.credential, ref, req.path, req.content, req.message
        )
    except ProjectPilotError as exc:
        raise to_http_error(exc) from exc


@app.get("/sessions/{session_id}/repo/branches", response_model=List[str])
async def list_branches(session_id: str, repo: str) -> List[str]:
    session = get_session(session_id)
    ref = repo_ref(session, repo, None)
    try:
        return await session.coordinator.gateway.list_branches(
            session.credential, ref.owner, ref.name
        )
    except ProjectPilotError as exc:
        raise to_http_error(exc) from exc


@app.get("/sessions/{session_id}/repo/commits", response_model=List[CommitSummary])
async def list_commits(
    session_id: str, repo: str, branch: Optional[str] = None
) -> List[CommitSummary]:
    session = get_session(session_id)
    ref = repo_ref(session, repo, branch)
    try:
        return await session.coordinator.gateway.list_commits(
            session.credential, ref.owner, ref.name, ref.branch
        )
    except ProjectPilotError as exc:
        raise to_http_error(exc) from exc


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting ProjectPilot API at %s:%d (reload=%s, log_level=%s)",
        host,
        port,
        reload,
        log_level,
    )
    logger.debug("API settings: %s", settings.model_dump(exclude=_SECRET_SETTINGS))

    colored_print(f"ProjectPilot API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "projectpilot.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m projectpilot.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
