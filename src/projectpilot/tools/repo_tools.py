"""
Tools that read from or commit to a connected GitHub repository.

The dispatcher resolves ``repo_url`` (and the optional ``branch``) into ``call.repository`` and
checks the turn's credential before any of these handlers run.
"""

import json
import logging

from projectpilot.config import settings
from projectpilot.core.schema import ParameterSpec
from projectpilot.tools.catalog import register_tool
from projectpilot.tools.context import ToolInvocation

logger = logging.getLogger(__name__)

_REPO = ParameterSpec(
    description=(
        "Full repository URL (e.g. https://github.com/owner/repo), or the owner/name or just the "
        "name of a connected repository."
    ),
    required=True,
)
_BRANCH = ParameterSpec(description="Branch name (optional, default branch if omitted)")


@register_tool(
    "list_repo_files",
    "List the files and folders at a path of a connected repository.",
    {
        "repo_url": _REPO,
        "path": ParameterSpec(description="Folder path (optional, defaults to the root)"),
        "branch": _BRANCH,
    },
    requires_repository=True,
)
async def list_repo_files(call: ToolInvocation) -> str:
    ref = call.repository
    entries = await call.context.coordinator.gateway.list_entries(
        call.context.credential, ref.owner, ref.name, call.arg("path", ""), ref.branch
    )
    return json.dumps([{"name": e.name, "type": e.kind.value, "path": e.path} for e in entries])


@register_tool(
    "read_repo_file",
    "Read the text content of a file in a connected repository.",
    {
        "repo_url": _REPO,
        "file_path": ParameterSpec(description="Full path of the file", required=True),
        "branch": _BRANCH,
    },
    requires_repository=True,
)
async def read_repo_file(call: ToolInvocation) -> str:
    path = call.arg("file_path")
    current = await call.context.coordinator.read(call.context.credential, call.repository, path)
    return f"Content of {current.path} (version {current.digest[:7]}):\n{current.content}"


@register_tool(
    "commit_changes",
    "Commit new content for a file (creates the file if it does not exist).",
    {
        "repo_url": _REPO,
        "file_path": ParameterSpec(description="Path of the file", required=True),
        "content": ParameterSpec(description="The COMPLETE new file content", required=True),
        "message": ParameterSpec(description="Commit message", required=True),
        "branch": _BRANCH,
    },
    requires_repository=True,
)
async def commit_changes(call: ToolInvocation) -> str:
    """Commit through the coordinator; a conflict is reported, never retried."""
    result = await call.context.coordinator.save(
        call.context.credential,
        call.repository,
        call.arg("file_path"),
        call.arg("content"),
        call.arg("message"),
    )
    link = f" {result.permalink}" if result.permalink else ""
    return f"Committed {result.path} (commit {result.commit_sha[:7]}).{link}"


@register_tool(
    "list_repo_branches",
    "List the branches of a connected repository.",
    {"repo_url": _REPO},
    requires_repository=True,
)
async def list_repo_branches(call: ToolInvocation) -> str:
    ref = call.repository
    branches = await call.context.coordinator.gateway.list_branches(
        call.context.credential, ref.owner, ref.name
    )
    return ", ".join(branches)


@register_tool(
    "list_repo_commits",
    "Show recent commits of a connected repository.",
    {
        "repo_url": _REPO,
        "branch": _BRANCH,
        "limit": ParameterSpec(type="integer", description="How many commits (default 20)"),
    },
    requires_repository=True,
)
async def list_repo_commits(call: ToolInvocation) -> str:
    ref = call.repository
    limit = call.arg("limit", settings.COMMIT_HISTORY_LIMIT)
    commits = await call.context.coordinator.gateway.list_commits(
        call.context.credential, ref.owner, ref.name, ref.branch, limit=limit
    )
    if not commits:
        return "No commits found."
    lines = []
    for c in commits:
        subject = c.message.splitlines()[0] if c.message else ""
        lines.append(f"{c.digest[:7]} {c.author_date} {c.author_name}: {subject}")
    return "\n".join(lines)


@register_tool(
    "read_repo_readme",
    "Read the README of a connected repository.",
    {"repo_url": _REPO, "branch": _BRANCH},
    requires_repository=True,
)
async def read_repo_readme(call: ToolInvocation) -> str:
    ref = call.repository
    readme = await call.context.coordinator.gateway.get_readme(
        call.context.credential, ref.owner, ref.name, ref.branch
    )
    return readme or f"{ref.slug} has no README."


@register_tool(
    "create_repo_branch",
    "Create a new branch in a connected repository.",
    {
        "repo_url": _REPO,
        "new_branch": ParameterSpec(description="Name of the branch to create", required=True),
        "from_branch": ParameterSpec(description="Base branch (default main)"),
    },
    requires_repository=True,
)
async def create_repo_branch(call: ToolInvocation) -> str:
    ref = call.repository
    gateway = call.context.coordinator.gateway
    base = call.arg("from_branch", ref.branch or settings.DEFAULT_BRANCH)
    base_sha = await gateway.get_ref_sha(
        call.context.credential, ref.owner, ref.name, f"heads/{base}"
    )
    created = await gateway.create_branch(
        call.context.credential, ref.owner, ref.name, call.arg("new_branch"), base_sha
    )
    return f"Branch {created} created from {base} ({base_sha[:7]})."
