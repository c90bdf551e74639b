"""
Tool registry for ProjectPilot.

Importing this package registers the built-in tools in :data:`TOOL_CATALOG`: the project
mutations (``create_task``, ``update_task_status``, ``create_documentation``,
``update_project_description``) and the repository tools (``list_repo_files``,
``read_repo_file``, ``commit_changes`` and friends).
"""

from projectpilot.tools import (  # noqa: F401  pylint: disable=unused-import
    project_tools,
    repo_tools,
)
from projectpilot.tools.catalog import (
    TOOL_CATALOG,
    ToolCatalog,
    ToolHandler,
    ToolSpec,
    register_tool,
    validate_arguments,
)
from projectpilot.tools.context import (
    ToolInvocation,
    TurnContext,
)

__all__ = [
    "TOOL_CATALOG",
    "ToolCatalog",
    "ToolHandler",
    "ToolInvocation",
    "ToolSpec",
    "TurnContext",
    "register_tool",
    "validate_arguments",
]
